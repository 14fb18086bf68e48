from collections.abc import Mapping
from enum import StrEnum
from typing import Any, Protocol

from authgate.context import ProvisioningContext

# Output attribute under which a platform may expose its native resource object.
# The Pulumi platform uses it to turn graph edges into ResourceOptions.depends_on.
RESOURCE_KEY = "resource"


class ResourceKind(StrEnum):
    USER_POOL = "user_pool"
    USER_POOL_CLIENT = "user_pool_client"
    FUNCTION = "function"
    INVOCATION_ROLE = "invocation_role"
    HTTP_API = "http_api"
    AUTHORIZER = "authorizer"
    INTEGRATION = "integration"
    ROUTE = "route"
    DEPLOYMENT = "deployment"
    STAGE = "stage"


# Output attributes every platform must return for each kind. Components build their
# Deferred handles from these names.
OUTPUT_ATTRIBUTES: dict[ResourceKind, tuple[str, ...]] = {
    ResourceKind.USER_POOL: ("id", "arn", "region"),
    ResourceKind.USER_POOL_CLIENT: ("id",),
    ResourceKind.FUNCTION: ("arn", "invoke_arn", "name"),
    ResourceKind.INVOCATION_ROLE: ("arn", "name"),
    ResourceKind.HTTP_API: ("id", "endpoint", "execution_arn", "region"),
    ResourceKind.AUTHORIZER: ("id",),
    ResourceKind.INTEGRATION: ("id",),
    ResourceKind.ROUTE: ("id", "key"),
    ResourceKind.DEPLOYMENT: ("id",),
    ResourceKind.STAGE: ("name", "url"),
}


class Platform(Protocol):
    """Creates resources for a provisioning run.

    ``create`` receives the node's properties with every Deferred already resolved
    and the outputs of all nodes it depends on. It returns the node's outputs, which
    must contain at least the attributes listed in OUTPUT_ATTRIBUTES for the kind.
    Provider-side rejections are raised as PlatformError.
    """

    supports_parallel: bool

    def create(
        self,
        kind: ResourceKind,
        name: str,
        props: Mapping[str, Any],
        ctx: ProvisioningContext,
        dependencies: Mapping[str, Mapping[str, Any]],
    ) -> dict[str, Any]:
        raise NotImplementedError
