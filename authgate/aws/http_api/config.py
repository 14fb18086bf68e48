import hashlib
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, TypedDict

from authgate.aws.cors import CorsConfig, CorsConfigDict
from authgate.aws.http_api.constants import (
    ROUTE_MAX_LENGTH,
    ROUTE_MAX_PARAMS,
    HTTPMethod,
    HTTPMethodInput,
)
from authgate.component import output
from authgate.deferred import Deferred
from authgate.exceptions import ConfigurationError
from authgate.graph import Node

if TYPE_CHECKING:
    from authgate.aws.function import Function
    from authgate.aws.iam import InvocationRole

_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+$")


class HttpApiConfigDict(TypedDict, total=False):
    description: str
    cors: CorsConfig | CorsConfigDict | None


@dataclass(frozen=True, kw_only=True)
class HttpApiConfig:
    description: str | None = None
    cors: CorsConfig | CorsConfigDict | None = None

    def __post_init__(self) -> None:
        if self.cors is not None and not isinstance(self.cors, CorsConfig | dict):
            raise TypeError(
                f"cors must be CorsConfig, dict or None, got {type(self.cors).__name__}"
            )

    @property
    def normalized_cors(self) -> CorsConfig | None:
        if isinstance(self.cors, dict):
            return CorsConfig(**self.cors)
        return self.cors


def validate_name(name: str, what: str) -> None:
    if not name:
        raise ConfigurationError(f"{what} name cannot be empty")
    if not _NAME_PATTERN.match(name):
        raise ConfigurationError(
            f"{what} name '{name}' can only contain alphanumeric characters, "
            "hyphens, and underscores"
        )


def validate_path(path: str) -> None:
    # https://docs.aws.amazon.com/apigateway/latest/developerguide/limits.html
    if not path.startswith("/"):
        raise ConfigurationError("Path must start with '/'")

    if len(path) > ROUTE_MAX_LENGTH:
        raise ConfigurationError("Path too long")

    if "{}" in path:
        raise ConfigurationError("Empty path parameters not allowed")

    params = re.findall(r"{([^}]+)}", path)

    if len(params) > ROUTE_MAX_PARAMS:
        raise ConfigurationError(f"Maximum of {ROUTE_MAX_PARAMS} path parameters allowed")

    if re.search(r"}{", path):
        raise ConfigurationError("Adjacent path parameters not allowed")

    if len(params) != len(set(params)):
        raise ConfigurationError("Duplicate path parameters not allowed")

    for param in params:
        _validate_parameter(path, param)


def _validate_parameter(path: str, param: str) -> None:
    if param.endswith("+"):
        if param != "proxy+":
            raise ConfigurationError("Only {proxy+} is supported for greedy paths")

        param_position = path.index(f"{{{param}}}")
        if param_position != len(path) - len(f"{{{param}}}"):
            raise ConfigurationError("Greedy parameter must be at the end of the path")
        return

    if not re.match(r"^[a-zA-Z_][a-zA-Z0-9_]*$", param):
        raise ConfigurationError(f"Invalid parameter name: {param}")


def normalize_method(method: HTTPMethodInput) -> str:
    if isinstance(method, HTTPMethod):
        return method.value
    if not isinstance(method, str):
        raise TypeError(f"Method must be string or HTTPMethod, got {type(method).__name__}")
    method_upper_case = method.upper()
    if method_upper_case == "*":
        return HTTPMethod.ANY.value
    if method_upper_case not in {m.value for m in HTTPMethod}:
        raise ConfigurationError(f"Invalid HTTP method: {method}")
    return method_upper_case


def route_key(method: HTTPMethodInput, path: str) -> str:
    """Build the "<METHOD> <path>" key a route is matched on, e.g. "GET /hello"."""
    validate_path(path)
    return f"{normalize_method(method)} {path}"


def path_to_resource_name(path: str) -> str:
    """Convert a route path to a valid resource name.

    Example: '/users/{id}/orders' -> 'users-id-orders'
    """
    safe_parts = [
        part.replace("{", "").replace("}", "").replace("+", "plus")
        for part in path.split("/")
        if part
    ]
    return "-".join(safe_parts) or "root"


def route_resource_name(key: str) -> str:
    """Resource name of a route, unique per route key.

    Example: 'GET /users/{id}' -> 'route-get-users-id-<hash>'
    """
    method, path = key.split(" ", 1)
    key_hash = hashlib.sha256(key.encode()).hexdigest()[:7]
    return f"route-{method.lower()}-{path_to_resource_name(path)}-{key_hash}"


@dataclass(frozen=True, eq=False)
class JwtAuthorizer:
    """JWT authorizer attached to an HTTP API.

    Not created directly, users get instances via HttpApi.add_jwt_authorizer().
    """

    name: str
    api: str
    node: Node
    issuer: str | Deferred[str]
    audience: tuple[str | Deferred[str], ...]
    identity_source: str

    @property
    def id(self) -> Deferred[str]:
        return output(self.node, "id")


@dataclass(frozen=True, eq=False)
class Integration:
    """Proxy integration binding an HTTP API to a function through an invocation role."""

    name: str
    api: str
    node: Node
    function: "Function"
    role: "InvocationRole"
    payload_format_version: str

    @property
    def id(self) -> Deferred[str]:
        return output(self.node, "id")


@dataclass(frozen=True, eq=False)
class Route:
    key: str
    api: str
    node: Node
    integration: Integration
    authorizer: JwtAuthorizer

    @property
    def method(self) -> str:
        return self.key.split(" ", 1)[0]

    @property
    def path(self) -> str:
        return self.key.split(" ", 1)[1]

    @property
    def id(self) -> Deferred[str]:
        return output(self.node, "id")


@dataclass(frozen=True, eq=False)
class Deployment:
    """Immutable snapshot of the routes it was declared with."""

    name: str
    api: str
    node: Node
    routes: tuple[Route, ...]
    configuration_hash: str

    @property
    def route_keys(self) -> list[str]:
        return sorted(route.key for route in self.routes)

    @property
    def id(self) -> Deferred[str]:
        return output(self.node, "id")
