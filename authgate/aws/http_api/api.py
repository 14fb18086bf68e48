import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING, Unpack, final

from authgate.aws.function import Function
from authgate.aws.http_api.config import (
    Deployment,
    HttpApiConfig,
    HttpApiConfigDict,
    Integration,
    JwtAuthorizer,
    Route,
    route_key,
    route_resource_name,
    validate_name,
)
from authgate.aws.http_api.constants import (
    AUTHORIZER_TYPE,
    DEFAULT_IDENTITY_SOURCE,
    INTEGRATION_METHOD,
    INTEGRATION_TYPE,
    PAYLOAD_FORMAT_VERSION,
    PROTOCOL_TYPE,
    HTTPMethodInput,
    ProvisioningState,
)
from authgate.aws.http_api.deployment import calculate_deployment_hash
from authgate.aws.iam import InvocationRole
from authgate.component import Component, output, parse_config
from authgate.deferred import Deferred
from authgate.exceptions import ConfigurationError, DependencyOrderingError
from authgate.graph import Node
from authgate.platform import ResourceKind

if TYPE_CHECKING:
    from authgate.aws.cors import CorsConfig
    from authgate.stack import Stack

logger = logging.getLogger("authgate.aws.http_api")

IDENTITY_SOURCE_PREFIX = "$request.header."


@final
class Stage:
    """Named, reachable publication of one deployment.

    A stage only changes what it serves through ``point_to``.
    """

    def __init__(self, api: "HttpApi", name: str, node: Node, deployment: Deployment):
        self._api = api
        self._name = name
        self._node = node
        self._deployment = deployment

    @property
    def name(self) -> str:
        return self._name

    @property
    def api(self) -> "HttpApi":
        return self._api

    @property
    def node(self) -> Node:
        return self._node

    @property
    def deployment(self) -> Deployment:
        return self._deployment

    @property
    def url(self) -> Deferred[str]:
        return output(self._node, "url")

    def point_to(self, deployment: Deployment) -> None:
        """Serve a different deployment of the same API from this stage."""
        self._api._check_owned(deployment, "Deployment")  # noqa: SLF001
        node = Node(
            self._node.name,
            self._node.kind,
            {**self._node.props, "deployment_id": deployment.id},
            self._node.depends_on,
        )
        self._node = self._api.stack.graph.replace(node)
        logger.info(
            "Stage '%s' of API '%s' now points to deployment '%s'",
            self._name,
            self._api.name,
            deployment.name,
        )
        self._deployment = deployment


@final
class HttpApi(Component):
    """HTTP API gateway whose routes are protected by JWT authorizers.

    Children are declared in order: authorizers and integrations first, then
    routes, then deployments that snapshot an explicit list of routes, and finally
    stages that publish a deployment.

    Example:
        api = HttpApi(stack, "hello-api", cors={"max_age": 300})
        jwt = api.add_jwt_authorizer(
            "jwt", issuer=pool.issuer_url, audience=[client.client_id]
        )
        hello = api.add_integration("hello", function, role)
        get_hello = api.route("GET", "/hello", hello, auth=jwt)
        v1 = api.deploy("v1", routes=[get_hello])
        stage = api.stage("prod", v1)
    """

    _config: HttpApiConfig

    def __init__(
        self,
        stack: "Stack",
        name: str,
        config: HttpApiConfig | HttpApiConfigDict | None = None,
        **opts: Unpack[HttpApiConfigDict],
    ):
        self._config = parse_config(HttpApiConfig, config, opts)
        validate_name(name, "API")
        super().__init__(stack, name)
        self._authorizers: dict[str, JwtAuthorizer] = {}
        self._integrations: dict[str, Integration] = {}
        self._routes: dict[str, Route] = {}
        self._deployments: dict[str, Deployment] = {}
        self._stages: dict[str, Stage] = {}
        self._default_auth: JwtAuthorizer | None = None
        self._state = ProvisioningState.UNPROVISIONED

        cors = self.cors
        self._node = self._declare(
            name,
            ResourceKind.HTTP_API,
            {
                "name": name,
                "protocol_type": PROTOCOL_TYPE,
                "description": self._config.description,
                "cors": cors.to_props() if cors else None,
            },
        )
        self._advance(ProvisioningState.GATEWAY_CREATED)

    @property
    def config(self) -> HttpApiConfig:
        return self._config

    @property
    def cors(self) -> "CorsConfig | None":
        return self._config.normalized_cors

    @property
    def state(self) -> ProvisioningState:
        return self._state

    @property
    def node_name(self) -> str:
        return self._node.name

    @property
    def id(self) -> Deferred[str]:
        return output(self._node, "id")

    @property
    def endpoint(self) -> Deferred[str]:
        return output(self._node, "endpoint")

    @property
    def execution_arn(self) -> Deferred[str]:
        return output(self._node, "execution_arn")

    @property
    def authorizers(self) -> list[JwtAuthorizer]:
        return list(self._authorizers.values())

    @property
    def integrations(self) -> list[Integration]:
        return list(self._integrations.values())

    @property
    def routes(self) -> list[Route]:
        return list(self._routes.values())

    @property
    def deployments(self) -> list[Deployment]:
        return list(self._deployments.values())

    @property
    def stages(self) -> list[Stage]:
        return list(self._stages.values())

    @property
    def default_auth(self) -> JwtAuthorizer | None:
        """Get the authorizer used by routes declared without an explicit one."""
        return self._default_auth

    @default_auth.setter
    def default_auth(self, auth: JwtAuthorizer | None) -> None:
        if auth is not None:
            self._check_owned(auth, "Authorizer")
        self._default_auth = auth

    def _advance(self, state: ProvisioningState) -> None:
        if state > self._state:
            logger.debug("API '%s' state %s -> %s", self.name, self._state.name, state.name)
            self._state = state

    def _child_name(self, name: str) -> str:
        return f"{self.name}-{name}"

    def _check_owned(
        self, child: JwtAuthorizer | Integration | Route | Deployment, what: str
    ) -> None:
        if child.api != self.name:
            raise ConfigurationError(
                f"{what} '{child.node.name}' belongs to API '{child.api}', not '{self.name}'"
            )

    def add_jwt_authorizer(
        self,
        name: str,
        /,
        *,
        issuer: str | Deferred[str],
        audience: Sequence[str | Deferred[str]],
        identity_source: str = DEFAULT_IDENTITY_SOURCE,
    ) -> JwtAuthorizer:
        """Add a JWT authorizer validating bearer tokens from one issuer.

        Args:
            name: Authorizer name, unique within this API
            issuer: Issuer URL tokens must carry in ``iss``, usually ``UserPool.issuer_url``
            audience: Accepted ``aud`` values, usually ``[UserPoolClient.client_id]``
            identity_source: Request header holding the bearer token

        Returns:
            JwtAuthorizer to use in route() calls
        """
        validate_name(name, "Authorizer")
        if name in self._authorizers:
            raise ConfigurationError(
                f"Duplicate authorizer name: '{name}'. "
                "Authorizer names must be unique within an API."
            )
        if isinstance(issuer, str) and not issuer.startswith("https://"):
            raise ConfigurationError(f"Issuer must be an https URL, got '{issuer}'")
        if not isinstance(issuer, str | Deferred):
            raise TypeError(f"Issuer must be str or Deferred, got {type(issuer).__name__}")
        if not audience:
            raise ConfigurationError("JWT authorizer needs at least one audience")
        if not identity_source.startswith(IDENTITY_SOURCE_PREFIX):
            raise ConfigurationError(
                f"Identity source must be a request header ('{IDENTITY_SOURCE_PREFIX}<name>'), "
                f"got '{identity_source}'"
            )

        node = self._declare(
            self._child_name(name),
            ResourceKind.AUTHORIZER,
            {
                "api_id": self.id,
                "name": name,
                "authorizer_type": AUTHORIZER_TYPE,
                "identity_sources": [identity_source],
                "issuer": issuer,
                "audience": list(audience),
            },
        )
        authorizer = JwtAuthorizer(
            name=name,
            api=self.name,
            node=node,
            issuer=issuer,
            audience=tuple(audience),
            identity_source=identity_source,
        )
        self._authorizers[name] = authorizer
        self._advance(ProvisioningState.AUTHORIZER_ATTACHED)
        return authorizer

    def add_integration(
        self,
        name: str,
        function: Function,
        role: InvocationRole,
        /,
        *,
        payload_format_version: str = PAYLOAD_FORMAT_VERSION,
    ) -> Integration:
        """Add a proxy integration invoking ``function`` with the credentials of ``role``."""
        validate_name(name, "Integration")
        if name in self._integrations:
            raise ConfigurationError(
                f"Duplicate integration name: '{name}'. "
                "Integration names must be unique within an API."
            )
        if not isinstance(function, Function):
            raise TypeError(
                f"Integration target must be a Function, got {type(function).__name__}"
            )
        if not isinstance(role, InvocationRole):
            raise TypeError(
                f"Integration role must be an InvocationRole, got {type(role).__name__}"
            )
        if payload_format_version != PAYLOAD_FORMAT_VERSION:
            raise ConfigurationError(
                f"Unsupported payload format version '{payload_format_version}', "
                f"only '{PAYLOAD_FORMAT_VERSION}' is supported"
            )

        node = self._declare(
            self._child_name(name),
            ResourceKind.INTEGRATION,
            {
                "api_id": self.id,
                "integration_type": INTEGRATION_TYPE,
                "integration_method": INTEGRATION_METHOD,
                "integration_uri": function.arn,
                "credentials_arn": role.arn,
                "payload_format_version": payload_format_version,
            },
        )
        integration = Integration(
            name=name,
            api=self.name,
            node=node,
            function=function,
            role=role,
            payload_format_version=payload_format_version,
        )
        self._integrations[name] = integration
        self._advance(ProvisioningState.INTEGRATION_ATTACHED)
        return integration

    def route(
        self,
        http_method: HTTPMethodInput,
        path: str,
        integration: Integration,
        /,
        *,
        auth: JwtAuthorizer | None = None,
    ) -> Route:
        """Bind ``"<METHOD> <path>"`` to an integration, gated by a JWT authorizer.

        Routes without ``auth`` use ``default_auth``.
        """
        key = route_key(http_method, path)
        if key in self._routes:
            raise ConfigurationError(
                f"Route '{key}' is already defined in API '{self.name}'. "
                "Exactly one route may claim a given key."
            )
        self._check_owned(integration, "Integration")

        authorizer = auth or self._default_auth
        if authorizer is None:
            if not self._authorizers:
                raise DependencyOrderingError(
                    f"Cannot attach route '{key}' to API '{self.name}' before an authorizer"
                )
            raise ConfigurationError(
                f"Route '{key}' needs an authorizer: pass auth= or set default_auth"
            )
        self._check_owned(authorizer, "Authorizer")

        node = self._declare(
            self._child_name(route_resource_name(key)),
            ResourceKind.ROUTE,
            {
                "api_id": self.id,
                "route_key": key,
                "target": integration.id.apply(lambda i: f"integrations/{i}"),
                "authorization_type": AUTHORIZER_TYPE,
                "authorizer_id": authorizer.id,
            },
        )
        route = Route(
            key=key, api=self.name, node=node, integration=integration, authorizer=authorizer
        )
        self._routes[key] = route
        self._advance(ProvisioningState.ROUTE_ATTACHED)
        return route

    def deploy(
        self, name: str, /, *, routes: Sequence[Route], description: str | None = None
    ) -> Deployment:
        """Snapshot the given routes into an immutable deployment.

        Only the listed routes are served by the deployment. A route that exists on
        the API but is left out of ``routes`` is not part of the snapshot.
        """
        validate_name(name, "Deployment")
        if not self._routes:
            raise DependencyOrderingError(
                f"Cannot deploy API '{self.name}' before at least one route exists"
            )
        if name in self._deployments:
            raise ConfigurationError(
                f"Duplicate deployment name: '{name}'. "
                "Deployment names must be unique within an API."
            )
        if not routes:
            raise ConfigurationError(
                f"Deployment '{name}' must list the routes it serves explicitly"
            )
        for route in routes:
            self._check_owned(route, "Route")

        routes = tuple(dict.fromkeys(routes))
        configuration_hash = calculate_deployment_hash(routes, self.cors)
        logger.debug("API '%s' deployment '%s' hash: %s", self.name, name, configuration_hash)
        node = self._declare(
            self._child_name(f"deployment-{name}"),
            ResourceKind.DEPLOYMENT,
            {
                "api_id": self.id,
                "description": description,
                "route_keys": sorted(route.key for route in routes),
                "route_ids": [route.id for route in routes],
                "triggers": {"configuration_hash": configuration_hash},
            },
            depends_on=tuple(route.node.name for route in routes),
        )
        deployment = Deployment(
            name=name,
            api=self.name,
            node=node,
            routes=routes,
            configuration_hash=configuration_hash,
        )
        self._deployments[name] = deployment
        self._advance(ProvisioningState.DEPLOYED)
        return deployment

    def stage(self, name: str, deployment: Deployment, /) -> Stage:
        """Publish a deployment under ``name``; the stage URL ends with the stage name."""
        validate_name(name, "Stage")
        if name in self._stages:
            raise ConfigurationError(
                f"Duplicate stage name: '{name}'. Stage names must be unique within an API."
            )
        if deployment.api != self.name or self._deployments.get(deployment.name) is not deployment:
            raise DependencyOrderingError(
                f"Stage '{name}' must reference a deployment of API '{self.name}'"
            )

        node = self._declare(
            self._child_name(f"stage-{name}"),
            ResourceKind.STAGE,
            {
                "api_id": self.id,
                "name": name,
                "deployment_id": deployment.id,
                "endpoint": self.endpoint,
                "auto_deploy": False,
            },
        )
        stage = Stage(self, name, node, deployment)
        self._stages[name] = stage
        self._advance(ProvisioningState.STAGED)
        return stage
