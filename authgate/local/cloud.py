import logging
import secrets
import string
import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, final

from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey, generate_private_key

from authgate.aws.cognito import issuer_url
from authgate.aws.function.packaging import code_hash, collect_code_files
from authgate.aws.http_api.constants import endpoint_url
from authgate.component import safe_name
from authgate.context import ProvisioningContext
from authgate.exceptions import PlatformError
from authgate.platform import ResourceKind

logger = logging.getLogger("authgate.local.cloud")

DEFAULT_REGION = "us-east-1"
DEFAULT_ACCOUNT_ID = "123456789012"
LOCALHOST_CALLBACK_PREFIXES = ("http://localhost", "http://127.0.0.1")
_KEY_BITS = 2048

type Outputs = dict[str, Any]
type Creator = Callable[[str, Mapping[str, Any], ProvisioningContext], Outputs]


def _random_id(length: int, alphabet: str = string.ascii_lowercase + string.digits) -> str:
    return "".join(secrets.choice(alphabet) for _ in range(length))


@dataclass
class UserPoolRecord:
    id: str
    arn: str
    region: str
    name: str
    removal_policy: str
    signing_key: RSAPrivateKey
    key_id: str
    users: dict[str, "UserRecord"] = field(default_factory=dict)

    @property
    def issuer_url(self) -> str:
        return issuer_url(self.region, self.id)


@dataclass
class UserRecord:
    username: str
    password: str
    sub: str
    attributes: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ClientRecord:
    id: str
    user_pool_id: str
    client_name: str
    secret: str | None
    explicit_auth_flows: tuple[str, ...]
    allowed_oauth_flows: tuple[str, ...]
    allowed_oauth_scopes: tuple[str, ...]
    callback_urls: tuple[str, ...]
    logout_urls: tuple[str, ...]
    supported_identity_providers: tuple[str, ...]
    id_token_validity_minutes: int
    access_token_validity_minutes: int
    refresh_token_validity_minutes: int


@dataclass(frozen=True)
class FunctionRecord:
    name: str
    arn: str
    invoke_arn: str
    handler: str
    handler_file: str
    handler_function: str
    runtime: str
    timeout: int
    memory: int
    environment: Mapping[str, str]
    code_hash: str


@dataclass(frozen=True)
class RoleRecord:
    name: str
    arn: str
    principals: tuple[str, ...]
    statements: tuple[Mapping[str, Any], ...]


@dataclass(frozen=True)
class AuthorizerRecord:
    id: str
    name: str
    identity_sources: tuple[str, ...]
    issuer: str
    audience: tuple[str, ...]


@dataclass(frozen=True)
class IntegrationRecord:
    id: str
    integration_uri: str
    credentials_arn: str
    payload_format_version: str


@dataclass(frozen=True)
class RouteRecord:
    id: str
    key: str
    integration_id: str
    authorizer_id: str


@dataclass(frozen=True)
class RouteSnapshot:
    """What a deployment serves for one route, frozen at deployment time."""

    key: str
    integration: IntegrationRecord
    authorizer: AuthorizerRecord
    function_name: str


@dataclass(frozen=True)
class DeploymentRecord:
    id: str
    description: str | None
    routes: Mapping[str, RouteSnapshot]
    configuration_hash: str

    def routing_table(self) -> list[dict[str, str]]:
        """Routing table without assigned ids, comparable across provisioning runs."""
        return [
            {
                "route_key": key,
                "function": snapshot.function_name,
                "authorizer": snapshot.authorizer.name,
                "identity_source": ",".join(snapshot.authorizer.identity_sources),
                "payload_format_version": snapshot.integration.payload_format_version,
            }
            for key, snapshot in sorted(self.routes.items())
        ]


@dataclass
class StageRecord:
    name: str
    deployment_id: str
    url: str


@dataclass
class ApiRecord:
    id: str
    name: str
    region: str
    account_id: str
    endpoint: str
    execution_arn: str
    cors: Mapping[str, Any] | None
    authorizers: dict[str, AuthorizerRecord] = field(default_factory=dict)
    integrations: dict[str, IntegrationRecord] = field(default_factory=dict)
    routes: dict[str, RouteRecord] = field(default_factory=dict)
    deployments: dict[str, DeploymentRecord] = field(default_factory=dict)
    stages: dict[str, StageRecord] = field(default_factory=dict)


def _validate_callback_url(url: str) -> None:
    if url.startswith("https://"):
        return
    if url.startswith(LOCALHOST_CALLBACK_PREFIXES):
        return
    raise PlatformError(
        f"InvalidParameterException: callback URL '{url}' must use https "
        "(http is only allowed for localhost)"
    )


@final
class LocalPlatform:
    """In-memory stand-in for the AWS services the stack uses.

    Assigns ids the way the services do, rejects what the services reject and keeps
    the state the local identity provider and gateway serve requests from. Safe to
    call from several scheduler threads at once.
    """

    supports_parallel = True

    def __init__(self, region: str = DEFAULT_REGION, account_id: str = DEFAULT_ACCOUNT_ID):
        self.region = region
        self.account_id = account_id
        self._lock = threading.RLock()
        self.user_pools: dict[str, UserPoolRecord] = {}
        self.clients: dict[str, ClientRecord] = {}
        self.functions: dict[str, FunctionRecord] = {}
        self.roles: dict[str, RoleRecord] = {}
        self.apis: dict[str, ApiRecord] = {}
        self.create_log: list[tuple[ResourceKind, str]] = []
        self._creators: dict[ResourceKind, Creator] = {
            ResourceKind.USER_POOL: self._create_user_pool,
            ResourceKind.USER_POOL_CLIENT: self._create_user_pool_client,
            ResourceKind.FUNCTION: self._create_function,
            ResourceKind.INVOCATION_ROLE: self._create_invocation_role,
            ResourceKind.HTTP_API: self._create_http_api,
            ResourceKind.AUTHORIZER: self._create_authorizer,
            ResourceKind.INTEGRATION: self._create_integration,
            ResourceKind.ROUTE: self._create_route,
            ResourceKind.DEPLOYMENT: self._create_deployment,
            ResourceKind.STAGE: self._create_stage,
        }

    def create(
        self,
        kind: ResourceKind,
        name: str,
        props: Mapping[str, Any],
        ctx: ProvisioningContext,
        dependencies: Mapping[str, Mapping[str, Any]],
    ) -> Outputs:
        with self._lock:
            outputs = self._creators[kind](name, props, ctx)
            self.create_log.append((kind, name))
        logger.debug("Created %s '%s': %s", kind, name, outputs)
        return outputs

    def _api(self, api_id: str) -> ApiRecord:
        if api_id not in self.apis:
            raise PlatformError(f"NotFoundException: API '{api_id}' does not exist")
        return self.apis[api_id]

    def user_pool(self, user_pool_id: str) -> UserPoolRecord:
        with self._lock:
            if user_pool_id not in self.user_pools:
                raise PlatformError(
                    f"ResourceNotFoundException: user pool '{user_pool_id}' does not exist"
                )
            return self.user_pools[user_pool_id]

    def client(self, client_id: str) -> ClientRecord:
        with self._lock:
            if client_id not in self.clients:
                raise PlatformError(
                    f"ResourceNotFoundException: client '{client_id}' does not exist"
                )
            return self.clients[client_id]

    def api(self, api_id: str) -> ApiRecord:
        with self._lock:
            return self._api(api_id)

    def function_by_arn(self, arn: str) -> FunctionRecord:
        with self._lock:
            for function in self.functions.values():
                if arn in (function.arn, function.invoke_arn):
                    return function
        raise PlatformError(f"ResourceNotFoundException: function '{arn}' does not exist")

    def role_by_arn(self, arn: str) -> RoleRecord:
        with self._lock:
            for role in self.roles.values():
                if role.arn == arn:
                    return role
        raise PlatformError(f"NoSuchEntity: role '{arn}' does not exist")

    def region_for(self, ctx: ProvisioningContext) -> str:
        """Target region of a run: the context's, else the platform default."""
        return ctx.aws.region or self.region

    def account_for(self, ctx: ProvisioningContext) -> str:
        return ctx.account_id or self.account_id

    def _create_user_pool(
        self, name: str, props: Mapping[str, Any], ctx: ProvisioningContext
    ) -> Outputs:
        region, account_id = self.region_for(ctx), self.account_for(ctx)
        pool_id = f"{region}_{_random_id(9, string.ascii_letters + string.digits)}"
        arn = f"arn:aws:cognito-idp:{region}:{account_id}:userpool/{pool_id}"
        self.user_pools[pool_id] = UserPoolRecord(
            id=pool_id,
            arn=arn,
            region=region,
            name=ctx.prefix(name),
            removal_policy=props["removal_policy"],
            signing_key=generate_private_key(65537, _KEY_BITS),
            key_id=_random_id(16),
        )
        return {"id": pool_id, "arn": arn, "region": region}

    def _create_user_pool_client(
        self, name: str, props: Mapping[str, Any], ctx: ProvisioningContext
    ) -> Outputs:
        if props["user_pool_id"] not in self.user_pools:
            raise PlatformError(
                f"ResourceNotFoundException: user pool '{props['user_pool_id']}' does not exist"
            )
        oauth_flows = tuple(props["allowed_oauth_flows"])
        callback_urls = tuple(props["callback_urls"])
        if {"code", "implicit"} & set(oauth_flows) and not callback_urls:
            raise PlatformError(
                "InvalidOAuthFlowException: a redirect URI must be provided for the "
                "authorization code and implicit flows"
            )
        for url in callback_urls:
            _validate_callback_url(url)

        client_id = _random_id(26)
        self.clients[client_id] = ClientRecord(
            id=client_id,
            user_pool_id=props["user_pool_id"],
            client_name=props["client_name"],
            secret=secrets.token_urlsafe(38) if props["generate_secret"] else None,
            explicit_auth_flows=tuple(props["explicit_auth_flows"]),
            allowed_oauth_flows=oauth_flows,
            allowed_oauth_scopes=tuple(props["allowed_oauth_scopes"]),
            callback_urls=callback_urls,
            logout_urls=tuple(props["logout_urls"]),
            supported_identity_providers=tuple(props["supported_identity_providers"]),
            id_token_validity_minutes=props["id_token_validity_minutes"],
            access_token_validity_minutes=props["access_token_validity_minutes"],
            refresh_token_validity_minutes=props["refresh_token_validity_minutes"],
        )
        return {"id": client_id}

    def _create_function(
        self, name: str, props: Mapping[str, Any], ctx: ProvisioningContext
    ) -> Outputs:
        function_name = safe_name(ctx.prefix(), name, 64, pulumi_suffix_length=0)
        if function_name in self.functions:
            raise PlatformError(
                f"ResourceConflictException: function '{function_name}' already exists"
            )
        files = collect_code_files(props["code_path"], props["handler_file"], props["single_file"])
        region = self.region_for(ctx)
        arn = f"arn:aws:lambda:{region}:{self.account_for(ctx)}:function:{function_name}"
        invoke_arn = (
            f"arn:aws:apigateway:{region}:lambda:path/2015-03-31/functions/{arn}/invocations"
        )
        self.functions[function_name] = FunctionRecord(
            name=function_name,
            arn=arn,
            invoke_arn=invoke_arn,
            handler=props["handler"],
            handler_file=props["handler_file"],
            handler_function=props["handler_function"],
            runtime=props["runtime"],
            timeout=props["timeout"],
            memory=props["memory"],
            environment=dict(props["environment"]),
            code_hash=code_hash(files),
        )
        return {"arn": arn, "invoke_arn": invoke_arn, "name": function_name}

    def _create_invocation_role(
        self, name: str, props: Mapping[str, Any], ctx: ProvisioningContext
    ) -> Outputs:
        role_name = safe_name(ctx.prefix(), name, 64, "-r", pulumi_suffix_length=0)
        if role_name in self.roles:
            raise PlatformError(f"EntityAlreadyExists: role '{role_name}' already exists")
        for principal in props["principals"]:
            if not principal.endswith(".amazonaws.com"):
                raise PlatformError(
                    f"MalformedPolicyDocument: invalid service principal '{principal}'"
                )
        arn = f"arn:aws:iam::{self.account_for(ctx)}:role/{role_name}"
        self.roles[role_name] = RoleRecord(
            name=role_name,
            arn=arn,
            principals=tuple(props["principals"]),
            statements=tuple(dict(s) for s in props["statements"]),
        )
        return {"arn": arn, "name": role_name}

    def _create_http_api(
        self, name: str, props: Mapping[str, Any], ctx: ProvisioningContext
    ) -> Outputs:
        region, account_id = self.region_for(ctx), self.account_for(ctx)
        api_id = _random_id(10)
        endpoint = endpoint_url(api_id, region)
        execution_arn = f"arn:aws:execute-api:{region}:{account_id}:{api_id}"
        self.apis[api_id] = ApiRecord(
            id=api_id,
            name=ctx.prefix(name),
            region=region,
            account_id=account_id,
            endpoint=endpoint,
            execution_arn=execution_arn,
            cors=props["cors"],
        )
        return {
            "id": api_id,
            "endpoint": endpoint,
            "execution_arn": execution_arn,
            "region": region,
        }

    def _create_authorizer(
        self, name: str, props: Mapping[str, Any], ctx: ProvisioningContext
    ) -> Outputs:
        api = self._api(props["api_id"])
        if not props["issuer"].startswith("https://"):
            raise PlatformError(f"BadRequestException: invalid issuer '{props['issuer']}'")
        authorizer_id = _random_id(6)
        api.authorizers[authorizer_id] = AuthorizerRecord(
            id=authorizer_id,
            name=props["name"],
            identity_sources=tuple(props["identity_sources"]),
            issuer=props["issuer"],
            audience=tuple(props["audience"]),
        )
        return {"id": authorizer_id}

    def _create_integration(
        self, name: str, props: Mapping[str, Any], ctx: ProvisioningContext
    ) -> Outputs:
        api = self._api(props["api_id"])
        self.function_by_arn(props["integration_uri"])
        self.role_by_arn(props["credentials_arn"])
        integration_id = _random_id(7)
        api.integrations[integration_id] = IntegrationRecord(
            id=integration_id,
            integration_uri=props["integration_uri"],
            credentials_arn=props["credentials_arn"],
            payload_format_version=props["payload_format_version"],
        )
        return {"id": integration_id}

    def _create_route(
        self, name: str, props: Mapping[str, Any], ctx: ProvisioningContext
    ) -> Outputs:
        api = self._api(props["api_id"])
        key = props["route_key"]
        if any(route.key == key for route in api.routes.values()):
            raise PlatformError(f"ConflictException: route '{key}' already exists")
        integration_id = props["target"].removeprefix("integrations/")
        if integration_id not in api.integrations:
            raise PlatformError(f"NotFoundException: integration '{integration_id}' not found")
        if props["authorizer_id"] not in api.authorizers:
            raise PlatformError(
                f"NotFoundException: authorizer '{props['authorizer_id']}' not found"
            )
        route_id = _random_id(7)
        api.routes[route_id] = RouteRecord(
            id=route_id,
            key=key,
            integration_id=integration_id,
            authorizer_id=props["authorizer_id"],
        )
        return {"id": route_id, "key": key}

    def _create_deployment(
        self, name: str, props: Mapping[str, Any], ctx: ProvisioningContext
    ) -> Outputs:
        api = self._api(props["api_id"])
        snapshots: dict[str, RouteSnapshot] = {}
        for route_id in props["route_ids"]:
            if route_id not in api.routes:
                raise PlatformError(f"NotFoundException: route '{route_id}' not found")
            route = api.routes[route_id]
            integration = api.integrations[route.integration_id]
            snapshots[route.key] = RouteSnapshot(
                key=route.key,
                integration=integration,
                authorizer=api.authorizers[route.authorizer_id],
                function_name=self.function_by_arn(integration.integration_uri).name,
            )
        deployment_id = _random_id(6)
        api.deployments[deployment_id] = DeploymentRecord(
            id=deployment_id,
            description=props["description"],
            routes=snapshots,
            configuration_hash=props["triggers"]["configuration_hash"],
        )
        return {"id": deployment_id}

    def _create_stage(
        self, name: str, props: Mapping[str, Any], ctx: ProvisioningContext
    ) -> Outputs:
        api = self._api(props["api_id"])
        stage_name = props["name"]
        if stage_name in api.stages:
            raise PlatformError(f"ConflictException: stage '{stage_name}' already exists")
        if props["deployment_id"] not in api.deployments:
            raise PlatformError(
                f"NotFoundException: deployment '{props['deployment_id']}' not found"
            )
        url = f"{props['endpoint']}/{stage_name}"
        api.stages[stage_name] = StageRecord(
            name=stage_name, deployment_id=props["deployment_id"], url=url
        )
        return {"name": stage_name, "url": url}
