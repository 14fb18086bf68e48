import logging
import re
from dataclasses import dataclass, field
from datetime import timedelta
from typing import TYPE_CHECKING, Any, Literal, TypedDict, Unpack, final

from authgate.component import Component, output, parse_config
from authgate.deferred import Deferred
from authgate.exceptions import ConfigurationError
from authgate.platform import ResourceKind

if TYPE_CHECKING:
    from authgate.stack import Stack

logger = logging.getLogger("authgate.aws.cognito")

ISSUER_URL_TEMPLATE = "https://cognito-idp.{region}.amazonaws.com/{user_pool_id}"
DEFAULT_CALLBACK_URL = "https://example.com"

type RemovalPolicy = Literal["destroy", "retain"]
type AuthFlow = Literal["admin_user_password", "custom", "user_password", "user_srp"]
type OAuthFlow = Literal["authorization_code", "implicit", "client_credentials"]

AUTH_FLOW_NAMES: dict[str, str] = {
    "admin_user_password": "ALLOW_ADMIN_USER_PASSWORD_AUTH",
    "custom": "ALLOW_CUSTOM_AUTH",
    "user_password": "ALLOW_USER_PASSWORD_AUTH",
    "user_srp": "ALLOW_USER_SRP_AUTH",
}
OAUTH_FLOW_NAMES: dict[str, str] = {
    "authorization_code": "code",
    "implicit": "implicit",
    "client_credentials": "client_credentials",
}
STANDARD_SCOPES = frozenset(
    {"openid", "email", "phone", "profile", "aws.cognito.signin.user.admin"}
)
# Cognito requires openid alongside these
OPENID_DEPENDENT_SCOPES = frozenset({"email", "phone", "profile"})

# Cognito app client token validity limits
ID_TOKEN_VALIDITY_RANGE = (timedelta(minutes=5), timedelta(days=1))
ACCESS_TOKEN_VALIDITY_RANGE = (timedelta(minutes=5), timedelta(days=1))
REFRESH_TOKEN_VALIDITY_RANGE = (timedelta(minutes=60), timedelta(days=3650))
DEFAULT_ID_TOKEN_VALIDITY = timedelta(hours=1)
DEFAULT_ACCESS_TOKEN_VALIDITY = timedelta(hours=1)
DEFAULT_REFRESH_TOKEN_VALIDITY = timedelta(days=30)


def issuer_url(region: str, user_pool_id: str) -> str:
    return ISSUER_URL_TEMPLATE.format(region=region, user_pool_id=user_pool_id)


class UserPoolConfigDict(TypedDict, total=False):
    removal_policy: RemovalPolicy


@dataclass(frozen=True, kw_only=True)
class UserPoolConfig:
    removal_policy: RemovalPolicy = "destroy"

    def __post_init__(self) -> None:
        if self.removal_policy not in ("destroy", "retain"):
            raise ConfigurationError(
                f"Invalid removal policy: {self.removal_policy}. Must be 'destroy' or 'retain'"
            )


class OAuthConfigDict(TypedDict, total=False):
    flows: list[OAuthFlow]
    scopes: list[str]
    callback_urls: list[str] | None
    logout_urls: list[str]


@dataclass(frozen=True, kw_only=True)
class OAuthConfig:
    flows: list[OAuthFlow] = field(default_factory=list)
    scopes: list[str] = field(default_factory=lambda: ["openid"])
    callback_urls: list[str] | None = None
    logout_urls: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        for flow in self.flows:
            if flow not in OAUTH_FLOW_NAMES:
                raise ConfigurationError(
                    f"Invalid OAuth flow: {flow}. Valid: {', '.join(OAUTH_FLOW_NAMES)}"
                )
        if len(set(self.flows)) != len(self.flows):
            raise ConfigurationError("Duplicate OAuth flows are not allowed")

        if "client_credentials" in self.flows and len(self.flows) > 1:
            raise ConfigurationError(
                "client_credentials flow cannot be combined with other OAuth flows"
            )

        if self.flows and not self.scopes:
            raise ConfigurationError("OAuth flows require at least one scope")

        for scope in self.scopes:
            if not isinstance(scope, str) or not scope.strip():
                raise ConfigurationError("Each scope must be a non-empty string")
            if scope not in STANDARD_SCOPES and not _is_custom_scope(scope):
                raise ConfigurationError(
                    f"Invalid scope: {scope}. Use a standard scope "
                    f"({', '.join(sorted(STANDARD_SCOPES))}) or a custom "
                    "'resource-server/scope' scope"
                )

        if OPENID_DEPENDENT_SCOPES & set(self.scopes) and "openid" not in self.scopes:
            raise ConfigurationError("email, phone and profile scopes require the openid scope")

        if "client_credentials" in self.flows:
            standard = [s for s in self.scopes if not _is_custom_scope(s)]
            if standard:
                raise ConfigurationError(
                    "client_credentials flow only supports custom scopes, "
                    f"got: {', '.join(standard)}"
                )

    @property
    def uses_redirects(self) -> bool:
        return "authorization_code" in self.flows or "implicit" in self.flows

    @property
    def effective_callback_urls(self) -> list[str]:
        if self.callback_urls is not None:
            return list(self.callback_urls)
        return [DEFAULT_CALLBACK_URL] if self.uses_redirects else []


def _is_custom_scope(scope: str) -> bool:
    return bool(re.match(r"^[^/\s]+/[^/\s]+$", scope))


class UserPoolClientConfigDict(TypedDict, total=False):
    client_name: str
    auth_flows: list[AuthFlow]
    id_token_validity: timedelta
    access_token_validity: timedelta
    refresh_token_validity: timedelta
    oauth: OAuthConfig | OAuthConfigDict | None
    supported_identity_providers: list[str]
    generate_secret: bool


@dataclass(frozen=True, kw_only=True)
class UserPoolClientConfig:
    client_name: str | None = None
    auth_flows: list[AuthFlow] = field(default_factory=list)
    id_token_validity: timedelta | None = None
    access_token_validity: timedelta | None = None
    refresh_token_validity: timedelta | None = None
    oauth: OAuthConfig | OAuthConfigDict | None = None
    supported_identity_providers: list[str] = field(default_factory=lambda: ["COGNITO"])
    generate_secret: bool = False

    def __post_init__(self) -> None:
        if self.client_name is not None and not self.client_name.strip():
            raise ConfigurationError("Client name cannot be empty")

        for flow in self.auth_flows:
            if flow not in AUTH_FLOW_NAMES:
                raise ConfigurationError(
                    f"Invalid auth flow: {flow}. Valid: {', '.join(AUTH_FLOW_NAMES)}"
                )

        _validate_validity("id_token_validity", self.id_token_validity, ID_TOKEN_VALIDITY_RANGE)
        _validate_validity(
            "access_token_validity", self.access_token_validity, ACCESS_TOKEN_VALIDITY_RANGE
        )
        _validate_validity(
            "refresh_token_validity", self.refresh_token_validity, REFRESH_TOKEN_VALIDITY_RANGE
        )

        if not self.supported_identity_providers:
            raise ConfigurationError("At least one supported identity provider is required")
        for provider in self.supported_identity_providers:
            if not isinstance(provider, str) or not provider.strip():
                raise ConfigurationError("Identity provider names must be non-empty strings")

        if not isinstance(self.oauth, OAuthConfig | dict | None):
            raise TypeError(
                f"oauth must be OAuthConfig, dict or None, got {type(self.oauth).__name__}"
            )
        oauth = self.normalized_oauth
        if oauth and "client_credentials" in oauth.flows and not self.generate_secret:
            raise ConfigurationError("client_credentials flow requires generate_secret=True")

    @property
    def normalized_oauth(self) -> OAuthConfig | None:
        if isinstance(self.oauth, OAuthConfig):
            return self.oauth
        if isinstance(self.oauth, dict):
            return OAuthConfig(**self.oauth)
        return None

    @property
    def oauth_flows(self) -> list[OAuthFlow]:
        oauth = self.normalized_oauth
        return list(oauth.flows) if oauth else []

    @property
    def effective_id_token_validity(self) -> timedelta:
        return self.id_token_validity or DEFAULT_ID_TOKEN_VALIDITY

    @property
    def effective_access_token_validity(self) -> timedelta:
        return self.access_token_validity or DEFAULT_ACCESS_TOKEN_VALIDITY

    @property
    def effective_refresh_token_validity(self) -> timedelta:
        return self.refresh_token_validity or DEFAULT_REFRESH_TOKEN_VALIDITY


def _validate_validity(
    field_name: str, value: timedelta | None, bounds: tuple[timedelta, timedelta]
) -> None:
    if value is None:
        return
    if not isinstance(value, timedelta):
        raise TypeError(f"{field_name} must be a timedelta, got {type(value).__name__}")
    low, high = bounds
    if not low <= value <= high:
        raise ConfigurationError(f"{field_name} must be between {low} and {high}, got {value}")


def _minutes(value: timedelta) -> int:
    return int(value.total_seconds() // 60)


@final
class UserPool(Component):
    """Cognito user pool: the identity provider owning users and issuing tokens.

    Args:
        stack: Stack the pool belongs to
        name: Component name
        config: Complete configuration as UserPoolConfig or dict
        **opts: Individual configuration parameters

    Example:
        pool = UserPool(stack, "user-pool", removal_policy="destroy")
        client = pool.add_client(
            "web-client",
            client_name="MyAppWebClient",
            auth_flows=["admin_user_password"],
            oauth={"flows": ["authorization_code"], "scopes": ["openid"]},
        )
    """

    _config: UserPoolConfig

    def __init__(
        self,
        stack: "Stack",
        name: str,
        config: UserPoolConfig | UserPoolConfigDict | None = None,
        **opts: Unpack[UserPoolConfigDict],
    ):
        self._config = parse_config(UserPoolConfig, config, opts)
        super().__init__(stack, name)
        self._clients: list[UserPoolClient] = []
        self._node = self._declare(
            name, ResourceKind.USER_POOL, {"removal_policy": self._config.removal_policy}
        )

    @property
    def config(self) -> UserPoolConfig:
        return self._config

    @property
    def node_name(self) -> str:
        return self._node.name

    @property
    def id(self) -> Deferred[str]:
        return output(self._node, "id")

    @property
    def arn(self) -> Deferred[str]:
        return output(self._node, "arn")

    @property
    def region(self) -> Deferred[str]:
        return output(self._node, "region")

    @property
    def issuer_url(self) -> Deferred[str]:
        """Token issuer URL, derived from the region and id assigned to this pool."""
        return Deferred.all(self.region, self.id).apply(lambda args: issuer_url(*args))

    @property
    def clients(self) -> list["UserPoolClient"]:
        return list(self._clients)

    def add_client(
        self,
        name: str,
        config: UserPoolClientConfig | UserPoolClientConfigDict | None = None,
        **opts: Unpack[UserPoolClientConfigDict],
    ) -> "UserPoolClient":
        client = UserPoolClient(self, name, config, **opts)
        self._clients.append(client)
        return client


@final
class UserPoolClient(Component):
    """App client registration of a user pool. Its id is the token audience."""

    _config: UserPoolClientConfig

    def __init__(
        self,
        user_pool: UserPool,
        name: str,
        config: UserPoolClientConfig | UserPoolClientConfigDict | None = None,
        **opts: Unpack[UserPoolClientConfigDict],
    ):
        self._config = parse_config(UserPoolClientConfig, config, opts)
        super().__init__(user_pool.stack, name)
        self._user_pool = user_pool
        self._node = self._declare(name, ResourceKind.USER_POOL_CLIENT, self._props())
        logger.debug(
            "Declared client '%s' for user pool '%s' with OAuth flows %s",
            name,
            user_pool.name,
            self._config.oauth_flows,
        )

    def _props(self) -> dict[str, Any]:
        config = self._config
        oauth = config.normalized_oauth
        explicit_flows = [AUTH_FLOW_NAMES[f] for f in config.auth_flows]
        if explicit_flows:
            explicit_flows.append("ALLOW_REFRESH_TOKEN_AUTH")
        return {
            "user_pool_id": self._user_pool.id,
            "client_name": config.client_name or self.name,
            "explicit_auth_flows": explicit_flows,
            "allowed_oauth_flows": [OAUTH_FLOW_NAMES[f] for f in oauth.flows] if oauth else [],
            "allowed_oauth_scopes": list(oauth.scopes) if oauth and oauth.flows else [],
            "callback_urls": oauth.effective_callback_urls if oauth else [],
            "logout_urls": list(oauth.logout_urls) if oauth else [],
            "supported_identity_providers": list(config.supported_identity_providers),
            "generate_secret": config.generate_secret,
            "id_token_validity_minutes": _minutes(config.effective_id_token_validity),
            "access_token_validity_minutes": _minutes(config.effective_access_token_validity),
            "refresh_token_validity_minutes": _minutes(config.effective_refresh_token_validity),
        }

    @property
    def config(self) -> UserPoolClientConfig:
        return self._config

    @property
    def user_pool(self) -> UserPool:
        return self._user_pool

    @property
    def node_name(self) -> str:
        return self._node.name

    @property
    def client_id(self) -> Deferred[str]:
        return output(self._node, "id")

    def allows_grant(self, grant_type: str) -> bool:
        return grant_type in self._config.oauth_flows
