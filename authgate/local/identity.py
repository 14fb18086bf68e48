"""Local stand-in for the user pool's token endpoints.

Issues RS256 tokens shaped like Cognito's: id tokens carry the client id in ``aud``,
access tokens carry it in ``client_id`` and have no ``aud`` claim.
"""

import logging
import secrets
import time
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any, final

import jwt
from jwt.algorithms import RSAAlgorithm

from authgate.exceptions import AuthorizationFailure, PlatformError, UnauthorizedClientError
from authgate.local.cloud import ClientRecord, LocalPlatform, UserPoolRecord, UserRecord

logger = logging.getLogger("authgate.local.identity")

ADMIN_USER_PASSWORD_AUTH = "ALLOW_ADMIN_USER_PASSWORD_AUTH"
# OAuth grant type -> allowed_oauth_flows value on the client
GRANT_FLOWS = {
    "authorization_code": "code",
    "client_credentials": "client_credentials",
}
CODE_LIFETIME_SECONDS = 300


@dataclass(frozen=True)
class _PendingCode:
    client_id: str
    redirect_uri: str
    username: str
    scopes: tuple[str, ...]
    expires_at: float


@final
class LocalIdentityProvider:
    """Token issuance for user pools created by a LocalPlatform."""

    def __init__(self, platform: LocalPlatform, clock: Callable[[], float] = time.time):
        self._platform = platform
        self._clock = clock
        self._codes: dict[str, _PendingCode] = {}

    def jwks(self, user_pool_id: str) -> dict[str, Any]:
        """Published key set of a pool, as served from ``<issuer>/.well-known/jwks.json``."""
        pool = self._platform.user_pool(user_pool_id)
        jwk = RSAAlgorithm.to_jwk(pool.signing_key.public_key(), as_dict=True)
        return {"keys": [jwk | {"kid": pool.key_id, "alg": "RS256", "use": "sig"}]}

    def jwks_for_issuer(self, issuer: str) -> dict[str, Any]:
        for pool in list(self._platform.user_pools.values()):
            if pool.issuer_url == issuer:
                return self.jwks(pool.id)
        raise AuthorizationFailure(f"Unknown issuer '{issuer}'")

    def admin_create_user(
        self,
        user_pool_id: str,
        username: str,
        password: str,
        attributes: dict[str, str] | None = None,
    ) -> UserRecord:
        pool = self._platform.user_pool(user_pool_id)
        if username in pool.users:
            raise PlatformError(f"UsernameExistsException: user '{username}' already exists")
        user = UserRecord(
            username=username,
            password=password,
            sub=str(uuid.uuid4()),
            attributes=attributes or {},
        )
        pool.users[username] = user
        return user

    def admin_initiate_auth(
        self, user_pool_id: str, client_id: str, username: str, password: str
    ) -> dict[str, Any]:
        """ADMIN_USER_PASSWORD_AUTH; returns an AuthenticationResult like Cognito does."""
        pool = self._platform.user_pool(user_pool_id)
        client = self._client(client_id)
        if client.user_pool_id != pool.id:
            raise AuthorizationFailure(f"Client '{client_id}' does not belong to pool '{pool.id}'")
        if ADMIN_USER_PASSWORD_AUTH not in client.explicit_auth_flows:
            raise UnauthorizedClientError(client_id, "admin_user_password")
        user = self._authenticate(pool, username, password)
        scopes = ("aws.cognito.signin.user.admin",)
        return {
            "AuthenticationResult": {
                "IdToken": self._id_token(pool, client, user),
                "AccessToken": self._access_token(pool, client, user, scopes),
                "ExpiresIn": client.access_token_validity_minutes * 60,
                "TokenType": "Bearer",
            }
        }

    def authorize(
        self,
        client_id: str,
        username: str,
        password: str,
        redirect_uri: str,
        scopes: Sequence[str] | None = None,
    ) -> str:
        """Sign a user in through the hosted UI and return a one-time authorization code."""
        client = self._client(client_id)
        if GRANT_FLOWS["authorization_code"] not in client.allowed_oauth_flows:
            raise UnauthorizedClientError(client_id, "authorization_code")
        if redirect_uri not in client.callback_urls:
            raise AuthorizationFailure(f"redirect_mismatch: '{redirect_uri}' is not registered")
        requested = tuple(scopes) if scopes is not None else client.allowed_oauth_scopes
        if not set(requested) <= set(client.allowed_oauth_scopes):
            raise AuthorizationFailure(f"invalid_scope: {' '.join(requested)}")

        pool = self._platform.user_pool(client.user_pool_id)
        self._authenticate(pool, username, password)
        code = secrets.token_urlsafe(24)
        self._codes[code] = _PendingCode(
            client_id=client_id,
            redirect_uri=redirect_uri,
            username=username,
            scopes=requested,
            expires_at=self._clock() + CODE_LIFETIME_SECONDS,
        )
        return code

    def token(
        self,
        grant_type: str,
        client_id: str,
        *,
        client_secret: str | None = None,
        code: str | None = None,
        redirect_uri: str | None = None,
        scope: str | None = None,
    ) -> dict[str, Any]:
        """The ``/oauth2/token`` endpoint."""
        client = self._client(client_id)
        if grant_type not in GRANT_FLOWS:
            raise AuthorizationFailure(f"unsupported_grant_type: {grant_type}")
        if GRANT_FLOWS[grant_type] not in client.allowed_oauth_flows:
            logger.info("Rejected %s grant for client '%s'", grant_type, client_id)
            raise UnauthorizedClientError(client_id, grant_type)
        if client.secret is not None and client_secret != client.secret:
            raise AuthorizationFailure("invalid_client: client secret does not match")

        pool = self._platform.user_pool(client.user_pool_id)
        if grant_type == "client_credentials":
            requested = tuple(scope.split()) if scope else client.allowed_oauth_scopes
            if not set(requested) <= set(client.allowed_oauth_scopes):
                raise AuthorizationFailure(f"invalid_scope: {' '.join(requested)}")
            return {
                "access_token": self._access_token(pool, client, None, requested),
                "expires_in": client.access_token_validity_minutes * 60,
                "token_type": "Bearer",
            }

        pending = self._codes.pop(code or "", None)
        if pending is None or pending.client_id != client_id or pending.expires_at < self._clock():
            raise AuthorizationFailure("invalid_grant: authorization code is invalid or expired")
        if redirect_uri != pending.redirect_uri:
            raise AuthorizationFailure("invalid_grant: redirect_uri does not match")
        user = pool.users[pending.username]
        response = {
            "access_token": self._access_token(pool, client, user, pending.scopes),
            "expires_in": client.access_token_validity_minutes * 60,
            "token_type": "Bearer",
        }
        if "openid" in pending.scopes:
            response["id_token"] = self._id_token(pool, client, user)
        return response

    def _client(self, client_id: str) -> ClientRecord:
        try:
            return self._platform.client(client_id)
        except PlatformError as e:
            raise AuthorizationFailure(f"invalid_client: {e}") from e

    @staticmethod
    def _authenticate(pool: UserPoolRecord, username: str, password: str) -> UserRecord:
        user = pool.users.get(username)
        if user is None or not secrets.compare_digest(user.password, password):
            raise AuthorizationFailure("NotAuthorizedException: incorrect username or password")
        return user

    def _sign(self, pool: UserPoolRecord, claims: dict[str, Any]) -> str:
        return jwt.encode(
            claims, pool.signing_key, algorithm="RS256", headers={"kid": pool.key_id}
        )

    def _id_token(self, pool: UserPoolRecord, client: ClientRecord, user: UserRecord) -> str:
        now = int(self._clock())
        claims = {
            "sub": user.sub,
            "aud": client.id,
            "iss": pool.issuer_url,
            "token_use": "id",
            "auth_time": now,
            "iat": now,
            "exp": now + client.id_token_validity_minutes * 60,
            "cognito:username": user.username,
            **user.attributes,
        }
        return self._sign(pool, claims)

    def _access_token(
        self,
        pool: UserPoolRecord,
        client: ClientRecord,
        user: UserRecord | None,
        scopes: Sequence[str],
    ) -> str:
        now = int(self._clock())
        claims = {
            "sub": user.sub if user else client.id,
            "client_id": client.id,
            "iss": pool.issuer_url,
            "token_use": "access",
            "scope": " ".join(scopes),
            "iat": now,
            "exp": now + client.access_token_validity_minutes * 60,
            "jti": str(uuid.uuid4()),
        }
        if user:
            claims["username"] = user.username
        return self._sign(pool, claims)
