"""JWT authorizer evaluation for the local gateway."""

import logging
from collections.abc import Callable, Iterable, Mapping
from typing import Any, final

import jwt

from authgate.exceptions import AuthorizationFailure

logger = logging.getLogger("authgate.local.authorizer")

type JwksFetcher = Callable[[str], Mapping[str, Any]]


def header_name(identity_source: str) -> str:
    """'$request.header.Authorization' -> 'authorization'."""
    return identity_source.rsplit(".", 1)[-1].lower()


def extract_bearer_token(headers: Mapping[str, str], identity_source: str) -> str:
    """Extract the bearer token from the identity-source header.

    Raises AuthorizationFailure if the header is missing or not a Bearer credential.
    """
    wanted = header_name(identity_source)
    value = next((v for k, v in headers.items() if k.lower() == wanted), None)
    if not value:
        raise AuthorizationFailure(f"Missing identity source header '{wanted}'")
    scheme, _, token = value.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthorizationFailure("Bearer scheme required")
    return token.strip()


@final
class JwtValidator:
    """Validates tokens for one JWT authorizer.

    Checks, in order: signature against the issuer's published key set, ``exp`` and
    ``nbf``, ``iss`` by exact string equality, and that ``aud`` (or ``client_id`` for
    Cognito access tokens) intersects the configured audience.
    """

    def __init__(
        self,
        issuer: str,
        audience: Iterable[str],
        jwks_fetcher: JwksFetcher,
        leeway: float = 0,
    ):
        self._issuer = issuer
        self._audience = frozenset(audience)
        self._jwks_fetcher = jwks_fetcher
        self._leeway = leeway

    @property
    def issuer(self) -> str:
        return self._issuer

    @property
    def audience(self) -> frozenset[str]:
        return self._audience

    def _signing_key(self, token: str) -> Any:  # noqa: ANN401
        try:
            kid = jwt.get_unverified_header(token).get("kid")
            key_set = jwt.PyJWKSet.from_dict(dict(self._jwks_fetcher(self._issuer)))
        except (jwt.PyJWTError, AuthorizationFailure) as e:
            raise AuthorizationFailure(f"Cannot load signing key: {e}") from e
        for key in key_set.keys:
            if key.key_id == kid:
                return key.key
        raise AuthorizationFailure(f"No published key matches kid '{kid}'")

    def validate(self, token: str) -> dict[str, Any]:
        """Returns decoded claims. Raises AuthorizationFailure on an invalid token."""
        try:
            claims = jwt.decode(
                token,
                self._signing_key(token),
                algorithms=["RS256"],
                leeway=self._leeway,
                # iss and aud are compared below: iss exactly, aud against client_id too
                options={
                    "verify_exp": True,
                    "verify_nbf": True,
                    "verify_aud": False,
                    "require": ["exp", "iss"],
                },
            )
        except jwt.ExpiredSignatureError as e:
            raise AuthorizationFailure("Token expired") from e
        except jwt.PyJWTError as e:
            logger.debug("JWT verification failed: %s", e)
            raise AuthorizationFailure("Token verification failed") from e

        if claims.get("iss") != self._issuer:
            raise AuthorizationFailure("Invalid issuer")

        audiences = claims.get("aud", claims.get("client_id"))
        if isinstance(audiences, str):
            audiences = [audiences]
        if not audiences or not self._audience.intersection(audiences):
            raise AuthorizationFailure("Invalid audience")
        return claims
