from dataclasses import dataclass, field
from typing import TypedDict

from authgate.exceptions import ConfigurationError

VALID_METHODS = {"DELETE", "GET", "HEAD", "OPTIONS", "PATCH", "POST", "PUT", "*"}


def _validate_cors_list(value: list[str], field_name: str) -> None:
    """Validate CORS list field (origins, methods, headers).

    Rejects:
    - Non-list values
    - Non-string or empty items
    - Wildcard '*' combined with other values
    """
    if not isinstance(value, list):
        raise TypeError(f"{field_name} must be a list of strings")
    for item in value:
        if not isinstance(item, str) or not item:
            raise ConfigurationError(f"Each {field_name} value must be a non-empty string")
    if "*" in value and len(value) > 1:
        raise ConfigurationError(f"Wildcard '*' in {field_name} cannot be combined with others")


class CorsConfigDict(TypedDict, total=False):
    allow_origins: list[str]
    allow_methods: list[str]
    allow_headers: list[str]
    allow_credentials: bool
    max_age: int | None
    expose_headers: list[str]


@dataclass(frozen=True, kw_only=True)
class CorsConfig:
    """CORS configuration for an HTTP API.

    Empty allow lists grant no cross-origin access, so ``CorsConfig(max_age=300)``
    only caches preflight responses that deny every origin.
    """

    allow_origins: list[str] = field(default_factory=list)
    allow_methods: list[str] = field(default_factory=list)
    allow_headers: list[str] = field(default_factory=list)
    allow_credentials: bool = False
    max_age: int | None = None
    expose_headers: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        _validate_cors_list(self.allow_origins, "allow_origins")
        if self.allow_credentials and "*" in self.allow_origins:
            raise ConfigurationError(
                "allow_credentials=True requires specific origins, cannot use '*'"
            )

        _validate_cors_list(self.allow_methods, "allow_methods")
        for method in self.allow_methods:
            if method.upper() not in VALID_METHODS:
                raise ConfigurationError(
                    f"Invalid HTTP method '{method}'. Valid: "
                    f"{', '.join(sorted(VALID_METHODS - {'*'}))}, or '*' for all"
                )

        _validate_cors_list(self.allow_headers, "allow_headers")
        _validate_cors_list(self.expose_headers, "expose_headers")

        if self.max_age is not None and self.max_age < 0:
            raise ConfigurationError("max_age must be non-negative")

    @property
    def allows_cross_origin(self) -> bool:
        return bool(self.allow_origins)

    def allows_origin(self, origin: str) -> bool:
        return "*" in self.allow_origins or origin in self.allow_origins

    def to_props(self) -> dict[str, object]:
        """Provider-neutral CORS props, keyed like the HTTP API cors_configuration."""
        return {
            "allow_origins": list(self.allow_origins),
            "allow_methods": [m.upper() for m in self.allow_methods],
            "allow_headers": list(self.allow_headers),
            "allow_credentials": self.allow_credentials,
            "expose_headers": list(self.expose_headers),
            "max_age": self.max_age,
        }
