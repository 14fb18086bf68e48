import json
from collections.abc import Sequence
from hashlib import sha256
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from authgate.aws.cors import CorsConfig
    from authgate.aws.http_api.config import Route


def routing_table(routes: "Sequence[Route]") -> list[dict[str, str]]:
    """Serializable routing table a deployment serves, sorted by route key."""
    return sorted(
        (
            {
                "route_key": route.key,
                "integration": route.integration.name,
                "function": route.integration.function.name,
                "authorizer": route.authorizer.name,
            }
            for route in routes
        ),
        key=lambda r: r["route_key"],
    )


def _get_cors_key(cors_config: "CorsConfig | None") -> dict | None:
    """Gets a serializable representation of CORS config."""
    if cors_config is None:
        return None

    return {
        "allow_origins": sorted(cors_config.allow_origins),
        "allow_methods": sorted(cors_config.allow_methods),
        "allow_headers": sorted(cors_config.allow_headers),
        "allow_credentials": cors_config.allow_credentials,
        "max_age": cors_config.max_age,
        "expose_headers": sorted(cors_config.expose_headers),
    }


def calculate_deployment_hash(
    routes: "Sequence[Route]", cors_config: "CorsConfig | None" = None
) -> str:
    """Calculates a stable hash of the routing configuration a deployment snapshots.

    The same route set yields the same hash regardless of declaration order.
    """
    config = {
        "routes": routing_table(routes),
        "cors": _get_cors_key(cors_config),
    }

    return sha256(json.dumps(config, sort_keys=True).encode()).hexdigest()
