"""In-process platform for provisioning and serving a stack without AWS."""

from authgate.local.authorizer import JwtValidator
from authgate.local.cloud import LocalPlatform
from authgate.local.events import HttpRequest
from authgate.local.gateway import GatewayResponse, LocalGateway
from authgate.local.identity import LocalIdentityProvider

__all__ = [
    "GatewayResponse",
    "HttpRequest",
    "JwtValidator",
    "LocalGateway",
    "LocalIdentityProvider",
    "LocalPlatform",
]
