from enum import Enum, IntEnum
from typing import Literal

ROUTE_MAX_PARAMS = 10
ROUTE_MAX_LENGTH = 8192
PROTOCOL_TYPE = "HTTP"
AUTHORIZER_TYPE = "JWT"
INTEGRATION_TYPE = "AWS_PROXY"
INTEGRATION_METHOD = "POST"
PAYLOAD_FORMAT_VERSION = "1.0"
DEFAULT_IDENTITY_SOURCE = "$request.header.Authorization"
ENDPOINT_URL_TEMPLATE = "https://{api_id}.execute-api.{region}.amazonaws.com"


# These are methods supported by HTTP API route keys
class HTTPMethod(Enum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    PATCH = "PATCH"
    HEAD = "HEAD"
    OPTIONS = "OPTIONS"
    ANY = "ANY"


HTTPMethodLiteral = Literal["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS", "ANY", "*"]

type HTTPMethodInput = str | HTTPMethodLiteral | HTTPMethod


class ProvisioningState(IntEnum):
    """How far the gateway's declaration has progressed. Only ever moves forward."""

    UNPROVISIONED = 0
    GATEWAY_CREATED = 1
    AUTHORIZER_ATTACHED = 2
    INTEGRATION_ATTACHED = 3
    ROUTE_ATTACHED = 4
    DEPLOYED = 5
    STAGED = 6


def endpoint_url(api_id: str, region: str) -> str:
    return ENDPOINT_URL_TEMPLATE.format(api_id=api_id, region=region)
