from authgate.aws.http_api.api import HttpApi, Stage
from authgate.aws.http_api.config import (
    Deployment,
    HttpApiConfig,
    HttpApiConfigDict,
    Integration,
    JwtAuthorizer,
    Route,
)
from authgate.aws.http_api.constants import HTTPMethod, ProvisioningState

__all__ = [
    "Deployment",
    "HTTPMethod",
    "HttpApi",
    "HttpApiConfig",
    "HttpApiConfigDict",
    "Integration",
    "JwtAuthorizer",
    "ProvisioningState",
    "Route",
    "Stage",
]
