"""AWS components for authgate."""

from authgate.aws.cognito import UserPool, UserPoolClient
from authgate.aws.cors import CorsConfig
from authgate.aws.function import Function
from authgate.aws.http_api import HttpApi
from authgate.aws.iam import InvocationRole, PolicyStatement

__all__ = [
    "CorsConfig",
    "Function",
    "HttpApi",
    "InvocationRole",
    "PolicyStatement",
    "UserPool",
    "UserPoolClient",
]
