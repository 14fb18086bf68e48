from dataclasses import dataclass

import pytest

from authgate.aws.cognito import UserPool, UserPoolClient
from authgate.aws.function import Function
from authgate.aws.http_api import HttpApi
from authgate.aws.iam import InvocationRole


@dataclass
class Topology:
    pool: UserPool
    client: UserPoolClient
    function: Function
    role: InvocationRole
    api: HttpApi


@pytest.fixture
def topology(stack):
    pool = UserPool(stack, "user-pool")
    client = pool.add_client(
        "web-client",
        auth_flows=["admin_user_password"],
        oauth={"flows": ["authorization_code"], "scopes": ["openid"]},
    )
    function = Function(stack, "hello", handler="functions/hello.handler")
    role = InvocationRole.for_function(stack, "invoke-hello", function)
    api = HttpApi(stack, "hello-api", cors={"max_age": 300})
    return Topology(pool, client, function, role, api)
