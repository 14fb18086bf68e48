"""A Cognito-protected hello endpoint.

``python app.py`` provisions the stack in-process and calls it with a freshly issued
id token. ``deploy()`` ships the same declaration to AWS.
"""

import logging
import os
from pathlib import Path

from rich.console import Console

from authgate.aws import Function, HttpApi, InvocationRole, UserPool, UserPoolClient
from authgate.aws.http_api import Stage
from authgate.config import AwsConfig
from authgate.context import ProvisioningContext
from authgate.local import LocalGateway, LocalIdentityProvider, LocalPlatform
from authgate.pulumi import PulumiRunner
from authgate.stack import Stack

HERE = Path(__file__).parent
console = Console()


def build() -> tuple[Stack, UserPool, UserPoolClient, Stage]:
    stack = Stack("hello", root=HERE)

    pool = UserPool(stack, "users")
    client = pool.add_client(
        "web",
        auth_flows=["admin_user_password"],
        oauth={
            "flows": ["authorization_code"],
            "scopes": ["openid", "email"],
            "callback_urls": ["http://localhost:3000/callback"],
        },
    )

    function = Function(stack, "hello", handler="functions/hello.handler")
    role = InvocationRole.for_function(stack, "invoke-hello", function)

    api = HttpApi(stack, "hello-api", cors={"allow_origins": ["http://localhost:3000"]})
    jwt = api.add_jwt_authorizer("cognito", issuer=pool.issuer_url, audience=[client.client_id])
    hello = api.add_integration("hello", function, role)
    get_hello = api.route("GET", "/hello", hello, auth=jwt)
    stage = api.stage("dev", api.deploy("v1", routes=[get_hello]))
    return stack, pool, client, stage


def deploy(env: str = "dev") -> dict:
    ctx = ProvisioningContext(name="hello", env=env, aws=AwsConfig(region="eu-west-1"))
    runner = PulumiRunner(
        build()[0], ctx, HERE / ".authgate", os.environ.get("PULUMI_CONFIG_PASSPHRASE", "")
    )
    return runner.up()


def run_locally() -> None:
    stack, pool, client, stage = build()
    platform = LocalPlatform()
    result = stack.provision(platform, ProvisioningContext(name="hello", env="local"))

    pool_id = result[pool.node_name]["id"]
    client_id = result[client.node_name]["id"]
    identity = LocalIdentityProvider(platform)
    identity.admin_create_user(pool_id, "alice", "Passw0rd!", {"email": "alice@example.com"})
    token = identity.admin_initiate_auth(pool_id, client_id, "alice", "Passw0rd!")[
        "AuthenticationResult"
    ]["IdToken"]

    gateway = LocalGateway(platform, identity)
    stage_url = result[stage.node.name]["url"]
    url = f"{stage_url}/hello"
    for headers in ({}, {"Authorization": f"Bearer {token}"}):
        response = gateway.request("GET", url, headers=headers)
        console.print(f"[bold]GET[/bold] {url} -> {response.status_code} {response.body}")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    run_locally()
