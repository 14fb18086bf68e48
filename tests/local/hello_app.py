from dataclasses import dataclass
from typing import Any

from authgate.aws.cognito import UserPool, UserPoolClient
from authgate.aws.function import Function
from authgate.aws.http_api import Deployment, HttpApi, Route, Stage
from authgate.aws.iam import InvocationRole
from authgate.context import ProvisioningContext
from authgate.local.cloud import LocalPlatform
from authgate.local.gateway import LocalGateway
from authgate.local.identity import LocalIdentityProvider
from authgate.stack import Stack

PASSWORD = "Sup3r-secret!"  # noqa: S105


@dataclass
class HelloApp:
    pool: UserPool
    client: UserPoolClient
    api: HttpApi
    get_hello: Route
    post_hello: Route
    deployment: Deployment
    stage: Stage


def declare_hello_app(
    stack: Stack, cors: dict[str, Any] | None = None, **client_opts: Any
) -> HelloApp:
    pool = UserPool(stack, "user-pool")
    client = pool.add_client(
        "web-client",
        **(
            client_opts
            or {
                "auth_flows": ["admin_user_password"],
                "oauth": {
                    "flows": ["authorization_code"],
                    "scopes": ["openid"],
                    "callback_urls": ["https://app.example.com/callback"],
                },
            }
        ),
    )
    function = Function(
        stack, "hello", handler="functions/hello.handler", environment={"GREETING": "hi"}
    )
    role = InvocationRole.for_function(stack, "invoke-hello", function)
    api = HttpApi(stack, "hello-api", cors=cors or {"max_age": 300})
    jwt = api.add_jwt_authorizer("jwt", issuer=pool.issuer_url, audience=[client.client_id])
    integration = api.add_integration("hello", function, role)
    get_hello = api.route("GET", "/hello", integration, auth=jwt)
    # declared on the API but left out of the deployment below
    post_hello = api.route("POST", "/hello", integration, auth=jwt)
    deployment = api.deploy("v1", routes=[get_hello])
    stage = api.stage("prod", deployment)
    return HelloApp(pool, client, api, get_hello, post_hello, deployment, stage)


@dataclass
class Provisioned:
    app: HelloApp
    platform: LocalPlatform
    identity: LocalIdentityProvider
    gateway: LocalGateway
    outputs: dict[str, dict[str, Any]]

    @property
    def pool_id(self) -> str:
        return self.outputs[self.app.pool.node_name]["id"]

    @property
    def client_id(self) -> str:
        return self.outputs[self.app.client.node_name]["id"]

    @property
    def stage_url(self) -> str:
        return self.outputs[self.app.stage.node.name]["url"]

    def id_token(self, username: str = "alice") -> str:
        result = self.identity.admin_initiate_auth(
            self.pool_id, self.client_id, username, PASSWORD
        )
        return result["AuthenticationResult"]["IdToken"]


def provision_hello_app(app: HelloApp, stack: Stack, ctx: ProvisioningContext) -> Provisioned:
    """Provision on a fresh LocalPlatform and sign up ``alice``."""
    platform = LocalPlatform()
    result = stack.provision(platform, ctx)
    identity = LocalIdentityProvider(platform)
    provisioned = Provisioned(
        app, platform, identity, LocalGateway(platform, identity), result.outputs
    )
    identity.admin_create_user(
        provisioned.pool_id, "alice", PASSWORD, {"email": "alice@example.com"}
    )
    return provisioned
