import pytest

from authgate.aws.cognito import UserPool
from authgate.aws.function import Function
from authgate.aws.iam import InvocationRole
from authgate.config import AwsConfig
from authgate.context import ProvisioningContext
from authgate.exceptions import PlatformError, ProvisioningFailure
from authgate.local.cloud import LocalPlatform
from authgate.platform import ResourceKind
from authgate.stack import Stack
from tests.local.hello_app import declare_hello_app


def test_provisioning_creates_everything_in_dependency_order(stack, ctx):
    app = declare_hello_app(stack)
    platform = LocalPlatform()
    result = stack.provision(platform, ctx)

    created = [name for _, name in platform.create_log]
    for node in stack.graph:
        for dependency in node.dependencies:
            assert created.index(dependency) < created.index(node.name)

    pool_id = result[app.pool.node_name]["id"]
    assert pool_id.startswith("us-east-1_")
    assert platform.user_pool(pool_id).issuer_url == (
        f"https://cognito-idp.us-east-1.amazonaws.com/{pool_id}"
    )
    api = platform.api(result[app.api.node_name]["id"])
    assert result[app.stage.node.name]["url"] == f"{api.endpoint}/prod"


def test_authorizer_receives_issuer_and_client_audience(stack, ctx):
    app = declare_hello_app(stack)
    platform = LocalPlatform(region="eu-central-1")
    result = stack.provision(platform, ctx)

    api = platform.api(result[app.api.node_name]["id"])
    [authorizer] = api.authorizers.values()
    pool_id = result[app.pool.node_name]["id"]
    assert authorizer.issuer == f"https://cognito-idp.eu-central-1.amazonaws.com/{pool_id}"
    assert authorizer.audience == (result[app.client.node_name]["id"],)


def test_deployment_serves_only_listed_routes(stack, ctx):
    app = declare_hello_app(stack)
    platform = LocalPlatform()
    result = stack.provision(platform, ctx)

    api = platform.api(result[app.api.node_name]["id"])
    assert {route.key for route in api.routes.values()} == {"GET /hello", "POST /hello"}
    deployment = api.deployments[result[app.deployment.node.name]["id"]]
    assert list(deployment.routes) == ["GET /hello"]
    assert deployment.configuration_hash == app.deployment.configuration_hash


def test_same_declaration_gives_same_routing_on_fresh_platforms(project_dir, ctx):
    deployments = []
    for _ in range(2):
        stack = Stack("test", root=project_dir)
        app = declare_hello_app(stack)
        platform = LocalPlatform()
        result = stack.provision(platform, ctx)
        api = platform.api(result[app.api.node_name]["id"])
        deployments.append(api.deployments[result[app.deployment.node.name]["id"]])

    first, second = deployments
    assert first.id != second.id
    assert first.routing_table() == second.routing_table()
    assert first.configuration_hash == second.configuration_hash
    assert first.routing_table() == [
        {
            "route_key": "GET /hello",
            "function": "test-test-hello",
            "authorizer": "jwt",
            "identity_source": "$request.header.Authorization",
            "payload_format_version": "1.0",
        }
    ]


def test_provisioning_twice_into_one_platform_conflicts(project_dir, ctx):
    platform = LocalPlatform()
    for attempt in range(2):
        stack = Stack("test", root=project_dir)
        Function(stack, "hello", handler="functions/hello.handler")
        if attempt == 0:
            stack.provision(platform, ctx)
        else:
            with pytest.raises(ProvisioningFailure, match="function 'test-test-hello' already"):
                stack.provision(platform, ctx)


@pytest.mark.parametrize(
    ("oauth", "match"),
    [
        (
            {"flows": ["authorization_code"], "callback_urls": []},
            "a redirect URI must be provided",
        ),
        (
            {"flows": ["implicit"], "callback_urls": ["http://app.example.com/cb"]},
            "must use https",
        ),
    ],
)
def test_client_rejected_by_provider(stack, ctx, oauth, match):
    UserPool(stack, "user-pool").add_client("web-client", oauth=oauth)
    with pytest.raises(ProvisioningFailure, match=match) as exc_info:
        stack.provision(LocalPlatform(), ctx)
    assert exc_info.value.kind == ResourceKind.USER_POOL_CLIENT
    assert isinstance(exc_info.value.__cause__, PlatformError)


def test_localhost_callback_allowed(stack, ctx):
    client = UserPool(stack, "user-pool").add_client(
        "web-client",
        oauth={"flows": ["authorization_code"], "callback_urls": ["http://localhost:3000/cb"]},
    )
    platform = LocalPlatform()
    result = stack.provision(platform, ctx)
    record = platform.client(result[client.node_name]["id"])
    assert record.callback_urls == ("http://localhost:3000/cb",)
    assert record.secret is None


def test_missing_handler_file_fails_function(stack, ctx, project_dir):
    Function(stack, "hello", handler="functions/hello.handler")
    (project_dir / "functions" / "hello.py").unlink()
    with pytest.raises(ProvisioningFailure, match="Handler file not found"):
        stack.provision(LocalPlatform(), ctx)


def test_role_principal_must_be_a_service(stack, ctx):
    function = Function(stack, "hello", handler="functions/hello.handler")
    InvocationRole.for_function(
        stack, "invoke-hello", function, principals=["arn:aws:iam::123456789012:root"]
    )
    with pytest.raises(ProvisioningFailure, match="invalid service principal"):
        stack.provision(LocalPlatform(), ctx)


def test_lookups_raise_platform_error():
    platform = LocalPlatform()
    with pytest.raises(PlatformError, match="user pool 'nope' does not exist"):
        platform.user_pool("nope")
    with pytest.raises(PlatformError, match="client 'nope' does not exist"):
        platform.client("nope")
    with pytest.raises(PlatformError, match="API 'nope' does not exist"):
        platform.api("nope")
    with pytest.raises(PlatformError, match="function 'nope' does not exist"):
        platform.function_by_arn("nope")
    with pytest.raises(PlatformError, match="role 'nope' does not exist"):
        platform.role_by_arn("nope")


def test_contexts_are_isolated(project_dir):
    platform = LocalPlatform()
    for env in ("dev", "prod"):
        stack = Stack("app", root=project_dir)
        Function(stack, "hello", handler="functions/hello.handler")
        stack.provision(platform, ProvisioningContext("app", env))
    assert sorted(platform.functions) == ["app-dev-hello", "app-prod-hello"]


def test_context_selects_region_and_account(stack, project_dir):
    app = declare_hello_app(stack)
    platform = LocalPlatform()
    ctx = ProvisioningContext(
        name="test", env="test", aws=AwsConfig(region="eu-west-1"), account_id="210987654321"
    )
    result = stack.provision(platform, ctx)

    pool_id = result[app.pool.node_name]["id"]
    assert pool_id.startswith("eu-west-1_")
    assert result[app.pool.node_name]["arn"].startswith(
        "arn:aws:cognito-idp:eu-west-1:210987654321:userpool/"
    )
    api = platform.api(result[app.api.node_name]["id"])
    [authorizer] = api.authorizers.values()
    assert authorizer.issuer == f"https://cognito-idp.eu-west-1.amazonaws.com/{pool_id}"
    assert api.endpoint.endswith(".execute-api.eu-west-1.amazonaws.com")
    assert api.execution_arn.startswith("arn:aws:execute-api:eu-west-1:210987654321:")
    [function] = platform.functions.values()
    assert function.arn.startswith("arn:aws:lambda:eu-west-1:210987654321:function:")
    for role in platform.roles.values():
        assert role.arn.startswith("arn:aws:iam::210987654321:role/")


def test_context_without_region_uses_platform_defaults(stack, ctx):
    app = declare_hello_app(stack)
    platform = LocalPlatform(region="ap-southeast-2", account_id="111122223333")
    result = stack.provision(platform, ctx)

    assert result[app.pool.node_name]["id"].startswith("ap-southeast-2_")
    api = platform.api(result[app.api.node_name]["id"])
    assert (api.region, api.account_id) == ("ap-southeast-2", "111122223333")


def test_routes_with_similar_paths_are_all_provisioned(stack, ctx):
    app = declare_hello_app(stack)
    integration, jwt = app.get_hello.integration, app.get_hello.authorizer
    by_param = app.api.route("GET", "/users/{id}", integration, auth=jwt)
    literal = app.api.route("GET", "/users/id", integration, auth=jwt)
    app.api.deploy("v2", routes=[by_param, literal])

    platform = LocalPlatform()
    result = stack.provision(platform, ctx)

    api = platform.api(result[app.api.node_name]["id"])
    keys = {route.key for route in api.routes.values()}
    assert {"GET /users/{id}", "GET /users/id"} <= keys
    [v2] = [d for d in api.deployments.values() if len(d.routes) == 2]
    assert sorted(v2.routes) == ["GET /users/id", "GET /users/{id}"]
