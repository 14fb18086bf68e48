import logging
from collections.abc import Callable, Mapping
from typing import Any, final

import pulumi
from pulumi import Output, ResourceOptions
from pulumi_aws import apigatewayv2, cognito, iam, lambda_
from pulumi_aws.iam import (
    GetPolicyDocumentStatementArgs,
    GetPolicyDocumentStatementPrincipalArgs,
    get_policy_document,
)

from authgate.aws.cognito import issuer_url
from authgate.aws.function.constants import LAMBDA_BASIC_EXECUTION_ROLE
from authgate.aws.function.packaging import collect_code_files, create_lambda_archive
from authgate.aws.iam import LAMBDA_PRINCIPAL
from authgate.component import safe_name
from authgate.context import ProvisioningContext
from authgate.platform import RESOURCE_KEY, ResourceKind

logger = logging.getLogger("authgate.aws.platform")

type Outputs = dict[str, Any]
type Creator = Callable[[str, Mapping[str, Any], ProvisioningContext, ResourceOptions], Outputs]


def _region_from_arn(arn: Output[str]) -> Output[str]:
    # arn:aws:<service>:<region>:<account>:<resource>
    return arn.apply(lambda a: a.split(":")[3])


def _none_if_empty[T](values: list[T] | None) -> list[T] | None:
    return values or None


def _assume_role_policy(principals: list[str]) -> str:
    return get_policy_document(
        statements=[
            GetPolicyDocumentStatementArgs(
                actions=["sts:AssumeRole"],
                principals=[
                    GetPolicyDocumentStatementPrincipalArgs(identifiers=principals, type="Service")
                ],
            )
        ]
    ).json


@final
class PulumiPlatform:
    """Creates real AWS resources with pulumi_aws inside a Pulumi program.

    Resources must be registered on the program's thread, so the scheduler runs
    nodes one at a time. The Pulumi engine still creates independent resources in
    parallel; graph edges are passed along as ResourceOptions.depends_on.
    """

    supports_parallel = False

    def __init__(self) -> None:
        self._creators: dict[ResourceKind, Creator] = {
            ResourceKind.USER_POOL: self._create_user_pool,
            ResourceKind.USER_POOL_CLIENT: self._create_user_pool_client,
            ResourceKind.FUNCTION: self._create_function,
            ResourceKind.INVOCATION_ROLE: self._create_invocation_role,
            ResourceKind.HTTP_API: self._create_http_api,
            ResourceKind.AUTHORIZER: self._create_authorizer,
            ResourceKind.INTEGRATION: self._create_integration,
            ResourceKind.ROUTE: self._create_route,
            ResourceKind.DEPLOYMENT: self._create_deployment,
            ResourceKind.STAGE: self._create_stage,
        }

    def create(
        self,
        kind: ResourceKind,
        name: str,
        props: Mapping[str, Any],
        ctx: ProvisioningContext,
        dependencies: Mapping[str, Mapping[str, Any]],
    ) -> Outputs:
        depends_on = [d[RESOURCE_KEY] for d in dependencies.values() if RESOURCE_KEY in d]
        logger.debug("Registering %s '%s' after %d resource(s)", kind, name, len(depends_on))
        return self._creators[kind](name, props, ctx, ResourceOptions(depends_on=depends_on))

    def _create_user_pool(
        self, name: str, props: Mapping[str, Any], ctx: ProvisioningContext, opts: ResourceOptions
    ) -> Outputs:
        retain = props["removal_policy"] == "retain"
        pool = cognito.UserPool(
            ctx.prefix(name),
            name=safe_name(ctx.prefix(), name, 128, pulumi_suffix_length=0),
            opts=ResourceOptions.merge(opts, ResourceOptions(retain_on_delete=retain)),
        )
        region = _region_from_arn(pool.arn)
        issuer = Output.all(region, pool.id).apply(lambda args: issuer_url(*args))
        pulumi.export(f"user_pool_{name}_id", pool.id)
        pulumi.export(f"user_pool_{name}_issuer_url", issuer)
        return {"id": pool.id, "arn": pool.arn, "region": region, RESOURCE_KEY: pool}

    def _create_user_pool_client(
        self, name: str, props: Mapping[str, Any], ctx: ProvisioningContext, opts: ResourceOptions
    ) -> Outputs:
        oauth_flows = props["allowed_oauth_flows"]
        client = cognito.UserPoolClient(
            ctx.prefix(name),
            user_pool_id=props["user_pool_id"],
            name=props["client_name"],
            explicit_auth_flows=_none_if_empty(props["explicit_auth_flows"]),
            allowed_oauth_flows_user_pool_client=bool(oauth_flows),
            allowed_oauth_flows=_none_if_empty(oauth_flows),
            allowed_oauth_scopes=_none_if_empty(props["allowed_oauth_scopes"]),
            callback_urls=_none_if_empty(props["callback_urls"]),
            logout_urls=_none_if_empty(props["logout_urls"]),
            supported_identity_providers=props["supported_identity_providers"],
            generate_secret=props["generate_secret"],
            id_token_validity=props["id_token_validity_minutes"],
            access_token_validity=props["access_token_validity_minutes"],
            refresh_token_validity=props["refresh_token_validity_minutes"],
            token_validity_units=cognito.UserPoolClientTokenValidityUnitsArgs(
                id_token="minutes", access_token="minutes", refresh_token="minutes"
            ),
            opts=opts,
        )
        pulumi.export(f"user_pool_client_{name}_id", client.id)
        return {"id": client.id, RESOURCE_KEY: client}

    def _create_function(
        self, name: str, props: Mapping[str, Any], ctx: ProvisioningContext, opts: ResourceOptions
    ) -> Outputs:
        files = collect_code_files(props["code_path"], props["handler_file"], props["single_file"])
        role = iam.Role(
            safe_name(ctx.prefix(), name, 64, "-r"),
            assume_role_policy=_assume_role_policy([LAMBDA_PRINCIPAL]),
            opts=opts,
        )
        attachment = iam.RolePolicyAttachment(
            ctx.prefix(f"{name}-basic-execution-r-p-attachment"),
            role=role.name,
            policy_arn=LAMBDA_BASIC_EXECUTION_ROLE,
        )
        function = lambda_.Function(
            safe_name(ctx.prefix(), name, 64),
            role=role.arn,
            architectures=[props["architecture"]],
            runtime=props["runtime"],
            code=create_lambda_archive(files),
            handler=props["handler"],
            environment={"variables": props["environment"]} if props["environment"] else None,
            memory_size=props["memory"],
            timeout=props["timeout"],
            # Technically this is necessary only for tests as otherwise it's ok if role
            # attachments are created after functions
            opts=ResourceOptions.merge(opts, ResourceOptions(depends_on=[attachment])),
        )
        pulumi.export(f"function_{name}_arn", function.arn)
        pulumi.export(f"function_{name}_name", function.name)
        return {
            "arn": function.arn,
            "invoke_arn": function.invoke_arn,
            "name": function.name,
            RESOURCE_KEY: function,
        }

    def _create_invocation_role(
        self, name: str, props: Mapping[str, Any], ctx: ProvisioningContext, opts: ResourceOptions
    ) -> Outputs:
        policy = Output.json_dumps(
            {
                "Version": "2012-10-17",
                "Statement": [
                    {
                        "Effect": statement["effect"],
                        "Action": statement["actions"],
                        "Resource": statement["resources"],
                    }
                    for statement in props["statements"]
                ],
            }
        )
        role = iam.Role(
            safe_name(ctx.prefix(), name, 64, "-r"),
            assume_role_policy=_assume_role_policy(props["principals"]),
            inline_policies=[iam.RoleInlinePolicyArgs(name=f"{name}-policy", policy=policy)],
            opts=opts,
        )
        pulumi.export(f"role_{name}_arn", role.arn)
        return {"arn": role.arn, "name": role.name, RESOURCE_KEY: role}

    def _create_http_api(
        self, name: str, props: Mapping[str, Any], ctx: ProvisioningContext, opts: ResourceOptions
    ) -> Outputs:
        cors = props["cors"]
        api = apigatewayv2.Api(
            ctx.prefix(name),
            name=safe_name(ctx.prefix(), name, 128, pulumi_suffix_length=0),
            protocol_type=props["protocol_type"],
            description=props["description"],
            cors_configuration=apigatewayv2.ApiCorsConfigurationArgs(
                allow_origins=_none_if_empty(cors["allow_origins"]),
                allow_methods=_none_if_empty(cors["allow_methods"]),
                allow_headers=_none_if_empty(cors["allow_headers"]),
                expose_headers=_none_if_empty(cors["expose_headers"]),
                allow_credentials=cors["allow_credentials"] or None,
                max_age=cors["max_age"],
            )
            if cors
            else None,
            opts=opts,
        )
        pulumi.export(f"http_api_{name}_id", api.id)
        return {
            "id": api.id,
            "endpoint": api.api_endpoint,
            "execution_arn": api.execution_arn,
            "region": _region_from_arn(api.execution_arn),
            RESOURCE_KEY: api,
        }

    def _create_authorizer(
        self, name: str, props: Mapping[str, Any], ctx: ProvisioningContext, opts: ResourceOptions
    ) -> Outputs:
        authorizer = apigatewayv2.Authorizer(
            ctx.prefix(name),
            api_id=props["api_id"],
            name=props["name"],
            authorizer_type=props["authorizer_type"],
            identity_sources=props["identity_sources"],
            jwt_configuration=apigatewayv2.AuthorizerJwtConfigurationArgs(
                audiences=props["audience"], issuer=props["issuer"]
            ),
            opts=opts,
        )
        return {"id": authorizer.id, RESOURCE_KEY: authorizer}

    def _create_integration(
        self, name: str, props: Mapping[str, Any], ctx: ProvisioningContext, opts: ResourceOptions
    ) -> Outputs:
        integration = apigatewayv2.Integration(
            ctx.prefix(name),
            api_id=props["api_id"],
            integration_type=props["integration_type"],
            integration_method=props["integration_method"],
            integration_uri=props["integration_uri"],
            credentials_arn=props["credentials_arn"],
            payload_format_version=props["payload_format_version"],
            opts=opts,
        )
        return {"id": integration.id, RESOURCE_KEY: integration}

    def _create_route(
        self, name: str, props: Mapping[str, Any], ctx: ProvisioningContext, opts: ResourceOptions
    ) -> Outputs:
        route = apigatewayv2.Route(
            ctx.prefix(name),
            api_id=props["api_id"],
            route_key=props["route_key"],
            target=props["target"],
            authorization_type=props["authorization_type"],
            authorizer_id=props["authorizer_id"],
            opts=opts,
        )
        return {"id": route.id, "key": props["route_key"], RESOURCE_KEY: route}

    def _create_deployment(
        self, name: str, props: Mapping[str, Any], ctx: ProvisioningContext, opts: ResourceOptions
    ) -> Outputs:
        trigger_hash = props["triggers"]["configuration_hash"]
        pulumi.log.debug(f"Deployment '{name}' trigger hash: {trigger_hash}")
        deployment = apigatewayv2.Deployment(
            ctx.prefix(name),
            api_id=props["api_id"],
            description=props["description"],
            # Trigger a new deployment only when the snapshotted route config changes
            triggers=props["triggers"],
            # Routes listed for this deployment must exist before it is created
            opts=opts,
        )
        return {"id": deployment.id, RESOURCE_KEY: deployment}

    def _create_stage(
        self, name: str, props: Mapping[str, Any], ctx: ProvisioningContext, opts: ResourceOptions
    ) -> Outputs:
        stage = apigatewayv2.Stage(
            ctx.prefix(name),
            api_id=props["api_id"],
            name=props["name"],
            deployment_id=props["deployment_id"],
            auto_deploy=props["auto_deploy"],
            opts=opts,
        )
        url = Output.concat(props["endpoint"], "/", stage.name)
        pulumi.export(f"stage_{name}_url", url)
        return {"name": stage.name, "url": url, RESOURCE_KEY: stage}
