import pytest

from authgate.aws.function import Function
from authgate.aws.iam import (
    API_GATEWAY_PRINCIPAL,
    INVOKE_FUNCTION_ACTION,
    LAMBDA_PRINCIPAL,
    InvocationRole,
    PolicyStatement,
    statements_allow,
)
from authgate.exceptions import ConfigurationError
from authgate.platform import ResourceKind

FUNCTION_ARN = "arn:aws:lambda:us-east-1:123456789012:function:hello"


@pytest.mark.parametrize(
    ("kwargs", "match"),
    [
        ({"actions": [], "resources": [FUNCTION_ARN]}, "at least one action"),
        ({"actions": [INVOKE_FUNCTION_ACTION], "resources": []}, "at least one resource"),
        ({"actions": ["lambda:*"], "resources": [FUNCTION_ARN]}, "Wildcard actions"),
        ({"actions": [INVOKE_FUNCTION_ACTION], "resources": ["*"]}, "Wildcard resources"),
        (
            {"actions": [INVOKE_FUNCTION_ACTION], "resources": [FUNCTION_ARN], "effect": "Maybe"},
            "Invalid effect 'Maybe'",
        ),
    ],
)
def test_policy_statement_validation(kwargs, match):
    with pytest.raises(ConfigurationError, match=match):
        PolicyStatement(**kwargs)


def test_role_for_function_is_least_privilege(stack):
    function = Function(stack, "hello", handler="functions/hello.handler")
    role = InvocationRole.for_function(stack, "invoke-hello", function)
    node = stack.graph.get(role.node_name)

    assert node.kind == ResourceKind.INVOCATION_ROLE
    assert node.dependencies == ("hello",)
    assert role.principals == (API_GATEWAY_PRINCIPAL,)
    [statement] = node.props["statements"]
    assert statement["actions"] == [INVOKE_FUNCTION_ACTION]
    assert statement["effect"] == "Allow"
    assert statement["resources"][0].refs[0].attribute == "arn"


def test_role_lambda_principal_is_opt_in(stack):
    function = Function(stack, "hello", handler="functions/hello.handler")
    role = InvocationRole.for_function(
        stack, "invoke-hello", function, principals=[API_GATEWAY_PRINCIPAL, LAMBDA_PRINCIPAL]
    )
    assert role.principals == (API_GATEWAY_PRINCIPAL, LAMBDA_PRINCIPAL)


@pytest.mark.parametrize(
    ("statements", "principals", "match"),
    [
        ([], [API_GATEWAY_PRINCIPAL], "at least one policy statement"),
        (
            [PolicyStatement([INVOKE_FUNCTION_ACTION], [FUNCTION_ARN])],
            [],
            "at least one trusted principal",
        ),
        (
            [PolicyStatement([INVOKE_FUNCTION_ACTION], [FUNCTION_ARN])],
            ["*"],
            "Wildcard principals are not allowed",
        ),
    ],
)
def test_role_validation(stack, statements, principals, match):
    with pytest.raises(ConfigurationError, match=match):
        InvocationRole(stack, "role", statements, principals)
    assert stack.get("role") is None


def allow(resource=FUNCTION_ARN, effect="Allow"):
    return {"effect": effect, "actions": [INVOKE_FUNCTION_ACTION], "resources": [resource]}


@pytest.mark.parametrize(
    ("statements", "expected"),
    [
        ([allow()], True),
        ([allow(resource=FUNCTION_ARN + "-other")], False),
        ([], False),
        ([allow(), allow(effect="Deny")], False),
        ([allow(effect="Deny"), allow()], False),
    ],
)
def test_statements_allow(statements, expected):
    assert statements_allow(statements, INVOKE_FUNCTION_ACTION, FUNCTION_ARN) is expected
