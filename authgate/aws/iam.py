import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Literal, final

from authgate.component import Component, output
from authgate.deferred import Deferred
from authgate.exceptions import ConfigurationError
from authgate.platform import ResourceKind

if TYPE_CHECKING:
    from authgate.aws.function import Function
    from authgate.stack import Stack

logger = logging.getLogger("authgate.aws.iam")

API_GATEWAY_PRINCIPAL = "apigateway.amazonaws.com"
LAMBDA_PRINCIPAL = "lambda.amazonaws.com"
INVOKE_FUNCTION_ACTION = "lambda:InvokeFunction"

type Resource = str | Deferred[str]


@dataclass(frozen=True)
class PolicyStatement:
    actions: Sequence[str]
    resources: Sequence[Resource]
    effect: Literal["Allow", "Deny"] = "Allow"

    def __post_init__(self) -> None:
        if not self.actions:
            raise ConfigurationError("Policy statement needs at least one action")
        if not self.resources:
            raise ConfigurationError("Policy statement needs at least one resource")
        if self.effect not in ("Allow", "Deny"):
            raise ConfigurationError(f"Invalid effect '{self.effect}', use 'Allow' or 'Deny'")
        for action in self.actions:
            if "*" in action:
                raise ConfigurationError(f"Wildcard actions are not allowed: '{action}'")
        for resource in self.resources:
            # Deferred resources resolve to concrete ARNs of graph nodes
            if isinstance(resource, str) and "*" in resource:
                raise ConfigurationError(f"Wildcard resources are not allowed: '{resource}'")

    def to_props(self) -> dict[str, Any]:
        return {
            "effect": self.effect,
            "actions": list(self.actions),
            "resources": list(self.resources),
        }


@final
class InvocationRole(Component):
    """IAM role a service principal assumes to call other resources.

    The gateway assumes it to invoke a backend function. Use ``for_function`` for
    the least-privilege role that can only invoke one function.
    """

    def __init__(
        self,
        stack: "Stack",
        name: str,
        statements: Sequence[PolicyStatement],
        principals: Sequence[str] = (API_GATEWAY_PRINCIPAL,),
    ):
        if not statements:
            raise ConfigurationError(f"Role '{name}' needs at least one policy statement")
        if not principals:
            raise ConfigurationError(f"Role '{name}' needs at least one trusted principal")
        for principal in principals:
            if "*" in principal:
                raise ConfigurationError(f"Wildcard principals are not allowed: '{principal}'")
        super().__init__(stack, name)
        self._statements = tuple(statements)
        self._principals = tuple(dict.fromkeys(principals))
        logger.debug("Role '%s' trusts %s", name, ", ".join(self._principals))
        self._node = self._declare(
            name,
            ResourceKind.INVOCATION_ROLE,
            {
                "principals": list(self._principals),
                "statements": [s.to_props() for s in self._statements],
            },
        )

    @classmethod
    def for_function(
        cls,
        stack: "Stack",
        name: str,
        function: "Function",
        principals: Sequence[str] = (API_GATEWAY_PRINCIPAL,),
    ) -> "InvocationRole":
        return cls(
            stack,
            name,
            [PolicyStatement(actions=[INVOKE_FUNCTION_ACTION], resources=[function.arn])],
            principals,
        )

    @property
    def principals(self) -> tuple[str, ...]:
        return self._principals

    @property
    def statements(self) -> tuple[PolicyStatement, ...]:
        return self._statements

    @property
    def node_name(self) -> str:
        return self._node.name

    @property
    def arn(self) -> Deferred[str]:
        return output(self._node, "arn")


def statements_allow(statements: Sequence[dict[str, Any]], action: str, resource: str) -> bool:
    """Evaluate created (resolved) statements; an explicit Deny wins over any Allow."""
    allowed = False
    for statement in statements:
        if action in statement["actions"] and resource in statement["resources"]:
            if statement["effect"] == "Deny":
                return False
            allowed = True
    return allowed
