class AuthgateError(Exception):
    """Base class for all authgate errors."""


class ConfigurationError(AuthgateError, ValueError):
    """Raised when a resource configuration is invalid or incomplete.

    Always raised before any remote call is made.
    """


class DependencyOrderingError(AuthgateError):
    """Raised when an operation references a value from an unresolved dependency.

    Detected while the provisioning graph is being built, never at runtime.
    """


class PlatformError(AuthgateError):
    """Raised by a platform when the provider rejects a create call."""


class ProvisioningFailure(AuthgateError):
    """Raised when the platform rejects a create call during a provisioning run.

    The original platform error is kept as ``__cause__`` and its message is
    surfaced verbatim.
    """

    def __init__(self, node: str, kind: str, message: str):
        self.node = node
        self.kind = kind
        super().__init__(f"Failed to create {kind} '{node}': {message}")


class StackOperationFailure(ProvisioningFailure):
    """Raised when a Pulumi up, preview or destroy of a whole stack fails.

    The engine output is kept verbatim in the message.
    """

    def __init__(self, stack: str, operation: str, message: str):
        self.node = stack
        self.kind = "stack"
        self.operation = operation
        AuthgateError.__init__(self, f"Pulumi {operation} of stack '{stack}' failed: {message}")


class ProvisioningCancelledError(AuthgateError):
    """Raised when a provisioning run was cancelled before all nodes completed."""

    def __init__(self, pending: list[str]):
        self.pending = pending
        super().__init__(
            f"Provisioning cancelled, {len(pending)} resource(s) not created: "
            f"{', '.join(pending)}"
        )


class AuthorizationFailure(AuthgateError):
    """Raised when a token or grant request is rejected at request time."""


class UnauthorizedClientError(AuthorizationFailure):
    """Raised when a client requests an OAuth grant it is not enabled for."""

    def __init__(self, client_id: str, grant_type: str):
        self.client_id = client_id
        self.grant_type = grant_type
        super().__init__(f"Client '{client_id}' is not allowed to use grant '{grant_type}'")


class InvocationError(AuthgateError):
    """Raised when a backend function cannot be loaded or raises while handling an event."""


class MalformedResponseError(InvocationError):
    """Raised when a function returns something that is not a proxy response."""
