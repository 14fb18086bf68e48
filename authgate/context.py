from dataclasses import dataclass, field

from authgate.config import AwsConfig


@dataclass(frozen=True)
class ProvisioningContext:
    """Target environment of a single provisioning run.

    Passed explicitly to every provisioning operation. Nothing about the target
    account or region is read from process-wide state.
    """

    name: str
    env: str
    aws: AwsConfig = field(default_factory=AwsConfig)
    account_id: str | None = None

    def prefix(self, name: str | None = None) -> str:
        """Get resource name prefix or prefixed name.

        Args:
            name: Optional name to prefix. If None, returns just the prefix with trailing dash.

        Returns:
            If name is None: "{app}-{env}-"
            If name provided: "{app}-{env}-{name}"
        """
        base = f"{self.name.lower()}-{self.env.lower()}-"
        return base if name is None else f"{base}{name}"
