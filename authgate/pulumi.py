"""Runs a stack against AWS through the Pulumi Automation API."""

import logging
import re
from collections.abc import Callable
from pathlib import Path
from typing import Any, final

from pulumi.automation import (
    LocalWorkspaceOptions,
    ProjectBackend,
    ProjectSettings,
    Stack,
    create_or_select_stack,
    fully_qualified_stack_name,
)
from pulumi.automation.errors import CommandError
from rich.console import Console

from authgate.aws.platform import PulumiPlatform
from authgate.context import ProvisioningContext
from authgate.exceptions import StackOperationFailure
from authgate.stack import Stack as AuthgateStack

logger = logging.getLogger("authgate.pulumi")
console = Console(soft_wrap=True)


def _is_exception_line(line: str) -> bool:
    return bool(re.match(r"^[A-Z][a-zA-Z0-9]*(?:Error|Exception|Warning)?\s*:", line))


def parse_error(message: str) -> str:
    """Pick the line worth showing out of a failed Pulumi run's output."""
    message = re.sub(r"<ref \*\d+>\s*", "", message)
    message = re.sub(r"(?m)^Running program .*$\n?", "", message).strip()
    lines = message.split("\n")
    for line in reversed(lines):
        if _is_exception_line(line.strip()):
            return line.strip()
    for line in reversed(lines):
        if line.strip() and not line.startswith((" ", "Traceback")):
            return line.strip()
    return message


def print_operation_header(operation: str, app_name: str, environment: str) -> None:
    console.print(f"{operation} ", style="bold", end="")
    console.print(f"{app_name}", style="bold cyan", end="")
    console.print(" → ", style="dim", end="")
    console.print(f"{environment}", style="bold yellow")


def pulumi_program(stack: AuthgateStack, ctx: ProvisioningContext) -> Callable[[], None]:
    def run() -> None:
        stack.provision(PulumiPlatform(), ctx)

    return run


@final
class PulumiRunner:
    """Deploys, previews and destroys one stack in one environment.

    State lives in a local file backend under ``workdir``.
    """

    def __init__(
        self,
        stack: AuthgateStack,
        ctx: ProvisioningContext,
        workdir: Path | str,
        passphrase: str,
    ):
        self._stack = stack
        self._ctx = ctx
        self._workdir = Path(workdir)
        self._passphrase = passphrase
        self._pulumi_stack: Stack | None = None

    def _create_stack(self) -> Stack:
        ctx = self._ctx
        self._workdir.mkdir(parents=True, exist_ok=True)
        stack_name = self.stack_name
        logger.debug("Fully qualified stack name: %s", stack_name)
        backend = ProjectBackend(f"file://{self._workdir}")
        project_settings = ProjectSettings(name=ctx.name, runtime="python", backend=backend)
        env_vars = {"PULUMI_CONFIG_PASSPHRASE": self._passphrase}
        if region := ctx.aws.region:
            env_vars["AWS_REGION"] = region
        if profile := ctx.aws.profile:
            env_vars["AWS_PROFILE"] = profile
        opts = LocalWorkspaceOptions(env_vars=env_vars, project_settings=project_settings)
        logger.debug("Creating stack")
        stack = create_or_select_stack(
            stack_name=stack_name,
            project_name=ctx.name,
            program=pulumi_program(self._stack, ctx),
            opts=opts,
        )
        logger.debug("Successfully initialized stack")
        return stack

    @property
    def stack_name(self) -> str:
        return fully_qualified_stack_name("organization", self._ctx.name, self._ctx.env)

    @property
    def pulumi_stack(self) -> Stack:
        if self._pulumi_stack is None:
            self._pulumi_stack = self._create_stack()
        return self._pulumi_stack

    def _run(
        self, header: str, operation: str, action: Callable[[Stack], Any]
    ) -> Any:  # noqa: ANN401
        print_operation_header(header, self._ctx.name, self._ctx.env)
        try:
            result = action(self.pulumi_stack)
        except CommandError as e:
            console.print("\n[bold red]| Error[/bold red]\n")
            console.print(f"[red]{parse_error(str(e))}[/red]")
            console.print("\n[bold red]✕ Failed[/bold red]")
            raise StackOperationFailure(self.stack_name, operation, str(e)) from e
        console.print("\n[bold green]✓ Done[/bold green]")
        return result

    def up(self) -> dict[str, Any]:
        self._run("Deploying", "up", lambda s: s.up(on_output=logger.debug))
        return self.outputs()

    def preview(self) -> None:
        self._run("Diff for", "preview", lambda s: s.preview(on_output=logger.debug))

    def destroy(self) -> None:
        self._run("Destroying", "destroy", lambda s: s.destroy(on_output=logger.debug))

    def outputs(self) -> dict[str, Any]:
        return {key: value.value for key, value in self.pulumi_stack.outputs().items()}
