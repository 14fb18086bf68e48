from dataclasses import dataclass, field
from typing import TypedDict

from authgate.aws.function.constants import MAX_MEMORY, MAX_TIMEOUT, MIN_MEMORY
from authgate.aws.types import (
    SUPPORTED_ARCHITECTURES,
    SUPPORTED_RUNTIMES,
    AwsArchitecture,
    AwsLambdaRuntime,
)
from authgate.exceptions import ConfigurationError


class FunctionConfigDict(TypedDict, total=False):
    handler: str
    folder: str
    memory: int
    timeout: int
    environment: dict[str, str]
    architecture: AwsArchitecture
    runtime: AwsLambdaRuntime


@dataclass(frozen=True, kw_only=True)
class FunctionConfig:
    # handler is mandatory, the rest falls back to constants.py defaults when None
    handler: str
    folder: str | None = None
    memory: int | None = None
    timeout: int | None = None
    environment: dict[str, str] = field(default_factory=dict)
    architecture: AwsArchitecture | None = None
    runtime: AwsLambdaRuntime | None = None

    def __post_init__(self) -> None:
        module, _, function_name = self.handler.rpartition(".")
        if not module or not function_name:
            raise ConfigurationError(
                f"Handler '{self.handler}' must look like 'path/to/module.function'"
            )
        if "." in module:
            raise ConfigurationError(f"Handler module path '{module}' must not contain dots")
        if self.folder is not None and (not self.folder.strip("/") or "." in self.folder):
            raise ConfigurationError(f"Invalid function folder '{self.folder}'")

        self._validate_limits()

    def _validate_limits(self) -> None:
        if self.timeout is not None and not 1 <= self.timeout <= MAX_TIMEOUT:
            raise ConfigurationError(
                f"Timeout must be between 1 and {MAX_TIMEOUT} seconds, got {self.timeout}"
            )
        if self.memory is not None and not MIN_MEMORY <= self.memory <= MAX_MEMORY:
            raise ConfigurationError(
                f"Memory must be between {MIN_MEMORY} and {MAX_MEMORY} MB, got {self.memory}"
            )
        if self.runtime is not None and self.runtime not in SUPPORTED_RUNTIMES:
            raise ConfigurationError(
                f"Unsupported runtime: {self.runtime}. Valid: {', '.join(SUPPORTED_RUNTIMES)}"
            )
        if self.architecture is not None and self.architecture not in SUPPORTED_ARCHITECTURES:
            raise ConfigurationError(
                f"Unsupported architecture: {self.architecture}. "
                f"Valid: {', '.join(SUPPORTED_ARCHITECTURES)}"
            )

    @property
    def handler_module(self) -> str:
        return self.handler.rpartition(".")[0]

    @property
    def handler_function_name(self) -> str:
        return self.handler.rpartition(".")[2]

    @property
    def handler_python_path(self) -> str:
        """Handler file relative to the stack root.

        "functions/hello.handler" -> "functions/hello.py"
        "handler.handler" in folder "functions/greeter" -> "functions/greeter/handler.py"
        """
        module_file = f"{self.handler_module}.py"
        if not self.folder:
            return module_file
        folder = self.folder.rstrip("/")
        return f"{folder}/{module_file}"

    @property
    def handler_format(self) -> str:
        """Handler setting as Lambda sees it, relative to the packaged code.

        A single-file function is packaged on its own, so only the module name is kept.
        """
        return self.handler if self.folder else self.handler.rsplit("/", 1)[-1]
