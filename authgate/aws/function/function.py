import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, Unpack, final

from authgate.aws.function.config import FunctionConfig, FunctionConfigDict
from authgate.aws.function.constants import (
    DEFAULT_ARCHITECTURE,
    DEFAULT_MEMORY,
    DEFAULT_RUNTIME,
    DEFAULT_TIMEOUT,
)
from authgate.component import Component, output, parse_config
from authgate.deferred import Deferred
from authgate.exceptions import ConfigurationError
from authgate.platform import ResourceKind

if TYPE_CHECKING:
    from authgate.stack import Stack

logger = logging.getLogger("authgate.aws.function")


@final
class Function(Component):
    """AWS Lambda function the gateway routes requests to.

    Args:
        stack: Stack the function belongs to
        name: Function name
        config: Complete function configuration as FunctionConfig or dict
        **opts: Individual function configuration parameters

    You can configure the function in two ways:
        - Provide complete config:
            function = Function(
                stack, "hello", config={"handler": "functions/hello.handler", "timeout": 30}
            )
        - Provide individual parameters:
            function = Function(
                stack, "hello", handler="functions/hello.handler", runtime="python3.11"
            )

    Handler paths are resolved against ``stack.root``.
    """

    _config: FunctionConfig

    def __init__(
        self,
        stack: "Stack",
        name: str,
        config: None | FunctionConfig | FunctionConfigDict = None,
        **opts: Unpack[FunctionConfigDict],
    ):
        if not config and not opts:
            raise ConfigurationError(
                "Missing function handler: must provide either a complete configuration via "
                "'config' parameter or at least the 'handler' option"
            )
        self._config = parse_config(FunctionConfig, config, opts)
        super().__init__(stack, name)
        self._node = self._declare(name, ResourceKind.FUNCTION, self._props())

    def _props(self) -> dict[str, Any]:
        config = self._config
        code_path = self.code_path
        logger.debug("Function '%s' code path: %s", self.name, code_path)
        return {
            "handler": config.handler_format,
            "code_path": str(code_path),
            "handler_file": str(self.stack.root / config.handler_python_path),
            "handler_function": config.handler_function_name,
            "single_file": config.folder is None,
            "runtime": config.runtime or DEFAULT_RUNTIME,
            "architecture": config.architecture or DEFAULT_ARCHITECTURE,
            "timeout": config.timeout or DEFAULT_TIMEOUT,
            "memory": config.memory or DEFAULT_MEMORY,
            "environment": dict(config.environment),
        }

    @property
    def config(self) -> FunctionConfig:
        return self._config

    @property
    def code_path(self) -> Path:
        """Folder that gets packaged as the function's code."""
        if self._config.folder:
            return self.stack.root / self._config.folder
        return (self.stack.root / self._config.handler_python_path).parent

    @property
    def node_name(self) -> str:
        return self._node.name

    @property
    def arn(self) -> Deferred[str]:
        return output(self._node, "arn")

    @property
    def invoke_arn(self) -> Deferred[str]:
        return output(self._node, "invoke_arn")

    @property
    def function_name(self) -> Deferred[str]:
        return output(self._node, "name")
