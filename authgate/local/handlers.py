import logging
import os
import runpy
import sys
import threading
import time
from collections.abc import Generator, Mapping
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from awslambdaric.lambda_context import LambdaContext

from authgate.exceptions import InvocationError
from authgate.local.cloud import FunctionRecord

logger = logging.getLogger("authgate.local.handlers")

# os.environ and sys.path are process wide, so invocations run one at a time
_invoke_lock = threading.Lock()


@contextmanager
def temporary_environment(
    new_environ: Mapping[str, str], add_paths: list[str]
) -> Generator[None, None, None]:
    """Context manager to temporarily set environment variables and sys.path."""
    original_environ = os.environ.copy()
    original_path = sys.path.copy()
    try:
        os.environ.update(new_environ)
        for path in add_paths:
            if path not in sys.path:
                sys.path.insert(0, str(path))
        yield
    finally:
        os.environ.clear()
        os.environ.update(original_environ)
        sys.path[:] = original_path


def _function_environment(function: FunctionRecord, region: str) -> dict[str, str]:
    return {
        "AWS_REGION": region,
        "AWS_DEFAULT_REGION": region,
        "AWS_LAMBDA_FUNCTION_NAME": function.name,
        "AWS_LAMBDA_FUNCTION_MEMORY_SIZE": str(function.memory),
        "AWS_EXECUTION_ENV": f"AWS_Lambda_{function.runtime}",
        **function.environment,
    }


def invoke_function(
    function: FunctionRecord, event: dict[str, Any], request_id: str, region: str
) -> Any:  # noqa: ANN401
    """Run a function's handler in-process with a Lambda context and return its result."""
    handler_file_path = Path(function.handler_file)
    deadline_ms = int(time.time() * 1000) + function.timeout * 1000
    lambda_context = LambdaContext(request_id, None, None, deadline_ms, function.arn)

    with (
        _invoke_lock,
        temporary_environment(
            _function_environment(function, region), [str(handler_file_path.parent)]
        ),
    ):
        try:
            module = runpy.run_path(str(handler_file_path))
        except FileNotFoundError as e:
            raise InvocationError(f"Function handler file not found: {handler_file_path}") from e

        handler = module.get(function.handler_function)
        if not callable(handler):
            raise InvocationError(
                f"Handler '{function.handler_function}' not found in {handler_file_path}"
            )

        start_time = time.perf_counter()
        try:
            result = handler(event, lambda_context)
        except Exception as e:
            logger.exception("Function '%s' raised while handling %s", function.name, request_id)
            raise InvocationError(f"Function '{function.name}' failed: {e}") from e
        run_time = time.perf_counter() - start_time

    logger.debug("Function '%s' ran in %.1f ms", function.name, run_time * 1000)
    if run_time > function.timeout:
        raise InvocationError(f"Task timed out after {function.timeout}.00 seconds")
    return result
