import json
import os
import sys

import pytest

from authgate.exceptions import InvocationError
from authgate.local.cloud import FunctionRecord
from authgate.local.handlers import invoke_function, temporary_environment

ARN = "arn:aws:lambda:us-east-1:123456789012:function:test-test-hello"


def function_record(project_dir, handler_file="functions/hello.py", handler_function="handler"):
    return FunctionRecord(
        name="test-test-hello",
        arn=ARN,
        invoke_arn=f"{ARN}/invocations",
        handler=f"{handler_file.removesuffix('.py')}.{handler_function}",
        handler_file=str(project_dir / handler_file),
        handler_function=handler_function,
        runtime="python3.12",
        timeout=60,
        memory=128,
        environment={"GREETING": "hello there"},
        code_hash="0" * 64,
    )


def event():
    return {
        "path": "/prod/hello",
        "pathParameters": None,
        "requestContext": {"authorizer": {"claims": {"sub": "user-1"}}},
    }


def test_temporary_environment_restores_state():
    os.environ.pop("AUTHGATE_TEST_VAR", None)
    original_path = sys.path.copy()

    with temporary_environment({"AUTHGATE_TEST_VAR": "1"}, ["/tmp/authgate-handlers"]):
        assert os.environ["AUTHGATE_TEST_VAR"] == "1"
        assert sys.path[0] == "/tmp/authgate-handlers"

    assert "AUTHGATE_TEST_VAR" not in os.environ
    assert sys.path == original_path


def test_invoke_function(project_dir):
    result = invoke_function(function_record(project_dir), event(), "req-1", "eu-west-1")

    body = json.loads(result["body"])
    assert result["statusCode"] == 200
    assert body["sub"] == "user-1"
    assert body["function"] == ARN
    assert body["greeting"] == "hello there"
    assert "GREETING" not in os.environ


def test_invoke_function_sets_lambda_environment(project_dir):
    handler = project_dir / "functions" / "env.py"
    handler.write_text(
        "import os\n\n"
        "def handler(event, context):\n"
        "    keys = ('AWS_REGION', 'AWS_LAMBDA_FUNCTION_NAME', 'AWS_EXECUTION_ENV')\n"
        "    return {'statusCode': 200, 'body': ','.join(os.environ[k] for k in keys)}\n"
    )
    result = invoke_function(
        function_record(project_dir, "functions/env.py"), event(), "req-1", "eu-west-1"
    )
    assert result["body"] == "eu-west-1,test-test-hello,AWS_Lambda_python3.12"


def test_invoke_folder_function_imports_siblings(project_dir):
    record = function_record(project_dir, "functions/greeter/handler.py")
    result = invoke_function(record, event(), "req-1", "us-east-1")
    assert result == {"statusCode": 200, "body": "hi"}


def test_invoke_function_handler_raises(project_dir):
    record = function_record(project_dir, handler_function="broken")
    with pytest.raises(InvocationError, match="handler blew up"):
        invoke_function(record, event(), "req-1", "us-east-1")


def test_invoke_function_missing_handler(project_dir):
    record = function_record(project_dir, handler_function="missing")
    with pytest.raises(InvocationError, match="Handler 'missing' not found"):
        invoke_function(record, event(), "req-1", "us-east-1")


def test_invoke_function_missing_file(project_dir):
    record = function_record(project_dir, "functions/gone.py")
    with pytest.raises(InvocationError, match="handler file not found"):
        invoke_function(record, event(), "req-1", "us-east-1")
