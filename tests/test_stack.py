from pathlib import Path

import pytest

from authgate.context import ProvisioningContext
from authgate.exceptions import ConfigurationError
from authgate.stack import Stack


@pytest.mark.parametrize("name", ["", "   "])
def test_stack_name_required(name):
    with pytest.raises(ConfigurationError, match="Stack name cannot be empty"):
        Stack(name)


def test_stack_root_defaults_to_cwd(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    assert Stack("app").root == tmp_path


def test_stack_root_accepts_string(tmp_path):
    assert Stack("app", root=str(tmp_path)).root == Path(tmp_path)


def test_empty_stack_provisions_nothing():
    class NoopPlatform:
        supports_parallel = True

        def create(self, *args):
            raise AssertionError("nothing to create")

    result = Stack("app").provision(NoopPlatform(), ProvisioningContext("app", "dev"))
    assert result.outputs == {}


@pytest.mark.parametrize(
    ("name", "env", "resource", "expected"),
    [
        ("MyApp", "Dev", None, "myapp-dev-"),
        ("app", "prod", "user-pool", "app-prod-user-pool"),
    ],
)
def test_context_prefix(name, env, resource, expected):
    assert ProvisioningContext(name, env).prefix(resource) == expected
