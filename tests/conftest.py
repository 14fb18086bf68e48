import logging
import shutil

import pytest

from authgate.context import ProvisioningContext
from authgate.stack import Stack


@pytest.fixture(autouse=True)
def debug_logging():
    logging.getLogger("authgate").setLevel(logging.DEBUG)


@pytest.fixture
def project_dir(pytestconfig, tmp_path):
    """Copy of the sample project, so tests can add or break handler files."""
    source = pytestconfig.rootpath / "tests" / "sample_project"
    target = tmp_path / "sample_project"
    shutil.copytree(source, target)
    return target


@pytest.fixture
def stack(project_dir):
    return Stack("test", root=project_dir)


@pytest.fixture
def ctx():
    return ProvisioningContext(name="test", env="test")
