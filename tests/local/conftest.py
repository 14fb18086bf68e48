import pytest

from tests.local.hello_app import declare_hello_app, provision_hello_app


@pytest.fixture
def provisioned(stack, ctx):
    return provision_hello_app(declare_hello_app(stack), stack, ctx)
