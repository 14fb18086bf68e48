import pytest

from authgate.deferred import Deferred, Ref, find_deferreds, resolve_value
from authgate.exceptions import DependencyOrderingError

OUTPUTS = {
    "pool": {"id": "us-east-1_abc", "region": "us-east-1"},
    "client": {"id": "client-1"},
}


def test_of_resolves_single_attribute():
    assert Deferred.of("pool", "id").resolve(OUTPUTS) == "us-east-1_abc"


def test_refs_and_nodes():
    deferred = Deferred.of("pool", "id")
    assert deferred.refs == (Ref("pool", "id"),)
    assert deferred.nodes == frozenset({"pool"})


def test_apply_chains_transformations():
    deferred = Deferred.of("client", "id").apply(str.upper).apply(lambda s: f"<{s}>")
    assert deferred.resolve(OUTPUTS) == "<CLIENT-1>"


def test_all_combines_values_into_tuple():
    combined = Deferred.all(
        Deferred.of("pool", "region"),
        Deferred.of("pool", "id").apply(len),
        Deferred.of("client", "id"),
    )
    assert combined.nodes == frozenset({"pool", "client"})
    assert combined.resolve(OUTPUTS) == ("us-east-1", 13, "client-1")


def test_resolve_before_node_created_raises():
    with pytest.raises(DependencyOrderingError, match="node 'api' has not been created yet"):
        Deferred.of("api", "id").resolve(OUTPUTS)


def test_resolve_unknown_attribute_raises():
    with pytest.raises(DependencyOrderingError, match="no output attribute 'arn'"):
        Deferred.of("client", "arn").resolve(OUTPUTS)


@pytest.mark.parametrize(
    "use",
    [
        str,
        lambda d: f"https://example.com/{d}",
        lambda d: "prefix-{}".format(d),
    ],
    ids=["str", "f-string", "format"],
)
def test_deferred_never_becomes_placeholder_string(use):
    with pytest.raises(DependencyOrderingError, match="Use .apply"):
        use(Deferred.of("pool", "id"))


def test_repr_does_not_raise():
    assert repr(Deferred.of("pool", "id")) == "Deferred(pool.id)"


def test_deferred_needs_reference():
    with pytest.raises(ValueError, match="at least one node reference"):
        Deferred((), lambda: None)


def test_find_deferreds_walks_nested_values():
    a = Deferred.of("pool", "id")
    b = Deferred.of("client", "id")
    props = {"x": [a, {"y": (b,)}], "z": "plain", "s": {1, 2}}
    assert list(find_deferreds(props)) == [a, b]


def test_resolve_value_keeps_structure():
    props = {
        "ids": [Deferred.of("pool", "id"), "literal"],
        "nested": {"client": Deferred.of("client", "id")},
        "pair": (Deferred.of("pool", "region"), 1),
    }
    assert resolve_value(props, OUTPUTS) == {
        "ids": ["us-east-1_abc", "literal"],
        "nested": {"client": "client-1"},
        "pair": ("us-east-1", 1),
    }

