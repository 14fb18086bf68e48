import pytest

from authgate.deferred import Deferred
from authgate.exceptions import ConfigurationError, DependencyOrderingError
from authgate.graph import Node, ProvisioningGraph
from authgate.platform import ResourceKind


def make_graph() -> ProvisioningGraph:
    graph = ProvisioningGraph()
    graph.add(Node("pool", ResourceKind.USER_POOL))
    graph.add(Node("client", ResourceKind.USER_POOL_CLIENT, {"pool": Deferred.of("pool", "id")}))
    graph.add(Node("api", ResourceKind.HTTP_API))
    graph.add(
        Node(
            "authorizer",
            ResourceKind.AUTHORIZER,
            {
                "api_id": Deferred.of("api", "id"),
                "audience": [Deferred.of("client", "id")],
            },
        )
    )
    return graph


def test_dependencies_combine_explicit_and_deferred():
    node = Node(
        "deployment",
        ResourceKind.DEPLOYMENT,
        {"api_id": Deferred.of("api", "id")},
        depends_on=("route-a", "api"),
    )
    assert node.dependencies == ("route-a", "api")


def test_add_rejects_duplicate_names():
    graph = make_graph()
    with pytest.raises(ConfigurationError, match="Duplicate resource name in graph: 'api'"):
        graph.add(Node("api", ResourceKind.HTTP_API))


def test_add_rejects_forward_reference():
    graph = ProvisioningGraph()
    with pytest.raises(DependencyOrderingError, match="references 'api', which is not in the"):
        graph.add(Node("route", ResourceKind.ROUTE, {"api_id": Deferred.of("api", "id")}))
    assert "route" not in graph


def test_add_rejects_self_reference():
    graph = ProvisioningGraph()
    with pytest.raises(DependencyOrderingError, match="cannot depend on itself"):
        graph.add(Node("api", ResourceKind.HTTP_API, {"x": Deferred.of("api", "id")}))


def test_levels_group_independent_nodes():
    levels = make_graph().levels()
    assert [[n.name for n in level] for level in levels] == [
        ["pool", "api"],
        ["client"],
        ["authorizer"],
    ]


def test_topological_order_puts_dependencies_first():
    order = [n.name for n in make_graph().topological_order()]
    assert order.index("pool") < order.index("client") < order.index("authorizer")
    assert order.index("api") < order.index("authorizer")


def test_dependents():
    assert make_graph().dependents("client") == ["authorizer"]


def test_replace_swaps_node_definition():
    graph = make_graph()
    graph.replace(Node("authorizer", ResourceKind.AUTHORIZER, {"api_id": "fixed"}))
    assert graph.get("authorizer").props == {"api_id": "fixed"}
    assert graph.dependents("client") == []


def test_replace_rejects_cycle_and_keeps_previous_node():
    graph = make_graph()
    with pytest.raises(DependencyOrderingError, match="Dependency cycle"):
        graph.replace(Node("pool", ResourceKind.USER_POOL, {"x": Deferred.of("client", "id")}))
    assert graph.get("pool").props == {}


def test_replace_unknown_node():
    with pytest.raises(KeyError):
        make_graph().replace(Node("missing", ResourceKind.STAGE))


def test_validate_passes_for_well_formed_graph():
    make_graph().validate()
    assert len(make_graph()) == 4
