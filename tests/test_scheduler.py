import threading
import time

import pytest

from authgate.context import ProvisioningContext
from authgate.deferred import Deferred
from authgate.exceptions import (
    PlatformError,
    ProvisioningCancelledError,
    ProvisioningFailure,
)
from authgate.graph import Node, ProvisioningGraph
from authgate.platform import OUTPUT_ATTRIBUTES, ResourceKind
from authgate.scheduler import Scheduler

CTX = ProvisioningContext(name="test", env="test")


class FakePlatform:
    def __init__(self, *, parallel=True, delay=0.0, fail=(), on_create=None):
        self.supports_parallel = parallel
        self.delay = delay
        self.fail = set(fail)
        self.on_create = on_create
        self.calls = []
        self.props = {}
        self.threads = set()
        self._lock = threading.Lock()

    def create(self, kind, name, props, ctx, dependencies):
        with self._lock:
            self.calls.append(name)
            self.props[name] = props
            self.threads.add(threading.get_ident())
        if self.on_create:
            self.on_create(name)
        time.sleep(self.delay)
        if name in self.fail:
            raise PlatformError(f"{name} rejected")
        return {attr: f"{name}-{attr}" for attr in OUTPUT_ATTRIBUTES[kind]}


def diamond() -> ProvisioningGraph:
    graph = ProvisioningGraph()
    graph.add(Node("pool", ResourceKind.USER_POOL))
    graph.add(Node("api", ResourceKind.HTTP_API))
    graph.add(Node("fn", ResourceKind.FUNCTION))
    graph.add(
        Node(
            "client",
            ResourceKind.USER_POOL_CLIENT,
            {"user_pool_id": Deferred.of("pool", "id")},
        )
    )
    graph.add(
        Node(
            "authorizer",
            ResourceKind.AUTHORIZER,
            {
                "api_id": Deferred.of("api", "id"),
                "issuer": Deferred.all(Deferred.of("pool", "region"), Deferred.of("pool", "id"))
                .apply(lambda args: "https://cognito-idp.{}.amazonaws.com/{}".format(*args)),
                "audience": [Deferred.of("client", "id")],
            },
        )
    )
    return graph


def assert_dependencies_finished_first(graph, result):
    for node in graph:
        run = result.records[node.name]
        for dependency in node.dependencies:
            before = result.records[dependency]
            assert before.finished_tick < run.started_tick, (
                f"{node.name} started before {dependency} finished"
            )
            assert before.finished_ns <= run.started_ns


@pytest.mark.parametrize("parallel", [True, False], ids=["concurrent", "inline"])
def test_nodes_start_after_their_dependencies(parallel):
    graph = diamond()
    platform = FakePlatform(parallel=parallel, delay=0.01)
    result = Scheduler(platform, max_workers=4).run(graph, CTX)

    assert set(result.outputs) == {"pool", "api", "fn", "client", "authorizer"}
    assert_dependencies_finished_first(graph, result)


def test_deferred_props_are_resolved_before_create():
    platform = FakePlatform()
    Scheduler(platform).run(diamond(), CTX)

    assert platform.props["client"] == {"user_pool_id": "pool-id"}
    assert platform.props["authorizer"] == {
        "api_id": "api-id",
        "issuer": "https://cognito-idp.pool-region.amazonaws.com/pool-id",
        "audience": ["client-id"],
    }


def test_independent_nodes_run_concurrently():
    started = threading.Barrier(3, timeout=5)

    def wait_for_siblings(name):
        if name in ("pool", "api", "fn"):
            started.wait()

    platform = FakePlatform(on_create=wait_for_siblings)
    Scheduler(platform, max_workers=3).run(diamond(), CTX)
    assert len(platform.threads) >= 3


def test_inline_platform_creates_on_calling_thread():
    platform = FakePlatform(parallel=False)
    Scheduler(platform, max_workers=8).run(diamond(), CTX)
    assert platform.threads == {threading.get_ident()}
    assert platform.calls == ["pool", "api", "fn", "client", "authorizer"]


@pytest.mark.parametrize("parallel", [True, False], ids=["concurrent", "inline"])
def test_first_failure_stops_the_run(parallel):
    platform = FakePlatform(parallel=parallel, fail={"pool"})
    with pytest.raises(ProvisioningFailure, match="Failed to create user_pool 'pool': pool rej"):
        Scheduler(platform).run(diamond(), CTX)

    # dependents of the failed node are never started
    assert "client" not in platform.calls
    assert "authorizer" not in platform.calls


def test_failure_keeps_platform_error_as_cause():
    platform = FakePlatform(parallel=False, fail={"api"})
    with pytest.raises(ProvisioningFailure) as exc_info:
        Scheduler(platform).run(diamond(), CTX)
    assert isinstance(exc_info.value.__cause__, PlatformError)
    assert exc_info.value.node == "api"


def test_cancel_stops_starting_new_nodes():
    scheduler = None

    def cancel_after_pool(name):
        if name == "pool":
            scheduler.cancel()

    platform = FakePlatform(parallel=False, on_create=cancel_after_pool)
    scheduler = Scheduler(platform)
    with pytest.raises(ProvisioningCancelledError) as exc_info:
        scheduler.run(diamond(), CTX)

    assert scheduler.cancelled
    assert platform.calls == ["pool"]
    assert exc_info.value.pending == ["api", "fn", "client", "authorizer"]


def test_cancel_concurrent_run_reports_pending():
    scheduler = None

    def cancel_on_client(name):
        if name == "client":
            scheduler.cancel()

    platform = FakePlatform(on_create=cancel_on_client)
    scheduler = Scheduler(platform, max_workers=1)
    with pytest.raises(ProvisioningCancelledError) as exc_info:
        scheduler.run(diamond(), CTX)
    assert "authorizer" in exc_info.value.pending
    assert "authorizer" not in platform.calls


def test_max_workers_must_be_positive():
    with pytest.raises(ValueError, match="max_workers must be at least 1"):
        Scheduler(FakePlatform(), max_workers=0)


def failing_apply_graph() -> ProvisioningGraph:
    def broken(pool_id):
        raise KeyError(f"no region for {pool_id}")

    graph = ProvisioningGraph()
    graph.add(Node("pool", ResourceKind.USER_POOL))
    graph.add(Node("api", ResourceKind.HTTP_API))
    graph.add(
        Node(
            "authorizer",
            ResourceKind.AUTHORIZER,
            {"issuer": Deferred.of("pool", "id").apply(broken)},
        )
    )
    return graph


@pytest.mark.parametrize("parallel", [True, False], ids=["concurrent", "inline"])
def test_apply_error_is_reported_as_node_failure(parallel):
    platform = FakePlatform(parallel=parallel)
    with pytest.raises(ProvisioningFailure) as exc_info:
        Scheduler(platform).run(failing_apply_graph(), CTX)

    failure = exc_info.value
    assert failure.node == "authorizer"
    assert isinstance(failure.__cause__, KeyError)
    assert "no region for pool-id" in str(failure)
    assert sorted(platform.calls) == ["api", "pool"]


def test_running_nodes_finish_after_an_apply_error():
    finished = []

    def slow_api(name):
        if name == "api":
            time.sleep(0.05)
            finished.append(name)

    platform = FakePlatform(on_create=slow_api)
    with pytest.raises(ProvisioningFailure) as exc_info:
        Scheduler(platform, max_workers=2).run(failing_apply_graph(), CTX)
    assert exc_info.value.node == "authorizer"
    assert finished == ["api"]
    assert "authorizer" not in platform.calls
