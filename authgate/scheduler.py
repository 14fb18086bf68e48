import itertools
import logging
import threading
import time
from collections.abc import Mapping
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Any, final

from authgate.context import ProvisioningContext
from authgate.deferred import resolve_value
from authgate.exceptions import PlatformError, ProvisioningCancelledError, ProvisioningFailure
from authgate.graph import Node, ProvisioningGraph
from authgate.platform import Platform

logger = logging.getLogger("authgate.scheduler")

# Logical clock shared by all runs; orders start/finish events even when two
# monotonic_ns() readings are equal.
_ticks = itertools.count()


@final
@dataclass(frozen=True)
class NodeRun:
    name: str
    kind: str
    started_ns: int
    finished_ns: int
    started_tick: int
    finished_tick: int


@final
@dataclass
class ProvisioningResult:
    outputs: dict[str, dict[str, Any]] = field(default_factory=dict)
    records: dict[str, NodeRun] = field(default_factory=dict)

    def __getitem__(self, name: str) -> dict[str, Any]:
        return self.outputs[name]

    def __contains__(self, name: object) -> bool:
        return name in self.outputs


@final
class Scheduler:
    """Executes a provisioning graph against a platform.

    A node starts only once every node it depends on has been created. Independent
    nodes run concurrently when the platform supports it. The first failure stops
    the run: nodes already running finish, nothing new is started, and the error is
    raised. There are no retries and no cleanup of already created resources.
    """

    def __init__(self, platform: Platform, *, max_workers: int = 4):
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self._platform = platform
        self._max_workers = max_workers if platform.supports_parallel else 1
        self._cancelled = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        """Stop starting new nodes. Nodes already running are allowed to finish."""
        logger.info("Provisioning cancellation requested")
        self._cancelled.set()

    def run(self, graph: ProvisioningGraph, ctx: ProvisioningContext) -> ProvisioningResult:
        graph.validate()
        order = graph.topological_order()
        logger.info(
            "Provisioning %d resources for %s (workers=%d)",
            len(order),
            ctx.prefix(),
            self._max_workers,
        )
        if not self._platform.supports_parallel:
            result = self._run_inline(order, ctx)
        else:
            result = self._run_concurrently(graph, order, ctx)
        logger.info("Provisioned %d resources for %s", len(result.outputs), ctx.prefix())
        return result

    def _run_inline(self, order: list[Node], ctx: ProvisioningContext) -> ProvisioningResult:
        # Platforms that must create resources on the calling thread (Pulumi programs)
        result = ProvisioningResult()
        for index, node in enumerate(order):
            if self._cancelled.is_set():
                raise ProvisioningCancelledError([n.name for n in order[index:]])
            props = self._resolve(node, result.outputs)
            dependencies = {d: result.outputs[d] for d in node.dependencies}
            outputs, record = self._create(node, props, ctx, dependencies)
            result.outputs[node.name] = outputs
            result.records[node.name] = record
        return result

    def _run_concurrently(
        self, graph: ProvisioningGraph, order: list[Node], ctx: ProvisioningContext
    ) -> ProvisioningResult:
        result = ProvisioningResult()
        waiting_on = {node.name: set(node.dependencies) for node in order}
        started: set[str] = set()
        running: dict[Future, Node] = {}
        failure: BaseException | None = None

        with ThreadPoolExecutor(max_workers=self._max_workers) as pool:
            while True:
                if failure is None and not self._cancelled.is_set():
                    for node in order:
                        if len(running) >= self._max_workers:
                            break
                        if node.name in started or waiting_on[node.name]:
                            continue
                        # Resolve on this thread; outputs is only mutated here.
                        try:
                            props = self._resolve(node, result.outputs)
                        except ProvisioningFailure as e:
                            failure = e
                            break
                        dependencies = {d: result.outputs[d] for d in node.dependencies}
                        started.add(node.name)
                        future = pool.submit(self._create, node, props, ctx, dependencies)
                        running[future] = node

                if not running:
                    break

                done, _ = wait(running, return_when=FIRST_COMPLETED)
                for future in done:
                    node = running.pop(future)
                    try:
                        outputs, record = future.result()
                    except Exception as e:  # noqa: BLE001
                        logger.error("Creating %s '%s' failed: %s", node.kind, node.name, e)
                        failure = failure or e
                        continue
                    result.outputs[node.name] = outputs
                    result.records[node.name] = record
                    for dependent in graph.dependents(node.name):
                        waiting_on[dependent].discard(node.name)

        if failure is not None:
            raise failure

        pending = [node.name for node in order if node.name not in result.outputs]
        if pending:
            raise ProvisioningCancelledError(pending)
        return result

    def _create(
        self,
        node: Node,
        props: Mapping[str, Any],
        ctx: ProvisioningContext,
        dependencies: Mapping[str, Mapping[str, Any]],
    ) -> tuple[dict[str, Any], NodeRun]:
        started_tick = next(_ticks)
        started_ns = time.monotonic_ns()
        logger.debug("Creating %s '%s'", node.kind, node.name)
        try:
            outputs = self._platform.create(node.kind, node.name, props, ctx, dependencies)
        except PlatformError as e:
            raise ProvisioningFailure(node.name, node.kind, str(e)) from e
        finished_ns = time.monotonic_ns()
        finished_tick = next(_ticks)
        logger.debug("Created %s '%s'", node.kind, node.name)
        return outputs, NodeRun(
            node.name, node.kind, started_ns, finished_ns, started_tick, finished_tick
        )

    def _resolve(self, node: Node, outputs: Mapping[str, Mapping[str, Any]]) -> Any:
        try:
            return resolve_value(node.props, outputs)
        except Exception as e:
            logger.error("Resolving props of %s '%s' failed: %s", node.kind, node.name, e)
            raise ProvisioningFailure(node.name, node.kind, str(e)) from e
