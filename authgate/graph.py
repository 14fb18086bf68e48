import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any, final

from authgate.deferred import find_deferreds
from authgate.exceptions import ConfigurationError, DependencyOrderingError
from authgate.platform import ResourceKind

logger = logging.getLogger("authgate.graph")


@final
@dataclass(frozen=True)
class Node:
    """One resource-creation operation in the provisioning graph.

    Dependencies are the union of the explicit ``depends_on`` names and every node
    referenced by a Deferred inside ``props``.
    """

    name: str
    kind: ResourceKind
    props: Mapping[str, Any] = field(default_factory=dict)
    depends_on: tuple[str, ...] = ()

    @property
    def dependencies(self) -> tuple[str, ...]:
        implicit = [n for d in find_deferreds(self.props) for n in sorted(d.nodes)]
        return tuple(dict.fromkeys([*self.depends_on, *implicit]))


@final
class ProvisioningGraph:
    """Directed acyclic graph of typed resource nodes.

    Nodes can only reference nodes that are already in the graph, so forward
    references are rejected when a node is added rather than when the graph runs.
    """

    def __init__(self) -> None:
        self._nodes: dict[str, Node] = {}

    def __contains__(self, name: object) -> bool:
        return name in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[Node]:
        return iter(self._nodes.values())

    def get(self, name: str) -> Node:
        if name not in self._nodes:
            raise KeyError(f"No node named '{name}' in graph")
        return self._nodes[name]

    def add(self, node: Node) -> Node:
        if node.name in self._nodes:
            raise ConfigurationError(f"Duplicate resource name in graph: '{node.name}'")
        self._check_references(node)
        self._nodes[node.name] = node
        logger.debug(
            "Added %s node '%s' depending on %s", node.kind, node.name, list(node.dependencies)
        )
        return node

    def replace(self, node: Node) -> Node:
        """Swap an existing node for a new definition with the same name."""
        if node.name not in self._nodes:
            raise KeyError(f"No node named '{node.name}' in graph")
        self._check_references(node)
        previous = self._nodes[node.name]
        self._nodes[node.name] = node
        try:
            self.topological_order()
        except DependencyOrderingError:
            self._nodes[node.name] = previous
            raise
        return node

    def _check_references(self, node: Node) -> None:
        for dependency in node.dependencies:
            if dependency == node.name:
                raise DependencyOrderingError(f"Node '{node.name}' cannot depend on itself")
            if dependency not in self._nodes:
                raise DependencyOrderingError(
                    f"Node '{node.name}' references '{dependency}', which is not in the "
                    "graph yet. Resources must be declared before they are referenced."
                )

    def dependents(self, name: str) -> list[str]:
        return [n.name for n in self._nodes.values() if name in n.dependencies]

    def validate(self) -> None:
        for node in self._nodes.values():
            for dependency in node.dependencies:
                if dependency not in self._nodes:
                    raise DependencyOrderingError(
                        f"Node '{node.name}' references unknown node '{dependency}'"
                    )
        self.topological_order()

    def topological_order(self) -> list[Node]:
        return [node for level in self.levels() for node in level]

    def levels(self) -> list[list[Node]]:
        """Group nodes into levels; nodes in one level have no edges between them."""
        in_degree = {name: len(node.dependencies) for name, node in self._nodes.items()}
        levels: list[list[Node]] = []
        ready = [name for name, degree in in_degree.items() if degree == 0]
        placed = 0
        while ready:
            levels.append([self._nodes[name] for name in ready])
            placed += len(ready)
            next_ready = []
            for name in ready:
                for dependent in self.dependents(name):
                    in_degree[dependent] -= 1
                    if in_degree[dependent] == 0:
                        next_ready.append(dependent)
            # keep declaration order inside a level
            order = list(self._nodes)
            ready = sorted(next_ready, key=order.index)

        if placed != len(self._nodes):
            cyclic = sorted(name for name, degree in in_degree.items() if degree > 0)
            raise DependencyOrderingError(f"Dependency cycle between nodes: {', '.join(cyclic)}")
        return levels
