from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass
from typing import Any, final

from pulumi import Output

from authgate.exceptions import DependencyOrderingError


@final
@dataclass(frozen=True)
class Ref:
    """Points at one output attribute of a graph node."""

    node: str
    attribute: str


def _identity(value: Any) -> Any:  # noqa: ANN401
    return value


@final
class Deferred[T]:
    """A value that only exists once the nodes it was derived from have been created.

    A Deferred never turns into a placeholder string: formatting or stringifying it
    raises DependencyOrderingError. Use ``apply`` to derive new values and let the
    scheduler resolve them once the source nodes are complete.
    """

    __slots__ = ("_fn", "_refs")

    def __init__(self, refs: tuple[Ref, ...], fn: Callable[..., T]):
        if not refs:
            raise ValueError("Deferred needs at least one node reference")
        self._refs = refs
        self._fn = fn

    @classmethod
    def of(cls, node: str, attribute: str) -> "Deferred[Any]":
        return cls((Ref(node, attribute),), _identity)

    @staticmethod
    def all(*deferreds: "Deferred[Any]") -> "Deferred[tuple]":
        """Combine several deferred values into one resolving to a tuple."""
        refs: list[Ref] = []
        spans: list[tuple[int, int]] = []
        for deferred in deferreds:
            spans.append((len(refs), len(refs) + len(deferred.refs)))
            refs.extend(deferred.refs)

        def combine(*values: Any) -> tuple:  # noqa: ANN401
            return tuple(
                d._fn(*values[start:end])  # noqa: SLF001
                for d, (start, end) in zip(deferreds, spans, strict=True)
            )

        return Deferred(tuple(refs), combine)

    @property
    def refs(self) -> tuple[Ref, ...]:
        return self._refs

    @property
    def nodes(self) -> frozenset[str]:
        return frozenset(ref.node for ref in self._refs)

    def apply[U](self, fn: Callable[[T], U]) -> "Deferred[U]":
        source = self._fn
        return Deferred(self._refs, lambda *values: fn(source(*values)))

    def resolve(self, outputs: Mapping[str, Mapping[str, Any]]) -> T | Output[T]:
        values = []
        for ref in self._refs:
            if ref.node not in outputs:
                raise DependencyOrderingError(
                    f"Cannot resolve '{ref.node}.{ref.attribute}': node '{ref.node}' "
                    "has not been created yet"
                )
            node_outputs = outputs[ref.node]
            if ref.attribute not in node_outputs:
                raise DependencyOrderingError(
                    f"Node '{ref.node}' has no output attribute '{ref.attribute}'"
                )
            values.append(node_outputs[ref.attribute])

        if any(isinstance(v, Output) for v in values):
            return Output.all(*values).apply(lambda vs: self._fn(*vs))
        return self._fn(*values)

    def __str__(self) -> str:
        refs = ", ".join(f"{r.node}.{r.attribute}" for r in self._refs)
        raise DependencyOrderingError(
            f"Deferred value ({refs}) used as a string before its source was created. "
            "Use .apply() to derive values from it."
        )

    def __repr__(self) -> str:
        refs = ", ".join(f"{r.node}.{r.attribute}" for r in self._refs)
        return f"Deferred({refs})"


def find_deferreds(value: Any) -> Iterator[Deferred]:  # noqa: ANN401
    """Yield every Deferred nested in dicts, lists, tuples and sets."""
    if isinstance(value, Deferred):
        yield value
    elif isinstance(value, Mapping):
        for item in value.values():
            yield from find_deferreds(item)
    elif isinstance(value, list | tuple | set | frozenset):
        for item in value:
            yield from find_deferreds(item)


def resolve_value(value: Any, outputs: Mapping[str, Mapping[str, Any]]) -> Any:  # noqa: ANN401
    """Return a copy of value with every nested Deferred resolved."""
    if isinstance(value, Deferred):
        return value.resolve(outputs)
    if isinstance(value, Mapping):
        return {k: resolve_value(v, outputs) for k, v in value.items()}
    if isinstance(value, list | tuple):
        return type(value)(resolve_value(v, outputs) for v in value)
    return value
