from abc import ABC
from collections.abc import Mapping
from hashlib import sha256
from typing import TYPE_CHECKING, Any

from authgate.deferred import Deferred
from authgate.exceptions import ConfigurationError
from authgate.graph import Node
from authgate.platform import OUTPUT_ATTRIBUTES, ResourceKind

if TYPE_CHECKING:
    from authgate.stack import Stack


class Component(ABC):  # noqa: B024
    """Base for user-facing resources.

    A component declares its graph nodes when it is constructed and hands out
    Deferred handles to the outputs those nodes will have once created.
    """

    _name: str
    _stack: "Stack"

    def __init__(self, stack: "Stack", name: str):
        self._name = name
        self._stack = stack
        stack.register(self)

    @property
    def name(self) -> str:
        return self._name

    @property
    def stack(self) -> "Stack":
        return self._stack

    def _declare(
        self,
        name: str,
        kind: ResourceKind,
        props: Mapping[str, Any] | None = None,
        depends_on: tuple[str, ...] = (),
    ) -> Node:
        return self._stack.graph.add(Node(name, kind, dict(props or {}), depends_on))


def output(node: Node, attribute: str) -> Deferred[Any]:
    """Deferred handle to an output attribute the node will have once created."""
    if attribute not in OUTPUT_ATTRIBUTES[node.kind]:
        raise ValueError(f"{node.kind} nodes have no output attribute '{attribute}'")
    return Deferred.of(node.name, attribute)


def safe_name(
    prefix: str, name: str, max_length: int, suffix: str = "", pulumi_suffix_length: int = 8
) -> str:
    """Create safe AWS resource name accounting for Pulumi suffix and custom suffix.

    Args:
        prefix: The app-env prefix (e.g., "myapp-prod-")
        name: The base name for the resource
        max_length: AWS service limit for the resource type
        suffix: Custom suffix to add (e.g., '-r', '-p')
        pulumi_suffix_length: Length of Pulumi's random suffix (default 8, use 0 if none)

    Returns:
        Safe name that will fit within AWS limits after Pulumi adds its suffix
    """
    reserved_space = len(prefix) + len(suffix) + pulumi_suffix_length
    available_for_name = max_length - reserved_space

    if available_for_name <= 0:
        raise ValueError(
            f"Cannot create safe name: prefix '{prefix}' ({len(prefix)} chars), "
            f"suffix '{suffix}' ({len(suffix)} chars), and Pulumi suffix "
            f"({pulumi_suffix_length} chars) exceed max_length ({max_length})"
        )

    if not name.strip():
        raise ValueError("Name cannot be empty or whitespace-only")

    if len(name) <= available_for_name:
        return f"{prefix}{name}{suffix}"

    # Need to truncate - reserve space for 7-char hash + dash
    hash_with_separator = 8
    if available_for_name <= hash_with_separator:
        raise ValueError(
            f"Not enough space for name truncation: available={available_for_name}, "
            f"need at least {hash_with_separator} chars for hash"
        )

    truncate_length = available_for_name - hash_with_separator
    name_hash = sha256(name.encode()).hexdigest()[:7]
    return f"{prefix}{name[:truncate_length]}-{name_hash}{suffix}"


def parse_config[C](config_type: type[C], config: C | dict | None, opts: dict) -> C:
    """Build a config object from either a complete config or individual options."""
    if config and opts:
        raise ConfigurationError(
            "Invalid configuration: cannot combine 'config' parameter with additional options "
            "- provide all settings either in 'config' or as separate options"
        )
    if config is None:
        return config_type(**opts)
    if isinstance(config, config_type):
        return config
    if isinstance(config, dict):
        return config_type(**config)

    raise TypeError(
        f"Invalid config type: expected {config_type.__name__} or dict, "
        f"got {type(config).__name__}"
    )
