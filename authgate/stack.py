import logging
from collections.abc import Iterator
from pathlib import Path
from typing import TYPE_CHECKING, final

from authgate.context import ProvisioningContext
from authgate.exceptions import ConfigurationError
from authgate.graph import ProvisioningGraph
from authgate.platform import Platform
from authgate.scheduler import ProvisioningResult, Scheduler

if TYPE_CHECKING:
    from authgate.component import Component

logger = logging.getLogger("authgate.stack")


@final
class Stack:
    """Owns the components and the provisioning graph of one application.

    Example:
        stack = Stack("hello")
        pool = UserPool(stack, "user-pool")
        client = pool.add_client("web-client", oauth={"flows": ["authorization_code"]})
        ...
        result = stack.provision(LocalPlatform(), ProvisioningContext("hello", "dev"))
    """

    def __init__(self, name: str, root: Path | str | None = None):
        if not name or not name.strip():
            raise ConfigurationError("Stack name cannot be empty")
        self._name = name
        self._root = Path(root) if root is not None else Path.cwd()
        self._graph = ProvisioningGraph()
        self._components: dict[str, Component] = {}

    @property
    def name(self) -> str:
        return self._name

    @property
    def root(self) -> Path:
        """Directory function handler paths are resolved against."""
        return self._root

    @property
    def graph(self) -> ProvisioningGraph:
        return self._graph

    def register(self, component: "Component") -> None:
        if component.name in self._components:
            raise ConfigurationError(
                f"Duplicate component name detected: '{component.name}'. "
                "Component names must be unique across all component types."
            )
        self._components[component.name] = component

    def components(self) -> Iterator["Component"]:
        yield from self._components.values()

    def get(self, name: str) -> "Component | None":
        return self._components.get(name)

    def scheduler(self, platform: Platform, *, max_workers: int = 4) -> Scheduler:
        return Scheduler(platform, max_workers=max_workers)

    def provision(
        self, platform: Platform, ctx: ProvisioningContext, *, max_workers: int = 4
    ) -> ProvisioningResult:
        logger.info("Provisioning stack '%s' into %s", self._name, ctx.prefix())
        return self.scheduler(platform, max_workers=max_workers).run(self._graph, ctx)
