"""Bridge resource registry interface."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol


class ResourceState(str, Enum):
    """Lifecycle state of a bridge resource."""

    ABSENT = "absent"
    STOPPED = "stopped"
    RUNNING = "running"


@dataclass(frozen=True)
class ProvisionedResource:
    """A named bridge resource as the registry sees it."""

    name: str
    state: ResourceState
    address: str | None = None

    @classmethod
    def absent(cls, name: str) -> "ProvisionedResource":
        return cls(name=name, state=ResourceState.ABSENT)


@dataclass(frozen=True)
class ResourceSpec:
    """Everything needed to create a bridge resource."""

    name: str
    image: str
    port: int
    environment: Mapping[str, str]
    cpu_count: int = 1
    memory: str = "1g"
    labels: Mapping[str, str] = field(default_factory=dict)


class ResourceRegistry(Protocol):
    """Platform that hosts bridge resources."""

    async def get(self, name: str) -> ProvisionedResource: ...

    async def create(self, spec: ResourceSpec) -> ProvisionedResource: ...

    async def start(self, name: str) -> ProvisionedResource: ...

    async def delete(self, name: str) -> bool: ...

    async def close(self) -> None: ...
