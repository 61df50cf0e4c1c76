"""Bridge resource provisioning.

Ensures exactly one running bridge resource exists under a name:

- absent  -> create it from the image with the backend environment
- stopped -> start it
- running -> leave it alone

Operations on the same name are serialized.
"""

import asyncio
from collections.abc import Mapping

import structlog

from devbridge_control.errors import ProvisioningError
from devbridge_control.provisioning.registry import (
    ProvisionedResource,
    ResourceRegistry,
    ResourceSpec,
    ResourceState,
)

logger = structlog.get_logger()


class ResourceProvisioner:
    """Idempotent create/resume/delete of bridge resources."""

    def __init__(
        self,
        registry: ResourceRegistry,
        port: int,
        cpu_count: int = 1,
        memory: str = "1g",
        deadline: float | None = None,
    ) -> None:
        self.registry = registry
        self.port = port
        self.cpu_count = cpu_count
        self.memory = memory
        self.deadline = deadline
        self._locks: dict[str, asyncio.Lock] = {}

    def _get_lock(self, name: str) -> asyncio.Lock:
        if name not in self._locks:
            self._locks[name] = asyncio.Lock()
        return self._locks[name]

    async def ensure_running(
        self,
        name: str,
        image: str,
        config: Mapping[str, str],
    ) -> str:
        """Make sure the named resource is running and return its address.

        Args:
            name: Resource name
            image: Image used if the resource has to be created
            config: Environment injected into a newly created resource

        Returns:
            Externally reachable host:port

        Raises:
            ProvisioningError: If the platform rejects the operation or the
                deadline passes
        """
        async with self._get_lock(name):
            try:
                async with asyncio.timeout(self.deadline):
                    resource = await self._ensure_running(name, image, config)
            except TimeoutError:
                raise ProvisioningError(
                    f"Provisioning {name} did not finish within {self.deadline:g}s"
                ) from None

        if not resource.address:
            raise ProvisioningError(f"Resource {name} has no address")
        return resource.address

    async def _ensure_running(
        self,
        name: str,
        image: str,
        config: Mapping[str, str],
    ) -> ProvisionedResource:
        current = await self.registry.get(name)

        if current.state is ResourceState.ABSENT:
            logger.info("Creating bridge resource", name=name, image=image)
            resource = await self.registry.create(
                ResourceSpec(
                    name=name,
                    image=image,
                    port=self.port,
                    environment=config,
                    cpu_count=self.cpu_count,
                    memory=self.memory,
                )
            )
            logger.info(
                "Bridge resource created, reachable once DNS has propagated",
                name=name,
                address=resource.address,
            )
            return resource

        if current.state is ResourceState.STOPPED:
            logger.info("Bridge resource exists but is stopped, starting", name=name)
            resource = await self.registry.start(name)
            logger.info("Bridge resource starting", name=name, address=resource.address)
            return resource

        logger.info("Bridge resource already running", name=name, address=current.address)
        return current

    async def delete(self, name: str) -> None:
        """Delete the named resource. Deleting an absent resource succeeds."""
        async with self._get_lock(name):
            deleted = await self.registry.delete(name)
        if deleted:
            logger.info("Bridge resource deleted", name=name)
        else:
            logger.info("Bridge resource already absent", name=name)

    async def describe(self, name: str) -> ProvisionedResource:
        return await self.registry.get(name)
