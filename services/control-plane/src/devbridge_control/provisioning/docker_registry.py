"""Docker engine backed registry for bridge containers.

Each bridge resource is one container, looked up by name. The container
publishes its bridge port on the same host port, so its address is
`{public_host}:{port}`.
"""

import asyncio
from typing import Any

import docker
import requests
import structlog
from docker.errors import APIError, DockerException, ImageNotFound, NotFound
from docker.models.containers import Container

from devbridge_control.config import Settings
from devbridge_control.errors import ProvisioningError
from devbridge_control.provisioning.registry import (
    ProvisionedResource,
    ResourceSpec,
    ResourceState,
)

logger = structlog.get_logger()

MANAGED_LABEL = "devbridge.managed"
PORT_LABEL = "devbridge.port"
HTTP_CONFLICT = 409

_RUNNING_STATUSES = {"running", "restarting"}

# The SDK raises raw requests errors when the daemon socket goes away
_PLATFORM_ERRORS = (DockerException, requests.exceptions.RequestException)


class DockerResourceRegistry:
    """Bridge resources as Docker containers."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self._client: docker.DockerClient | None = None
        self._client_lock = asyncio.Lock()

    async def _get_client(self) -> docker.DockerClient:
        """Get the Docker client, connecting and logging in on first use."""
        if self._client is not None:
            return self._client

        async with self._client_lock:
            if self._client is None:
                self._client = await asyncio.to_thread(self._connect)
        return self._client

    def _connect(self) -> docker.DockerClient:
        try:
            if self.settings.docker_host:
                client = docker.DockerClient(base_url=self.settings.docker_host)
            else:
                client = docker.from_env()

            if self.settings.container_registry and self.settings.container_registry_username:
                client.login(
                    username=self.settings.container_registry_username,
                    password=self.settings.container_registry_password,
                    registry=self.settings.container_registry,
                )
                logger.info(
                    "Logged in to image registry", registry=self.settings.container_registry
                )
        except _PLATFORM_ERRORS as e:
            raise ProvisioningError(f"Failed to connect to the container platform: {e}") from e

        logger.info("Docker client initialized", docker_host=self.settings.docker_host or "env")
        return client

    def _to_resource(self, container: Container) -> ProvisionedResource:
        status = container.status
        state = ResourceState.RUNNING if status in _RUNNING_STATUSES else ResourceState.STOPPED
        port = container.labels.get(PORT_LABEL, str(self.settings.container_port))
        return ProvisionedResource(
            name=container.name or "",
            state=state,
            address=f"{self.settings.public_host}:{port}",
        )

    async def _find(self, name: str) -> Container | None:
        client = await self._get_client()
        try:
            return await asyncio.to_thread(client.containers.get, name)
        except NotFound:
            return None
        except _PLATFORM_ERRORS as e:
            raise ProvisioningError(f"Failed to look up container {name}: {e}") from e

    async def get(self, name: str) -> ProvisionedResource:
        container = await self._find(name)
        if container is None:
            return ProvisionedResource.absent(name)
        return self._to_resource(container)

    async def create(self, spec: ResourceSpec) -> ProvisionedResource:
        """Create and start a bridge container."""
        client = await self._get_client()
        labels = {MANAGED_LABEL: "true", PORT_LABEL: str(spec.port), **spec.labels}
        kwargs: dict[str, Any] = {
            "name": spec.name,
            "detach": True,
            "environment": dict(spec.environment),
            "ports": {f"{spec.port}/tcp": spec.port},
            "labels": labels,
            "nano_cpus": spec.cpu_count * 1_000_000_000,
            "mem_limit": spec.memory,
            "restart_policy": {"Name": "unless-stopped"},
        }

        try:
            container = await asyncio.to_thread(client.containers.run, spec.image, **kwargs)
        except ImageNotFound as e:
            raise ProvisioningError(f"Bridge image not found: {spec.image}") from e
        except APIError as e:
            if e.status_code == HTTP_CONFLICT:
                # Created concurrently by another control plane instance
                existing = await self._find(spec.name)
                if existing is not None:
                    return self._to_resource(existing)
            raise ProvisioningError(f"Failed to create container {spec.name}: {e}") from e
        except _PLATFORM_ERRORS as e:
            raise ProvisioningError(f"Failed to create container {spec.name}: {e}") from e

        try:
            await asyncio.to_thread(container.reload)
        except _PLATFORM_ERRORS as e:
            raise ProvisioningError(f"Failed to inspect container {spec.name}: {e}") from e
        logger.info(
            "Bridge container created",
            name=spec.name,
            image=spec.image,
            container_id=container.short_id,
        )
        return self._to_resource(container)

    async def start(self, name: str) -> ProvisionedResource:
        """Resume a stopped or paused bridge container."""
        container = await self._find(name)
        if container is None:
            raise ProvisioningError(f"Container {name} disappeared before it could be started")

        try:
            if container.status == "paused":
                await asyncio.to_thread(container.unpause)
            else:
                await asyncio.to_thread(container.start)
            await asyncio.to_thread(container.reload)
        except _PLATFORM_ERRORS as e:
            raise ProvisioningError(f"Failed to start container {name}: {e}") from e

        return self._to_resource(container)

    async def delete(self, name: str) -> bool:
        """Remove a bridge container. Returns False if there was none."""
        container = await self._find(name)
        if container is None:
            return False

        try:
            await asyncio.to_thread(container.remove, force=True)
        except NotFound:
            return False
        except _PLATFORM_ERRORS as e:
            raise ProvisioningError(f"Failed to delete container {name}: {e}") from e
        return True

    async def close(self) -> None:
        if self._client is not None:
            await asyncio.to_thread(self._client.close)
            self._client = None
