"""Pytest fixtures for control plane tests."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from devbridge_control.config import Settings
from devbridge_control.provisioning import (
    ProvisionedResource,
    ResourceProvisioner,
    ResourceSpec,
    ResourceState,
)
from devbridge_shared.models import RpcResult


class InMemoryRegistry:
    """Resource registry keeping resources in a dict."""

    def __init__(self, public_host: str = "bridge.example.com") -> None:
        self.public_host = public_host
        self.resources: dict[str, ProvisionedResource] = {}
        self.specs: list[ResourceSpec] = []
        self.calls: list[str] = []

    def seed(self, name: str, state: ResourceState, port: int = 2222) -> None:
        self.resources[name] = ProvisionedResource(
            name=name, state=state, address=f"{self.public_host}:{port}"
        )

    async def get(self, name: str) -> ProvisionedResource:
        self.calls.append("get")
        return self.resources.get(name, ProvisionedResource.absent(name))

    async def create(self, spec: ResourceSpec) -> ProvisionedResource:
        self.calls.append("create")
        self.specs.append(spec)
        resource = ProvisionedResource(
            name=spec.name,
            state=ResourceState.RUNNING,
            address=f"{self.public_host}:{spec.port}",
        )
        self.resources[spec.name] = resource
        return resource

    async def start(self, name: str) -> ProvisionedResource:
        self.calls.append("start")
        current = self.resources[name]
        resource = ProvisionedResource(
            name=name, state=ResourceState.RUNNING, address=current.address
        )
        self.resources[name] = resource
        return resource

    async def delete(self, name: str) -> bool:
        self.calls.append("delete")
        return self.resources.pop(name, None) is not None

    async def close(self) -> None:
        self.calls.append("close")


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from the environment."""
    return Settings(
        _env_file=None,
        device_keys={"device-1": "secret-1", "device-2": "secret-2"},
        relay_connection_string="Endpoint=sb://relay.example.com/;SharedAccessKey=abc",
        relay_bridge_image="registry.example.com/relay-bridge:1.0",
        webpubsub_endpoint="https://pubsub.example.com",
        webpubsub_key="pubsub-key",
        webpubsub_hub="devices",
        webpubsub_bridge_image="registry.example.com/webpubsub-bridge:1.0",
        container_name="devbridge-bridge",
        container_port=2222,
        public_host="bridge.example.com",
        provision_timeout=5.0,
    )


@pytest.fixture
def registry() -> InMemoryRegistry:
    return InMemoryRegistry()


@pytest.fixture
def provisioner(registry: InMemoryRegistry, settings: Settings) -> ResourceProvisioner:
    return ResourceProvisioner(
        registry,
        port=settings.container_port,
        deadline=settings.provision_timeout,
    )


@pytest.fixture
def mock_invoker() -> MagicMock:
    """Device RPC invoker answering every method successfully."""

    async def invoke(device_id, method, params=None, timeout=None):
        if method == "DeleteConnection":
            return RpcResult(status=204, payload={"result": f"Executed {method}"})
        return RpcResult(
            status=200,
            payload={
                "result": f"Executed {method}",
                "serviceProtocol": "ssh",
                "servicePort": "22",
            },
        )

    invoker = MagicMock()
    invoker.invoke = AsyncMock(side_effect=invoke)
    return invoker
