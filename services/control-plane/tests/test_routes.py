"""Tests for the connection API routes."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import requests
from fastapi.testclient import TestClient

from devbridge_control.errors import ProvisioningError
from devbridge_control.orchestrator import TunnelOrchestrator
from devbridge_control.provisioning import (
    DockerResourceRegistry,
    ResourceProvisioner,
    ResourceState,
)
from devbridge_control.rpc import DeviceHub
from devbridge_shared.models import RpcResult


@pytest.fixture
def hub() -> DeviceHub:
    return DeviceHub({"dev-1": "secret-1"})


@pytest.fixture
def orchestrator(mock_invoker, provisioner, settings) -> TunnelOrchestrator:
    return TunnelOrchestrator(invoker=mock_invoker, provisioner=provisioner, settings=settings)


@pytest.fixture
def client(hub, provisioner, orchestrator):
    """Test client with mocked dependencies."""
    from devbridge_control.deps import get_hub, get_orchestrator, get_provisioner
    from devbridge_control.main import app

    app.dependency_overrides[get_hub] = lambda: hub
    app.dependency_overrides[get_provisioner] = lambda: provisioner
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator

    yield TestClient(app)

    app.dependency_overrides.clear()


class TestCreateConnection:
    """Tests for POST /api/connection."""

    def test_create(self, client, registry) -> None:
        response = client.post("/api/connection", json={"deviceId": "dev-1"})

        assert response.status_code == 200
        assert response.json() == {
            "message": "Device access will be available via: http://bridge.example.com:2222",
            "address": "bridge.example.com:2222",
            "bridgeType": "relay",
            "serviceProtocol": "ssh",
        }
        assert registry.calls.count("create") == 1

    def test_create_webpubsub(self, client, mock_invoker) -> None:
        response = client.post(
            "/api/connection", json={"deviceId": "dev-1", "bridgeType": "webpubsub"}
        )

        assert response.status_code == 200
        assert response.json()["bridgeType"] == "webpubsub"
        mock_invoker.invoke.assert_awaited_once_with("dev-1", "CreateWebPubSubConnection")

    def test_missing_device_id(self, client, mock_invoker) -> None:
        response = client.post("/api/connection", json={})

        assert response.status_code == 400
        assert response.json() == {"error": "The deviceId is required."}
        mock_invoker.invoke.assert_not_called()

    def test_empty_body(self, client) -> None:
        response = client.post("/api/connection")

        assert response.status_code == 400

    def test_malformed_body(self, client, mock_invoker) -> None:
        """A body that is not a JSON object is a client error."""
        response = client.post(
            "/api/connection",
            content=b"not json",
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 400
        assert "error" in response.json()
        mock_invoker.invoke.assert_not_called()

    def test_remote_rejection(self, client, mock_invoker, registry) -> None:
        """The device's status and payload are returned unchanged."""
        payload = {"result": "Unable to start Remote Forwarder for Hybrid Connection: dev-1"}
        mock_invoker.invoke = AsyncMock(return_value=RpcResult(status=500, payload=payload))

        response = client.post("/api/connection", json={"deviceId": "dev-1"})

        assert response.status_code == 500
        assert response.json() == payload
        assert registry.calls == []

    def test_provisioning_failure(self, client, registry) -> None:
        registry.create = AsyncMock(side_effect=ProvisioningError("quota exceeded"))

        response = client.post("/api/connection", json={"deviceId": "dev-1"})

        assert response.status_code == 500
        assert response.json() == {"error": "quota exceeded"}


class TestDeleteConnection:
    """Tests for DELETE /api/connection."""

    def test_delete(self, client, registry) -> None:
        registry.seed("devbridge-bridge", ResourceState.RUNNING)

        response = client.request("DELETE", "/api/connection", json={"deviceId": "dev-1"})

        assert response.status_code == 204
        assert response.content == b""
        assert "devbridge-bridge" not in registry.resources

    def test_delete_nothing_provisioned(self, client) -> None:
        response = client.request("DELETE", "/api/connection", json={"deviceId": "dev-1"})

        assert response.status_code == 204

    def test_delete_missing_device_id(self, client, registry) -> None:
        response = client.request("DELETE", "/api/connection", json={"bridgeType": "relay"})

        assert response.status_code == 400
        assert registry.calls == []


class TestConnectionStatus:
    """Tests for GET /api/connection/{device_id}."""

    def test_offline_device(self, client) -> None:
        response = client.get("/api/connection/dev-1")

        assert response.status_code == 200
        assert response.json() == {
            "device": {"device_id": "dev-1", "online": False},
            "bridge": {"name": "devbridge-bridge", "state": "absent", "address": None},
        }

    def test_online_device_with_bridge(self, client, hub, registry) -> None:
        hub.register("sid-1", "dev-1")
        hub.record_heartbeat("sid-1", {"state": "connected", "backend": "relay"})
        registry.seed("devbridge-bridge", ResourceState.RUNNING)

        data = client.get("/api/connection/dev-1").json()

        assert data["device"]["online"] is True
        assert data["device"]["forwarder_state"] == "connected"
        assert data["bridge"]["state"] == "running"
        assert data["bridge"]["address"] == "bridge.example.com:2222"

    def test_platform_unavailable(self, client, registry) -> None:
        registry.get = AsyncMock(side_effect=ProvisioningError("no daemon"))

        data = client.get("/api/connection/dev-1").json()

        assert data["bridge"]["state"] == "unknown"
        assert data["bridge"]["error"] == "no daemon"

    def test_docker_daemon_gone(self, client, settings) -> None:
        """A dropped daemon socket is reported as an unknown bridge state."""
        from devbridge_control.deps import get_provisioner
        from devbridge_control.main import app

        docker_client = MagicMock()
        docker_client.containers.get.side_effect = requests.exceptions.ConnectionError(
            "daemon gone"
        )
        with patch(
            "devbridge_control.provisioning.docker_registry.docker.from_env",
            return_value=docker_client,
        ):
            docker_provisioner = ResourceProvisioner(
                DockerResourceRegistry(settings), port=settings.container_port
            )
            app.dependency_overrides[get_provisioner] = lambda: docker_provisioner
            response = client.get("/api/connection/dev-1")

        assert response.status_code == 200
        bridge = response.json()["bridge"]
        assert bridge["state"] == "unknown"
        assert "daemon gone" in bridge["error"]


class TestHealth:
    """Tests for the health endpoint."""

    def test_health(self, client) -> None:
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
