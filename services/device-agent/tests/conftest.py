"""Pytest fixtures for device agent tests."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from devbridge_agent.config import AgentConfig
from devbridge_agent.connection import ConnectionStateMachine
from devbridge_agent.forwarder import ForwarderProcess


@pytest.fixture
def agent_config() -> AgentConfig:
    """Agent configuration isolated from the environment."""
    return AgentConfig(
        _env_file=None,
        device_id="dev-1",
        device_token="secret-1",
        control_plane_url="https://devbridge.example.com",
        service_protocol="ssh",
        service_port=22,
        relay_connection_string="Endpoint=sb://relay.example.com/;SharedAccessKey=abc",
        webpubsub_endpoint="https://pubsub.example.com",
        webpubsub_key="pubsub-key",
        webpubsub_hub="devices",
    )


@pytest.fixture
def forwarders() -> list[MagicMock]:
    """Every forwarder created by the factory, in order."""
    return []


@pytest.fixture
def forwarder_factory(forwarders):
    """Factory producing mock forwarders that start and stop cleanly."""

    def factory(kind):
        forwarder = MagicMock(spec=ForwarderProcess)
        forwarder.kind = kind
        forwarder.start = AsyncMock()
        forwarder.stop = AsyncMock()
        forwarders.append(forwarder)
        return forwarder

    return factory


@pytest.fixture
def state_machine(forwarder_factory) -> ConnectionStateMachine:
    return ConnectionStateMachine(
        device_id="dev-1",
        service_protocol="ssh",
        service_port=22,
        forwarder_factory=forwarder_factory,
    )


@pytest.fixture
def cli_runner():
    """Click CLI test runner."""
    from click.testing import CliRunner

    return CliRunner()


@pytest.fixture
def temp_config_file(tmp_path):
    """Create temporary TOML config file."""
    config_file = tmp_path / "agent.toml"
    config_file.write_text(
        """[agent]
device_id = "file-device"
device_token = "file-token"
control_plane_url = "https://file.example.com"
service_port = 8022
heartbeat_interval = 60

[forwarder]
relay = ["my-azbridge", "-R", "{device_id}:localhost:{service_port}"]
"""
    )
    return config_file
