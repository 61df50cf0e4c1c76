"""Configuration for the devbridge device agent."""

from pathlib import Path
from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from devbridge_shared.models import BackendKind

DEFAULT_RELAY_COMMAND = [
    "azbridge",
    "-R",
    "{device_id}:localhost:{service_port}",
]

DEFAULT_WEBPUBSUB_COMMAND = [
    "webpubsub-bridge",
    "--endpoint",
    "{webpubsub_endpoint}",
    "--hub",
    "{webpubsub_hub}",
    "--server-id",
    "{device_id}",
    "--target",
    "localhost:{service_port}",
]


class AgentConfig(BaseSettings):
    """Configuration for the device agent."""

    model_config = SettingsConfigDict(
        env_prefix="DEVBRIDGE_AGENT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Identity, must match an entry in the control plane's device keys
    device_id: str = Field(default="", description="Device identifier")
    device_token: str = Field(default="", description="Shared key for this device")

    control_plane_url: str = Field(
        default="http://localhost:7071",
        description="devbridge control plane URL",
    )

    # Local service exposed through the tunnel
    service_protocol: str = Field(default="ssh", description="Protocol of the local service")
    service_port: int = Field(default=22, ge=1, le=65535, description="Port of the local service")

    # Relay backend
    relay_connection_string: str = Field(default="", description="Relay connection string")
    relay_command: list[str] = Field(default_factory=lambda: list(DEFAULT_RELAY_COMMAND))

    # Web PubSub backend
    webpubsub_endpoint: str = Field(default="", description="Web PubSub endpoint")
    webpubsub_key: str = Field(default="", description="Web PubSub access key")
    webpubsub_hub: str = Field(default="", description="Web PubSub hub name")
    webpubsub_command: list[str] = Field(
        default_factory=lambda: list(DEFAULT_WEBPUBSUB_COMMAND)
    )

    # Forwarder process
    forwarder_startup_grace: float = Field(
        default=2.0,
        ge=0,
        description="Seconds a forwarder must survive to count as started",
    )
    forwarder_stop_timeout: float = Field(
        default=10.0,
        gt=0,
        description="Seconds to wait after terminate before killing the forwarder",
    )

    heartbeat_interval: int = Field(
        default=30,
        ge=5,
        le=300,
        description="Heartbeat interval in seconds",
    )

    reconnect_delay: int = Field(default=1, description="Initial reconnection delay in seconds")
    reconnect_delay_max: int = Field(
        default=30,
        description="Maximum reconnection delay in seconds",
    )

    log_level: str = Field(default="INFO", description="Log level (DEBUG, INFO, WARNING, ERROR)")

    def _template_values(self) -> dict[str, Any]:
        return {
            "device_id": self.device_id,
            "service_port": self.service_port,
            "service_protocol": self.service_protocol,
            "relay_connection_string": self.relay_connection_string,
            "webpubsub_endpoint": self.webpubsub_endpoint,
            "webpubsub_hub": self.webpubsub_hub,
        }

    def forwarder_command(self, kind: BackendKind) -> list[str]:
        """Build the forwarder argv for a backend from its template."""
        template = self.relay_command if kind is BackendKind.RELAY else self.webpubsub_command
        values = self._template_values()
        return [part.format(**values) for part in template]

    def forwarder_environment(self, kind: BackendKind) -> dict[str, str]:
        """Secrets handed to the forwarder through its environment."""
        if kind is BackendKind.RELAY:
            return {"AZRELAY_CONN_STRING": self.relay_connection_string}
        return {
            "WEBPUBSUB_ENDPOINT": self.webpubsub_endpoint,
            "WEBPUBSUB_KEY": self.webpubsub_key,
            "WEBPUBSUB_HUB": self.webpubsub_hub,
        }

    @property
    def socketio_url(self) -> str:
        return self.control_plane_url.replace("https://", "wss://").replace("http://", "ws://")


DEFAULT_CONFIG_PATH = Path.home() / ".config" / "devbridge" / "agent.toml"


def load_config(config_file: str | Path | None = None) -> AgentConfig:
    """Load configuration from a TOML file, with environment variable overrides.

    Priority (highest to lowest):
    1. Environment variables (DEVBRIDGE_AGENT_*)
    2. Provided config file
    3. Default config file (~/.config/devbridge/agent.toml)
    4. Default values

    The file holds an `[agent]` table and optional `[forwarder]` table with
    `relay` and `webpubsub` argv lists.
    """
    import tomllib

    config_path = Path(config_file) if config_file else DEFAULT_CONFIG_PATH

    file_config: dict[str, Any] = {}
    if config_path.exists():
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
            file_config = dict(data.get("agent", {}))

            forwarder = data.get("forwarder", {})
            if "relay" in forwarder:
                file_config["relay_command"] = forwarder["relay"]
            if "webpubsub" in forwarder:
                file_config["webpubsub_command"] = forwarder["webpubsub"]

    # Init kwargs outrank env in pydantic-settings, so drop keys the env sets
    env_config = AgentConfig()
    overrides = {
        key: value
        for key, value in file_config.items()
        if key not in env_config.model_fields_set
    }
    return AgentConfig(**overrides)
