"""Control plane configuration."""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="DEVBRIDGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Service
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 7071
    log_level: str = "INFO"
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])

    # Device authentication: device_id -> shared key (JSON object in env)
    device_keys: dict[str, str] = Field(default_factory=dict)

    # Device RPC
    rpc_timeout: float = 30.0

    # Relay backend
    relay_connection_string: str = ""
    relay_bridge_image: str = "devbridge/relay-bridge:latest"

    # Web PubSub backend
    webpubsub_endpoint: str = ""
    webpubsub_key: str = ""
    webpubsub_hub: str = ""
    webpubsub_bridge_image: str = "devbridge/webpubsub-bridge:latest"
    webpubsub_connect_address: str = "127.0.0.1"
    webpubsub_connect_port: int = 8080

    # Bridge resource. A single name is shared by every device.
    container_name: str = "devbridge-bridge"
    container_port: int = Field(default=2222, ge=1, le=65535)
    container_cpu_count: int = 1
    container_memory: str = "1g"
    public_host: str = "localhost"
    provision_timeout: float = 120.0

    # Docker engine and private image registry
    docker_host: str | None = None
    container_registry: str | None = None
    container_registry_username: str | None = None
    container_registry_password: str | None = None

    # Sentry (reads SENTRY_ env vars, not DEVBRIDGE_)
    sentry_dsn: str | None = Field(default=None, validation_alias="SENTRY_DSN")
    sentry_traces_sample_rate: float = Field(
        default=0.2, validation_alias="SENTRY_TRACES_SAMPLE_RATE"
    )


settings = Settings()
