"""Tunnel models shared between the control plane and device agents.

These define the wire contract of the device RPC channel: method names,
backend kinds and the status+payload result every method returns.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# Status codes used by device methods
STATUS_OK = 200
STATUS_NO_CONTENT = 204
STATUS_ERROR = 500


class BackendKind(str, Enum):
    """Transport backend carrying a tunnel."""

    RELAY = "relay"
    WEBPUBSUB = "webpubsub"

    @classmethod
    def parse(cls, value: str | None) -> "BackendKind":
        """Parse a bridge type, defaulting to relay when absent.

        Raises:
            ValueError: If the value names no known backend
        """
        if not value:
            return cls.RELAY
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise ValueError(f"Unknown bridge type: {value}") from None


class ConnectionState(str, Enum):
    """Device-side forwarder state."""

    DISCONNECTED = "disconnected"
    STARTING = "starting"
    CONNECTED = "connected"
    STOPPING = "stopping"


class RPCMethods:
    """Device method names."""

    CREATE_CONNECTION = "CreateConnection"
    CREATE_WEBPUBSUB_CONNECTION = "CreateWebPubSubConnection"
    DELETE_CONNECTION = "DeleteConnection"

    @classmethod
    def create_for(cls, kind: BackendKind) -> str:
        """Name of the create method for a backend."""
        if kind is BackendKind.WEBPUBSUB:
            return cls.CREATE_WEBPUBSUB_CONNECTION
        return cls.CREATE_CONNECTION


class RpcResult(BaseModel):
    """Result of a single device method invocation."""

    model_config = ConfigDict(frozen=True)

    status: int = Field(..., description="Status code reported by the device")
    payload: Any = Field(default=None, description="JSON payload reported by the device")

    @property
    def ok(self) -> bool:
        return self.status == STATUS_OK
