"""Bridge backends.

A backend knows which device method opens its side of the tunnel, which
bridge image runs in the cloud, and which environment that image needs.
"""

from abc import ABC, abstractmethod
from collections.abc import Mapping
from types import MappingProxyType
from typing import ClassVar

from devbridge_control.config import Settings
from devbridge_shared.models import BackendKind, RPCMethods

BridgeBackendConfig = Mapping[str, str]


class BridgeBackend(ABC):
    """Transport-specific part of a tunnel."""

    kind: ClassVar[BackendKind]
    protocol: ClassVar[str]

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    @property
    def rpc_method(self) -> str:
        return RPCMethods.create_for(self.kind)

    @property
    @abstractmethod
    def image(self) -> str:
        """Bridge container image."""

    @abstractmethod
    def _environment(self, device_id: str) -> dict[str, str]: ...

    def build_config(self, device_id: str) -> BridgeBackendConfig:
        """Build the read-only environment for the bridge container."""
        return MappingProxyType(self._environment(device_id))


class RelayBackend(BridgeBackend):
    """Relay hybrid connection named after the device."""

    kind = BackendKind.RELAY
    protocol = "relay"

    @property
    def image(self) -> str:
        return self.settings.relay_bridge_image

    def _environment(self, device_id: str) -> dict[str, str]:
        return {
            "AZRELAY_CONN_STRING": self.settings.relay_connection_string,
            "AZRELAY_HYBRID_CONNECTION": device_id,
            "CONTAINER_PORT": str(self.settings.container_port),
        }


class WebPubSubBackend(BridgeBackend):
    """Publish/subscribe hub with a local connect target."""

    kind = BackendKind.WEBPUBSUB
    protocol = "webpubsub"

    @property
    def image(self) -> str:
        return self.settings.webpubsub_bridge_image

    def _environment(self, device_id: str) -> dict[str, str]:
        return {
            "Local__PubSubEndpoint": self.settings.webpubsub_endpoint,
            "Local__PubSubKey": self.settings.webpubsub_key,
            "Local__Hub": self.settings.webpubsub_hub,
            "Local__Port": str(self.settings.container_port),
            "Local__Connect__IpAddress": self.settings.webpubsub_connect_address,
            "Local__Connect__Port": str(self.settings.webpubsub_connect_port),
            "Local__Connect__ServerId": device_id,
        }


_BACKENDS: dict[BackendKind, type[BridgeBackend]] = {
    BackendKind.RELAY: RelayBackend,
    BackendKind.WEBPUBSUB: WebPubSubBackend,
}


def select_backend(kind: BackendKind, settings: Settings) -> BridgeBackend:
    """Get the backend implementation for a kind."""
    return _BACKENDS[kind](settings)
