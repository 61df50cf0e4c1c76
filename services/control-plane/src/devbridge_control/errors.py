"""Error taxonomy for tunnel operations.

Every error carries the HTTP status it maps to at the API boundary.
"""

from typing import Any


class DevbridgeError(Exception):
    """Base class for tunnel lifecycle errors."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(DevbridgeError):
    """The request is missing or malformed."""

    status_code = 400


class TransportError(DevbridgeError):
    """The device could not be reached over its RPC channel."""


class DeviceNotConnectedError(TransportError):
    """Raised when a device has no live session."""

    def __init__(self, device_id: str) -> None:
        super().__init__(f"Device {device_id} is not connected")
        self.device_id = device_id


class RpcTimeoutError(TransportError):
    """Raised when a device does not answer within the RPC timeout."""

    def __init__(self, device_id: str, method: str, timeout: float) -> None:
        super().__init__(f"Method {method} on device {device_id} timed out after {timeout:g}s")
        self.device_id = device_id
        self.method = method


class RemoteRejection(DevbridgeError):
    """The device answered with a non-200 status."""

    def __init__(self, status_code: int, payload: Any) -> None:
        super().__init__(f"Device rejected the request with status {status_code}")
        self.status_code = status_code
        self.payload = payload


class ProvisioningError(DevbridgeError):
    """Creating, starting or deleting the bridge resource failed."""


class UnknownError(DevbridgeError):
    """Any other failure, wrapped at the orchestrator boundary."""
