"""Device RPC channel."""

from devbridge_control.rpc.hub import DEVICE_NAMESPACE, DeviceHub, DeviceNamespace

__all__ = ["DEVICE_NAMESPACE", "DeviceHub", "DeviceNamespace"]
