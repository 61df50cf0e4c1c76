"""Models shared across devbridge services."""

from devbridge_shared.models.tunnel import (
    STATUS_ERROR,
    STATUS_NO_CONTENT,
    STATUS_OK,
    BackendKind,
    ConnectionState,
    RpcResult,
    RPCMethods,
)

__all__ = [
    "STATUS_ERROR",
    "STATUS_NO_CONTENT",
    "STATUS_OK",
    "BackendKind",
    "ConnectionState",
    "RPCMethods",
    "RpcResult",
]
