"""RPC request handler for the device agent.

Handles tunnel methods invoked by the devbridge control plane.
"""

from typing import Any

import structlog

from devbridge_agent.connection import ConnectionStateMachine
from devbridge_shared.models import BackendKind, RpcResult, RPCMethods

logger = structlog.get_logger()


class RPCHandler:
    """Handles RPC requests from the control plane."""

    def __init__(self, connection: ConnectionStateMachine) -> None:
        self.connection = connection

        # Method dispatch table
        self._handlers: dict[str, Any] = {
            RPCMethods.CREATE_CONNECTION: self._create_relay_connection,
            RPCMethods.CREATE_WEBPUBSUB_CONNECTION: self._create_webpubsub_connection,
            RPCMethods.DELETE_CONNECTION: self._delete_connection,
        }

    async def handle(self, method: str, params: dict[str, Any] | None = None) -> RpcResult:
        """Dispatch RPC method to handler.

        Args:
            method: RPC method name
            params: Method parameters (unused by the tunnel methods)

        Returns:
            Status and payload to send back

        Raises:
            ValueError: If method is unknown
        """
        handler = self._handlers.get(method)
        if not handler:
            raise ValueError(f"Unknown RPC method: {method}")

        logger.debug("Handling RPC", method=method)
        return await handler(params or {})

    async def _create_relay_connection(self, _params: dict[str, Any]) -> RpcResult:
        return await self.connection.open(BackendKind.RELAY, RPCMethods.CREATE_CONNECTION)

    async def _create_webpubsub_connection(self, _params: dict[str, Any]) -> RpcResult:
        return await self.connection.open(
            BackendKind.WEBPUBSUB, RPCMethods.CREATE_WEBPUBSUB_CONNECTION
        )

    async def _delete_connection(self, _params: dict[str, Any]) -> RpcResult:
        return await self.connection.close(RPCMethods.DELETE_CONNECTION)
