"""Socket.IO client for the devbridge control plane connection."""

import asyncio
import contextlib
from datetime import UTC, datetime
from typing import Any

import psutil
import socketio
import structlog

from devbridge_agent.config import AgentConfig
from devbridge_agent.connection import ConnectionStateMachine
from devbridge_agent.rpc_handler import RPCHandler

logger = structlog.get_logger()

DEVICE_NAMESPACE = "/device"


class DeviceAgentClient:
    """Outbound connection to the control plane.

    Keeps the connection open (reconnecting as needed) and answers tunnel
    RPC requests through the connection state machine.
    """

    def __init__(
        self,
        config: AgentConfig,
        connection: ConnectionStateMachine | None = None,
    ) -> None:
        self.config = config
        self.sio = socketio.AsyncClient(
            reconnection=True,
            reconnection_attempts=0,  # Infinite retries
            reconnection_delay=config.reconnect_delay,
            reconnection_delay_max=config.reconnect_delay_max,
            logger=False,
            engineio_logger=False,
        )
        self.connection = connection or ConnectionStateMachine.from_config(config)
        self.rpc_handler = RPCHandler(self.connection)
        self._running = False
        self._connected = False
        self._heartbeat_task: asyncio.Task[None] | None = None

        self._setup_handlers()

    def _setup_handlers(self) -> None:
        """Set up Socket.IO event handlers."""

        @self.sio.on("connect", namespace=DEVICE_NAMESPACE)
        async def on_connect() -> None:
            self._connected = True
            logger.info("Connected to control plane", device_id=self.config.device_id)

            if self._heartbeat_task is None or self._heartbeat_task.done():
                self._heartbeat_task = asyncio.create_task(self._heartbeat_loop())

        @self.sio.on("disconnect", namespace=DEVICE_NAMESPACE)
        async def on_disconnect(*_args: Any) -> None:
            self._connected = False
            logger.info("Disconnected from control plane")

            if self._heartbeat_task and not self._heartbeat_task.done():
                self._heartbeat_task.cancel()

        @self.sio.on("connect_error", namespace=DEVICE_NAMESPACE)
        async def on_connect_error(data: Any) -> None:
            logger.error("Connection error", error=str(data))

        @self.sio.on("rpc_request", namespace=DEVICE_NAMESPACE)
        async def on_rpc_request(data: dict[str, Any]) -> None:
            await self.handle_rpc_request(data)

    async def handle_rpc_request(self, data: dict[str, Any]) -> None:
        """Run one RPC request and emit its response."""
        call_id = data.get("call_id")
        method = data.get("method")
        params = data.get("params") or {}

        logger.debug("RPC request received", call_id=call_id, method=method)

        if not isinstance(method, str):
            logger.error("Invalid RPC request: method must be a string")
            await self._respond({"call_id": call_id, "error": "method must be a string"})
            return

        try:
            result = await self.rpc_handler.handle(method, params)
        except Exception as e:
            logger.exception("RPC handler error", method=method, error=str(e))
            await self._respond({"call_id": call_id, "error": str(e)})
            return

        await self._respond(
            {"call_id": call_id, "status": result.status, "payload": result.payload}
        )
        logger.debug("RPC response sent", call_id=call_id, status=result.status)

    async def _respond(self, data: dict[str, Any]) -> None:
        await self.sio.emit("rpc_response", data, namespace=DEVICE_NAMESPACE)

    def _heartbeat_payload(self) -> dict[str, Any]:
        memory = psutil.virtual_memory()
        return {
            "timestamp": datetime.now(UTC).isoformat(),
            "state": self.connection.state.value,
            "backend": self.connection.backend.value if self.connection.backend else None,
            "memory_used_mb": memory.used // (1024 * 1024),
            "memory_percent": memory.percent,
            "cpu_percent": psutil.cpu_percent(),
        }

    async def _heartbeat_loop(self) -> None:
        """Send periodic heartbeats to the control plane."""
        while self._running and self._connected:
            try:
                await self.sio.emit(
                    "heartbeat",
                    self._heartbeat_payload(),
                    namespace=DEVICE_NAMESPACE,
                )
                await asyncio.sleep(self.config.heartbeat_interval)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.warning("Heartbeat error", error=str(e))
                await asyncio.sleep(5)

    async def run(self, shutdown_event: asyncio.Event) -> None:
        """Connect and run the client until shutdown.

        Args:
            shutdown_event: Event that signals shutdown
        """
        self._running = True
        url = self.config.socketio_url

        logger.info("Connecting to control plane", url=url, device_id=self.config.device_id)

        try:
            await self.sio.connect(
                url,
                namespaces=[DEVICE_NAMESPACE],
                auth={"device_id": self.config.device_id, "token": self.config.device_token},
                wait_timeout=30,
            )

            logger.info("Connection established, waiting for tunnel requests...")

            while self._running and not shutdown_event.is_set():
                await asyncio.sleep(1)

        except socketio.exceptions.ConnectionError as e:
            logger.error("Failed to connect to control plane", error=str(e))
            raise

    async def shutdown(self) -> None:
        """Gracefully shut down the client."""
        logger.info("Shutting down device agent...")
        self._running = False

        if self._heartbeat_task and not self._heartbeat_task.done():
            self._heartbeat_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._heartbeat_task

        await self.connection.shutdown()

        if self.sio.connected:
            await self.sio.disconnect()

        logger.info("Device agent shutdown complete")
