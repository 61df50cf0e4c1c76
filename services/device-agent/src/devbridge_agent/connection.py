"""Device side tunnel connection state.

    disconnected -> starting -> connected -> stopping -> disconnected

Transitions hold one lock, so a repeated or concurrent create cannot start a
second forwarder and a delete cannot interleave with a start.
"""

import asyncio
from collections.abc import Callable

import structlog

from devbridge_agent.config import AgentConfig
from devbridge_agent.forwarder import ForwarderProcess
from devbridge_shared.models import (
    STATUS_ERROR,
    STATUS_NO_CONTENT,
    STATUS_OK,
    BackendKind,
    ConnectionState,
    RpcResult,
)

logger = structlog.get_logger()

ForwarderFactory = Callable[[BackendKind], ForwarderProcess]


class ConnectionStateMachine:
    """Owns the local forwarder and the connection state of this device."""

    def __init__(
        self,
        device_id: str,
        service_protocol: str,
        service_port: int,
        forwarder_factory: ForwarderFactory,
    ) -> None:
        self.device_id = device_id
        self.service_protocol = service_protocol
        self.service_port = service_port
        self._forwarder_factory = forwarder_factory
        self._forwarder: ForwarderProcess | None = None
        self._lock = asyncio.Lock()
        self.state = ConnectionState.DISCONNECTED
        self.backend: BackendKind | None = None

    @classmethod
    def from_config(cls, config: AgentConfig) -> "ConnectionStateMachine":
        def factory(kind: BackendKind) -> ForwarderProcess:
            return ForwarderProcess(
                config.forwarder_command(kind),
                env=config.forwarder_environment(kind),
                startup_grace=config.forwarder_startup_grace,
                stop_timeout=config.forwarder_stop_timeout,
            )

        return cls(
            device_id=config.device_id,
            service_protocol=config.service_protocol,
            service_port=config.service_port,
            forwarder_factory=factory,
        )

    @property
    def connected(self) -> bool:
        return self.state == ConnectionState.CONNECTED

    def _executed(self, method: str) -> str:
        return f"Executed direct method: {method} for Hybrid Connection: {self.device_id}"

    async def open(self, kind: BackendKind, method: str) -> RpcResult:
        """Start the forwarder for a backend unless one is already running."""
        async with self._lock:
            log = logger.bind(device_id=self.device_id, method=method, backend=kind.value)
            log.info("Received request to create connection", state=self.state.value)

            if self.state == ConnectionState.CONNECTED:
                if kind != self.backend:
                    log.warning(
                        "Already connected through another backend",
                        active_backend=self.backend.value if self.backend else None,
                    )
            else:
                self.state = ConnectionState.STARTING
                forwarder = self._forwarder_factory(kind)
                log.info(
                    "Starting remote forwarder",
                    service_protocol=self.service_protocol,
                    service_port=self.service_port,
                )
                try:
                    await forwarder.start()
                except Exception as e:
                    self.state = ConnectionState.DISCONNECTED
                    log.error("Unable to start remote forwarder", error=str(e))
                    return RpcResult(
                        status=STATUS_ERROR,
                        payload={
                            "result": "Unable to start Remote Forwarder for Hybrid Connection: "
                            f"{self.device_id}"
                        },
                    )
                self._forwarder = forwarder
                self.backend = kind
                self.state = ConnectionState.CONNECTED

            return RpcResult(
                status=STATUS_OK,
                payload={
                    "result": self._executed(method),
                    "serviceProtocol": self.service_protocol,
                    "servicePort": str(self.service_port),
                },
            )

    async def close(self, method: str) -> RpcResult:
        """Stop the forwarder if one is running."""
        async with self._lock:
            log = logger.bind(device_id=self.device_id, method=method)
            log.info("Received request to delete connection", state=self.state.value)

            if self.state == ConnectionState.CONNECTED and self._forwarder is not None:
                self.state = ConnectionState.STOPPING
                log.info("Stopping remote forwarder")
                try:
                    await self._forwarder.stop()
                except Exception as e:
                    self.state = ConnectionState.CONNECTED
                    log.error("Unable to stop remote forwarder", error=str(e))
                    return RpcResult(
                        status=STATUS_ERROR,
                        payload={
                            "result": "Unable to stop Remote Forwarder for Hybrid Connection: "
                            f"{self.device_id}"
                        },
                    )
                self._forwarder = None
                self.backend = None
                self.state = ConnectionState.DISCONNECTED

            return RpcResult(status=STATUS_NO_CONTENT, payload={"result": self._executed(method)})

    async def shutdown(self) -> None:
        """Stop any active forwarder on agent exit."""
        async with self._lock:
            if self._forwarder is None:
                return
            try:
                await self._forwarder.stop()
            except Exception as e:
                logger.warning("Failed to stop forwarder on shutdown", error=str(e))
            self._forwarder = None
            self.backend = None
            self.state = ConnectionState.DISCONNECTED
