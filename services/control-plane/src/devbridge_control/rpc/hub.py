"""Socket.IO hub for device agent connections.

Device agents have no inbound reachability. Each agent opens an outbound
Socket.IO connection to the `/device` namespace and receives remote method
calls over it:

- control plane -> agent: `rpc_request` {call_id, method, params}
- agent -> control plane: `rpc_response` {call_id, status, payload}

Calls are answered through per-call futures that resolve when the matching
`rpc_response` arrives, the timeout elapses, or the device disconnects.
"""

import asyncio
import secrets
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

import socketio
import structlog

from devbridge_control.errors import DeviceNotConnectedError, RpcTimeoutError, TransportError
from devbridge_shared.models import STATUS_ERROR, RpcResult

logger = structlog.get_logger()

DEVICE_NAMESPACE = "/device"
DEFAULT_RPC_TIMEOUT = 30.0


@dataclass
class _PendingCall:
    device_id: str
    sid: str
    method: str
    future: asyncio.Future[RpcResult]


@dataclass
class DeviceStatus:
    """What the hub knows about a device session."""

    device_id: str
    sid: str
    connected_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    last_seen: datetime = field(default_factory=lambda: datetime.now(UTC))
    forwarder_state: str | None = None
    backend: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "device_id": self.device_id,
            "online": True,
            "connected_at": self.connected_at.isoformat(),
            "last_seen": self.last_seen.isoformat(),
            "forwarder_state": self.forwarder_state,
            "backend": self.backend,
        }


def parse_rpc_response(data: dict[str, Any]) -> RpcResult:
    """Turn an `rpc_response` message into a result.

    A reply carrying only an error means the agent could not run the method;
    it is reported as a status 500 from the device.
    """
    if data.get("status") is None:
        error = data.get("error") or "Device returned no status"
        return RpcResult(status=STATUS_ERROR, payload={"result": str(error)})
    try:
        status = int(data["status"])
    except (TypeError, ValueError):
        return RpcResult(
            status=STATUS_ERROR,
            payload={"result": f"Device returned an invalid status: {data['status']!r}"},
        )
    return RpcResult(status=status, payload=data.get("payload"))


class DeviceHub:
    """Tracks device sessions and invokes methods on them."""

    def __init__(
        self,
        device_keys: dict[str, str],
        rpc_timeout: float = DEFAULT_RPC_TIMEOUT,
    ) -> None:
        self._device_keys = device_keys
        self.rpc_timeout = rpc_timeout
        self._sessions: dict[str, DeviceStatus] = {}
        self._sid_to_device: dict[str, str] = {}
        self._pending: dict[str, _PendingCall] = {}
        self.namespace = DeviceNamespace(self)

    def authenticate(self, device_id: str | None, token: str | None) -> bool:
        """Check a device's shared key in constant time."""
        if not device_id or not token:
            return False
        expected = self._device_keys.get(device_id)
        if expected is None:
            return False
        return secrets.compare_digest(token, expected)

    def register(self, sid: str, device_id: str) -> str | None:
        """Record a new session, returning the sid it replaces if any."""
        previous = self._sessions.get(device_id)
        old_sid = previous.sid if previous else None
        if old_sid:
            self._sid_to_device.pop(old_sid, None)
            self._fail_pending(old_sid, "reconnected")

        self._sessions[device_id] = DeviceStatus(device_id=device_id, sid=sid)
        self._sid_to_device[sid] = device_id
        return old_sid

    def unregister(self, sid: str) -> str | None:
        """Drop a session and fail the calls still waiting on it."""
        device_id = self._sid_to_device.pop(sid, None)
        if not device_id:
            return None

        session = self._sessions.get(device_id)
        if session and session.sid == sid:
            self._sessions.pop(device_id, None)

        self._fail_pending(sid, "disconnected")
        return device_id

    def _fail_pending(self, sid: str, reason: str) -> None:
        for call_id, pending in list(self._pending.items()):
            if pending.sid != sid:
                continue
            self._pending.pop(call_id, None)
            if not pending.future.done():
                pending.future.set_exception(
                    TransportError(f"Device {pending.device_id} {reason} during {pending.method}")
                )

    def device_for(self, sid: str) -> str | None:
        return self._sid_to_device.get(sid)

    def is_online(self, device_id: str) -> bool:
        return device_id in self._sessions

    def device_status(self, device_id: str) -> dict[str, Any]:
        session = self._sessions.get(device_id)
        if not session:
            return {"device_id": device_id, "online": False}
        return session.to_dict()

    def record_heartbeat(self, sid: str, data: dict[str, Any]) -> None:
        device_id = self._sid_to_device.get(sid)
        if not device_id:
            return
        session = self._sessions[device_id]
        session.last_seen = datetime.now(UTC)
        session.forwarder_state = data.get("state")
        session.backend = data.get("backend")

    def resolve(self, sid: str, data: dict[str, Any]) -> None:
        """Complete the pending call an `rpc_response` answers."""
        call_id = data.get("call_id")
        pending = self._pending.get(call_id) if isinstance(call_id, str) else None
        if pending is None:
            logger.warning("Received response for unknown RPC call", call_id=call_id)
            return

        if pending.sid != sid:
            logger.warning(
                "RPC response from a different device session",
                call_id=call_id,
                expected_device=pending.device_id,
            )
            return

        self._pending.pop(call_id, None)
        if not pending.future.done():
            pending.future.set_result(parse_rpc_response(data))

    async def invoke(
        self,
        device_id: str,
        method: str,
        params: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> RpcResult:
        """Invoke a method on a device and wait for its result.

        Args:
            device_id: Target device
            method: Device method name
            params: Method parameters
            timeout: Seconds to wait for the device, defaults to rpc_timeout

        Returns:
            The status and payload reported by the device

        Raises:
            DeviceNotConnectedError: If the device has no live session
            RpcTimeoutError: If the device does not answer in time
            TransportError: If the device disconnects while the call is pending
        """
        session = self._sessions.get(device_id)
        if session is None:
            raise DeviceNotConnectedError(device_id)

        rpc_timeout = timeout if timeout is not None else self.rpc_timeout
        call_id = f"{device_id}:{method}:{uuid4().hex[:8]}"
        future: asyncio.Future[RpcResult] = asyncio.get_running_loop().create_future()
        self._pending[call_id] = _PendingCall(
            device_id=device_id, sid=session.sid, method=method, future=future
        )

        try:
            await self.namespace.emit(
                "rpc_request",
                {"call_id": call_id, "method": method, "params": params or {}},
                to=session.sid,
            )
            logger.debug(
                "RPC call sent to device", device_id=device_id, method=method, call_id=call_id
            )
            return await asyncio.wait_for(future, timeout=rpc_timeout)
        except TimeoutError:
            raise RpcTimeoutError(device_id, method, rpc_timeout) from None
        finally:
            self._pending.pop(call_id, None)


class DeviceNamespace(socketio.AsyncNamespace):
    """Socket.IO namespace for device agent connections."""

    def __init__(self, hub: DeviceHub) -> None:
        super().__init__(DEVICE_NAMESPACE)
        self.hub = hub

    async def on_connect(
        self,
        sid: str,
        _environ: dict[str, Any],
        auth: dict[str, str] | None = None,
    ) -> bool:
        """Accept a device that presents a valid key."""
        device_id = auth.get("device_id") if auth else None
        token = auth.get("token") if auth else None
        if not self.hub.authenticate(device_id, token):
            logger.warning("Rejected device connection", sid=sid, device_id=device_id)
            return False

        old_sid = self.hub.register(sid, device_id)  # type: ignore[arg-type]
        if old_sid:
            logger.info(
                "Device reconnected, closing previous session",
                device_id=device_id,
                old_sid=old_sid,
            )
            try:
                await self.disconnect(old_sid)
            except Exception as e:
                logger.debug("Previous session already gone", old_sid=old_sid, error=str(e))

        logger.info("Device connected", device_id=device_id, sid=sid)
        return True

    async def on_disconnect(self, sid: str, *_args: Any) -> None:
        device_id = self.hub.unregister(sid)
        if device_id:
            logger.info("Device disconnected", device_id=device_id, sid=sid)

    async def on_heartbeat(self, sid: str, data: dict[str, Any]) -> None:
        self.hub.record_heartbeat(sid, data or {})

    async def on_rpc_response(self, sid: str, data: dict[str, Any]) -> None:
        self.hub.resolve(sid, data or {})
