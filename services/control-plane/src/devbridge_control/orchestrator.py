"""Tunnel lifecycle orchestration.

Create: the device must accept the tunnel before any bridge resource is
provisioned. A device that refuses (non-200) never gets a cloud resource.

Delete: best effort on both sides, in a fixed order. The device forwarder is
stopped first, then the bridge resource is removed, whatever the device said.

Every failure is translated into exactly one outcome at this boundary.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Protocol

import structlog

from devbridge_control.backends import select_backend
from devbridge_control.config import Settings
from devbridge_control.errors import DevbridgeError, RemoteRejection, UnknownError
from devbridge_control.models import ConnectionCreatedResponse, ConnectionRequestBody, TunnelRequest
from devbridge_control.provisioning import ResourceProvisioner
from devbridge_shared.models import (
    STATUS_NO_CONTENT,
    STATUS_OK,
    RpcResult,
    RPCMethods,
)

logger = structlog.get_logger()


class RpcInvoker(Protocol):
    async def invoke(
        self,
        device_id: str,
        method: str,
        params: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> RpcResult: ...


@dataclass(frozen=True)
class TunnelOutcome:
    """Single user-visible result of a tunnel operation."""

    status_code: int
    body: Any = None


def _error(status_code: int, message: str) -> TunnelOutcome:
    return TunnelOutcome(status_code=status_code, body={"error": message})


class TunnelOrchestrator:
    """Drives device RPCs and bridge provisioning for one request at a time per device."""

    def __init__(
        self,
        invoker: RpcInvoker,
        provisioner: ResourceProvisioner,
        settings: Settings,
    ) -> None:
        self.invoker = invoker
        self.provisioner = provisioner
        self.settings = settings
        self._device_locks: dict[str, asyncio.Lock] = {}

    def _get_device_lock(self, device_id: str) -> asyncio.Lock:
        if device_id not in self._device_locks:
            self._device_locks[device_id] = asyncio.Lock()
        return self._device_locks[device_id]

    @property
    def resource_name(self) -> str:
        # One name for every device, so at most one bridge exists at a time
        return self.settings.container_name

    async def create_tunnel(self, body: ConnectionRequestBody) -> TunnelOutcome:
        return await self._run("create", body)

    async def delete_tunnel(self, body: ConnectionRequestBody) -> TunnelOutcome:
        return await self._run("delete", body)

    async def _run(self, operation: str, body: ConnectionRequestBody) -> TunnelOutcome:
        try:
            request = TunnelRequest.from_body(body)
        except DevbridgeError as e:
            logger.warning("Rejected tunnel request", operation=operation, error=e.message)
            return _error(e.status_code, e.message)

        log = logger.bind(device_id=request.device_id, operation=operation)
        try:
            async with self._get_device_lock(request.device_id):
                if operation == "create":
                    return await self._create(request, log)
                return await self._delete(request, log)
        except RemoteRejection as e:
            log.error(
                "Device refused the connection",
                status=e.status_code,
                payload=e.payload,
            )
            return TunnelOutcome(status_code=e.status_code, body=e.payload)
        except DevbridgeError as e:
            log.error("Tunnel operation failed", error=e.message, error_type=type(e).__name__)
            return _error(e.status_code, e.message)
        except Exception as e:
            log.exception("Unexpected tunnel operation failure", error=str(e))
            unknown = UnknownError(str(e) or type(e).__name__)
            return _error(unknown.status_code, unknown.message)

    async def _create(self, request: TunnelRequest, log: Any) -> TunnelOutcome:
        backend = select_backend(request.backend_kind, self.settings)

        log.info("Invoking device method", method=backend.rpc_method)
        result = await self.invoker.invoke(request.device_id, backend.rpc_method)
        log.info("Device method returned", status=result.status, payload=result.payload)

        if not result.ok:
            raise RemoteRejection(result.status, result.payload)

        address = await self.provisioner.ensure_running(
            self.resource_name,
            backend.image,
            backend.build_config(request.device_id),
        )

        service_protocol = None
        if isinstance(result.payload, dict):
            service_protocol = result.payload.get("serviceProtocol")

        response = ConnectionCreatedResponse(
            message=f"Device access will be available via: http://{address}",
            address=address,
            bridge_type=backend.kind,
            service_protocol=service_protocol,
        )
        log.info("Tunnel ready", address=address, backend=backend.kind.value)
        return TunnelOutcome(
            status_code=STATUS_OK,
            body=response.model_dump(mode="json", by_alias=True),
        )

    async def _delete(self, request: TunnelRequest, log: Any) -> TunnelOutcome:
        log.info("Invoking device method", method=RPCMethods.DELETE_CONNECTION)
        try:
            result = await self.invoker.invoke(request.device_id, RPCMethods.DELETE_CONNECTION)
        except Exception as e:
            log.warning("Device teardown failed, removing bridge anyway", error=str(e))
        else:
            if result.status == STATUS_NO_CONTENT:
                log.info("Device forwarder stopped")
            else:
                log.warning(
                    "Device teardown returned an error, removing bridge anyway",
                    status=result.status,
                    payload=result.payload,
                )

        log.info("Deleting bridge resource", name=self.resource_name)
        await self.provisioner.delete(self.resource_name)
        return TunnelOutcome(status_code=STATUS_NO_CONTENT)
