"""Tunnel connection routes."""

from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Depends, Response, status
from fastapi.responses import JSONResponse

from devbridge_control.deps import get_hub, get_orchestrator, get_provisioner
from devbridge_control.errors import ProvisioningError
from devbridge_control.models import ConnectionRequestBody
from devbridge_control.orchestrator import TunnelOrchestrator, TunnelOutcome
from devbridge_control.provisioning import ResourceProvisioner
from devbridge_control.rpc import DeviceHub

router = APIRouter(prefix="/api/connection", tags=["connection"])
logger = structlog.get_logger()


def _to_response(outcome: TunnelOutcome) -> Response:
    if outcome.status_code == status.HTTP_204_NO_CONTENT:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return JSONResponse(status_code=outcome.status_code, content=outcome.body)


@router.post("")
async def create_connection(
    orchestrator: Annotated[TunnelOrchestrator, Depends(get_orchestrator)],
    body: ConnectionRequestBody | None = None,
) -> Response:
    """Open a tunnel to a device and provision its bridge."""
    outcome = await orchestrator.create_tunnel(body or ConnectionRequestBody())
    return _to_response(outcome)


@router.delete("")
async def delete_connection(
    orchestrator: Annotated[TunnelOrchestrator, Depends(get_orchestrator)],
    body: ConnectionRequestBody | None = None,
) -> Response:
    """Close a device tunnel and remove its bridge."""
    outcome = await orchestrator.delete_tunnel(body or ConnectionRequestBody())
    return _to_response(outcome)


@router.get("/{device_id}")
async def get_connection_status(
    device_id: str,
    hub: Annotated[DeviceHub, Depends(get_hub)],
    provisioner: Annotated[ResourceProvisioner, Depends(get_provisioner)],
    orchestrator: Annotated[TunnelOrchestrator, Depends(get_orchestrator)],
) -> dict[str, Any]:
    """Report device session state and the bridge resource."""
    bridge: dict[str, Any]
    try:
        resource = await provisioner.describe(orchestrator.resource_name)
        bridge = {
            "name": resource.name,
            "state": resource.state.value,
            "address": resource.address,
        }
    except ProvisioningError as e:
        logger.warning("Failed to describe bridge resource", device_id=device_id, error=e.message)
        bridge = {"name": orchestrator.resource_name, "state": "unknown", "error": e.message}

    return {"device": hub.device_status(device_id), "bridge": bridge}
