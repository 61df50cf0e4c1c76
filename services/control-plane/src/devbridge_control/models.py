"""Request and response models for the connection API."""

from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict, Field

from devbridge_control.errors import ValidationError
from devbridge_shared.models import BackendKind


class ConnectionRequestBody(BaseModel):
    """JSON body of POST/DELETE /api/connection.

    Fields are optional here so that a missing device id is reported as a
    400 by the orchestrator rather than as a schema error.
    """

    model_config = ConfigDict(populate_by_name=True)

    device_id: str | None = Field(default=None, alias="deviceId")
    bridge_type: str | None = Field(default=None, alias="bridgeType")


class ConnectionCreatedResponse(BaseModel):
    """Response after a tunnel has been opened."""

    model_config = ConfigDict(populate_by_name=True)

    message: str
    address: str
    bridge_type: BackendKind = Field(serialization_alias="bridgeType")
    service_protocol: str | None = Field(default=None, serialization_alias="serviceProtocol")


@dataclass(frozen=True)
class TunnelRequest:
    """A validated create/delete request."""

    device_id: str
    backend_kind: BackendKind = BackendKind.RELAY

    @classmethod
    def from_body(cls, body: ConnectionRequestBody) -> "TunnelRequest":
        """Validate an API body.

        Raises:
            ValidationError: If the device id is missing or the bridge type unknown
        """
        device_id = (body.device_id or "").strip()
        if not device_id:
            raise ValidationError("The deviceId is required.")
        try:
            kind = BackendKind.parse(body.bridge_type)
        except ValueError as e:
            raise ValidationError(str(e)) from e
        return cls(device_id=device_id, backend_kind=kind)
