"""Tests for the agent RPC handler."""

import pytest

from devbridge_agent.rpc_handler import RPCHandler
from devbridge_shared.models import BackendKind, ConnectionState


class TestRPCHandlerInit:
    """Tests for RPCHandler initialization."""

    def test_handlers_registered(self, state_machine) -> None:
        handler = RPCHandler(state_machine)

        assert set(handler._handlers) == {
            "CreateConnection",
            "CreateWebPubSubConnection",
            "DeleteConnection",
        }


class TestRPCHandlerDispatch:
    """Tests for RPC method dispatch."""

    async def test_unknown_method(self, state_machine) -> None:
        handler = RPCHandler(state_machine)

        with pytest.raises(ValueError, match="Unknown RPC method"):
            await handler.handle("Reboot", {})

    async def test_create_relay(self, state_machine, forwarders) -> None:
        handler = RPCHandler(state_machine)

        result = await handler.handle("CreateConnection")

        assert result.status == 200
        assert forwarders[0].kind is BackendKind.RELAY

    async def test_create_webpubsub(self, state_machine, forwarders) -> None:
        handler = RPCHandler(state_machine)

        result = await handler.handle("CreateWebPubSubConnection", {})

        assert result.status == 200
        assert "CreateWebPubSubConnection" in result.payload["result"]
        assert forwarders[0].kind is BackendKind.WEBPUBSUB

    async def test_delete(self, state_machine) -> None:
        handler = RPCHandler(state_machine)
        await handler.handle("CreateConnection")

        result = await handler.handle("DeleteConnection")

        assert result.status == 204
        assert state_machine.state is ConnectionState.DISCONNECTED
