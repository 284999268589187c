"""
Tests for the dashboard WebSocket gateway.

Tests verify:
- Connection indexes stay consistent on connect/disconnect
- Per-user connection cap
- Tenant fan-out counts only live sockets
- Heartbeat cleanup and shutdown
- Event validation before dispatch
"""

import time
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from starlette.websockets import WebSocketState

from ws_gateway.connection_manager import ConnectionManager
from ws_gateway.redis_subscriber import validate_event_schema


def make_ws(connected: bool = True) -> MagicMock:
    ws = MagicMock()
    state = WebSocketState.CONNECTED if connected else WebSocketState.DISCONNECTED
    ws.client_state = state
    ws.application_state = state
    ws.accept = AsyncMock()
    ws.send_json = AsyncMock()
    ws.close = AsyncMock()
    return ws


class TestConnectionIndexes:
    @pytest.mark.asyncio
    async def test_connect_and_disconnect(self):
        manager = ConnectionManager()
        ws = make_ws()

        await manager.connect(ws, user_id=7, tenant_id=1)

        ws.accept.assert_awaited_once()
        assert manager.get_stats() == {
            "total_connections": 1,
            "users_connected": 1,
            "tenants_with_connections": 1,
        }

        await manager.disconnect(ws)

        assert manager.by_user == {}
        assert manager.by_tenant == {}
        assert manager.total_connections == 0

    @pytest.mark.asyncio
    async def test_disconnect_unknown_socket_is_noop(self):
        manager = ConnectionManager()
        await manager.disconnect(make_ws())
        assert manager.total_connections == 0

    @pytest.mark.asyncio
    async def test_connection_cap_per_user(self):
        manager = ConnectionManager()
        for _ in range(ConnectionManager.MAX_CONNECTIONS_PER_USER):
            await manager.connect(make_ws(), user_id=7, tenant_id=1)

        extra = make_ws()
        with pytest.raises(ConnectionError):
            await manager.connect(extra, user_id=7, tenant_id=1)

        extra.close.assert_awaited_once()
        assert extra.close.await_args.kwargs["code"] == 1008
        assert manager.total_connections == ConnectionManager.MAX_CONNECTIONS_PER_USER

    @pytest.mark.asyncio
    async def test_refuses_during_shutdown(self):
        manager = ConnectionManager()
        await manager.shutdown()

        ws = make_ws()
        with pytest.raises(ConnectionError):
            await manager.connect(ws, user_id=7, tenant_id=1)
        ws.accept.assert_not_awaited()


class TestTenantFanOut:
    @pytest.mark.asyncio
    async def test_send_to_tenant_counts_live_sockets(self):
        manager = ConnectionManager()
        live, dead, other = make_ws(), make_ws(), make_ws()
        await manager.connect(live, user_id=7, tenant_id=1)
        await manager.connect(dead, user_id=8, tenant_id=1)
        await manager.connect(other, user_id=9, tenant_id=2)
        dead.client_state = WebSocketState.DISCONNECTED

        sent = await manager.send_to_tenant(1, {"type": "RESERVATION_CREATED"})

        assert sent == 1
        live.send_json.assert_awaited_once_with({"type": "RESERVATION_CREATED"})
        dead.send_json.assert_not_awaited()
        other.send_json.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failed_send_does_not_stop_others(self):
        manager = ConnectionManager()
        broken, ok = make_ws(), make_ws()
        broken.send_json.side_effect = RuntimeError("socket gone")
        await manager.connect(broken, user_id=7, tenant_id=1)
        await manager.connect(ok, user_id=8, tenant_id=1)

        assert await manager.send_to_tenant(1, {"type": "x"}) == 1

    @pytest.mark.asyncio
    async def test_unknown_tenant(self):
        assert await ConnectionManager().send_to_tenant(42, {"type": "x"}) == 0


class TestHeartbeat:
    @pytest.mark.asyncio
    async def test_stale_connections_closed(self):
        manager = ConnectionManager()
        stale, fresh = make_ws(), make_ws()
        await manager.connect(stale, user_id=7, tenant_id=1)
        await manager.connect(fresh, user_id=8, tenant_id=1)
        manager._last_heartbeat[stale] = time.time() - ConnectionManager.HEARTBEAT_TIMEOUT - 5

        cleaned = await manager.cleanup_stale_connections()

        assert cleaned == 1
        stale.close.assert_awaited_once()
        assert manager.total_connections == 1

    @pytest.mark.asyncio
    async def test_heartbeat_keeps_connection(self):
        manager = ConnectionManager()
        ws = make_ws()
        await manager.connect(ws, user_id=7, tenant_id=1)
        manager._last_heartbeat[ws] = time.time() - ConnectionManager.HEARTBEAT_TIMEOUT - 5

        manager.record_heartbeat(ws)

        assert manager.get_stale_connections() == []

    @pytest.mark.asyncio
    async def test_shutdown_closes_everything(self):
        manager = ConnectionManager()
        for user_id in (7, 8, 9):
            await manager.connect(make_ws(), user_id=user_id, tenant_id=1)

        closed = await manager.shutdown()

        assert closed == 3
        assert manager.total_connections == 0
        assert manager.is_shutting_down()


class TestEventValidation:
    def test_valid_event(self):
        event = {"type": "RESERVATION_CONFIRMED", "tenant_id": 1, "entity": {"reservation_id": 5}}
        assert validate_event_schema(event) == (True, None)

    @pytest.mark.parametrize("event", [
        {"tenant_id": 1},
        {"type": "RESERVATION_CREATED"},
        {"type": "RESERVATION_CREATED", "tenant_id": "1"},
        {"type": "RESERVATION_CREATED", "tenant_id": True},
        {"type": "RESERVATION_CREATED", "tenant_id": 1, "entity": [1, 2]},
        ["not", "a", "dict"],
    ])
    def test_invalid_events(self, event):
        valid, error = validate_event_schema(event)
        assert valid is False
        assert error

    def test_unknown_type_passes(self):
        assert validate_event_schema({"type": "SOMETHING_NEW", "tenant_id": 1})[0] is True


class TestDispatch:
    @pytest.mark.asyncio
    async def test_dispatch_targets_event_tenant(self):
        from ws_gateway import main

        fake_manager = MagicMock()
        fake_manager.send_to_tenant = AsyncMock(return_value=2)

        with patch.object(main, "manager", fake_manager):
            sent = await main.dispatch_event({"type": "RESERVATION_CANCELLED", "tenant_id": 3})

        assert sent == 2
        fake_manager.send_to_tenant.assert_awaited_once_with(
            3, {"type": "RESERVATION_CANCELLED", "tenant_id": 3},
        )

    @pytest.mark.asyncio
    async def test_dispatch_error_is_contained(self):
        from ws_gateway import main

        fake_manager = MagicMock()
        fake_manager.send_to_tenant = AsyncMock(side_effect=RuntimeError("boom"))

        with patch.object(main, "manager", fake_manager):
            assert await main.dispatch_event({"type": "RESERVATION_CANCELLED", "tenant_id": 3}) == 0
