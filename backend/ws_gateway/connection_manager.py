"""
WebSocket connection manager.
Tracks dashboard connections organized by user and tenant, with
heartbeat tracking and graceful shutdown.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

from fastapi import WebSocket
from starlette.websockets import WebSocketState

logger = logging.getLogger(__name__)

MAX_CONNECTIONS_PER_USER = 5


def _is_ws_connected(ws: WebSocket) -> bool:
    """True if the socket is ready to send/receive messages."""
    return ws.client_state == WebSocketState.CONNECTED and ws.application_state == WebSocketState.CONNECTED


class ConnectionManager:
    """
    Manages dashboard WebSocket connections.

    Connections are indexed by:
    - user_id: to cap connections per staff member
    - tenant_id: reservation events are tenant-wide

    Index mutations happen under an asyncio.Lock. Empty index entries are
    removed so idle tenants do not accumulate.
    """

    HEARTBEAT_TIMEOUT = 60  # seconds without any client message
    MAX_CONNECTIONS_PER_USER = MAX_CONNECTIONS_PER_USER

    def __init__(self):
        self._shutdown = False
        self.by_user: dict[int, set[WebSocket]] = {}
        self.by_tenant: dict[int, set[WebSocket]] = {}
        self._ws_to_user: dict[WebSocket, int] = {}
        self._ws_to_tenant: dict[WebSocket, int] = {}
        self._last_heartbeat: dict[WebSocket, float] = {}
        self._lock = asyncio.Lock()

    async def connect(
        self,
        websocket: WebSocket,
        user_id: int,
        tenant_id: int,
        timeout: float = 5.0,
    ) -> None:
        """
        Accept a WebSocket connection and register it.

        Raises:
            ConnectionError: Shutting down, accept timed out, or the user
                already holds MAX_CONNECTIONS_PER_USER sockets.
        """
        if self._shutdown:
            raise ConnectionError("Server is shutting down")

        try:
            await asyncio.wait_for(websocket.accept(), timeout=timeout)
        except asyncio.TimeoutError:
            raise ConnectionError("WebSocket accept timed out")

        if user_id in self.by_user and len(self.by_user[user_id]) >= self.MAX_CONNECTIONS_PER_USER:
            await websocket.close(code=1008, reason="Too many connections")
            raise ConnectionError(f"User {user_id} exceeded max connections ({self.MAX_CONNECTIONS_PER_USER})")

        async with self._lock:
            self._last_heartbeat[websocket] = time.time()

            if user_id not in self.by_user:
                self.by_user[user_id] = set()
            self.by_user[user_id].add(websocket)
            self._ws_to_user[websocket] = user_id

            if tenant_id not in self.by_tenant:
                self.by_tenant[tenant_id] = set()
            self.by_tenant[tenant_id].add(websocket)
            self._ws_to_tenant[websocket] = tenant_id

    async def disconnect(self, websocket: WebSocket) -> None:
        """Remove a WebSocket connection from all registrations."""
        async with self._lock:
            self._last_heartbeat.pop(websocket, None)

            user_id = self._ws_to_user.pop(websocket, None)
            if user_id is not None and user_id in self.by_user:
                self.by_user[user_id].discard(websocket)
                if not self.by_user[user_id]:
                    del self.by_user[user_id]

            tenant_id = self._ws_to_tenant.pop(websocket, None)
            if tenant_id is not None and tenant_id in self.by_tenant:
                self.by_tenant[tenant_id].discard(websocket)
                if not self.by_tenant[tenant_id]:
                    del self.by_tenant[tenant_id]

    async def send_to_tenant(self, tenant_id: int, payload: dict[str, Any]) -> int:
        """
        Send a message to every dashboard of a tenant.

        Returns:
            Number of connections that received the message.
        """
        connections = list(self.by_tenant.get(tenant_id, []))
        sent = 0
        for ws in connections:
            if not _is_ws_connected(ws):
                logger.debug("Skipping send to disconnected socket for tenant %s", tenant_id)
                continue
            try:
                await ws.send_json(payload)
                sent += 1
            except Exception as e:
                logger.warning(
                    "Failed to send message to tenant %s: %s",
                    tenant_id,
                    str(e),
                )
        return sent

    async def send_to_user(self, user_id: int, payload: dict[str, Any]) -> int:
        """Send a message to all connections of one staff member."""
        connections = list(self.by_user.get(user_id, []))
        sent = 0
        for ws in connections:
            if not _is_ws_connected(ws):
                continue
            try:
                await ws.send_json(payload)
                sent += 1
            except Exception as e:
                logger.warning("Failed to send message to user %s: %s", user_id, str(e))
        return sent

    @property
    def total_connections(self) -> int:
        return len(self._ws_to_user)

    def get_stats(self) -> dict[str, Any]:
        return {
            "total_connections": self.total_connections,
            "users_connected": len(self.by_user),
            "tenants_with_connections": len(self.by_tenant),
        }

    # =========================================================================
    # Heartbeat tracking
    # =========================================================================

    def record_heartbeat(self, websocket: WebSocket) -> None:
        self._last_heartbeat[websocket] = time.time()

    def get_stale_connections(self) -> list[WebSocket]:
        """Connections without a heartbeat within HEARTBEAT_TIMEOUT."""
        now = time.time()
        return [
            ws for ws, last_time in list(self._last_heartbeat.items())
            if now - last_time > self.HEARTBEAT_TIMEOUT
        ]

    async def cleanup_stale_connections(self) -> int:
        """
        Close and remove stale connections.

        Returns:
            Number of connections cleaned up.
        """
        stale = self.get_stale_connections()
        for ws in stale:
            try:
                await ws.close(code=1001, reason="Heartbeat timeout")
            except Exception as e:
                logger.warning("Failed to close stale connection: %s", str(e))
            await self.disconnect(ws)
        return len(stale)

    async def shutdown(self) -> int:
        """
        Close every connection and reject new ones.

        Returns:
            Number of connections closed.
        """
        self._shutdown = True
        logger.info("WebSocket manager shutting down...")

        all_connections: set[WebSocket] = set()
        async with self._lock:
            for connections in self.by_user.values():
                all_connections.update(connections)

        closed = 0
        for ws in all_connections:
            try:
                await ws.close(code=1001, reason="Server shutdown")
                closed += 1
            except Exception as e:
                logger.warning("Failed to close connection during shutdown: %s", str(e))
            await self.disconnect(ws)

        logger.info("WebSocket shutdown complete. Closed %d connections.", closed)
        return closed

    def is_shutting_down(self) -> bool:
        return self._shutdown
