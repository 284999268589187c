"""
WebSocket Gateway main application.
Pushes reservation events to the staff dashboards of each tenant.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket, WebSocketDisconnect, Query, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from shared.auth import verify_jwt
from shared.constants import STAFF_ROLES
from shared.events import close_redis_pool, get_redis_pool
from shared.logging import setup_logging, ws_gateway_logger as logger
from shared.settings import settings
from ws_gateway.connection_manager import ConnectionManager
from ws_gateway.redis_subscriber import subscribe_to_reservation_events


manager = ConnectionManager()

# Heartbeats and acks are tiny; anything larger is dropped
MAX_MESSAGE_SIZE = 64 * 1024

HEARTBEAT_CLEANUP_INTERVAL = 30  # seconds


async def dispatch_event(event: dict) -> int:
    """
    Forward a validated event to the dashboards of its tenant.

    Returns:
        Number of sockets that received it.
    """
    try:
        sent = await manager.send_to_tenant(int(event["tenant_id"]), event)
        if sent > 0:
            logger.debug(
                "Dispatched event to tenant",
                event_type=event.get("type"),
                tenant_id=event["tenant_id"],
                clients=sent,
            )
        return sent
    except Exception as e:
        logger.error(
            "Error processing event in dispatch",
            event_type=event.get("type"),
            error=str(e),
            exc_info=True,
        )
        return 0


async def start_redis_subscriber():
    """Run the reservation subscriber until cancelled."""
    try:
        await subscribe_to_reservation_events(dispatch_event)
    except asyncio.CancelledError:
        pass
    except Exception as e:
        logger.error("Redis subscriber error", error=str(e), exc_info=True)


async def start_heartbeat_cleanup():
    """Periodically close connections without a recent heartbeat."""
    while True:
        try:
            await asyncio.sleep(HEARTBEAT_CLEANUP_INTERVAL)
            cleaned = await manager.cleanup_stale_connections()
            if cleaned > 0:
                logger.info("Cleaned up stale connections", count=cleaned)
        except asyncio.CancelledError:
            break
        except Exception as e:
            logger.error("Error in heartbeat cleanup", error=str(e))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.
    Starts the Redis subscriber and the heartbeat cleanup task.
    """
    setup_logging("ws-gateway")

    logger.info("Starting WebSocket Gateway", port=settings.ws_gateway_port, env=settings.environment)

    subscriber_task = asyncio.create_task(start_redis_subscriber())
    cleanup_task = asyncio.create_task(start_heartbeat_cleanup())

    yield

    logger.info("Shutting down WebSocket Gateway")
    subscriber_task.cancel()
    cleanup_task.cancel()
    try:
        await subscriber_task
    except asyncio.CancelledError:
        pass
    try:
        await cleanup_task
    except asyncio.CancelledError:
        pass

    await manager.shutdown()

    await close_redis_pool()
    logger.info("Redis connection pool closed")


app = FastAPI(
    title="Reservation Engine WebSocket Gateway",
    description="Real-time reservation updates for restaurant staff",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.cors_origins.split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# Health Check
# =============================================================================


@app.get("/ws/health")
def health_check():
    """Basic health check endpoint."""
    return {
        "status": "healthy",
        "service": "ws-gateway",
        "environment": settings.environment,
        **manager.get_stats(),
    }


@app.get("/ws/health/detailed")
async def detailed_health_check():
    """Verifies Redis connectivity; 503 if it is down."""
    checks = {
        "service": "ws-gateway",
        "environment": settings.environment,
        "connections": manager.get_stats(),
        "dependencies": {},
    }
    all_healthy = True

    try:
        redis = await get_redis_pool()
        await redis.ping()
        checks["dependencies"]["redis"] = {"status": "healthy"}
    except Exception as e:
        checks["dependencies"]["redis"] = {"status": "unhealthy", "error": str(e)}
        all_healthy = False

    checks["status"] = "healthy" if all_healthy else "degraded"

    if not all_healthy:
        return JSONResponse(content=checks, status_code=503)

    return checks


# =============================================================================
# WebSocket Endpoints
# =============================================================================


@app.websocket("/ws/dashboard")
async def dashboard_websocket(
    websocket: WebSocket,
    token: str = Query(..., description="JWT token"),
):
    """
    WebSocket endpoint for the reservations dashboard.

    Staff receive every RESERVATION_* event of their tenant and refresh
    the day list and room view on each one. Clients send "ping" as
    heartbeat and get "pong" back.
    """
    try:
        claims = verify_jwt(token)
    except HTTPException as e:
        await websocket.close(code=4001, reason=str(e.detail))
        return

    if claims.get("type") == "refresh":
        await websocket.close(code=4001, reason="Refresh tokens cannot be used for WebSocket authentication")
        return

    roles = claims.get("roles", [])
    if not any(role in STAFF_ROLES for role in roles):
        await websocket.close(code=4003, reason="Insufficient role")
        return

    tenant_id = claims.get("tenant_id")
    if not isinstance(tenant_id, int) or tenant_id <= 0:
        await websocket.close(code=4003, reason="No tenant access")
        return

    user_id = int(claims["sub"])

    try:
        await manager.connect(websocket, user_id, tenant_id)
    except ConnectionError as e:
        logger.warning("Dashboard connection refused", user_id=user_id, reason=str(e))
        return

    logger.info("Dashboard connected", user_id=user_id, tenant_id=tenant_id)

    try:
        while True:
            data = await websocket.receive_text()

            if len(data) > MAX_MESSAGE_SIZE:
                logger.warning(
                    "Message size exceeded limit from dashboard",
                    user_id=user_id,
                    size=len(data),
                    max_size=MAX_MESSAGE_SIZE,
                )
                await websocket.close(code=1009, reason="Message too large")
                break

            manager.record_heartbeat(websocket)
            if data == "ping" or data == '{"type":"ping"}':
                await websocket.send_text("pong")
    except WebSocketDisconnect:
        pass
    finally:
        await manager.disconnect(websocket)
        logger.info("Dashboard disconnected", user_id=user_id, tenant_id=tenant_id)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "ws_gateway.main:app",
        host="0.0.0.0",
        port=settings.ws_gateway_port,
        reload=True,
    )
