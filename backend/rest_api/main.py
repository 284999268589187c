"""
REST API main application.
Entry point for the reservation engine's FastAPI server.
"""

import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text

from rest_api.db import engine, get_db_context, SessionLocal
from rest_api.models import Base
from rest_api.routers.config import router as config_router
from rest_api.routers.public import router as public_router
from rest_api.routers.reservations import router as reservations_router
from rest_api.services.domain import ReservationChange, ReservationService
from rest_api.services.reservation_events import announce_reservation_change
from shared.events import close_redis_pool, get_redis_pool
from shared.logging import setup_logging, rest_api_logger as logger
from shared.rate_limit import limiter, rate_limit_exceeded_handler
from shared.settings import settings


def expire_pending_once() -> list[ReservationChange]:
    """Run one sweep of stale pending reservations in its own session."""
    with get_db_context() as db:
        return ReservationService(db).expire_stale_pending()


async def pending_sweep_loop(interval_seconds: int) -> None:
    """Periodically reject pending reservations whose slot has passed."""
    while True:
        try:
            changes = await asyncio.to_thread(expire_pending_once)
            for change in changes:
                await announce_reservation_change(change.reservation, change.event_type)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Pending sweep failed", error=str(e))
        await asyncio.sleep(interval_seconds)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.
    Runs on startup and shutdown.
    """
    setup_logging("rest-api")

    secret_errors = settings.validate_production_secrets()
    if secret_errors:
        for error in secret_errors:
            logger.error("Configuration error", error=error)
        if settings.environment == "production":
            raise RuntimeError(
                f"Production configuration errors: {'; '.join(secret_errors)}. "
                "Server will not start with insecure configuration."
            )
        else:
            logger.warning(
                "Running with insecure defaults (acceptable for development only)"
            )

    logger.info("Starting REST API", port=settings.rest_api_port, env=settings.environment)

    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created/verified")

    sweep_task = None
    if settings.pending_sweep_enabled:
        sweep_task = asyncio.create_task(
            pending_sweep_loop(settings.pending_sweep_interval_seconds)
        )
        logger.info(
            "Pending sweep started",
            interval_seconds=settings.pending_sweep_interval_seconds,
        )

    yield

    logger.info("Shutting down REST API")

    if sweep_task:
        sweep_task.cancel()
        try:
            await sweep_task
        except asyncio.CancelledError:
            pass

    await close_redis_pool()
    logger.info("Redis connection pool closed")


app = FastAPI(
    title="Reservation Engine REST API",
    description="Restaurant reservations: public booking, table allocation and room occupancy",
    version="0.1.0",
    lifespan=lifespan,
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

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


@app.get("/api/health")
def health_check():
    """Basic health check endpoint."""
    return {
        "status": "healthy",
        "service": "rest-api",
        "environment": settings.environment,
    }


@app.get("/api/health/detailed")
async def detailed_health_check():
    """
    Verifies connectivity to PostgreSQL and Redis.
    Returns 503 if any dependency is down.
    """
    checks = {
        "service": "rest-api",
        "environment": settings.environment,
        "dependencies": {},
    }
    all_healthy = True

    try:
        with SessionLocal() as db:
            db.execute(text("SELECT 1"))
        checks["dependencies"]["postgresql"] = {"status": "healthy"}
    except Exception as e:
        checks["dependencies"]["postgresql"] = {"status": "unhealthy", "error": str(e)}
        all_healthy = False

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
# Include Routers
# =============================================================================

app.include_router(public_router)
# Config before reservations so /config is never read as a reservation id
app.include_router(config_router)
app.include_router(reservations_router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "rest_api.main:app",
        host="0.0.0.0",
        port=settings.rest_api_port,
        reload=True,
    )
