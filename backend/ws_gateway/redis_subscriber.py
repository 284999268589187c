"""
Redis pub/sub subscriber for the WebSocket gateway.
Listens for reservation events and dispatches them to connected dashboards.
Uses the shared Redis pool and validates every message before dispatch.
"""

from __future__ import annotations

import asyncio
import json
from typing import Awaitable, Callable, Any

from shared.events import RESERVATION_CHANNEL_PATTERN, RESERVATION_EVENT_TYPES, get_redis_pool
from shared.logging import get_logger

logger = get_logger(__name__)


REQUIRED_EVENT_FIELDS = {"type", "tenant_id"}
VALID_EVENT_TYPES = set(RESERVATION_EVENT_TYPES)


def validate_event_schema(data: dict[str, Any]) -> tuple[bool, str | None]:
    """
    Validate an incoming event.

    Returns (is_valid, error_message). Unknown event types are logged but
    let through so newer publishers keep working.
    """
    if not isinstance(data, dict):
        return False, "Event must be a dictionary"

    missing = REQUIRED_EVENT_FIELDS - set(data.keys())
    if missing:
        return False, f"Missing required fields: {missing}"

    event_type = data.get("type")
    if event_type not in VALID_EVENT_TYPES:
        logger.warning("Unknown event type received", event_type=event_type)

    tenant_id = data.get("tenant_id")
    if not isinstance(tenant_id, int) or isinstance(tenant_id, bool):
        return False, f"tenant_id must be an integer, got {type(tenant_id).__name__}"

    entity = data.get("entity")
    if entity is not None and not isinstance(entity, dict):
        return False, f"entity must be an object, got {type(entity).__name__}"

    return True, None


async def run_subscriber(
    channels: list[str],
    on_message: Callable[[dict], Awaitable[None]],
) -> None:
    """
    Subscribe to Redis channel patterns and dispatch messages.

    Runs until cancelled. A malformed or failing message is logged and
    skipped; it never stops the loop.
    """
    redis_pool = await get_redis_pool()
    pubsub = redis_pool.pubsub()

    await pubsub.psubscribe(*channels)

    logger.info("Redis subscriber started", channels=channels)

    try:
        async for msg in pubsub.listen():
            if msg is None:
                continue

            # Skip subscription confirmations
            if msg.get("type") not in ("message", "pmessage"):
                continue

            try:
                data = json.loads(msg["data"])

                is_valid, error = validate_event_schema(data)
                if not is_valid:
                    logger.warning("Invalid event schema", error=error, channel=msg.get("channel"))
                    continue

                await on_message(data)
            except json.JSONDecodeError as e:
                logger.warning("Failed to parse Redis message", error=str(e))
            except Exception as e:
                logger.error("Error handling Redis message", error=str(e), exc_info=True)

    except asyncio.CancelledError:
        logger.info("Redis subscriber cancelled")
        raise
    finally:
        await pubsub.punsubscribe(*channels)


async def subscribe_to_reservation_events(
    on_message: Callable[[dict], Awaitable[None]],
) -> None:
    """Subscribe to the reservation channel of every tenant."""
    await run_subscriber([RESERVATION_CHANNEL_PATTERN], on_message)
