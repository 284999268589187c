"""
Event system for real-time dashboard refresh via Redis pub/sub.
Defines event schema and publishing utilities.

Events carry no ordering guarantee. Dashboards treat each one as
"something changed for this tenant" and re-fetch their views.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, asdict, field
from datetime import date, datetime, timezone
from typing import Any

import redis.asyncio as redis

from shared.constants import ReservationStatus
from shared.settings import REDIS_URL


# =============================================================================
# Event Types
# =============================================================================

# Reservation lifecycle events
RESERVATION_CREATED = "RESERVATION_CREATED"
RESERVATION_CONFIRMED = "RESERVATION_CONFIRMED"
RESERVATION_REJECTED = "RESERVATION_REJECTED"
RESERVATION_CANCELLED = "RESERVATION_CANCELLED"
RESERVATION_ARRIVED = "RESERVATION_ARRIVED"
RESERVATION_EXPIRED = "RESERVATION_EXPIRED"

# Room editor / configuration wizard
RESERVATION_CONFIG_UPDATED = "RESERVATION_CONFIG_UPDATED"

RESERVATION_EVENT_TYPES: frozenset[str] = frozenset({
    RESERVATION_CREATED,
    RESERVATION_CONFIRMED,
    RESERVATION_REJECTED,
    RESERVATION_CANCELLED,
    RESERVATION_ARRIVED,
    RESERVATION_EXPIRED,
    RESERVATION_CONFIG_UPDATED,
})

# Target status -> event emitted after the transition commits
STATUS_EVENT_TYPES: dict[str, str] = {
    ReservationStatus.PENDING: RESERVATION_CREATED,
    ReservationStatus.CONFIRMED: RESERVATION_CONFIRMED,
    ReservationStatus.REJECTED: RESERVATION_REJECTED,
    ReservationStatus.CANCELLED: RESERVATION_CANCELLED,
    ReservationStatus.ARRIVED: RESERVATION_ARRIVED,
}


# =============================================================================
# Event Schema
# =============================================================================


@dataclass
class Event:
    """
    Unified event schema for reservation change notifications.

    The 'entity' field contains event-specific data (reservation id, date,
    time, table ids). The 'actor' field identifies who triggered the event.
    """

    type: str
    tenant_id: int
    entity: dict[str, Any] = field(default_factory=dict)
    actor: dict[str, Any] = field(default_factory=dict)
    ts: str | None = None
    v: int = 1  # Schema version

    def __post_init__(self) -> None:
        if not self.type or not isinstance(self.type, str):
            raise ValueError("Event type must be a non-empty string")

        if not isinstance(self.tenant_id, int) or self.tenant_id <= 0:
            raise ValueError("Event tenant_id must be a positive integer")

        if self.entity is not None and not isinstance(self.entity, dict):
            raise ValueError("Event entity must be a dict or None")

        if self.actor is not None and not isinstance(self.actor, dict):
            raise ValueError("Event actor must be a dict or None")

    def to_json(self) -> str:
        """Serialize event to JSON string."""
        data = asdict(self)
        data["entity"] = data["entity"] or {}
        data["actor"] = data["actor"] or {}
        data["ts"] = data["ts"] or datetime.now(timezone.utc).isoformat()
        return json.dumps(data, ensure_ascii=False, default=str)

    @classmethod
    def from_json(cls, json_str: str) -> "Event":
        """Deserialize event from JSON string. Validation runs in __post_init__."""
        data = json.loads(json_str)
        return cls(**data)


# =============================================================================
# Redis Channel Naming
# =============================================================================


def channel_tenant_reservations(tenant_id: int) -> str:
    """Channel every dashboard session of a tenant listens on."""
    return f"tenant:{tenant_id}:reservations"


RESERVATION_CHANNEL_PATTERN = "tenant:*:reservations"


# =============================================================================
# Redis Connection Pool
# =============================================================================

_redis_pool: redis.Redis | None = None
_redis_pool_lock: asyncio.Lock | None = None


def _get_pool_lock() -> asyncio.Lock:
    """Get or create the pool lock (lazy initialization for event loop safety)."""
    global _redis_pool_lock
    if _redis_pool_lock is None:
        _redis_pool_lock = asyncio.Lock()
    return _redis_pool_lock


async def get_redis_pool() -> redis.Redis:
    """
    Get or create the Redis connection pool singleton.

    A double-checked asyncio.Lock keeps concurrent first callers from
    creating two pools.
    """
    global _redis_pool

    if _redis_pool is not None:
        return _redis_pool

    async with _get_pool_lock():
        if _redis_pool is None:
            _redis_pool = redis.from_url(
                REDIS_URL,
                max_connections=20,
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
            )
    return _redis_pool


async def close_redis_pool() -> None:
    """Close the Redis connection pool on application shutdown."""
    global _redis_pool, _redis_pool_lock
    if _redis_pool is not None:
        await _redis_pool.aclose()
        _redis_pool = None
    _redis_pool_lock = None


# =============================================================================
# Event Publishing
# =============================================================================


async def publish_event(
    redis_client: redis.Redis,
    channel: str,
    event: Event,
) -> int:
    """
    Publish an event to a Redis channel.

    Returns:
        Number of subscribers that received the message.
    """
    return await redis_client.publish(channel, event.to_json())


async def publish_reservation_event(
    redis_client: redis.Redis,
    event_type: str,
    tenant_id: int,
    reservation_id: int,
    reservation_date: date,
    reservation_time: str,
    status: str,
    table_ids: list[int] | None = None,
    actor_user_id: int | None = None,
    actor_role: str | None = None,
) -> int:
    """Publish a reservation lifecycle event to the tenant's dashboard channel."""
    event = Event(
        type=event_type,
        tenant_id=tenant_id,
        entity={
            "reservation_id": reservation_id,
            "date": reservation_date.isoformat(),
            "time": reservation_time,
            "status": status,
            "table_ids": table_ids or [],
        },
        actor={"user_id": actor_user_id, "role": actor_role or "SYSTEM"},
    )
    return await publish_event(redis_client, channel_tenant_reservations(tenant_id), event)


async def publish_config_event(
    redis_client: redis.Redis,
    tenant_id: int,
    changed: str,
    entity_id: int | None = None,
    actor_user_id: int | None = None,
) -> int:
    """Publish a room/shift configuration change."""
    event = Event(
        type=RESERVATION_CONFIG_UPDATED,
        tenant_id=tenant_id,
        entity={"changed": changed, "entity_id": entity_id},
        actor={"user_id": actor_user_id, "role": "ADMIN"},
    )
    return await publish_event(redis_client, channel_tenant_reservations(tenant_id), event)
