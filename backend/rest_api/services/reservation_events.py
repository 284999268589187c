"""
Post-commit announcements for reservation changes.

Called by the routers after the service has committed: publishes the
dashboard refresh event and hands the e-mail to the notification stream.
Both are best-effort; failures are logged and never undo the commit.
"""

from __future__ import annotations

from rest_api.models import Reservation
from rest_api.services.notifications import ReservationNotification, send_notification
from shared.events import (
    get_redis_pool,
    publish_config_event,
    publish_reservation_event,
)
from shared.logging import get_logger

logger = get_logger(__name__)


async def announce_reservation_change(
    reservation: Reservation,
    event_type: str,
    notification: ReservationNotification | None = None,
    actor_user_id: int | None = None,
    actor_role: str | None = None,
) -> bool:
    """
    Fan out a committed reservation change.

    Returns:
        True if a notification was due and queued, False otherwise.
    """
    try:
        redis_client = await get_redis_pool()
    except Exception as e:
        logger.error(
            "Redis unavailable, reservation change not announced",
            reservation_id=reservation.id,
            event_type=event_type,
            error=str(e),
        )
        return False

    try:
        receivers = await publish_reservation_event(
            redis_client=redis_client,
            event_type=event_type,
            tenant_id=reservation.tenant_id,
            reservation_id=reservation.id,
            reservation_date=reservation.reservation_date,
            reservation_time=reservation.reservation_time,
            status=reservation.status,
            table_ids=reservation.table_ids,
            actor_user_id=actor_user_id,
            actor_role=actor_role,
        )
        logger.debug(
            "Reservation event published",
            event_type=event_type,
            reservation_id=reservation.id,
            receivers=receivers,
        )
    except Exception as e:
        logger.error(
            f"Failed to publish {event_type} event",
            reservation_id=reservation.id,
            error=str(e),
        )

    if notification is None:
        return False
    return await send_notification(redis_client, notification)


async def announce_config_change(
    tenant_id: int,
    changed: str,
    entity_id: int | None = None,
    actor_user_id: int | None = None,
) -> None:
    """Tell dashboards that tables or shifts changed."""
    try:
        redis_client = await get_redis_pool()
        await publish_config_event(
            redis_client,
            tenant_id=tenant_id,
            changed=changed,
            entity_id=entity_id,
            actor_user_id=actor_user_id,
        )
    except Exception as e:
        logger.error(
            "Failed to publish RESERVATION_CONFIG_UPDATED event",
            tenant_id=tenant_id,
            changed=changed,
            error=str(e),
        )
