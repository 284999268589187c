"""
Reservation e-mail hand-off.

The engine only decides that an e-mail is due; rendering and delivery
belong to the notification worker reading the Redis stream
`settings.notification_stream`. Delivery is best-effort: a failed hand-off
is logged and reported, never rolled back into the reservation.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from typing import Any

import redis.asyncio as redis

from rest_api.models import Reservation, ReservationSettings, Tenant
from shared.constants import NotificationKind
from shared.logging import get_logger
from shared.settings import settings

logger = get_logger(__name__)


@dataclass(frozen=True)
class ReservationNotification:
    kind: str
    tenant_id: int
    restaurant_name: str
    restaurant_slug: str
    recipient: str
    reservation: dict[str, Any]

    def to_fields(self) -> dict[str, str]:
        """Flat string fields as stored in the stream entry."""
        data = asdict(self)
        return {
            "kind": self.kind,
            "tenant_id": str(self.tenant_id),
            "recipient": self.recipient,
            "payload": json.dumps(data, ensure_ascii=False, default=str),
        }


def reservation_payload(reservation: Reservation) -> dict[str, Any]:
    return {
        "id": reservation.id,
        "customer_name": reservation.customer_name,
        "customer_email": reservation.customer_email,
        "customer_phone": reservation.customer_phone,
        "guests": reservation.guests,
        "high_chairs": reservation.high_chairs,
        "date": reservation.reservation_date.isoformat(),
        "time": reservation.reservation_time,
        "notes": reservation.notes,
        "status": reservation.status,
        "rejection_reason": reservation.rejection_reason,
        "table_ids": reservation.table_ids,
    }


def build_notification(
    kind: str | None,
    reservation: Reservation,
    tenant: Tenant,
    config: ReservationSettings | None,
) -> ReservationNotification | None:
    """
    Address the e-mail for a lifecycle event.

    "new" goes to the restaurant's notification address, everything else
    to the customer. Returns None when nothing is due or nobody can receive it.
    """
    if kind is None:
        return None
    if kind not in NotificationKind.ALL:
        raise ValueError(f"Unknown notification kind '{kind}'")

    if kind == NotificationKind.NEW:
        recipient = config.notification_email if config else None
    else:
        recipient = reservation.customer_email

    if not recipient:
        logger.info(
            "No recipient for reservation notification",
            kind=kind,
            reservation_id=reservation.id,
            tenant_id=tenant.id,
        )
        return None

    return ReservationNotification(
        kind=kind,
        tenant_id=tenant.id,
        restaurant_name=tenant.name,
        restaurant_slug=tenant.slug,
        recipient=recipient,
        reservation=reservation_payload(reservation),
    )


async def send_notification(
    redis_client: redis.Redis,
    notification: ReservationNotification,
) -> bool:
    """
    Append the notification to the stream.

    Returns:
        True if the entry was written, False if the hand-off failed.
    """
    try:
        entry_id = await redis_client.xadd(
            settings.notification_stream,
            notification.to_fields(),
            maxlen=settings.notification_stream_maxlen,
            approximate=True,
        )
    except Exception as e:
        logger.error(
            "Failed to hand off reservation notification",
            kind=notification.kind,
            reservation_id=notification.reservation.get("id"),
            error=str(e),
        )
        return False

    logger.info(
        "Reservation notification queued",
        kind=notification.kind,
        reservation_id=notification.reservation.get("id"),
        entry_id=entry_id,
    )
    return True
