"""
Reservation lifecycle.

    pending   -> confirmed | rejected
    confirmed -> arrived   | cancelled
    rejected, cancelled, arrived are terminal.

Each legal transition carries its side effects: what happens to the table
assignments and which e-mail (if any) the notification collaborator sends.
The persistence work is done by ReservationService; this module only
decides.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

from rest_api.models import Reservation
from shared.constants import (
    NotificationKind,
    RESERVATION_TRANSITION_ROLES,
    ReservationStatus,
    STAFF_ROLES,
    validate_reservation_transition,
)
from shared.exceptions import InsufficientRoleError, InvalidTransitionError


class AssignmentEffect(str, Enum):
    CREATE = "create"  # one row per selected table, selection must be non-empty
    CLEAR = "clear"
    KEEP = "keep"


@dataclass(frozen=True)
class Transition:
    source: str
    target: str
    assignments: AssignmentEffect
    notification: str | None
    timestamp_field: str


TRANSITIONS: dict[tuple[str, str], Transition] = {
    (ReservationStatus.PENDING, ReservationStatus.CONFIRMED): Transition(
        ReservationStatus.PENDING, ReservationStatus.CONFIRMED,
        AssignmentEffect.CREATE, NotificationKind.CONFIRMED, "confirmed_at",
    ),
    (ReservationStatus.PENDING, ReservationStatus.REJECTED): Transition(
        ReservationStatus.PENDING, ReservationStatus.REJECTED,
        AssignmentEffect.CLEAR, NotificationKind.REJECTED, "rejected_at",
    ),
    (ReservationStatus.CONFIRMED, ReservationStatus.CANCELLED): Transition(
        ReservationStatus.CONFIRMED, ReservationStatus.CANCELLED,
        AssignmentEffect.CLEAR, NotificationKind.CANCELLED, "cancelled_at",
    ),
    (ReservationStatus.CONFIRMED, ReservationStatus.ARRIVED): Transition(
        ReservationStatus.CONFIRMED, ReservationStatus.ARRIVED,
        AssignmentEffect.KEEP, None, "arrived_at",
    ),
}


def is_terminal(status: str) -> bool:
    return status in ReservationStatus.TERMINAL


def get_transition(
    current_status: str,
    target_status: str,
    roles: list[str] | None = None,
    reservation_id: int | None = None,
) -> Transition:
    """
    Resolve a requested transition from the persisted status.

    Args:
        roles: Staff roles of the caller; None skips the role check
            (system jobs such as the stale pending sweep).

    Raises:
        InvalidTransitionError: Terminal or incompatible source state (409).
        InsufficientRoleError: Caller may not perform this transition (403).
    """
    if not validate_reservation_transition(current_status, target_status):
        raise InvalidTransitionError(
            "reserva", current_status, target_status, reservation_id=reservation_id,
        )

    if roles is not None:
        allowed = RESERVATION_TRANSITION_ROLES.get((current_status, target_status), STAFF_ROLES)
        if not allowed.intersection(roles):
            raise InsufficientRoleError(sorted(allowed), reservation_id=reservation_id)

    return TRANSITIONS[(current_status, target_status)]


def apply_status(
    reservation: Reservation,
    transition: Transition,
    actor_user_id: int | None = None,
    now: datetime | None = None,
) -> None:
    """Move the reservation to the transition's target and stamp it."""
    stamp = now or datetime.now(timezone.utc)
    reservation.status = transition.target
    setattr(reservation, transition.timestamp_field, stamp)
    reservation.handled_by_id = actor_user_id
