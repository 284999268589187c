"""
Centralized constants for the reservation engine.

Usage:
    from shared.constants import Roles, ReservationStatus, STAFF_ROLES

    if reservation.status in ReservationStatus.OCCUPYING:
        ...
"""

from typing import Final


# =============================================================================
# User Roles
# =============================================================================


class Roles:
    """Staff role constants (claims issued by the auth service)."""

    ADMIN: Final[str] = "ADMIN"
    MANAGER: Final[str] = "MANAGER"
    WAITER: Final[str] = "WAITER"


MANAGEMENT_ROLES: Final[frozenset[str]] = frozenset({Roles.ADMIN, Roles.MANAGER})
STAFF_ROLES: Final[frozenset[str]] = frozenset({Roles.ADMIN, Roles.MANAGER, Roles.WAITER})


# =============================================================================
# Reservation Lifecycle
# =============================================================================


class ReservationStatus:
    """Reservation status values."""

    PENDING: Final[str] = "pending"
    CONFIRMED: Final[str] = "confirmed"
    REJECTED: Final[str] = "rejected"
    CANCELLED: Final[str] = "cancelled"
    ARRIVED: Final[str] = "arrived"

    ALL: Final[list[str]] = [PENDING, CONFIRMED, REJECTED, CANCELLED, ARRIVED]
    # Statuses that hold their tables at (date, time)
    OCCUPYING: Final[list[str]] = [CONFIRMED, ARRIVED]
    TERMINAL: Final[list[str]] = [REJECTED, CANCELLED, ARRIVED]


RESERVATION_TRANSITIONS: Final[dict[str, list[str]]] = {
    ReservationStatus.PENDING: [ReservationStatus.CONFIRMED, ReservationStatus.REJECTED],
    ReservationStatus.CONFIRMED: [ReservationStatus.ARRIVED, ReservationStatus.CANCELLED],
    ReservationStatus.REJECTED: [],  # Terminal state
    ReservationStatus.CANCELLED: [],  # Terminal state
    ReservationStatus.ARRIVED: [],  # Terminal state
}

# Format: (from_status, to_status) -> allowed roles
RESERVATION_TRANSITION_ROLES: Final[dict[tuple[str, str], frozenset[str]]] = {
    (ReservationStatus.PENDING, ReservationStatus.CONFIRMED): STAFF_ROLES,
    (ReservationStatus.PENDING, ReservationStatus.REJECTED): STAFF_ROLES,
    (ReservationStatus.CONFIRMED, ReservationStatus.ARRIVED): STAFF_ROLES,
    (ReservationStatus.CONFIRMED, ReservationStatus.CANCELLED): STAFF_ROLES,
}

# Written to rejection_reason by the stale pending sweep
EXPIRED_REJECTION_REASON: Final[str] = "EXPIRED"


class NotificationKind:
    """Kinds of reservation e-mails the notification collaborator renders."""

    NEW: Final[str] = "new"  # to the restaurant
    CONFIRMED: Final[str] = "confirmed"  # to the customer
    REJECTED: Final[str] = "rejected"
    CANCELLED: Final[str] = "cancelled"

    ALL: Final[list[str]] = [NEW, CONFIRMED, REJECTED, CANCELLED]


# =============================================================================
# Validation Constants
# =============================================================================


class Limits:
    """Validation limits."""

    MIN_GUESTS: Final[int] = 1
    MAX_GUESTS: Final[int] = 100
    MAX_HIGH_CHAIRS: Final[int] = 20
    MAX_TABLE_SEATS: Final[int] = 50

    MAX_NAME_LENGTH: Final[int] = 120
    MAX_PHONE_LENGTH: Final[int] = 40
    MAX_NOTES_LENGTH: Final[int] = 1000
    MAX_REJECTION_REASON_LENGTH: Final[int] = 500

    # Booking horizon
    MAX_DAYS_AHEAD: Final[int] = 365


# Weekdays stored on shifts: 0=Sunday ... 6=Saturday
WEEKDAYS: Final[tuple[int, ...]] = (0, 1, 2, 3, 4, 5, 6)

# "HH:MM", 24h
TIME_PATTERN: Final[str] = r"^([01]\d|2[0-3]):[0-5]\d$"


class ErrorMessages:
    """Standardized error messages in Spanish."""

    NOT_AUTHENTICATED: Final[str] = "No autenticado"
    NO_TENANT_ACCESS: Final[str] = "No tienes acceso a este restaurante"

    PAST_DATE: Final[str] = "La fecha de la reserva no puede estar en el pasado"
    TOO_FAR_AHEAD: Final[str] = "La fecha de la reserva está demasiado lejos"
    HIGH_CHAIRS_EXCEED_GUESTS: Final[str] = "Las sillas para niños no pueden superar el número de comensales"
    EMPTY_TABLE_SELECTION: Final[str] = "Debe seleccionar al menos una mesa"
    TABLES_NOT_ASSIGNABLE: Final[str] = "Mesas inexistentes o inactivas: {ids}"
    INVALID_SHIFT_RANGE: Final[str] = "El turno '{name}' debe terminar después de empezar"
    DUPLICATE_TABLE_NAME: Final[str] = "Nombre de mesa duplicado: {name}"


# =============================================================================
# Validation Helpers
# =============================================================================


def validate_reservation_transition(current_status: str, new_status: str) -> bool:
    """
    Validate that a reservation status transition is allowed.

    Returns True if transition is valid, False otherwise.
    """
    allowed = RESERVATION_TRANSITIONS.get(current_status, [])
    return new_status in allowed


def get_allowed_reservation_transitions(current_status: str, roles: list[str]) -> list[str]:
    """
    Get allowed reservation transitions for a given status and user roles.

    Returns list of status values the user can transition to.
    """
    allowed_by_status = RESERVATION_TRANSITIONS.get(current_status, [])
    result = []

    for new_status in allowed_by_status:
        key = (current_status, new_status)
        allowed_roles = RESERVATION_TRANSITION_ROLES.get(key, STAFF_ROLES)
        if any(role in allowed_roles for role in roles):
            result.append(new_status)

    return result
