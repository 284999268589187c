"""
Centralized HTTP exceptions for consistent error handling.

Validation problems are 400, state and occupancy conflicts are 409 so the
dashboard can tell "fix the form" apart from "pick other tables".

Usage:
    from shared.exceptions import NotFoundError, TableUnavailableError

    raise NotFoundError("Reserva", reservation_id)
    raise TableUnavailableError([3, 4], reservation_date, "20:00")
"""

from datetime import date
from typing import Any

from fastapi import HTTPException, status

from shared.logging import get_logger

logger = get_logger(__name__)


class AppException(HTTPException):
    """
    Base exception with automatic logging.

    All custom exceptions inherit from this class so that every rejected
    request leaves a structured log line.
    """

    def __init__(
        self,
        status_code: int,
        detail: str,
        log_level: str = "warning",
        headers: dict[str, str] | None = None,
        **log_context: Any,
    ):
        log_fn = getattr(logger, log_level, logger.warning)
        log_fn(detail, status_code=status_code, **log_context)

        super().__init__(status_code=status_code, detail=detail, headers=headers)


# =============================================================================
# 404 Not Found Errors
# =============================================================================


class NotFoundError(AppException):
    """
    Entity not found error (404).

    Usage:
        raise NotFoundError("Mesa", 12)
        raise NotFoundError("Restaurante", slug, tenant_slug=slug)
    """

    def __init__(self, entity: str, entity_id: int | str | None = None, **log_context: Any):
        if entity_id is not None:
            detail = f"{entity} con ID {entity_id} no encontrado"
        else:
            detail = f"{entity} no encontrado"

        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail,
            log_level="warning",
            entity=entity,
            entity_id=entity_id,
            **log_context,
        )


class ReservationNotFoundError(NotFoundError):
    """Reservation not found (or owned by another tenant)."""

    def __init__(self, reservation_id: int | None = None, **log_context: Any):
        super().__init__("Reserva", reservation_id, **log_context)


class TenantNotFoundError(NotFoundError):
    """Unknown restaurant slug or id."""

    def __init__(self, identifier: int | str | None = None, **log_context: Any):
        super().__init__("Restaurante", identifier, **log_context)


# =============================================================================
# 403 Forbidden Errors
# =============================================================================


class ForbiddenError(AppException):
    """
    Authorization/permission error (403).

    Usage:
        raise ForbiddenError("confirmar reservas")
    """

    def __init__(self, action: str | None = None, **log_context: Any):
        if action:
            detail = f"No autorizado para {action}"
        else:
            detail = "Acceso denegado"

        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
            log_level="warning",
            action=action,
            **log_context,
        )


class InsufficientRoleError(ForbiddenError):
    """User doesn't have the required role."""

    def __init__(self, required_roles: list[str], **log_context: Any):
        roles_str = ", ".join(required_roles)
        super().__init__(
            f"realizar esta acción (requiere rol: {roles_str})",
            required_roles=required_roles,
            **log_context,
        )


# =============================================================================
# 400 Bad Request Errors
# =============================================================================


class ValidationError(AppException):
    """
    Input validation error (400).

    Usage:
        raise ValidationError("La fecha no puede estar en el pasado", field="date")
    """

    def __init__(self, detail: str, **log_context: Any):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
            log_level="warning",
            **log_context,
        )


class BookingClosedError(ValidationError):
    """The restaurant is not accepting online reservations."""

    def __init__(self, tenant_id: int, **log_context: Any):
        super().__init__(
            "El restaurante no acepta reservas en este momento",
            tenant_id=tenant_id,
            **log_context,
        )


class SlotNotOfferedError(ValidationError):
    """Requested time is not among the slots currently offered for the date."""

    def __init__(self, reservation_date: date, reservation_time: str, **log_context: Any):
        super().__init__(
            f"El horario {reservation_time} no está disponible para el {reservation_date.isoformat()}",
            reservation_date=reservation_date,
            reservation_time=reservation_time,
            **log_context,
        )


# =============================================================================
# 409 Conflict Errors
# =============================================================================


class ConflictError(AppException):
    """
    Resource conflict error (409).

    Usage:
        raise ConflictError("La mesa tiene reservas futuras")
    """

    def __init__(self, detail: str, **log_context: Any):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
            log_level="warning",
            **log_context,
        )


class InvalidTransitionError(ConflictError):
    """Status transition not allowed from the persisted state."""

    def __init__(self, entity: str, from_status: str, to_status: str, **log_context: Any):
        self.from_status = from_status
        self.to_status = to_status
        detail = f"Transición inválida de '{from_status}' a '{to_status}' para {entity}"
        super().__init__(detail, entity=entity, from_status=from_status, to_status=to_status, **log_context)


class TableUnavailableError(ConflictError):
    """One or more tables are already bound to an active reservation at that slot."""

    def __init__(
        self,
        table_ids: list[int],
        reservation_date: date,
        reservation_time: str,
        **log_context: Any,
    ):
        self.table_ids = sorted(table_ids)
        ids = ", ".join(str(t) for t in self.table_ids) or "?"
        detail = (
            f"Mesa(s) {ids} ya no disponible(s) para el "
            f"{reservation_date.isoformat()} a las {reservation_time}"
        )
        super().__init__(
            detail,
            table_ids=self.table_ids,
            reservation_date=reservation_date,
            reservation_time=reservation_time,
            **log_context,
        )


class TableInUseError(ConflictError):
    """Table still has future confirmed/arrived reservations."""

    def __init__(self, table_id: int, upcoming: int, **log_context: Any):
        super().__init__(
            f"La mesa {table_id} tiene {upcoming} reserva(s) futura(s) asignada(s)",
            table_id=table_id,
            upcoming=upcoming,
            **log_context,
        )


# =============================================================================
# 502 / 503 Errors
# =============================================================================


class ExternalServiceError(AppException):
    """External service error (502 or 503). Retryable by the caller."""

    def __init__(
        self,
        service: str,
        is_unavailable: bool = False,
        retry_after: int | None = None,
        **log_context: Any,
    ):
        if is_unavailable:
            status_code = status.HTTP_503_SERVICE_UNAVAILABLE
            detail = f"Servicio {service} temporalmente no disponible"
        else:
            status_code = status.HTTP_502_BAD_GATEWAY
            detail = f"Error al comunicarse con {service}"

        headers = None
        if retry_after:
            headers = {"Retry-After": str(retry_after)}

        super().__init__(
            status_code=status_code,
            detail=detail,
            log_level="error",
            headers=headers,
            service=service,
            **log_context,
        )
