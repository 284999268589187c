"""
Reservations router.
Staff dashboard: day list, room view, table suggestions and the
reservation lifecycle actions.

Every action commits first, then announces: dashboards get the event and
the customer e-mail is handed to the notification stream. A failed
announcement never undoes the committed change.
"""

from datetime import date
from typing import Any

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from rest_api.db import get_db
from rest_api.models import DiningTable, Reservation
from rest_api.services.allocation import CapacityCheck
from rest_api.services.domain import ReservationChange, ReservationService
from rest_api.services.reservation_events import announce_reservation_change
from rest_api.services.scheduling import normalize_time
from shared.auth import actor_of, current_user_context, require_roles, tenant_of
from shared.constants import STAFF_ROLES
from shared.logging import reservations_logger as logger
from shared.schemas import (
    AcceptRequest,
    AvailabilityOutput,
    CapacityCheckOutput,
    DayOverviewOutput,
    OccupancyDetailOutput,
    OccupancyOutput,
    PairSuggestionOutput,
    RejectRequest,
    ReservationOutput,
    SuggestionsOutput,
    TableOutput,
    TransitionResponse,
)


router = APIRouter(prefix="/api/reservations", tags=["reservations"])


# =============================================================================
# Output helpers
# =============================================================================


def reservation_output(reservation: Reservation) -> ReservationOutput:
    return ReservationOutput(
        id=reservation.id,
        customer_name=reservation.customer_name,
        customer_email=reservation.customer_email,
        customer_phone=reservation.customer_phone,
        guests=reservation.guests,
        high_chairs=reservation.high_chairs,
        date=reservation.reservation_date,
        time=reservation.reservation_time,
        notes=reservation.notes,
        status=reservation.status,
        rejection_reason=reservation.rejection_reason,
        table_ids=reservation.table_ids,
        created_at=reservation.created_at,
        confirmed_at=reservation.confirmed_at,
        arrived_at=reservation.arrived_at,
    )


def _tables_output(tables: list[DiningTable]) -> list[TableOutput]:
    return [TableOutput.model_validate(t) for t in tables]


def _capacity_output(check: CapacityCheck | None) -> CapacityCheckOutput | None:
    if check is None:
        return None
    return CapacityCheckOutput(
        level=check.level,
        reasons=list(check.reasons),
        selected_seats=check.selected_seats,
        missing_seats=check.missing_seats,
        high_chairs_missing=check.high_chairs_missing,
    )


def _actor_role(ctx: dict[str, Any]) -> str | None:
    roles = ctx.get("roles") or []
    return roles[0] if roles else None


async def _announce(change: ReservationChange, ctx: dict[str, Any]) -> TransitionResponse:
    user_id, _ = actor_of(ctx)
    notified = await announce_reservation_change(
        change.reservation,
        change.event_type,
        notification=change.notification,
        actor_user_id=user_id,
        actor_role=_actor_role(ctx),
    )
    return TransitionResponse(
        reservation=reservation_output(change.reservation),
        capacity_check=_capacity_output(change.capacity_check),
        notification_sent=notified,
    )


# =============================================================================
# Queries
# =============================================================================


@router.get("", response_model=DayOverviewOutput)
def list_reservations(
    target_date: date = Query(..., alias="date"),
    db: Session = Depends(get_db),
    ctx: dict[str, Any] = Depends(current_user_context),
) -> DayOverviewOutput:
    """Reservations of a day sorted by time, with pending/confirmed counters."""
    require_roles(ctx, STAFF_ROLES)
    overview = ReservationService(db).list_for_date(tenant_of(ctx), target_date)
    return DayOverviewOutput(
        date=overview.date,
        reservations=[reservation_output(r) for r in overview.reservations],
        pending_count=overview.pending_count,
        confirmed_count=overview.confirmed_count,
        total_pending=overview.total_pending,
    )


@router.get("/availability", response_model=AvailabilityOutput)
def get_availability(
    target_date: date = Query(..., alias="date"),
    time: str = Query(...),
    db: Session = Depends(get_db),
    ctx: dict[str, Any] = Depends(current_user_context),
) -> AvailabilityOutput:
    """Active tables free at an exact slot, plus the ids already bound there."""
    require_roles(ctx, STAFF_ROLES)
    availability = ReservationService(db).get_availability(tenant_of(ctx), target_date, time)
    return AvailabilityOutput(
        date=target_date,
        time=normalize_time(time),
        available=_tables_output(availability.available),
        occupied_table_ids=sorted(availability.occupied),
    )


@router.get("/occupancy", response_model=OccupancyOutput)
def get_occupancy(
    target_date: date = Query(..., alias="date"),
    db: Session = Depends(get_db),
    ctx: dict[str, Any] = Depends(current_user_context),
) -> OccupancyOutput:
    """Room view: which tables are taken on the date and by whom."""
    require_roles(ctx, STAFF_ROLES)
    occupancy = ReservationService(db).get_occupancy(tenant_of(ctx), target_date)
    return OccupancyOutput(
        date=target_date,
        occupied_table_ids=sorted(occupancy.occupied_table_ids),
        details={
            table_id: OccupancyDetailOutput(
                reservation_id=detail.reservation_id,
                time=detail.time,
                guests=detail.guests,
                high_chairs=detail.high_chairs,
                customer_name=detail.customer_name,
                notes=detail.notes,
                status=detail.status,
            )
            for table_id, detail in occupancy.details.items()
        },
        occupancy_percent=occupancy.occupancy_percent,
        total_capacity=occupancy.total_capacity,
        occupied_seats=occupancy.occupied_seats,
        free_seats=occupancy.free_seats,
        high_chairs_used=occupancy.high_chairs_used,
        high_chairs_available=occupancy.high_chairs_available,
    )


@router.get("/{reservation_id}/suggestions", response_model=SuggestionsOutput)
def get_suggestions(
    reservation_id: int,
    db: Session = Depends(get_db),
    ctx: dict[str, Any] = Depends(current_user_context),
) -> SuggestionsOutput:
    """Free tables at the reservation's slot with best-fit singles and pairs."""
    require_roles(ctx, STAFF_ROLES)
    result = ReservationService(db).get_suggestions(tenant_of(ctx), reservation_id)
    return SuggestionsOutput(
        reservation_id=result.reservation.id,
        guests=result.reservation.guests,
        high_chairs=result.reservation.high_chairs,
        high_chairs_available=result.high_chairs_available,
        available=_tables_output(result.availability.available),
        single=_tables_output(result.suggestions.single),
        pairs=[
            PairSuggestionOutput(
                tables=_tables_output(list(pair.tables)),
                total_seats=pair.total_seats,
            )
            for pair in result.suggestions.pairs
        ],
    )


# =============================================================================
# Lifecycle actions
# =============================================================================


@router.post("/{reservation_id}/accept", response_model=TransitionResponse)
async def accept_reservation(
    reservation_id: int,
    body: AcceptRequest,
    db: Session = Depends(get_db),
    ctx: dict[str, Any] = Depends(current_user_context),
) -> TransitionResponse:
    """
    Confirm a pending reservation on the selected tables.

    Capacity shortfalls come back as a warning in capacity_check and do not
    block. A table already bound at the same slot answers 409.
    """
    require_roles(ctx, STAFF_ROLES)
    user_id, _ = actor_of(ctx)
    change = ReservationService(db).accept_with_tables(
        tenant_of(ctx),
        reservation_id,
        body.table_ids,
        roles=ctx.get("roles", []),
        actor_user_id=user_id,
    )
    return await _announce(change, ctx)


@router.post("/{reservation_id}/reject", response_model=TransitionResponse)
async def reject_reservation(
    reservation_id: int,
    body: RejectRequest | None = None,
    db: Session = Depends(get_db),
    ctx: dict[str, Any] = Depends(current_user_context),
) -> TransitionResponse:
    """Reject a pending reservation. The reason reaches the customer e-mail."""
    require_roles(ctx, STAFF_ROLES)
    user_id, _ = actor_of(ctx)
    change = ReservationService(db).reject(
        tenant_of(ctx),
        reservation_id,
        reason=body.reason if body else None,
        roles=ctx.get("roles", []),
        actor_user_id=user_id,
    )
    return await _announce(change, ctx)


@router.post("/{reservation_id}/cancel", response_model=TransitionResponse)
async def cancel_reservation(
    reservation_id: int,
    db: Session = Depends(get_db),
    ctx: dict[str, Any] = Depends(current_user_context),
) -> TransitionResponse:
    """Cancel a confirmed reservation and release its tables."""
    require_roles(ctx, STAFF_ROLES)
    user_id, _ = actor_of(ctx)
    change = ReservationService(db).cancel(
        tenant_of(ctx),
        reservation_id,
        roles=ctx.get("roles", []),
        actor_user_id=user_id,
    )
    return await _announce(change, ctx)


@router.post("/{reservation_id}/arrive", response_model=TransitionResponse)
async def mark_arrived(
    reservation_id: int,
    db: Session = Depends(get_db),
    ctx: dict[str, Any] = Depends(current_user_context),
) -> TransitionResponse:
    """Seat the party. Tables stay bound; no e-mail is sent."""
    require_roles(ctx, STAFF_ROLES)
    user_id, _ = actor_of(ctx)
    change = ReservationService(db).mark_arrived(
        tenant_of(ctx),
        reservation_id,
        roles=ctx.get("roles", []),
        actor_user_id=user_id,
    )
    logger.debug("Arrival recorded", reservation_id=reservation_id, actor_user_id=user_id)
    return await _announce(change, ctx)
