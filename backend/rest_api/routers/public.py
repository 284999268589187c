"""
Public booking router.
Unauthenticated endpoints behind the restaurant's booking form.
Rate limited per client IP.
"""

from datetime import date

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from rest_api.db import get_db
from rest_api.services.domain import ReservationService
from rest_api.services.reservation_events import announce_reservation_change
from shared.logging import public_logger as logger
from shared.rate_limit import limiter
from shared.schemas import BookingRequest, BookingResponse, SlotsOutput
from shared.settings import settings


router = APIRouter(prefix="/api/public", tags=["public"])


@router.get("/{slug}/slots", response_model=SlotsOutput)
@limiter.limit(settings.public_slots_rate_limit)
def get_slots(
    request: Request,
    slug: str,
    target_date: date = Query(..., alias="date"),
    db: Session = Depends(get_db),
) -> SlotsOutput:
    """
    Slots offered for a date.

    Today's slots that already started are left out. A restaurant with
    reservations disabled answers is_open=false with no slots.
    """
    is_open, slots = ReservationService(db).get_public_slots(slug, target_date)
    return SlotsOutput(date=target_date, is_open=is_open, slots=slots)


@router.post(
    "/{slug}/reservations",
    response_model=BookingResponse,
    status_code=status.HTTP_201_CREATED,
)
@limiter.limit(settings.public_booking_rate_limit)
async def create_booking(
    request: Request,
    slug: str,
    body: BookingRequest,
    db: Session = Depends(get_db),
) -> BookingResponse:
    """
    Submit a reservation request.

    The reservation starts pending with no tables; staff confirm it from
    the dashboard. The restaurant is e-mailed about the new request.
    """
    change = ReservationService(db).submit_booking(slug, body)
    reservation = change.reservation

    notified = await announce_reservation_change(
        reservation,
        change.event_type,
        notification=change.notification,
    )
    if change.notification is not None and not notified:
        logger.warning(
            "Booking stored but restaurant notification not queued",
            reservation_id=reservation.id,
        )

    return BookingResponse(
        reservation_id=reservation.id,
        status=reservation.status,
        date=reservation.reservation_date,
        time=reservation.reservation_time,
    )
