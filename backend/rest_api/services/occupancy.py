"""
Occupancy tracking.

Derives the room view of one date: which tables are bound to a
confirmed/arrived reservation, who sits there, and how full the room is.
Recomputed from a fresh read on every dashboard refresh; never used to
decide a write.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date

from rest_api.models import DiningTable, Reservation
from rest_api.services.scheduling import parse_time
from shared.constants import ReservationStatus
from shared.logging import reservations_logger as logger


@dataclass(frozen=True)
class OccupancyDetail:
    reservation_id: int
    time: str
    guests: int
    high_chairs: int
    customer_name: str
    notes: str | None
    status: str


@dataclass(frozen=True)
class Occupancy:
    occupied_table_ids: set[int]
    details: dict[int, OccupancyDetail]
    occupancy_percent: int
    total_capacity: int
    occupied_seats: int
    high_chairs_used: int = 0
    high_chairs_available: int = 0
    orphan_table_ids: set[int] = field(default_factory=set)

    @property
    def free_seats(self) -> int:
        return max(0, self.total_capacity - self.occupied_seats)


def occupancy_percent(occupied_seats: int, total_capacity: int) -> int:
    """round(occupied / capacity * 100); 0 for an empty room."""
    if total_capacity <= 0:
        return 0
    return round(occupied_seats / total_capacity * 100)


def compute_occupancy(
    target_date: date,
    reservations: Iterable[Reservation],
    tables: Iterable[DiningTable],
    total_high_chairs: int = 0,
) -> Occupancy:
    """
    Room view for a date.

    Capacity counts active tables only. A table booked at several times of
    the day shows its latest reservation.
    High chairs are a day-wide pool shared by every active reservation.
    """
    active = [
        r for r in reservations
        if r.reservation_date == target_date and r.status in ReservationStatus.OCCUPYING
    ]
    active.sort(key=lambda r: (parse_time(r.reservation_time), r.id or 0))

    details: dict[int, OccupancyDetail] = {}
    high_chairs_used = 0
    for reservation in active:
        high_chairs_used += reservation.high_chairs or 0
        for table_id in reservation.table_ids:
            previous = details.get(table_id)
            if previous is not None and previous.time == reservation.reservation_time:
                logger.warning(
                    "Table claimed twice at the same slot",
                    table_id=table_id,
                    date=target_date,
                    reservation_ids=[previous.reservation_id, reservation.id],
                )
            details[table_id] = OccupancyDetail(
                reservation_id=reservation.id,
                time=reservation.reservation_time,
                guests=reservation.guests,
                high_chairs=reservation.high_chairs or 0,
                customer_name=reservation.customer_name,
                notes=reservation.notes,
                status=reservation.status,
            )

    seats_by_table = {t.id: t.seats for t in tables if t.is_active}
    occupied_ids = set(details)
    occupied_seats = sum(seats_by_table.get(tid, 0) for tid in occupied_ids)
    total_capacity = sum(seats_by_table.values())

    return Occupancy(
        occupied_table_ids=occupied_ids,
        details=details,
        occupancy_percent=occupancy_percent(occupied_seats, total_capacity),
        total_capacity=total_capacity,
        occupied_seats=occupied_seats,
        high_chairs_used=high_chairs_used,
        high_chairs_available=max(0, total_high_chairs - high_chairs_used),
        orphan_table_ids=occupied_ids - set(seats_by_table),
    )
