"""
Table Allocation.

Given a date/time, the table inventory and the reservations of that date,
decides which tables are free and proposes minimal covering selections.

A table is occupied only at the exact reserved time string: there is no
seating-duration window, so a table booked at 20:00 is free at 20:30.

The O(n^2) pair enumeration assumes dining rooms of tens of tables.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date
from itertools import combinations

from rest_api.models import DiningTable, Reservation
from shared.constants import ReservationStatus
from shared.settings import settings


CAPACITY_OK = "ok"
CAPACITY_WARNING = "warning"


@dataclass(frozen=True)
class Availability:
    """Free active tables and ids of tables bound at the slot."""

    available: list[DiningTable]
    occupied: list[int]


@dataclass(frozen=True)
class TablePair:
    tables: tuple[DiningTable, DiningTable]
    total_seats: int


@dataclass(frozen=True)
class Suggestions:
    single: list[DiningTable]
    pairs: list[TablePair]


@dataclass(frozen=True)
class CapacityCheck:
    """
    Soft validation of a staff table selection.

    level is "ok" or "warning"; a warning is reported to staff but never
    blocks the confirmation.
    """

    level: str
    selected_seats: int
    missing_seats: int = 0
    high_chairs_missing: int = 0
    reasons: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.level == CAPACITY_OK


def occupied_table_ids(
    reservation_date: date,
    reservation_time: str,
    reservations: Iterable[Reservation],
    exclude_reservation_id: int | None = None,
) -> set[int]:
    """Tables bound to a confirmed/arrived reservation at exactly (date, time)."""
    occupied: set[int] = set()
    for reservation in reservations:
        if reservation.id is not None and reservation.id == exclude_reservation_id:
            continue
        if (
            reservation.status in ReservationStatus.OCCUPYING
            and reservation.reservation_date == reservation_date
            and reservation.reservation_time == reservation_time
        ):
            occupied.update(reservation.table_ids)
    return occupied


def compute_availability(
    reservation_date: date,
    reservation_time: str,
    tables: Iterable[DiningTable],
    reservations: Iterable[Reservation],
) -> Availability:
    """
    Split the inventory into free and occupied tables for a slot.

    Inactive tables are never offered; `occupied` lists every bound table id
    whether or not the table is still active.
    """
    occupied = occupied_table_ids(reservation_date, reservation_time, reservations)
    available = [
        t for t in _ordered(tables)
        if t.is_active and t.id not in occupied
    ]
    return Availability(available=available, occupied=sorted(occupied))


def suggest_tables(
    guests: int,
    available: Sequence[DiningTable],
    pair_limit: int | None = None,
) -> Suggestions:
    """
    Suggest selections covering a party.

    single: every table with seats >= guests, best fit first.
    pairs: two-table combinations with combined seats >= guests where
    neither table alone covers the party, smallest total first, truncated
    to `pair_limit`.
    """
    limit = settings.pair_suggestion_limit if pair_limit is None else pair_limit
    ordered = _ordered(available)

    single = sorted(
        (t for t in ordered if t.seats >= guests),
        key=lambda t: (t.seats, t.name, t.id),
    )

    undersized = [t for t in ordered if t.seats < guests]
    pairs = [
        TablePair(tables=(a, b), total_seats=a.seats + b.seats)
        for a, b in combinations(undersized, 2)
        if a.seats + b.seats >= guests
    ]
    pairs.sort(key=lambda p: (p.total_seats, p.tables[0].id, p.tables[1].id))

    return Suggestions(single=single, pairs=pairs[:max(limit, 0)])


def is_capacity_sufficient(selection: Iterable[DiningTable], guests: int) -> bool:
    """True if the selected tables seat the whole party."""
    return sum(t.seats for t in selection) >= guests


def check_capacity(
    selection: Iterable[DiningTable],
    guests: int,
    high_chairs: int = 0,
    high_chairs_available: int | None = None,
) -> CapacityCheck:
    """
    Tagged soft validation for a staff selection.

    Under-capacity selections and high chair shortages produce a warning
    with a human-readable reason each.
    """
    selected_seats = sum(t.seats for t in selection)
    reasons: list[str] = []

    missing_seats = max(0, guests - selected_seats)
    if missing_seats:
        reasons.append(f"Faltan {missing_seats} lugar(es) para {guests} comensales")

    high_chairs_missing = 0
    if high_chairs and high_chairs_available is not None:
        high_chairs_missing = max(0, high_chairs - high_chairs_available)
        if high_chairs_missing:
            reasons.append(
                f"Sillas para niños insuficientes ({high_chairs_available} disponibles, {high_chairs} solicitadas)"
            )

    return CapacityCheck(
        level=CAPACITY_WARNING if reasons else CAPACITY_OK,
        selected_seats=selected_seats,
        missing_seats=missing_seats,
        high_chairs_missing=high_chairs_missing,
        reasons=reasons,
    )


def _ordered(tables: Iterable[DiningTable]) -> list[DiningTable]:
    return sorted(tables, key=lambda t: (t.display_order or 0, t.id))
