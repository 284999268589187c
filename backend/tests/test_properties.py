"""
Property-based tests with Hypothesis.

Invariants of slot generation, table suggestions, availability and
occupancy that must hold for any room and any shift calendar.
"""

from datetime import date, datetime

from hypothesis import assume, given, settings, strategies as st

from rest_api.models import DiningTable, Reservation, ReservationAssignment, Shift
from rest_api.services.allocation import compute_availability, suggest_tables
from rest_api.services.occupancy import compute_occupancy
from rest_api.services.scheduling import format_time, generate_slots, parse_time, shift_applies
from tests.conftest import ALL_DAYS, ROME

DAY = date(2030, 5, 21)
TIMES = ["19:00", "19:30", "20:00", "20:30"]


@st.composite
def shifts(draw):
    start = draw(st.integers(min_value=0, max_value=23 * 60))
    length = draw(st.integers(min_value=1, max_value=6 * 60))
    end = min(start + length, 23 * 60 + 59)
    assume(end > start)
    return Shift(
        name="Turno",
        start_time=format_time(start),
        end_time=format_time(end),
        days_of_week=draw(st.lists(st.integers(min_value=0, max_value=6), min_size=1, max_size=7, unique=True)),
        is_active=draw(st.booleans()),
    )


@st.composite
def rooms(draw):
    seats = draw(st.lists(st.integers(min_value=1, max_value=12), min_size=0, max_size=10))
    return [
        DiningTable(
            id=i + 1,
            name=f"T{i + 1}",
            seats=s,
            is_active=draw(st.booleans()),
            display_order=i,
        )
        for i, s in enumerate(seats)
    ]


def booked(reservation_id, status, time, table_ids, guests=2):
    reservation = Reservation(
        id=reservation_id,
        status=status,
        guests=guests,
        high_chairs=0,
        reservation_date=DAY,
        reservation_time=time,
        customer_name="Cliente",
    )
    for table_id in table_ids:
        reservation.assignments.append(ReservationAssignment(
            table_id=table_id, reservation_date=DAY, reservation_time=time,
        ))
    return reservation


class TestSlotProperties:
    @given(calendar=st.lists(shifts(), max_size=4), interval=st.sampled_from([15, 30, 60]))
    @settings(max_examples=100)
    def test_slots_sorted_unique_and_inside_a_shift(self, calendar, interval):
        now = datetime(2030, 5, 1, 9, 0, tzinfo=ROME)

        slots = generate_slots(DAY, calendar, now=now, interval_minutes=interval)

        minutes = [parse_time(s) for s in slots]
        assert minutes == sorted(set(minutes))
        applicable = [s for s in calendar if shift_applies(s, DAY)]
        for m in minutes:
            assert any(
                parse_time(s.start_time) <= m < parse_time(s.end_time)
                for s in applicable
            )

    @given(hour=st.integers(min_value=0, max_value=23), minute=st.integers(min_value=0, max_value=59))
    @settings(max_examples=50)
    def test_same_day_slots_are_in_the_future(self, hour, minute):
        dinner = Shift(name="Cena", start_time="00:00", end_time="23:59", days_of_week=ALL_DAYS, is_active=True)
        now = datetime(DAY.year, DAY.month, DAY.day, hour, minute, tzinfo=ROME)

        slots = generate_slots(DAY, [dinner], now=now)

        assert all(parse_time(s) > hour * 60 + minute for s in slots)


class TestSuggestionProperties:
    @given(room=rooms(), guests=st.integers(min_value=1, max_value=20))
    @settings(max_examples=100)
    def test_suggestions_cover_the_party(self, room, guests):
        suggestions = suggest_tables(guests, room, pair_limit=3)

        single_seats = [t.seats for t in suggestions.single]
        assert all(s >= guests for s in single_seats)
        assert single_seats == sorted(single_seats)

        assert len(suggestions.pairs) <= 3
        totals = [p.total_seats for p in suggestions.pairs]
        assert totals == sorted(totals)
        for pair in suggestions.pairs:
            a, b = pair.tables
            assert a.id != b.id
            assert a.seats + b.seats == pair.total_seats >= guests
            assert a.seats < guests and b.seats < guests


class TestAvailabilityProperties:
    @given(
        room=rooms(),
        bookings=st.lists(
            st.tuples(
                st.sampled_from(["pending", "confirmed", "arrived", "rejected", "cancelled"]),
                st.sampled_from(TIMES),
                st.lists(st.integers(min_value=1, max_value=10), max_size=3, unique=True),
            ),
            max_size=6,
        ),
        slot=st.sampled_from(TIMES),
    )
    @settings(max_examples=100)
    def test_bound_tables_never_offered(self, room, bookings, slot):
        reservations = [booked(i + 1, status, time, ids) for i, (status, time, ids) in enumerate(bookings)]

        availability = compute_availability(DAY, slot, room, reservations)

        bound = {
            table_id
            for r in reservations
            if r.status in ("confirmed", "arrived") and r.reservation_time == slot
            for table_id in r.table_ids
        }
        offered = {t.id for t in availability.available}
        assert not offered & bound
        assert all(t.is_active for t in availability.available)
        assert offered <= {t.id for t in room if t.is_active}


class TestOccupancyProperties:
    @given(
        room=rooms(),
        bookings=st.lists(
            st.tuples(
                st.sampled_from(["confirmed", "arrived", "pending"]),
                st.sampled_from(TIMES),
                st.lists(st.integers(min_value=1, max_value=10), max_size=3, unique=True),
            ),
            max_size=6,
        ),
    )
    @settings(max_examples=100)
    def test_percent_is_bounded(self, room, bookings):
        reservations = [booked(i + 1, status, time, ids) for i, (status, time, ids) in enumerate(bookings)]

        occupancy = compute_occupancy(DAY, reservations, room)

        assert 0 <= occupancy.occupancy_percent <= 100
        assert 0 <= occupancy.occupied_seats <= occupancy.total_capacity
        assert occupancy.free_seats == occupancy.total_capacity - occupancy.occupied_seats
