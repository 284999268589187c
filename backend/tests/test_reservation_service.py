"""
Tests for ReservationService.

Covers:
- Public booking validation and creation
- Accept/reject/cancel/arrive with their assignment side effects
- Double-booking protection (re-check and unique constraint)
- Terminal states
- Stale pending sweep
"""

from datetime import date, datetime, timedelta

import pytest
from sqlalchemy import select

from rest_api.models import ReservationAssignment
from rest_api.services.domain import ReservationService
from shared.constants import EXPIRED_REJECTION_REASON, NotificationKind
from shared.events import (
    RESERVATION_ARRIVED,
    RESERVATION_CONFIRMED,
    RESERVATION_CREATED,
    RESERVATION_EXPIRED,
)
from shared.exceptions import (
    BookingClosedError,
    InvalidTransitionError,
    ReservationNotFoundError,
    SlotNotOfferedError,
    TableUnavailableError,
    TenantNotFoundError,
    ValidationError,
)
from shared.schemas import BookingRequest
from tests.conftest import BOOKING_DATE, NOW


def booking(**overrides):
    data = {
        "customer_name": "Giulia Bianchi",
        "customer_email": "giulia@example.com",
        "customer_phone": "+39 333 7654321",
        "guests": 4,
        "high_chairs": 0,
        "date": BOOKING_DATE,
        "time": "20:00",
        "notes": "Finestra se possibile",
    }
    data.update(overrides)
    return BookingRequest(**data)


def table_by_name(tables, name):
    return next(t for t in tables if t.name == name)


class TestPublicSlots:
    def test_dinner_shift_slots(self, db_session, restaurant):
        is_open, slots = ReservationService(db_session).get_public_slots("trattoria", BOOKING_DATE, now=NOW)

        assert is_open is True
        assert slots == ["19:00", "19:30", "20:00", "20:30", "21:00", "21:30", "22:00", "22:30"]
        assert "23:00" not in slots

    def test_closed_restaurant(self, db_session, restaurant, seed_settings):
        seed_settings.is_active = False
        db_session.commit()

        assert ReservationService(db_session).get_public_slots("trattoria", BOOKING_DATE, now=NOW) == (False, [])

    def test_past_date_offers_nothing(self, db_session, restaurant):
        _, slots = ReservationService(db_session).get_public_slots(
            "trattoria", BOOKING_DATE - timedelta(days=5), now=NOW,
        )
        assert slots == []

    def test_unknown_slug(self, db_session, restaurant):
        with pytest.raises(TenantNotFoundError):
            ReservationService(db_session).get_public_slots("nowhere", BOOKING_DATE, now=NOW)


class TestSubmitBooking:
    def test_creates_pending_without_tables(self, db_session, restaurant):
        change = ReservationService(db_session).submit_booking("trattoria", booking(), now=NOW)

        reservation = change.reservation
        assert reservation.id is not None
        assert reservation.status == "pending"
        assert reservation.table_ids == []
        assert reservation.reservation_time == "20:00"
        assert change.event_type == RESERVATION_CREATED

    def test_restaurant_is_notified(self, db_session, restaurant):
        change = ReservationService(db_session).submit_booking("trattoria", booking(), now=NOW)

        assert change.notification is not None
        assert change.notification.kind == NotificationKind.NEW
        assert change.notification.recipient == "sala@trattoria.it"

    def test_closed_restaurant_rejects(self, db_session, restaurant, seed_settings):
        seed_settings.is_active = False
        db_session.commit()

        with pytest.raises(BookingClosedError):
            ReservationService(db_session).submit_booking("trattoria", booking(), now=NOW)

    def test_slot_outside_shift(self, db_session, restaurant):
        with pytest.raises(SlotNotOfferedError):
            ReservationService(db_session).submit_booking("trattoria", booking(time="18:00"), now=NOW)

    def test_started_slot_today(self, db_session, restaurant):
        evening = datetime(2030, 5, 21, 20, 10, tzinfo=NOW.tzinfo)
        with pytest.raises(SlotNotOfferedError):
            ReservationService(db_session).submit_booking("trattoria", booking(time="20:00"), now=evening)

    def test_past_date(self, db_session, restaurant):
        with pytest.raises(ValidationError):
            ReservationService(db_session).submit_booking(
                "trattoria", booking(date=date(2030, 5, 1)), now=NOW,
            )

    def test_high_chairs_cannot_exceed_guests(self, db_session, restaurant):
        with pytest.raises(ValidationError):
            ReservationService(db_session).submit_booking(
                "trattoria", booking(guests=2, high_chairs=3), now=NOW,
            )

    def test_blank_name(self, db_session, restaurant):
        with pytest.raises(ValidationError):
            ReservationService(db_session).submit_booking(
                "trattoria", booking(customer_name="   "), now=NOW,
            )

    def test_party_larger_than_room_is_accepted(self, db_session, restaurant):
        """Capacity is advisory at booking time; staff decide."""
        change = ReservationService(db_session).submit_booking("trattoria", booking(guests=30), now=NOW)
        assert change.reservation.status == "pending"


class TestAcceptWithTables:
    def test_confirm_then_arrive(self, db_session, restaurant, seed_tables, make_reservation):
        """4 guests on T3 -> confirmed with one assignment -> arrived, T3 occupied."""
        t3 = table_by_name(seed_tables, "T3")
        pending = make_reservation(guests=4)
        service = ReservationService(db_session)

        confirmed = service.accept_with_tables(restaurant.id, pending.id, [t3.id], roles=["WAITER"], actor_user_id=8)

        assert confirmed.reservation.status == "confirmed"
        assert confirmed.reservation.table_ids == [t3.id]
        assert confirmed.reservation.confirmed_at is not None
        assert confirmed.event_type == RESERVATION_CONFIRMED
        assert confirmed.capacity_check.ok
        assert confirmed.notification.kind == NotificationKind.CONFIRMED
        assert confirmed.notification.recipient == "mario@example.com"

        arrived = service.mark_arrived(restaurant.id, pending.id, roles=["WAITER"])

        assert arrived.reservation.status == "arrived"
        assert arrived.event_type == RESERVATION_ARRIVED
        assert arrived.notification is None
        room = service.get_occupancy(restaurant.id, BOOKING_DATE)
        assert t3.id in room.occupied_table_ids
        assert room.details[t3.id].guests == 4

    def test_one_assignment_per_table(self, db_session, restaurant, seed_tables, make_reservation):
        t1, t2 = table_by_name(seed_tables, "T1"), table_by_name(seed_tables, "T2")
        pending = make_reservation(guests=5)

        ReservationService(db_session).accept_with_tables(restaurant.id, pending.id, [t1.id, t2.id, t1.id])

        rows = db_session.execute(
            select(ReservationAssignment).where(ReservationAssignment.reservation_id == pending.id)
        ).scalars().all()
        assert sorted(r.table_id for r in rows) == sorted([t1.id, t2.id])

    def test_under_capacity_confirms_with_warning(self, db_session, restaurant, seed_tables, make_reservation):
        t1 = table_by_name(seed_tables, "T1")
        pending = make_reservation(guests=5)

        change = ReservationService(db_session).accept_with_tables(restaurant.id, pending.id, [t1.id])

        assert change.reservation.status == "confirmed"
        assert change.capacity_check.level == "warning"
        assert change.capacity_check.missing_seats == 3

    def test_empty_selection(self, db_session, restaurant, make_reservation):
        pending = make_reservation()
        with pytest.raises(ValidationError):
            ReservationService(db_session).accept_with_tables(restaurant.id, pending.id, [])

    def test_inactive_table_not_assignable(self, db_session, restaurant, seed_tables, make_reservation):
        t2 = table_by_name(seed_tables, "T2")
        t2.is_active = False
        db_session.commit()
        pending = make_reservation()

        with pytest.raises(ValidationError):
            ReservationService(db_session).accept_with_tables(restaurant.id, pending.id, [t2.id])

    def test_table_taken_at_same_slot(self, db_session, restaurant, seed_tables, make_reservation):
        """Second staff session confirming T3 at 20:00 gets a conflict."""
        t3 = table_by_name(seed_tables, "T3")
        make_reservation(status="confirmed", table_ids=[t3.id], customer_name="Primo")
        pending = make_reservation(customer_name="Secondo")

        with pytest.raises(TableUnavailableError) as exc_info:
            ReservationService(db_session).accept_with_tables(restaurant.id, pending.id, [t3.id])

        assert exc_info.value.status_code == 409
        assert exc_info.value.table_ids == [t3.id]
        db_session.expire_all()
        assert ReservationService(db_session).get_reservation(restaurant.id, pending.id).status == "pending"

    def test_same_table_other_time_is_fine(self, db_session, restaurant, seed_tables, make_reservation):
        t3 = table_by_name(seed_tables, "T3")
        make_reservation(status="confirmed", table_ids=[t3.id], reservation_time="19:00")
        pending = make_reservation(reservation_time="21:00")

        change = ReservationService(db_session).accept_with_tables(restaurant.id, pending.id, [t3.id])

        assert change.reservation.status == "confirmed"

    def test_unique_constraint_backs_the_recheck(
        self, db_session, restaurant, seed_tables, make_reservation, monkeypatch,
    ):
        """Even if the re-check misses a concurrent commit, the database refuses the double booking."""
        t3 = table_by_name(seed_tables, "T3")
        make_reservation(status="confirmed", table_ids=[t3.id])
        pending = make_reservation(customer_name="Concorrente")
        monkeypatch.setattr(ReservationService, "_find_conflicts", lambda self, *args: set())

        with pytest.raises(TableUnavailableError):
            ReservationService(db_session).accept_with_tables(restaurant.id, pending.id, [t3.id])

        db_session.expire_all()
        assert ReservationService(db_session).get_reservation(restaurant.id, pending.id).status == "pending"

    def test_released_table_can_be_rebooked(self, db_session, restaurant, seed_tables, make_reservation):
        t3 = table_by_name(seed_tables, "T3")
        first = make_reservation(status="confirmed", table_ids=[t3.id])
        service = ReservationService(db_session)
        service.cancel(restaurant.id, first.id)
        pending = make_reservation(customer_name="Dopo")

        change = service.accept_with_tables(restaurant.id, pending.id, [t3.id])

        assert change.reservation.table_ids == [t3.id]

    def test_other_tenant_reservation_not_found(self, db_session, restaurant, make_reservation):
        pending = make_reservation()
        with pytest.raises(ReservationNotFoundError):
            ReservationService(db_session).accept_with_tables(99, pending.id, [1])


class TestRejectAndCancel:
    def test_reject_with_reason(self, db_session, restaurant, make_reservation):
        pending = make_reservation()

        change = ReservationService(db_session).reject(restaurant.id, pending.id, reason="  Completo  ")

        assert change.reservation.status == "rejected"
        assert change.reservation.rejection_reason == "Completo"
        assert change.notification.kind == NotificationKind.REJECTED

    def test_cancel_releases_tables_and_keeps_row(self, db_session, restaurant, seed_tables, make_reservation):
        t2 = table_by_name(seed_tables, "T2")
        confirmed = make_reservation(status="confirmed", table_ids=[t2.id])

        change = ReservationService(db_session).cancel(restaurant.id, confirmed.id)

        assert change.reservation.status == "cancelled"
        assert change.reservation.table_ids == []
        assert change.reservation.cancelled_at is not None
        availability = ReservationService(db_session).get_availability(restaurant.id, BOOKING_DATE, "20:00")
        assert t2.id in [t.id for t in availability.available]

    @pytest.mark.parametrize("status", ["rejected", "cancelled", "arrived"])
    def test_terminal_reservations_stay_put(self, db_session, restaurant, seed_tables, make_reservation, status):
        reservation = make_reservation(status=status)
        service = ReservationService(db_session)

        with pytest.raises(InvalidTransitionError):
            service.accept_with_tables(restaurant.id, reservation.id, [seed_tables[0].id])
        with pytest.raises(InvalidTransitionError):
            service.cancel(restaurant.id, reservation.id)
        with pytest.raises(InvalidTransitionError):
            service.reject(restaurant.id, reservation.id)

    def test_cannot_cancel_pending(self, db_session, restaurant, make_reservation):
        pending = make_reservation()
        with pytest.raises(InvalidTransitionError):
            ReservationService(db_session).cancel(restaurant.id, pending.id)


class TestQueries:
    def test_day_overview_counters(self, db_session, restaurant, seed_tables, make_reservation):
        make_reservation(reservation_time="21:00")
        make_reservation(status="confirmed", table_ids=[seed_tables[0].id], reservation_time="19:00")
        make_reservation(status="arrived", table_ids=[seed_tables[1].id], reservation_time="20:00")
        make_reservation(reservation_date=BOOKING_DATE + timedelta(days=3))

        overview = ReservationService(db_session).list_for_date(restaurant.id, BOOKING_DATE)

        assert [r.reservation_time for r in overview.reservations] == ["19:00", "20:00", "21:00"]
        assert overview.pending_count == 1
        assert overview.confirmed_count == 2
        assert overview.total_pending == 2

    def test_suggestions_for_reservation(self, db_session, restaurant, seed_tables, make_reservation):
        pending = make_reservation(guests=5)

        result = ReservationService(db_session).get_suggestions(restaurant.id, pending.id)

        assert [t.name for t in result.suggestions.single] == ["T3"]
        assert [{t.name for t in p.tables} for p in result.suggestions.pairs] == [{"T1", "T2"}]
        assert result.high_chairs_available == 2

    def test_availability_rejects_bad_time(self, db_session, restaurant):
        with pytest.raises(ValidationError):
            ReservationService(db_session).get_availability(restaurant.id, BOOKING_DATE, "25:99")


class TestExpireStalePending:
    def test_past_pending_rejected_as_expired(self, db_session, restaurant, make_reservation):
        stale = make_reservation(reservation_date=date(2030, 5, 19))
        later_today = make_reservation(reservation_date=date(2030, 5, 20), reservation_time="19:00")
        earlier_today = make_reservation(reservation_date=date(2030, 5, 20), reservation_time="11:30")

        changes = ReservationService(db_session).expire_stale_pending(now=NOW)

        expired_ids = sorted(c.reservation.id for c in changes)
        assert expired_ids == sorted([stale.id, earlier_today.id])
        for change in changes:
            assert change.event_type == RESERVATION_EXPIRED
            assert change.notification is None
            assert change.reservation.status == "rejected"
            assert change.reservation.rejection_reason == EXPIRED_REJECTION_REASON
        db_session.expire_all()
        assert ReservationService(db_session).get_reservation(restaurant.id, later_today.id).status == "pending"

    def test_confirmed_untouched(self, db_session, restaurant, seed_tables, make_reservation):
        make_reservation(status="confirmed", table_ids=[seed_tables[0].id], reservation_date=date(2030, 5, 19))

        assert ReservationService(db_session).expire_stale_pending(now=NOW) == []
