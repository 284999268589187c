"""
Reservation Domain Service.

Orchestrates public booking creation, the staff lifecycle actions and the
dashboard queries. Every mutation re-reads the persisted reservation under
a row lock, validates the transition against that state and commits the
status change together with its assignment side effects.

The (table, date, time) key of confirmed/arrived reservations is guarded
twice: a conflict query inside the accept transaction and the
uq_assignment_table_slot constraint, whose violation is reported as
TableUnavailableError.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, selectinload

from rest_api.db import safe_commit
from rest_api.models import (
    DiningTable,
    Reservation,
    ReservationAssignment,
    ReservationSettings,
    Shift,
    Tenant,
)
from rest_api.services.allocation import (
    Availability,
    CapacityCheck,
    Suggestions,
    check_capacity,
    compute_availability,
    suggest_tables,
)
from rest_api.services.notifications import ReservationNotification, build_notification
from rest_api.services.occupancy import Occupancy, compute_occupancy
from rest_api.services.reservation_state import (
    AssignmentEffect,
    Transition,
    apply_status,
    get_transition,
)
from rest_api.services.scheduling import (
    generate_slots,
    local_now,
    normalize_time,
    parse_time,
)
from shared.constants import (
    EXPIRED_REJECTION_REASON,
    ErrorMessages,
    Limits,
    NotificationKind,
    ReservationStatus,
)
from shared.events import RESERVATION_EXPIRED, STATUS_EVENT_TYPES
from shared.exceptions import (
    BookingClosedError,
    ExternalServiceError,
    ReservationNotFoundError,
    SlotNotOfferedError,
    TableUnavailableError,
    TenantNotFoundError,
    ValidationError,
)
from shared.logging import reservations_logger as logger
from shared.schemas import BookingRequest


@dataclass
class ReservationChange:
    """
    Committed change ready to be announced.

    `notification` is the e-mail due for the change (None when nothing is
    sent, e.g. on arrival); the router hands it off after the commit.
    """

    reservation: Reservation
    event_type: str
    transition: Transition | None = None
    notification: ReservationNotification | None = None
    capacity_check: CapacityCheck | None = None


@dataclass
class DayOverview:
    date: date
    reservations: list[Reservation]
    pending_count: int
    confirmed_count: int  # confirmed + arrived
    total_pending: int  # every date


@dataclass
class SuggestionsResult:
    reservation: Reservation
    availability: Availability
    suggestions: Suggestions
    high_chairs_available: int


class ReservationService:
    """Domain service for the reservation lifecycle and room queries."""

    def __init__(self, db: Session):
        self._db = db

    # =========================================================================
    # Lookups
    # =========================================================================

    def get_tenant(self, tenant_id: int) -> Tenant:
        tenant = self._db.scalar(
            select(Tenant).where(Tenant.id == tenant_id, Tenant.is_active.is_(True))
        )
        if not tenant:
            raise TenantNotFoundError(tenant_id)
        return tenant

    def get_tenant_by_slug(self, slug: str) -> Tenant:
        tenant = self._db.scalar(
            select(Tenant).where(Tenant.slug == slug, Tenant.is_active.is_(True))
        )
        if not tenant:
            raise TenantNotFoundError(slug, tenant_slug=slug)
        return tenant

    def get_settings(self, tenant_id: int) -> ReservationSettings | None:
        return self._db.scalar(
            select(ReservationSettings).where(ReservationSettings.tenant_id == tenant_id)
        )

    def list_tables(self, tenant_id: int) -> list[DiningTable]:
        """Tables of the room editor (deactivated included, deleted excluded)."""
        return list(self._db.execute(
            select(DiningTable)
            .where(DiningTable.tenant_id == tenant_id, DiningTable.deleted_at.is_(None))
            .order_by(DiningTable.display_order, DiningTable.id)
        ).scalars().all())

    def list_shifts(self, tenant_id: int) -> list[Shift]:
        return list(self._db.execute(
            select(Shift)
            .where(Shift.tenant_id == tenant_id, Shift.deleted_at.is_(None))
            .order_by(Shift.start_time, Shift.id)
        ).scalars().all())

    def get_reservation(self, tenant_id: int, reservation_id: int) -> Reservation:
        reservation = self._db.scalar(
            select(Reservation)
            .options(selectinload(Reservation.assignments))
            .where(Reservation.id == reservation_id, Reservation.tenant_id == tenant_id)
        )
        if not reservation:
            raise ReservationNotFoundError(reservation_id, tenant_id=tenant_id)
        return reservation

    def reservations_for_date(
        self,
        tenant_id: int,
        target_date: date,
        statuses: Iterable[str] | None = None,
    ) -> list[Reservation]:
        query = (
            select(Reservation)
            .options(selectinload(Reservation.assignments))
            .where(
                Reservation.tenant_id == tenant_id,
                Reservation.reservation_date == target_date,
            )
            .order_by(Reservation.reservation_time, Reservation.id)
        )
        if statuses is not None:
            query = query.where(Reservation.status.in_(list(statuses)))
        return list(self._db.execute(query).scalars().all())

    def high_chairs_available(
        self,
        tenant_id: int,
        target_date: date,
        exclude_reservation_id: int | None = None,
    ) -> int:
        """Day-wide high chair pool minus chairs held by confirmed/arrived bookings."""
        config = self.get_settings(tenant_id)
        total = config.total_high_chairs if config else 0
        query = select(func.coalesce(func.sum(Reservation.high_chairs), 0)).where(
            Reservation.tenant_id == tenant_id,
            Reservation.reservation_date == target_date,
            Reservation.status.in_(ReservationStatus.OCCUPYING),
        )
        if exclude_reservation_id is not None:
            query = query.where(Reservation.id != exclude_reservation_id)
        used = self._db.scalar(query) or 0
        return max(0, total - used)

    # =========================================================================
    # Public booking
    # =========================================================================

    def get_public_slots(
        self,
        slug: str,
        target_date: date,
        now: datetime | None = None,
    ) -> tuple[bool, list[str]]:
        """
        Slots the public form offers for a date.

        Returns (is_open, slots). A closed restaurant or a past date offers
        nothing.
        """
        tenant = self.get_tenant_by_slug(slug)
        config = self.get_settings(tenant.id)
        if not config or not config.is_active:
            return False, []

        now = now or local_now(tenant.timezone)
        if target_date < now.date():
            return True, []
        return True, generate_slots(target_date, self.list_shifts(tenant.id), now=now)

    def submit_booking(
        self,
        slug: str,
        request: BookingRequest,
        now: datetime | None = None,
    ) -> ReservationChange:
        """
        Create a pending reservation from the public form.

        Raises:
            TenantNotFoundError: Unknown restaurant slug.
            BookingClosedError: Online reservations are disabled.
            ValidationError: Blank contact data, past date, too many high chairs.
            SlotNotOfferedError: Time is not among the slots currently offered.
        """
        tenant = self.get_tenant_by_slug(slug)
        config = self.get_settings(tenant.id)
        if not config or not config.is_active:
            raise BookingClosedError(tenant.id)

        customer_name = request.customer_name.strip()
        customer_phone = request.customer_phone.strip()
        if not customer_name:
            raise ValidationError("El nombre es obligatorio", field="customer_name")
        if not customer_phone:
            raise ValidationError("El teléfono es obligatorio", field="customer_phone")
        if request.high_chairs > request.guests:
            raise ValidationError(
                ErrorMessages.HIGH_CHAIRS_EXCEED_GUESTS,
                guests=request.guests,
                high_chairs=request.high_chairs,
            )

        now = now or local_now(tenant.timezone)
        today = now.date()
        if request.date < today:
            raise ValidationError(ErrorMessages.PAST_DATE, date=request.date)
        if request.date > today + timedelta(days=Limits.MAX_DAYS_AHEAD):
            raise ValidationError(ErrorMessages.TOO_FAR_AHEAD, date=request.date)

        try:
            reservation_time = normalize_time(request.time)
        except ValueError:
            raise SlotNotOfferedError(request.date, request.time, tenant_id=tenant.id)
        slots = generate_slots(request.date, self.list_shifts(tenant.id), now=now)
        if reservation_time not in slots:
            raise SlotNotOfferedError(request.date, reservation_time, tenant_id=tenant.id)

        if config.total_seats and request.guests > config.total_seats:
            # Advisory only: staff decide when confirming
            logger.warning(
                "Party larger than configured capacity",
                tenant_id=tenant.id,
                guests=request.guests,
                total_seats=config.total_seats,
            )

        reservation = Reservation(
            tenant_id=tenant.id,
            customer_name=customer_name,
            customer_email=str(request.customer_email),
            customer_phone=customer_phone,
            guests=request.guests,
            high_chairs=request.high_chairs,
            reservation_date=request.date,
            reservation_time=reservation_time,
            notes=(request.notes or "").strip() or None,
            status=ReservationStatus.PENDING,
        )
        self._db.add(reservation)
        self._commit("creación de reserva")
        self._db.refresh(reservation)

        logger.info(
            "Reservation request received",
            reservation_id=reservation.id,
            tenant_id=tenant.id,
            date=reservation.reservation_date,
            time=reservation.reservation_time,
            guests=reservation.guests,
        )

        return ReservationChange(
            reservation=reservation,
            event_type=STATUS_EVENT_TYPES[ReservationStatus.PENDING],
            notification=build_notification(NotificationKind.NEW, reservation, tenant, config),
        )

    # =========================================================================
    # Dashboard queries
    # =========================================================================

    def list_for_date(self, tenant_id: int, target_date: date) -> DayOverview:
        """Reservations of a day sorted by time, plus dashboard counters."""
        reservations = self.reservations_for_date(tenant_id, target_date)
        pending_count = sum(1 for r in reservations if r.status == ReservationStatus.PENDING)
        confirmed_count = sum(1 for r in reservations if r.status in ReservationStatus.OCCUPYING)
        total_pending = self._db.scalar(
            select(func.count())
            .select_from(Reservation)
            .where(
                Reservation.tenant_id == tenant_id,
                Reservation.status == ReservationStatus.PENDING,
            )
        ) or 0
        return DayOverview(
            date=target_date,
            reservations=reservations,
            pending_count=pending_count,
            confirmed_count=confirmed_count,
            total_pending=total_pending,
        )

    def get_availability(self, tenant_id: int, target_date: date, time_of_day: str) -> Availability:
        try:
            reservation_time = normalize_time(time_of_day)
        except ValueError as e:
            raise ValidationError(str(e), field="time")
        reservations = self.reservations_for_date(
            tenant_id, target_date, statuses=ReservationStatus.OCCUPYING
        )
        return compute_availability(
            target_date, reservation_time, self.list_tables(tenant_id), reservations
        )

    def get_suggestions(self, tenant_id: int, reservation_id: int) -> SuggestionsResult:
        """Free tables and covering suggestions at the reservation's own slot."""
        reservation = self.get_reservation(tenant_id, reservation_id)
        availability = self.get_availability(
            tenant_id, reservation.reservation_date, reservation.reservation_time
        )
        return SuggestionsResult(
            reservation=reservation,
            availability=availability,
            suggestions=suggest_tables(reservation.guests, availability.available),
            high_chairs_available=self.high_chairs_available(
                tenant_id, reservation.reservation_date, exclude_reservation_id=reservation.id
            ),
        )

    def get_occupancy(self, tenant_id: int, target_date: date) -> Occupancy:
        config = self.get_settings(tenant_id)
        reservations = self.reservations_for_date(
            tenant_id, target_date, statuses=ReservationStatus.OCCUPYING
        )
        return compute_occupancy(
            target_date,
            reservations,
            self.list_tables(tenant_id),
            total_high_chairs=config.total_high_chairs if config else 0,
        )

    # =========================================================================
    # Staff actions
    # =========================================================================

    def accept_with_tables(
        self,
        tenant_id: int,
        reservation_id: int,
        table_ids: list[int],
        roles: list[str] | None = None,
        actor_user_id: int | None = None,
    ) -> ReservationChange:
        """
        pending -> confirmed, binding the selected tables.

        Raises:
            ValidationError: Empty selection, unknown or inactive tables.
            InvalidTransitionError: Reservation is no longer pending.
            TableUnavailableError: A selected table is already bound at that slot.
        """
        return self._transition(
            tenant_id, reservation_id, ReservationStatus.CONFIRMED,
            roles=roles, actor_user_id=actor_user_id, table_ids=table_ids,
        )

    def reject(
        self,
        tenant_id: int,
        reservation_id: int,
        reason: str | None = None,
        roles: list[str] | None = None,
        actor_user_id: int | None = None,
    ) -> ReservationChange:
        """pending -> rejected; the optional reason is forwarded to the customer."""
        return self._transition(
            tenant_id, reservation_id, ReservationStatus.REJECTED,
            roles=roles, actor_user_id=actor_user_id, reason=reason,
        )

    def cancel(
        self,
        tenant_id: int,
        reservation_id: int,
        roles: list[str] | None = None,
        actor_user_id: int | None = None,
    ) -> ReservationChange:
        """confirmed -> cancelled, releasing the tables. The row is kept."""
        return self._transition(
            tenant_id, reservation_id, ReservationStatus.CANCELLED,
            roles=roles, actor_user_id=actor_user_id,
        )

    def mark_arrived(
        self,
        tenant_id: int,
        reservation_id: int,
        roles: list[str] | None = None,
        actor_user_id: int | None = None,
    ) -> ReservationChange:
        """confirmed -> arrived; tables stay bound for the room view."""
        return self._transition(
            tenant_id, reservation_id, ReservationStatus.ARRIVED,
            roles=roles, actor_user_id=actor_user_id,
        )

    def expire_stale_pending(
        self,
        now: datetime | None = None,
        tenant_id: int | None = None,
    ) -> list[ReservationChange]:
        """
        Reject pending reservations whose slot has passed.

        "Past" is evaluated in each tenant's timezone. Expired reservations
        get rejection_reason EXPIRED and no customer e-mail.
        """
        query = select(Tenant).where(Tenant.is_active.is_(True))
        if tenant_id is not None:
            query = query.where(Tenant.id == tenant_id)
        tenants = self._db.execute(query).scalars().all()

        changes: list[ReservationChange] = []
        for tenant in tenants:
            tenant_now = now.astimezone(ZoneInfo(tenant.timezone)) if now else local_now(tenant.timezone)
            for reservation in self._stale_pending(tenant.id, tenant_now):
                change = self._expire(reservation)
                if change is not None:
                    changes.append(change)

        if changes:
            logger.info("Expired stale pending reservations", count=len(changes))
        return changes

    # =========================================================================
    # Internals
    # =========================================================================

    def _lock_reservation(self, tenant_id: int, reservation_id: int) -> Reservation:
        """Fresh read of the persisted row under SELECT ... FOR UPDATE."""
        reservation = self._db.scalar(
            select(Reservation)
            .where(Reservation.id == reservation_id, Reservation.tenant_id == tenant_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        if not reservation:
            raise ReservationNotFoundError(reservation_id, tenant_id=tenant_id)
        return reservation

    def _assignable_tables(self, tenant_id: int, table_ids: list[int]) -> list[DiningTable]:
        tables = self._db.execute(
            select(DiningTable).where(
                DiningTable.id.in_(table_ids),
                DiningTable.tenant_id == tenant_id,
                DiningTable.is_active.is_(True),
                DiningTable.deleted_at.is_(None),
            )
        ).scalars().all()
        missing = set(table_ids) - {t.id for t in tables}
        if missing:
            raise ValidationError(
                ErrorMessages.TABLES_NOT_ASSIGNABLE.format(ids=", ".join(str(i) for i in sorted(missing))),
                table_ids=sorted(missing),
            )
        return sorted(tables, key=lambda t: t.id)

    def _find_conflicts(
        self,
        table_ids: list[int],
        reservation_date: date,
        reservation_time: str,
        reservation_id: int,
    ) -> set[int]:
        """Tables already bound to another confirmed/arrived reservation at the slot."""
        rows = self._db.execute(
            select(ReservationAssignment.table_id)
            .join(Reservation, Reservation.id == ReservationAssignment.reservation_id)
            .where(
                ReservationAssignment.table_id.in_(table_ids),
                ReservationAssignment.reservation_date == reservation_date,
                ReservationAssignment.reservation_time == reservation_time,
                ReservationAssignment.reservation_id != reservation_id,
                Reservation.status.in_(ReservationStatus.OCCUPYING),
            )
        ).scalars().all()
        return set(rows)

    def _transition(
        self,
        tenant_id: int,
        reservation_id: int,
        target: str,
        roles: list[str] | None = None,
        actor_user_id: int | None = None,
        table_ids: list[int] | None = None,
        reason: str | None = None,
    ) -> ReservationChange:
        reservation = self._lock_reservation(tenant_id, reservation_id)
        try:
            transition = get_transition(reservation.status, target, roles, reservation.id)
        except Exception:
            self._db.rollback()
            raise

        reservation_date = reservation.reservation_date
        reservation_time = reservation.reservation_time
        capacity = None
        selected: list[int] = []

        try:
            if transition.assignments is AssignmentEffect.CREATE:
                selected = list(dict.fromkeys(table_ids or []))
                if not selected:
                    raise ValidationError(ErrorMessages.EMPTY_TABLE_SELECTION, reservation_id=reservation_id)
                tables = self._assignable_tables(tenant_id, selected)

                conflicts = self._find_conflicts(selected, reservation_date, reservation_time, reservation.id)
                if conflicts:
                    raise TableUnavailableError(
                        list(conflicts), reservation_date, reservation_time,
                        reservation_id=reservation_id, source="recheck",
                    )

                capacity = check_capacity(
                    tables,
                    reservation.guests,
                    high_chairs=reservation.high_chairs,
                    high_chairs_available=self.high_chairs_available(
                        tenant_id, reservation_date, exclude_reservation_id=reservation.id
                    ),
                )
                if not capacity.ok:
                    logger.warning(
                        "Confirming with capacity warning",
                        reservation_id=reservation_id,
                        reasons=capacity.reasons,
                    )

                for table in tables:
                    reservation.assignments.append(ReservationAssignment(
                        tenant_id=tenant_id,
                        table_id=table.id,
                        reservation_date=reservation_date,
                        reservation_time=reservation_time,
                    ))
            elif transition.assignments is AssignmentEffect.CLEAR:
                reservation.assignments.clear()
        except Exception:
            self._db.rollback()
            raise

        apply_status(reservation, transition, actor_user_id=actor_user_id)
        if target == ReservationStatus.REJECTED:
            reservation.rejection_reason = (reason or "").strip() or None

        try:
            self._commit("cambio de estado de reserva")
        except IntegrityError:
            if transition.assignments is AssignmentEffect.CREATE:
                raise TableUnavailableError(
                    selected, reservation_date, reservation_time,
                    reservation_id=reservation_id, source="constraint",
                )
            raise

        self._db.refresh(reservation)
        logger.info(
            "Reservation status changed",
            reservation_id=reservation.id,
            tenant_id=tenant_id,
            from_status=transition.source,
            to_status=transition.target,
            table_ids=reservation.table_ids,
            actor_user_id=actor_user_id,
        )

        tenant = self.get_tenant(tenant_id)
        return ReservationChange(
            reservation=reservation,
            event_type=STATUS_EVENT_TYPES[transition.target],
            transition=transition,
            notification=build_notification(
                transition.notification, reservation, tenant, self.get_settings(tenant_id)
            ),
            capacity_check=capacity,
        )

    def _stale_pending(self, tenant_id: int, tenant_now: datetime) -> list[Reservation]:
        today = tenant_now.date()
        candidates = self._db.execute(
            select(Reservation).where(
                Reservation.tenant_id == tenant_id,
                Reservation.status == ReservationStatus.PENDING,
                Reservation.reservation_date <= today,
            )
        ).scalars().all()
        elapsed_minutes = tenant_now.hour * 60 + tenant_now.minute
        return [
            r for r in candidates
            if r.reservation_date < today or parse_time(r.reservation_time) <= elapsed_minutes
        ]

    def _expire(self, reservation: Reservation) -> ReservationChange | None:
        locked = self._lock_reservation(reservation.tenant_id, reservation.id)
        if locked.status != ReservationStatus.PENDING:
            # Staff acted in between
            self._db.rollback()
            return None
        transition = get_transition(locked.status, ReservationStatus.REJECTED, None, locked.id)
        locked.assignments.clear()
        apply_status(locked, transition)
        locked.rejection_reason = EXPIRED_REJECTION_REASON
        self._commit("expiración de reservas pendientes")
        self._db.refresh(locked)
        logger.info(
            "Pending reservation expired",
            reservation_id=locked.id,
            tenant_id=locked.tenant_id,
            date=locked.reservation_date,
            time=locked.reservation_time,
        )
        return ReservationChange(
            reservation=locked,
            event_type=RESERVATION_EXPIRED,
            transition=transition,
        )

    def _commit(self, operation: str) -> None:
        try:
            safe_commit(self._db)
        except OperationalError as e:
            raise ExternalServiceError(
                "base de datos",
                is_unavailable=True,
                retry_after=5,
                operation=operation,
                error=str(e),
            )
