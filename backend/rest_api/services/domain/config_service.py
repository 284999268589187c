"""
Reservation Configuration Service.

Reads and writes the tenant's configuration as one unit (settings row,
tables, shifts), as the configuration wizard and room editor expect.

Table deletion policy: a table still bound to a confirmed/arrived
reservation today or later cannot be deleted (409); otherwise it is
soft-deleted and its past assignments stay for history.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from rest_api.db import safe_commit
from rest_api.models import (
    DiningTable,
    Reservation,
    ReservationAssignment,
    ReservationSettings,
    Shift,
    Tenant,
)
from rest_api.services.scheduling import local_now, normalize_time, validate_shift_window
from shared.constants import ErrorMessages, ReservationStatus, WEEKDAYS
from shared.exceptions import NotFoundError, TableInUseError, ValidationError
from shared.logging import config_logger as logger
from shared.schemas import ReservationConfigInput, ShiftInput, TableInput


@dataclass
class ConfigSnapshot:
    settings: ReservationSettings
    tables: list[DiningTable]
    shifts: list[Shift]


class ConfigService:
    """Domain service for the reservation configuration unit."""

    def __init__(self, db: Session):
        self._db = db

    def get_config(self, tenant_id: int) -> ConfigSnapshot:
        """Current configuration; a closed, empty one if never saved."""
        settings_row = self._db.scalar(
            select(ReservationSettings).where(ReservationSettings.tenant_id == tenant_id)
        )
        if settings_row is None:
            settings_row = ReservationSettings(
                tenant_id=tenant_id,
                is_active=False,
                total_seats=0,
                total_high_chairs=0,
            )
        return ConfigSnapshot(
            settings=settings_row,
            tables=self._tables(tenant_id),
            shifts=self._shifts(tenant_id),
        )

    def replace_config(
        self,
        tenant_id: int,
        data: ReservationConfigInput,
        actor_user_id: int | None = None,
        actor_email: str | None = None,
        today: date | None = None,
    ) -> ConfigSnapshot:
        """
        Persist the whole configuration unit.

        Tables and shifts missing from the payload are deleted (tables
        following the deletion policy). Everything commits together.

        Raises:
            ValidationError: Duplicate table names, bad shift windows or weekdays.
            NotFoundError: An id in the payload belongs to no table/shift of the tenant.
            TableInUseError: A removed table still has upcoming reservations.
        """
        self._validate_tables(data.tables)
        for shift_input in data.shifts:
            self._validate_shift(shift_input)

        settings_row = self._db.scalar(
            select(ReservationSettings).where(ReservationSettings.tenant_id == tenant_id)
        )
        if settings_row is None:
            settings_row = ReservationSettings(tenant_id=tenant_id)
            self._db.add(settings_row)
        settings_row.is_active = data.is_active
        settings_row.total_seats = data.total_seats
        settings_row.total_high_chairs = data.total_high_chairs
        settings_row.notification_email = str(data.notification_email) if data.notification_email else None

        today = today or self._tenant_today(tenant_id)
        try:
            self._sync_tables(tenant_id, data.tables, actor_user_id, actor_email, today)
            self._sync_shifts(tenant_id, data.shifts, actor_user_id, actor_email)
        except Exception:
            self._db.rollback()
            raise

        active_seats = sum(t.seats for t in data.tables if t.is_active)
        if data.total_seats and data.total_seats != active_seats:
            logger.warning(
                "Configured seats differ from active table seats",
                tenant_id=tenant_id,
                total_seats=data.total_seats,
                active_table_seats=active_seats,
            )

        safe_commit(self._db)
        logger.info(
            "Reservation config saved",
            tenant_id=tenant_id,
            is_active=data.is_active,
            tables=len(data.tables),
            shifts=len(data.shifts),
            actor_user_id=actor_user_id,
        )
        return self.get_config(tenant_id)

    def delete_table(
        self,
        tenant_id: int,
        table_id: int,
        actor_user_id: int | None = None,
        actor_email: str | None = None,
        today: date | None = None,
    ) -> DiningTable:
        """
        Soft-delete a table unless it is bound to an upcoming reservation.

        Raises:
            NotFoundError: No such table for the tenant.
            TableInUseError: Confirmed/arrived reservations today or later use it.
        """
        table = self._db.scalar(
            select(DiningTable).where(
                DiningTable.id == table_id,
                DiningTable.tenant_id == tenant_id,
                DiningTable.deleted_at.is_(None),
            )
        )
        if not table:
            raise NotFoundError("Mesa", table_id, tenant_id=tenant_id)

        self._soft_delete_table(table, actor_user_id, actor_email, today or self._tenant_today(tenant_id))
        safe_commit(self._db)
        logger.info("Table deleted", tenant_id=tenant_id, table_id=table_id, actor_user_id=actor_user_id)
        return table

    def upcoming_assignments(self, table_id: int, today: date) -> int:
        """Confirmed/arrived reservations from today on that hold the table."""
        return self._db.scalar(
            select(func.count())
            .select_from(ReservationAssignment)
            .join(Reservation, Reservation.id == ReservationAssignment.reservation_id)
            .where(
                ReservationAssignment.table_id == table_id,
                ReservationAssignment.reservation_date >= today,
                Reservation.status.in_(ReservationStatus.OCCUPYING),
            )
        ) or 0

    # =========================================================================
    # Internals
    # =========================================================================

    def _tenant_today(self, tenant_id: int) -> date:
        """Calendar date in the restaurant's own timezone."""
        tenant = self._db.get(Tenant, tenant_id)
        return local_now(tenant.timezone if tenant else None).date()

    def _tables(self, tenant_id: int) -> list[DiningTable]:
        return list(self._db.execute(
            select(DiningTable)
            .where(DiningTable.tenant_id == tenant_id, DiningTable.deleted_at.is_(None))
            .order_by(DiningTable.display_order, DiningTable.id)
        ).scalars().all())

    def _shifts(self, tenant_id: int) -> list[Shift]:
        return list(self._db.execute(
            select(Shift)
            .where(Shift.tenant_id == tenant_id, Shift.deleted_at.is_(None))
            .order_by(Shift.start_time, Shift.id)
        ).scalars().all())

    def _validate_tables(self, tables: list[TableInput]) -> None:
        seen: set[str] = set()
        for table in tables:
            key = table.name.strip().casefold()
            if key in seen:
                raise ValidationError(
                    ErrorMessages.DUPLICATE_TABLE_NAME.format(name=table.name),
                    field="tables",
                )
            seen.add(key)

    def _validate_shift(self, shift: ShiftInput) -> None:
        try:
            validate_shift_window(shift.start_time, shift.end_time)
        except ValueError:
            raise ValidationError(
                ErrorMessages.INVALID_SHIFT_RANGE.format(name=shift.name),
                start_time=shift.start_time,
                end_time=shift.end_time,
            )
        invalid_days = [d for d in shift.days_of_week if d not in WEEKDAYS]
        if invalid_days:
            raise ValidationError(
                f"Días inválidos en el turno '{shift.name}': {invalid_days}",
                days_of_week=shift.days_of_week,
            )

    def _sync_tables(
        self,
        tenant_id: int,
        inputs: list[TableInput],
        actor_user_id: int | None,
        actor_email: str | None,
        today: date,
    ) -> None:
        existing = {t.id: t for t in self._tables(tenant_id)}
        kept: set[int] = set()

        for order, table_input in enumerate(inputs):
            if table_input.id is None:
                table = DiningTable(tenant_id=tenant_id, created_by_id=actor_user_id)
                self._db.add(table)
            else:
                table = existing.get(table_input.id)
                if table is None:
                    raise NotFoundError("Mesa", table_input.id, tenant_id=tenant_id)
                table.set_updated_by(actor_user_id, actor_email)
                kept.add(table.id)
            table.name = table_input.name.strip()
            table.seats = table_input.seats
            table.is_active = table_input.is_active
            table.display_order = order

        for table_id, table in existing.items():
            if table_id not in kept:
                self._soft_delete_table(table, actor_user_id, actor_email, today)

    def _soft_delete_table(
        self,
        table: DiningTable,
        actor_user_id: int | None,
        actor_email: str | None,
        today: date,
    ) -> None:
        upcoming = self.upcoming_assignments(table.id, today)
        if upcoming:
            raise TableInUseError(table.id, upcoming, tenant_id=table.tenant_id)
        table.soft_delete(actor_user_id, actor_email)

    def _sync_shifts(
        self,
        tenant_id: int,
        inputs: list[ShiftInput],
        actor_user_id: int | None,
        actor_email: str | None,
    ) -> None:
        existing = {s.id: s for s in self._shifts(tenant_id)}
        kept: set[int] = set()

        for shift_input in inputs:
            if shift_input.id is None:
                shift = Shift(tenant_id=tenant_id, created_by_id=actor_user_id)
                self._db.add(shift)
            else:
                shift = existing.get(shift_input.id)
                if shift is None:
                    raise NotFoundError("Turno", shift_input.id, tenant_id=tenant_id)
                shift.set_updated_by(actor_user_id, actor_email)
                kept.add(shift.id)
            shift.name = shift_input.name.strip()
            shift.start_time = normalize_time(shift_input.start_time)
            shift.end_time = normalize_time(shift_input.end_time)
            shift.days_of_week = sorted(set(shift_input.days_of_week))
            shift.is_active = shift_input.is_active

        for shift_id, shift in existing.items():
            if shift_id not in kept:
                shift.soft_delete(actor_user_id, actor_email)
