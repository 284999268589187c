"""
Dining Room Models: DiningTable and Shift.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import JSON, BigInteger, CheckConstraint, ForeignKey, Index, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import AuditMixin, Base, BigIntPK

if TYPE_CHECKING:
    from .tenant import Tenant
    from .reservation import ReservationAssignment


class DiningTable(AuditMixin, Base):
    """
    Physical table in the dining room.
    is_active doubles as the soft-delete flag: inactive tables are never
    offered for new assignments but keep their history.
    """

    # "table" is a reserved SQL keyword
    __tablename__ = "reservation_table"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("tenant.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)  # "T1", "Terrazza 3"
    seats: Mapped[int] = mapped_column(Integer, nullable=False)
    display_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    __table_args__ = (
        CheckConstraint("seats > 0", name="ck_reservation_table_seats_positive"),
        Index("ix_reservation_table_tenant_active", "tenant_id", "is_active"),
    )

    tenant: Mapped["Tenant"] = relationship(back_populates="tables")
    assignments: Mapped[list["ReservationAssignment"]] = relationship(back_populates="table")


class Shift(AuditMixin, Base):
    """
    Recurring booking window, e.g. "Cena" 19:00-23:00 on every day.

    start_time/end_time are "HH:MM" strings within one day (start < end).
    days_of_week holds ints with 0=Sunday ... 6=Saturday.
    """

    __tablename__ = "reservation_shift"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("tenant.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    start_time: Mapped[str] = mapped_column(Text, nullable=False)
    end_time: Mapped[str] = mapped_column(Text, nullable=False)
    days_of_week: Mapped[list[int]] = mapped_column(JSON, nullable=False, default=list)

    tenant: Mapped["Tenant"] = relationship(back_populates="shifts")
