"""
Reservation Models: Reservation and ReservationAssignment.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, BigIntPK

if TYPE_CHECKING:
    from .tenant import Tenant
    from .dining import DiningTable


class Reservation(Base):
    """
    A booking request and its lifecycle.

    Created by the public form as "pending"; only staff actions move it.
    Rows are never deleted: rejected/cancelled reservations stay for history
    with their assignments cleared.
    """

    __tablename__ = "reservation"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("tenant.id"), nullable=False, index=True
    )
    customer_name: Mapped[str] = mapped_column(Text, nullable=False)
    customer_email: Mapped[str] = mapped_column(Text, nullable=False)
    customer_phone: Mapped[str] = mapped_column(Text, nullable=False)
    guests: Mapped[int] = mapped_column(Integer, nullable=False)
    high_chairs: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    reservation_date: Mapped[date] = mapped_column(Date, nullable=False)
    reservation_time: Mapped[str] = mapped_column(Text, nullable=False)  # "HH:MM"
    notes: Mapped[Optional[str]] = mapped_column(Text)

    status: Mapped[str] = mapped_column(Text, default="pending", nullable=False, index=True)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text)
    handled_by_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), onupdate=func.now(), nullable=True
    )
    confirmed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    rejected_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    arrived_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        CheckConstraint("guests > 0", name="ck_reservation_guests_positive"),
        CheckConstraint(
            "high_chairs >= 0 AND high_chairs <= guests",
            name="ck_reservation_high_chairs_range",
        ),
        Index("ix_reservation_tenant_date", "tenant_id", "reservation_date"),
        Index("ix_reservation_tenant_status", "tenant_id", "status"),
    )

    tenant: Mapped["Tenant"] = relationship(back_populates="reservations")
    assignments: Mapped[list["ReservationAssignment"]] = relationship(
        back_populates="reservation",
        cascade="all, delete-orphan",
        order_by="ReservationAssignment.table_id",
        lazy="selectin",
    )

    @property
    def table_ids(self) -> list[int]:
        """Assigned table ids, derived from the assignment rows."""
        return sorted(a.table_id for a in self.assignments)

    def __repr__(self) -> str:
        return (
            f"<Reservation(id={self.id}, {self.reservation_date} {self.reservation_time}, "
            f"guests={self.guests}, status='{self.status}')>"
        )


class ReservationAssignment(Base):
    """
    Binding of one table to one confirmed/arrived reservation.

    The reservation's (date, time) is copied here so the database can
    enforce that a table is bound at most once per slot.
    """

    __tablename__ = "reservation_assignment"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("tenant.id"), nullable=False, index=True
    )
    reservation_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("reservation.id", ondelete="CASCADE"), nullable=False, index=True
    )
    table_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("reservation_table.id"), nullable=False
    )
    reservation_date: Mapped[date] = mapped_column(Date, nullable=False)
    reservation_time: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint(
            "table_id", "reservation_date", "reservation_time",
            name="uq_assignment_table_slot",
        ),
        UniqueConstraint("reservation_id", "table_id", name="uq_assignment_reservation_table"),
    )

    reservation: Mapped["Reservation"] = relationship(back_populates="assignments")
    table: Mapped["DiningTable"] = relationship(back_populates="assignments")
