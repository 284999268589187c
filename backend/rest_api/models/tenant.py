"""
Multi-Tenancy Models: Tenant and its ReservationSettings.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from sqlalchemy import BigInteger, Boolean, ForeignKey, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import AuditMixin, Base, BigIntPK

if TYPE_CHECKING:
    from .dining import DiningTable, Shift
    from .reservation import Reservation


class Tenant(AuditMixin, Base):
    """
    A restaurant (top-level tenant).
    Every table, shift and reservation belongs to exactly one tenant.
    """

    __tablename__ = "tenant"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    slug: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    # "today" for slot generation and booking validation is evaluated here
    timezone: Mapped[str] = mapped_column(Text, default="Europe/Rome", nullable=False)

    settings: Mapped[Optional["ReservationSettings"]] = relationship(
        back_populates="tenant", uselist=False
    )
    tables: Mapped[list["DiningTable"]] = relationship(back_populates="tenant")
    shifts: Mapped[list["Shift"]] = relationship(back_populates="tenant")
    reservations: Mapped[list["Reservation"]] = relationship(back_populates="tenant")

    def __repr__(self) -> str:
        return f"<Tenant(id={self.id}, name='{self.name}', slug='{self.slug}')>"


class ReservationSettings(Base):
    """
    Tenant-scoped reservation configuration singleton.

    total_seats is expected to match the sum of active table seats but is
    only a UI convention; the engine reads it for the advisory guest check.
    """

    __tablename__ = "reservation_settings"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("tenant.id"), nullable=False, unique=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    total_seats: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_high_chairs: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    notification_email: Mapped[Optional[str]] = mapped_column(Text)

    tenant: Mapped["Tenant"] = relationship(back_populates="settings")

    def __repr__(self) -> str:
        state = "open" if self.is_active else "closed"
        return f"<ReservationSettings(tenant_id={self.tenant_id}, {state}, seats={self.total_seats})>"
