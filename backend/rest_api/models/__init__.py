"""
SQLAlchemy ORM Models Package.

Models are organized into domain-specific modules:
- base: Base class and AuditMixin
- tenant: Tenant, ReservationSettings
- dining: DiningTable, Shift
- reservation: Reservation, ReservationAssignment
"""

from .base import AuditMixin, Base, BigIntPK
from .tenant import ReservationSettings, Tenant
from .dining import DiningTable, Shift
from .reservation import Reservation, ReservationAssignment

__all__ = [
    "AuditMixin",
    "Base",
    "BigIntPK",
    "Tenant",
    "ReservationSettings",
    "DiningTable",
    "Shift",
    "Reservation",
    "ReservationAssignment",
]
