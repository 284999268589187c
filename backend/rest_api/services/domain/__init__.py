"""
Domain Services - application layer.

Services contain business logic and orchestrate persistence. Routers stay
thin: they authenticate, call a service, then announce the committed
change.

Structure:
    Router (thin controller)
        ↓
    Service (business logic)  ← YOU ARE HERE
        ↓
    Model (entity)

Usage:
    from rest_api.services.domain import ReservationService

    service = ReservationService(db)
    overview = service.list_for_date(tenant_id, date(2024, 5, 20))
"""

from .reservation_service import (
    DayOverview,
    ReservationChange,
    ReservationService,
    SuggestionsResult,
)
from .config_service import ConfigService, ConfigSnapshot

__all__ = [
    "ReservationService",
    "ReservationChange",
    "DayOverview",
    "SuggestionsResult",
    "ConfigService",
    "ConfigSnapshot",
]
