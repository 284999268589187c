"""
Services module for business logic.

- scheduling: shift calendar -> bookable slots (pure)
- allocation: free tables, table suggestions, capacity checks (pure)
- occupancy: per-date room view (pure)
- reservation_state: lifecycle transitions and their side effects (pure)
- notifications: hand-off of reservation e-mails to the notification stream
- reservation_events: realtime fan-out to dashboards
- domain/: application services orchestrating persistence - USE THESE

Usage:
    from rest_api.services.domain import ReservationService
    service = ReservationService(db)
    result = service.accept_with_tables(tenant_id, reservation_id, [3, 4])
"""
