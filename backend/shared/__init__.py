"""
Shared module for common utilities across REST API and WS Gateway.

- settings.py: Environment config (pydantic-settings)
- logging.py: Structured logging
- constants.py: Roles, reservation statuses, transition roles, limits
- exceptions.py: HTTP exceptions with auto-logging
- auth.py: JWT verification, current_user_context, require_roles
- events.py: Redis pool, reservation event envelope and publishing
- rate_limit.py: slowapi limiter for the public endpoints
- schemas.py: Pydantic request/response schemas

IMPORT EXAMPLES:
    from shared.auth import current_user_context, require_roles
    from shared.settings import settings
    from shared.constants import ReservationStatus, STAFF_ROLES
    from shared.exceptions import NotFoundError, TableUnavailableError
"""
