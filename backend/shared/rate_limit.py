"""
Rate limiting utilities using slowapi.
Protects the unauthenticated booking endpoints from abuse.
"""

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from shared.logging import public_logger as logger


# Create limiter instance using client IP as key
limiter = Limiter(key_func=get_remote_address)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """
    Custom handler for rate limit exceeded errors.
    Returns a JSON response with retry information.
    """
    logger.warning(
        "Rate limit exceeded",
        path=request.url.path,
        client=get_remote_address(request),
        limit=str(exc.detail),
    )
    return JSONResponse(
        status_code=429,
        content={
            "detail": "Demasiadas solicitudes. Intente de nuevo más tarde.",
            "retry_after": exc.detail,
        },
        headers={"Retry-After": str(exc.detail)},
    )


# Usage in router:
#
# from shared.rate_limit import limiter
#
# @router.post("/api/public/{slug}/reservations")
# @limiter.limit(settings.public_booking_rate_limit)
# async def create_booking(request: Request, ...):
#     ...
