"""
Authentication and authorization utilities.

Tokens are issued by the external auth service; this module only verifies
them and extracts the staff context (sub, tenant_id, roles, email).
"""

from __future__ import annotations

import time
from typing import Any

import jwt
from fastapi import Header, HTTPException, status

from shared.constants import ErrorMessages
from shared.settings import (
    JWT_SECRET,
    JWT_ISSUER,
    JWT_AUDIENCE,
    settings,
)


# =============================================================================
# JWT Functions (staff authentication)
# =============================================================================


def sign_jwt(
    payload: dict[str, Any],
    ttl_seconds: int | None = None,
    token_type: str = "access",
) -> str:
    """
    Sign a JWT token with the given payload.

    Used by the CLI and tests; production tokens come from the auth service
    sharing the same secret, issuer and audience.

    Args:
        payload: Claims to include (sub, tenant_id, roles, email).
        ttl_seconds: Token lifetime in seconds. Defaults to access token expiry.
        token_type: Type of token ("access" or "refresh").
    """
    if ttl_seconds is None:
        ttl_seconds = settings.jwt_access_token_expire_minutes * 60

    now = int(time.time())
    data = {
        **payload,
        "iss": JWT_ISSUER,
        "aud": JWT_AUDIENCE,
        "iat": now,
        "exp": now + ttl_seconds,
        "type": token_type,
    }
    return jwt.encode(data, JWT_SECRET, algorithm="HS256")


def verify_jwt(token: str) -> dict[str, Any]:
    """
    Verify and decode a JWT token.

    Raises:
        HTTPException: If token is invalid or expired.
    """
    try:
        return jwt.decode(
            token,
            JWT_SECRET,
            algorithms=["HS256"],
            audience=JWT_AUDIENCE,
            issuer=JWT_ISSUER,
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
        )
    except jwt.InvalidTokenError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid token: {str(e)}",
        )


def get_bearer_token(authorization: str | None) -> str:
    """
    Extract bearer token from Authorization header.

    Raises:
        HTTPException: If header is missing or malformed.
    """
    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=ErrorMessages.NOT_AUTHENTICATED,
        )
    if not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid Authorization header format. Expected: Bearer <token>",
        )
    return authorization.split(" ", 1)[1].strip()


def current_user_context(
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> dict[str, Any]:
    """
    FastAPI dependency to get the current staff context from JWT.

    Usage:
        @router.get("/api/reservations")
        async def list_day(ctx = Depends(current_user_context)):
            tenant_id = tenant_of(ctx)
            ...

    Returns:
        Dict with: sub (user_id), tenant_id, roles, email
    """
    token = get_bearer_token(authorization)
    claims = verify_jwt(token)
    if claims.get("type") == "refresh":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Refresh tokens cannot be used for API access",
        )
    return claims


def require_roles(ctx: dict[str, Any], allowed: list[str] | frozenset[str]) -> None:
    """
    Verify that the user has at least one of the allowed roles.

    Raises:
        HTTPException: If user lacks required role.
    """
    user_roles = set(ctx.get("roles", []))
    if not user_roles.intersection(set(allowed)):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Insufficient permissions. Required role: one of {sorted(allowed)}",
        )


def tenant_of(ctx: dict[str, Any]) -> int:
    """
    Tenant id the staff member acts for.

    Raises:
        HTTPException: If the token carries no tenant.
    """
    tenant_id = ctx.get("tenant_id")
    if not isinstance(tenant_id, int) or tenant_id <= 0:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=ErrorMessages.NO_TENANT_ACCESS,
        )
    return tenant_id


def actor_of(ctx: dict[str, Any]) -> tuple[int | None, str | None]:
    """(user_id, email) recorded on audit fields and event actors."""
    sub = ctx.get("sub")
    user_id = int(sub) if sub is not None and str(sub).isdigit() else None
    return user_id, ctx.get("email")
