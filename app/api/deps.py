"""API Dependencies"""

from typing import Optional
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from uuid import UUID

from app.database import get_db
from app.core.exceptions import ForbiddenError
from app.core.security import decode_token
from app.models.enums import UserRole
from app.models.partner import Partner
from app.models.user import User
from app.services.payment_gateway import PaymentGateway, get_payment_gateway

# Security scheme for bearer token
security = HTTPBearer()

__all__ = [
    "get_db",
    "get_payment_gateway",
    "get_current_user",
    "require_partner",
    "PaymentGateway",
]


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    db: AsyncSession = Depends(get_db),
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> User:
    """
    Get current authenticated user from JWT token.

    Args:
        db: Database session
        credentials: HTTP authorization credentials

    Returns:
        Current user

    Raises:
        HTTPException: If token is invalid or user not found
    """
    payload = decode_token(credentials.credentials)
    if not payload:
        raise _unauthorized("Could not validate credentials")

    if payload.get("type") != "access":
        raise _unauthorized("Invalid token type")

    user_id_str: Optional[str] = payload.get("sub")
    if not user_id_str:
        raise _unauthorized("Could not validate credentials")

    try:
        user_id = UUID(user_id_str)
    except ValueError:
        raise _unauthorized("Invalid user ID")

    user = await db.get(User, user_id)
    if not user:
        raise _unauthorized("User not found")

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Inactive user"
        )

    return user


async def require_partner(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
) -> Partner:
    """
    Resolve the caller's partner profile.

    Evaluated once per request; routes needing the partner depend on this
    instead of looking it up again.

    Raises:
        ForbiddenError: caller has no partner role or no partner profile
    """
    if not current_user.has_role(UserRole.PARTNER):
        raise ForbiddenError("Partner access required")

    result = await db.execute(select(Partner).where(Partner.user_id == current_user.id))
    partner = result.scalar_one_or_none()
    if not partner:
        raise ForbiddenError("Partner profile not found")
    return partner
