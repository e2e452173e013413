"""
EduPortal Billing - FastAPI Dependencies

Shared dependencies for authentication, role checks and portal
entitlement checks against the user's subscription snapshot.
"""

import uuid
from typing import List, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from app.config.pricing_config import Feature, Portal
from app.database import get_async_session
from app.models.base import utcnow
from app.models.billing import Subscription
from app.models.billing_enums import SubscriptionStatus
from app.models.user import User, UserRole
from app.utils.error_handling import (
    AuthenticationException,
    AuthorizationException,
    ErrorCode,
)
from app.utils.security import verify_access_token


# HTTP Bearer token security
security = HTTPBearer(auto_error=False)


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_async_session),
) -> User:
    """
    Get the current authenticated user from JWT token.
    
    Token can be provided via:
    1. Authorization: Bearer <token> header
    2. access_token cookie
    
    Raises:
        AuthenticationException: missing or invalid token, or unknown user
    """
    token = None
    
    if credentials:
        token = credentials.credentials
    else:
        token = request.cookies.get("access_token")
        if token and token.startswith("Bearer "):
            token = token[7:]
    
    if not token:
        raise AuthenticationException()
    
    payload = verify_access_token(token)
    if not payload or not payload.get("sub"):
        raise AuthenticationException("Invalid or expired token", code=ErrorCode.TOKEN_INVALID)
    
    try:
        user_uuid = uuid.UUID(payload["sub"])
    except ValueError:
        raise AuthenticationException("Invalid user ID in token", code=ErrorCode.TOKEN_INVALID)
    
    user = await db.get(User, user_uuid)
    if not user:
        raise AuthenticationException("User not found", code=ErrorCode.USER_NOT_FOUND)
    
    return user


async def get_current_active_user(
    current_user: User = Depends(get_current_user),
) -> User:
    """Get current user and verify they are active."""
    if not current_user.is_active:
        raise AuthorizationException("User account is deactivated", code=ErrorCode.ACCOUNT_DISABLED)
    return current_user


def require_role(allowed_roles: List[UserRole]):
    """
    Dependency factory for role-based access control.
    
    Usage:
        @router.get("/admin-only")
        async def admin_endpoint(user: User = Depends(require_role([UserRole.ADMIN]))):
            ...
    """
    async def role_checker(
        current_user: User = Depends(get_current_active_user),
    ) -> User:
        if current_user.role not in allowed_roles:
            raise AuthorizationException(
                "Access denied",
                code=ErrorCode.INSUFFICIENT_PERMISSIONS,
                required=",".join(r.value for r in allowed_roles),
            )
        return current_user
    
    return role_checker


require_admin = require_role([UserRole.ADMIN])


# ===========================================
# ENTITLEMENT CHECKS
# ===========================================

async def has_portal_access(
    db: AsyncSession,
    user: User,
    portal: Portal,
    features: Optional[List[Feature]] = None,
) -> bool:
    """
    Check the user's entitlement snapshot.
    
    Active subscriptions grant access. Cancelled ones keep granting it
    until the subscription's end date.
    """
    if portal.value not in (user.purchased_portals or []):
        return False
    if any(f.value not in (user.enabled_features or []) for f in features or []):
        return False
    
    if user.subscription_status == SubscriptionStatus.ACTIVE:
        return True
    if user.subscription_status == SubscriptionStatus.CANCELLED and user.current_subscription_id:
        subscription = await db.get(Subscription, user.current_subscription_id)
        return subscription is not None and subscription.end_date > utcnow()
    return False
