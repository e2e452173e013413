"""
EduPortal Billing - Authentication Service

Business logic for user registration, login and admin bootstrap.
"""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.billing_enums import SubscriptionStatus
from app.models.user import User, UserRole
from app.utils.error_handling import ConflictException, ErrorCode
from app.utils.security import get_password_hash, verify_password

logger = logging.getLogger(__name__)


class AuthService:
    """Service for authentication operations."""
    
    def __init__(self, db: AsyncSession):
        self.db = db
    
    async def get_user_by_email(self, email: str) -> Optional[User]:
        """Get user by email address."""
        result = await self.db.execute(
            select(User).where(User.email == email.lower())
        )
        return result.scalar_one_or_none()
    
    async def authenticate_user(self, email: str, password: str) -> Optional[User]:
        """
        Authenticate user with email and password.
        
        Returns:
            User if authentication successful, None otherwise
        """
        user = await self.get_user_by_email(email)
        if not user:
            return None
        if not verify_password(password, user.hashed_password):
            return None
        return user
    
    async def register_user(
        self,
        name: str,
        email: str,
        password: str,
        role: UserRole = UserRole.USER,
    ) -> User:
        """
        Create a new user with an empty entitlement snapshot.
        
        Raises:
            ConflictException: email already registered
        """
        if await self.get_user_by_email(email):
            raise ConflictException(
                "Email already registered",
                code=ErrorCode.DUPLICATE_ENTRY,
                field="email",
            )
        
        user = User(
            name=name.strip(),
            email=email.lower(),
            hashed_password=get_password_hash(password),
            role=role,
            is_active=True,
            subscription_status=SubscriptionStatus.INACTIVE,
            purchased_portals=[],
            enabled_features=[],
        )
        self.db.add(user)
        await self.db.flush()
        
        logger.info(f"Registered user {user.email} ({role.value})")
        return user
    
    async def get_or_create_admin(self, email: str, password: str) -> User:
        """Ensure the bootstrap admin account exists with the admin role."""
        user = await self.get_user_by_email(email)
        if user is None:
            return await self.register_user("Administrator", email, password, role=UserRole.ADMIN)
        
        if user.role != UserRole.ADMIN:
            user.role = UserRole.ADMIN
            await self.db.flush()
        return user
