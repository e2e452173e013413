"""
EduPortal Billing - User Model

Users own orders, payments and subscriptions. The user row also carries a
denormalized entitlement snapshot (subscription status, current subscription,
purchased portals and enabled features) so access checks elsewhere do not
need to join against subscriptions.
"""

import uuid
from enum import Enum
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import Boolean, JSON, String, Uuid, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import BaseModel
from app.models.billing_enums import SubscriptionStatus, enum_values

if TYPE_CHECKING:
    from app.models.billing import Order, Subscription


class UserRole(str, Enum):
    """Account roles."""
    USER = "user"
    ADMIN = "admin"


class User(BaseModel):
    """Application user with entitlement snapshot."""
    
    __tablename__ = "users"
    
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        index=True,
        nullable=False,
    )
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[UserRole] = mapped_column(
        SQLEnum(UserRole, name="user_role", values_callable=enum_values),
        default=UserRole.USER,
        nullable=False,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    
    # ===========================================
    # ENTITLEMENT SNAPSHOT
    # Mirrors the current subscription. Replaced on purchase.
    # ===========================================
    subscription_status: Mapped[SubscriptionStatus] = mapped_column(
        SQLEnum(SubscriptionStatus, name="user_subscription_status", values_callable=enum_values),
        default=SubscriptionStatus.INACTIVE,
        nullable=False,
    )
    current_subscription_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        nullable=True,
    )
    purchased_portals: Mapped[List[str]] = mapped_column(JSON, default=list, nullable=False)
    enabled_features: Mapped[List[str]] = mapped_column(JSON, default=list, nullable=False)
    
    # Relationships
    orders: Mapped[List["Order"]] = relationship(
        "Order",
        back_populates="user",
        lazy="raise",
    )
    subscriptions: Mapped[List["Subscription"]] = relationship(
        "Subscription",
        back_populates="user",
        lazy="raise",
    )
    
    @property
    def is_admin(self) -> bool:
        """Check if user has the admin role."""
        return self.role == UserRole.ADMIN
    
    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"
