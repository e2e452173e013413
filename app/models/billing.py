"""
EduPortal Billing - Order, Payment and Subscription Models

Order:        a checkout intent paired with a provider-side order.
Payment:      an immutable record of a confirmed payment.
Subscription: the time-boxed entitlement created from a paid order.
"""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import (
    Boolean, DateTime, ForeignKey, Integer, JSON, String, Uuid, Enum as SQLEnum
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.config.pricing_config import BillingCycle
from app.models.base import BaseModel
from app.models.billing_enums import (
    OrderStatus,
    PaymentStatus,
    SubscriptionStatus,
    enum_values,
)

if TYPE_CHECKING:
    from app.models.user import User


class Order(BaseModel):
    """
    Local checkout order.
    
    Created with status CREATED and a short expiry window. Moves to PAID
    exactly once (conditional update in the verification service) or to
    FAILED via the provider webhook. Never deleted.
    """
    
    __tablename__ = "orders"
    
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    provider_order_id: Mapped[str] = mapped_column(
        String(64),
        unique=True,
        index=True,
        nullable=False,
    )
    receipt: Mapped[str] = mapped_column(String(40), nullable=False)
    
    # Whole currency units (rupees) and the provider's smallest unit (paise)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    amount_in_smallest_unit: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="INR", nullable=False)
    
    selected_portals: Mapped[List[str]] = mapped_column(JSON, default=list, nullable=False)
    selected_features: Mapped[List[str]] = mapped_column(JSON, default=list, nullable=False)
    billing_cycle: Mapped[BillingCycle] = mapped_column(
        SQLEnum(BillingCycle, name="billing_cycle", values_callable=enum_values),
        nullable=False,
    )
    
    status: Mapped[OrderStatus] = mapped_column(
        SQLEnum(OrderStatus, name="order_status", values_callable=enum_values),
        default=OrderStatus.CREATED,
        nullable=False,
        index=True,
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    failure_reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    
    user: Mapped["User"] = relationship("User", back_populates="orders", lazy="raise")
    
    def __repr__(self) -> str:
        return (
            f"<Order(id={self.id}, provider_order_id={self.provider_order_id}, "
            f"status={self.status})>"
        )


class Payment(BaseModel):
    """
    Confirmed payment. The provider payment id is globally unique, which
    also blocks a second record for the same provider payment.
    """
    
    __tablename__ = "payments"
    
    payment_id: Mapped[str] = mapped_column(
        String(64),
        unique=True,
        index=True,
        nullable=False,
    )
    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    provider_order_id: Mapped[str] = mapped_column(String(64), nullable=False)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    subscription_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("subscriptions.id", ondelete="SET NULL"),
        nullable=True,
    )
    
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="INR", nullable=False)
    status: Mapped[PaymentStatus] = mapped_column(
        SQLEnum(PaymentStatus, name="payment_status", values_callable=enum_values),
        default=PaymentStatus.PENDING,
        nullable=False,
    )
    # Retained for audit
    signature: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    
    def __repr__(self) -> str:
        return f"<Payment(id={self.id}, payment_id={self.payment_id}, status={self.status})>"


class Subscription(BaseModel):
    """Entitlement record for a set of portals and add-on features."""
    
    __tablename__ = "subscriptions"
    
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
    )
    
    portals: Mapped[List[str]] = mapped_column(JSON, default=list, nullable=False)
    features: Mapped[List[str]] = mapped_column(JSON, default=list, nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    billing_cycle: Mapped[BillingCycle] = mapped_column(
        SQLEnum(BillingCycle, name="billing_cycle", values_callable=enum_values),
        nullable=False,
    )
    
    start_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end_date: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    status: Mapped[SubscriptionStatus] = mapped_column(
        SQLEnum(SubscriptionStatus, name="subscription_status", values_callable=enum_values),
        default=SubscriptionStatus.ACTIVE,
        nullable=False,
        index=True,
    )
    auto_renew: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    
    user: Mapped["User"] = relationship("User", back_populates="subscriptions", lazy="raise")
    
    def __repr__(self) -> str:
        return (
            f"<Subscription(id={self.id}, user_id={self.user_id}, "
            f"status={self.status}, end_date={self.end_date})>"
        )
