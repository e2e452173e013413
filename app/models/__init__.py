"""
EduPortal Billing - SQLAlchemy Models Package

This package contains all database models for the application.
"""

from app.models.base import BaseModel, TimestampMixin, utcnow
from app.models.billing_enums import OrderStatus, PaymentStatus, SubscriptionStatus
from app.models.user import User, UserRole
from app.models.billing import Order, Payment, Subscription
from app.models.pricing_setting import PricingSetting

__all__ = [
    "BaseModel",
    "TimestampMixin",
    "utcnow",
    "OrderStatus",
    "PaymentStatus",
    "SubscriptionStatus",
    "User",
    "UserRole",
    "Order",
    "Payment",
    "Subscription",
    "PricingSetting",
]
