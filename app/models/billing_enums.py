"""
EduPortal Billing - Billing Enums

Status enums shared by the billing models, services and schemas.
"""

from enum import Enum


class OrderStatus(str, Enum):
    """Lifecycle of a local checkout order."""
    CREATED = "created"
    PAID = "paid"
    FAILED = "failed"
    EXPIRED = "expired"


class PaymentStatus(str, Enum):
    """Outcome of a payment attempt."""
    SUCCESS = "success"
    FAILED = "failed"
    PENDING = "pending"


class SubscriptionStatus(str, Enum):
    """
    Subscription state machine:
    
    active -> inactive   (end date passed, detected on read or by reconciliation)
    active -> cancelled  (user cancels; terminal)
    
    A renewal creates a new subscription; inactive records are never revived.
    """
    ACTIVE = "active"
    INACTIVE = "inactive"
    CANCELLED = "cancelled"


def enum_values(enum_cls):
    """values_callable for SQLEnum so the database stores lowercase values."""
    return [member.value for member in enum_cls]
