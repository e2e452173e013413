"""
EduPortal Billing - Background Tasks Package

Celery background tasks.
"""

from app.tasks.scheduled_tasks import (
    expire_stale_orders,
    reconcile_expired_subscriptions,
)

__all__ = [
    "expire_stale_orders",
    "reconcile_expired_subscriptions",
]
