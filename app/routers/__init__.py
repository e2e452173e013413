"""
EduPortal Billing - Routers Package

FastAPI route handlers.

Routers:
- auth: Registration, login, current user
- pricing: Catalog display data and price calculation
- payment: Checkout orders, payment verification, provider webhook
- user_subscription: Current subscription, auto-renew, cancellation
- admin_pricing: Admin price catalog editing
"""

from app.routers import (
    auth,
    pricing,
    payment,
    user_subscription,
    admin_pricing,
)

__all__ = [
    "auth",
    "pricing",
    "payment",
    "user_subscription",
    "admin_pricing",
]
