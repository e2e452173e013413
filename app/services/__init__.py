"""
EduPortal Billing - Services Package

Business logic services.
"""

from app.services.auth_service import AuthService
from app.services.email_service import EmailService
from app.services.billing_email_service import BillingEmailService
from app.services.pricing_catalog import PriceCatalog, get_price_catalog
from app.services.price_calculator import PriceBreakdown, calculate_price
from app.services.payment_gateway import PaymentProvider, RazorpayProvider
from app.services.order_service import OrderService
from app.services.payment_verification_service import PaymentVerificationService
from app.services.webhook_service import WebhookService
from app.services.subscription_service import SubscriptionService

__all__ = [
    "AuthService",
    "EmailService",
    "BillingEmailService",
    "PriceCatalog",
    "get_price_catalog",
    "PriceBreakdown",
    "calculate_price",
    "PaymentProvider",
    "RazorpayProvider",
    "OrderService",
    "PaymentVerificationService",
    "WebhookService",
    "SubscriptionService",
]
