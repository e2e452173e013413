"""
EduPortal Billing - Billing Schemas

Pydantic schemas for pricing, checkout, verification, subscription and
admin pricing endpoints. Portal and billing cycle values are closed enums,
so unknown values are rejected at the request boundary.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, Field

from app.config.pricing_config import BillingCycle, Portal


# ===========================================
# PRICING
# ===========================================

class PriceSelectionRequest(BaseModel):
    """Portals, add-on features and billing cycle to price."""
    portals: List[Portal] = Field(..., min_length=1, description="At least one portal")
    features: List[str] = Field(default_factory=list, description="Add-on feature ids")
    billing_cycle: BillingCycle = Field(BillingCycle.MONTHLY, description="monthly or annual")


class LineItemResponse(BaseModel):
    id: str
    name: str
    price: int


class PriceBreakdownResponse(BaseModel):
    """Computed price; every amount is already multiplied for the cycle."""
    base_price: int
    add_on_price: int
    subtotal: int
    discount_percentage: float = Field(..., description="Bundle discount, 0-100")
    discount_amount: int
    total: int
    billing_cycle: BillingCycle
    portals: List[LineItemResponse]
    features: List[LineItemResponse]


class PriceCalculationResponse(BaseModel):
    success: bool = True
    price_breakdown: PriceBreakdownResponse


# ===========================================
# CHECKOUT
# ===========================================

class CreateOrderRequest(PriceSelectionRequest):
    """Checkout request; same selection shape as a price calculation."""
    pass


class OrderResponse(BaseModel):
    id: str
    provider_order_id: str
    amount: int = Field(..., description="Total in rupees")
    amount_in_smallest_unit: int = Field(..., description="Total in paise")
    currency: str
    expires_at: datetime
    price_breakdown: PriceBreakdownResponse


class CreateOrderResponse(BaseModel):
    order: OrderResponse
    provider_public_key: str = Field(..., description="Publishable key for the checkout widget")


class VerifyPaymentRequest(BaseModel):
    """Identifiers returned by the provider checkout. Razorpay names are accepted too."""
    provider_order_id: str = Field(
        ..., min_length=1,
        validation_alias=AliasChoices("provider_order_id", "razorpay_order_id"),
    )
    provider_payment_id: str = Field(
        ..., min_length=1,
        validation_alias=AliasChoices("provider_payment_id", "razorpay_payment_id"),
    )
    provider_signature: str = Field(
        ..., min_length=1,
        validation_alias=AliasChoices("provider_signature", "razorpay_signature"),
    )


# ===========================================
# SUBSCRIPTIONS
# ===========================================

class SubscriptionSummary(BaseModel):
    id: str
    portals: List[str]
    features: List[str]
    amount: int
    billing_cycle: BillingCycle
    start_date: datetime
    end_date: datetime
    status: str
    auto_renew: bool
    days_remaining: int


class VerifyPaymentResponse(BaseModel):
    success: bool = True
    message: str
    subscription: SubscriptionSummary


class SubscriptionStatusResponse(BaseModel):
    has_subscription: bool
    subscription: Optional[SubscriptionSummary] = None


class AutoRenewResponse(BaseModel):
    success: bool = True
    auto_renew: bool
    message: str


class CancelSubscriptionResponse(BaseModel):
    success: bool = True
    message: str
    subscription: SubscriptionSummary


class PortalAccessResponse(BaseModel):
    portal: Portal
    has_access: bool


class WebhookAckResponse(BaseModel):
    received: bool = True


# ===========================================
# PAYMENT HISTORY & DASHBOARD
# ===========================================

class PaymentSubscriptionInfo(BaseModel):
    """The subscription a payment created."""
    id: str
    portals: List[str]
    features: List[str]
    billing_cycle: BillingCycle
    start_date: datetime
    end_date: datetime


class PaymentRecordResponse(BaseModel):
    id: str
    payment_id: str
    provider_order_id: str
    amount: int = Field(..., description="Amount in rupees")
    currency: str
    status: str
    created_at: datetime
    subscription: Optional[PaymentSubscriptionInfo] = None


class PaymentHistoryResponse(BaseModel):
    payments: List[PaymentRecordResponse]


class PaymentListResponse(BaseModel):
    """One page of the user's payments, newest first."""
    payments: List[PaymentRecordResponse]
    total: int
    page: int
    page_size: int
    total_pages: int


class DashboardUserInfo(BaseModel):
    name: str
    email: str
    subscription_status: str
    purchased_portals: List[str]
    enabled_features: List[str]


class RecentPaymentResponse(BaseModel):
    id: str
    amount: int
    status: str
    date: datetime


class DashboardSummaryResponse(BaseModel):
    user: DashboardUserInfo
    subscription: Optional[SubscriptionSummary] = None
    recent_payments: List[RecentPaymentResponse]


# ===========================================
# ADMIN PRICING
# ===========================================

class AdminPricingUpdateRequest(BaseModel):
    """
    Partial catalog update. Unknown ids and invalid values are not errors;
    they are skipped and listed under "ignored" in the response.
    """
    portal_prices: Optional[Dict[str, Any]] = None
    feature_prices: Optional[Dict[str, Any]] = None
    bundle_discounts: Optional[Dict[str, Any]] = Field(
        None, description="Percentages, 0-100"
    )


class AdminPricingResponse(BaseModel):
    success: bool = True
    pricing: Dict[str, Any]
    applied: Dict[str, List[str]] = Field(default_factory=dict)
    ignored: Dict[str, List[str]] = Field(default_factory=dict)
