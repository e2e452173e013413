"""
EduPortal Billing - Payment Router

Checkout order creation, payment verification, the provider webhook and
the caller's payment history.
Uses Razorpay as the payment provider (INR).
"""

import logging

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_db
from app.dependencies import get_current_active_user
from app.models.user import User
from app.schemas.billing import (
    CreateOrderRequest,
    CreateOrderResponse,
    PaymentHistoryResponse,
    VerifyPaymentRequest,
    VerifyPaymentResponse,
    WebhookAckResponse,
)
from app.services.order_service import OrderService
from app.services.payment_gateway import PaymentProvider, get_payment_provider
from app.services.payment_history_service import PaymentHistoryService
from app.services.payment_verification_service import PaymentVerificationService
from app.services.pricing_catalog import PriceCatalog, get_price_catalog
from app.services.subscription_service import subscription_to_dict
from app.services.webhook_service import WebhookService


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/payment", tags=["Payments"])


@router.post(
    "/create-order",
    response_model=CreateOrderResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a checkout order",
)
async def create_order(
    request: CreateOrderRequest,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
    catalog: PriceCatalog = Depends(get_price_catalog),
    payment_provider: PaymentProvider = Depends(get_payment_provider),
):
    """
    Price the selection and open a provider order for the total.
    
    On a provider failure nothing is stored and 502 is returned; retrying
    is safe because every attempt uses a new receipt id.
    """
    service = OrderService(db, catalog, payment_provider)
    checkout = await service.create_order(
        user_id=current_user.id,
        portals=request.portals,
        features=request.features,
        billing_cycle=request.billing_cycle,
    )
    await db.commit()
    
    return checkout.to_dict()


@router.post(
    "/verify",
    response_model=VerifyPaymentResponse,
    summary="Verify a completed payment",
)
async def verify_payment(
    request: VerifyPaymentRequest,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Verify the provider's signature and activate the subscription.
    
    Never retried automatically: a second call for the same order
    returns 400 (already processed).
    """
    service = PaymentVerificationService(db)
    subscription = await service.verify(
        user_id=current_user.id,
        provider_order_id=request.provider_order_id,
        provider_payment_id=request.provider_payment_id,
        provider_signature=request.provider_signature,
    )
    
    return VerifyPaymentResponse(
        message="Payment verified and subscription activated",
        subscription=subscription_to_dict(subscription),
    )


@router.post(
    "/webhook",
    response_model=WebhookAckResponse,
    include_in_schema=False,  # Hide from public API docs
)
async def payment_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """
    Razorpay webhook receiver.
    
    Trusted through the HMAC signature header over the raw body. Returns
    400 only for a bad signature; everything else is acknowledged.
    """
    raw_body = await request.body()
    signature = request.headers.get(settings.webhook_signature_header)
    
    service = WebhookService(db)
    return await service.handle(raw_body, signature)


@router.get(
    "/history",
    response_model=PaymentHistoryResponse,
    summary="Recent payments",
)
async def payment_history(
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
):
    """The caller's latest payments with the subscription each one created."""
    service = PaymentHistoryService(db)
    return PaymentHistoryResponse(payments=await service.get_recent_payments(current_user.id))
