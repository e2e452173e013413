"""
EduPortal Billing - Order Service

Creates provider-side orders sized to a computed price breakdown and keeps
the matching local Order record.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, Optional, Union

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.config.pricing_config import BillingCycle, Portal
from app.models.base import utcnow
from app.models.billing import Order
from app.models.billing_enums import OrderStatus
from app.services.payment_gateway import (
    PaymentProvider,
    RazorpayProvider,
    generate_receipt,
    to_smallest_unit,
)
from app.services.price_calculator import PriceBreakdown, calculate_price
from app.services.pricing_catalog import PriceCatalog
from app.utils.error_handling import ValidationException

logger = logging.getLogger(__name__)


@dataclass
class CheckoutOrder:
    """A created order together with what the checkout client needs."""
    order: Order
    breakdown: PriceBreakdown
    provider_public_key: str
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "order": {
                "id": str(self.order.id),
                "provider_order_id": self.order.provider_order_id,
                "amount": self.order.amount,
                "amount_in_smallest_unit": self.order.amount_in_smallest_unit,
                "currency": self.order.currency,
                "expires_at": self.order.expires_at,
                "price_breakdown": self.breakdown.to_dict(),
            },
            "provider_public_key": self.provider_public_key,
        }


async def expire_stale_orders(db: AsyncSession, now: Optional[datetime] = None) -> int:
    """Mark unpaid orders past their expiry as expired. Idempotent."""
    now = now or utcnow()
    result = await db.execute(
        update(Order)
        .where(
            Order.status == OrderStatus.CREATED,
            Order.expires_at < now,
        )
        .values(status=OrderStatus.EXPIRED)
        .execution_options(synchronize_session=False)
    )
    count = result.rowcount or 0
    if count:
        logger.info(f"Expired {count} stale orders")
    return count


class OrderService:
    """Checkout order creation and housekeeping."""
    
    def __init__(
        self,
        db: AsyncSession,
        catalog: PriceCatalog,
        payment_provider: Optional[PaymentProvider] = None,
    ):
        self.db = db
        self.catalog = catalog
        self.payment_provider = payment_provider or RazorpayProvider()
    
    async def create_order(
        self,
        user_id: uuid.UUID,
        portals: Iterable[Union[Portal, str]],
        features: Iterable[str],
        billing_cycle: Union[BillingCycle, str] = BillingCycle.MONTHLY,
    ) -> CheckoutOrder:
        """
        Create a provider order for the selection and persist it locally.
        
        Nothing is persisted if the provider call fails; the
        PaymentGatewayException propagates to the caller.
        """
        portals = list(portals or [])
        if not portals:
            raise ValidationException("At least one portal must be selected", field="portals")
        
        breakdown = calculate_price(self.catalog, portals, list(features or []), billing_cycle)
        if not breakdown.portal_ids:
            raise ValidationException("No known portal in the selection", field="portals")
        
        amount_minor = to_smallest_unit(breakdown.total)
        currency = settings.payment_currency
        receipt = generate_receipt()
        
        provider_order = await self.payment_provider.create_order(
            amount_in_smallest_unit=amount_minor,
            currency=currency,
            receipt=receipt,
            notes={
                "user_id": str(user_id),
                "portals": ",".join(breakdown.portal_ids),
                "features": ",".join(breakdown.feature_ids),
                "billing_cycle": breakdown.billing_cycle.value,
            },
        )
        
        order = Order(
            user_id=user_id,
            provider_order_id=provider_order.id,
            receipt=receipt,
            amount=breakdown.total,
            amount_in_smallest_unit=amount_minor,
            currency=currency,
            selected_portals=breakdown.portal_ids,
            selected_features=breakdown.feature_ids,
            billing_cycle=breakdown.billing_cycle,
            status=OrderStatus.CREATED,
            expires_at=utcnow() + timedelta(minutes=settings.order_expiry_minutes),
        )
        self.db.add(order)
        await self.db.flush()
        
        logger.info(
            f"Order {order.provider_order_id} created for user {user_id}: "
            f"{breakdown.total} {currency} ({breakdown.billing_cycle.value})"
        )
        
        return CheckoutOrder(
            order=order,
            breakdown=breakdown,
            provider_public_key=self.payment_provider.public_key,
        )
    
    async def expire_stale_orders(self, now: Optional[datetime] = None) -> int:
        return await expire_stale_orders(self.db, now)
