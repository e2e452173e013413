"""
EduPortal Billing - Payment Verification Service

Confirms a checkout callback from the payment provider:

1. verify the "<order_id>|<payment_id>" HMAC signature (fail closed)
2. find the caller's order (ownership check)
3. claim the order with a conditional update (created/failed/expired -> paid)
4. record the payment, open the subscription, replace the user's
   entitlement snapshot
5. commit, then send a best-effort confirmation email

The conditional update in step 3 gives at-most-once semantics per order:
of two concurrent verifications only one update matches a non-paid row,
the other sees zero rows and is reported as already processed.
"""

import logging
import uuid
from datetime import datetime
from typing import Optional

from dateutil.relativedelta import relativedelta
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.config.pricing_config import BillingCycle
from app.models.base import utcnow
from app.models.billing import Order, Payment, Subscription
from app.models.billing_enums import OrderStatus, PaymentStatus, SubscriptionStatus
from app.models.user import User
from app.services.billing_email_service import BillingEmailService
from app.services.payment_gateway import verify_payment_signature
from app.utils.error_handling import (
    AlreadyProcessedException,
    OrderNotFoundException,
    SignatureMismatchException,
)

logger = logging.getLogger(__name__)


def calculate_subscription_end(start: datetime, billing_cycle: BillingCycle) -> datetime:
    """
    End of a subscription period using calendar arithmetic.
    
    Jan 31 + 1 month is Feb 28 (or 29), Feb 29 + 1 year is Feb 28.
    """
    if BillingCycle(billing_cycle) == BillingCycle.ANNUAL:
        return start + relativedelta(years=1)
    return start + relativedelta(months=1)


class PaymentVerificationService:
    """Turns a verified provider payment into an active subscription."""
    
    def __init__(
        self,
        db: AsyncSession,
        key_secret: Optional[str] = None,
        email_service: Optional[BillingEmailService] = None,
    ):
        self.db = db
        self.key_secret = key_secret if key_secret is not None else settings.razorpay_key_secret
        self.email_service = email_service or BillingEmailService()
    
    async def verify(
        self,
        user_id: uuid.UUID,
        provider_order_id: str,
        provider_payment_id: str,
        provider_signature: str,
    ) -> Subscription:
        """
        Verify a payment and activate the subscription.
        
        Raises:
            SignatureMismatchException: signature does not match (no state change)
            OrderNotFoundException: no such order for this user
            AlreadyProcessedException: order already paid
        """
        if not verify_payment_signature(
            provider_order_id, provider_payment_id, provider_signature, self.key_secret
        ):
            logger.warning(
                f"Payment signature mismatch for order {provider_order_id} "
                f"(user {user_id}) - possible tampering"
            )
            raise SignatureMismatchException()
        
        order = await self._get_user_order(user_id, provider_order_id)
        if order is None:
            raise OrderNotFoundException(provider_order_id)
        
        if order.status == OrderStatus.PAID:
            raise AlreadyProcessedException(provider_order_id)
        
        now = utcnow()
        try:
            if not await self._claim_order(order.id, now):
                raise AlreadyProcessedException(provider_order_id)
            
            subscription = await self._activate(order, provider_payment_id, provider_signature, now)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        
        logger.info(
            f"Payment {provider_payment_id} verified for order {provider_order_id}; "
            f"subscription {subscription.id} active until {subscription.end_date}"
        )
        
        await self._notify(user_id, subscription, provider_payment_id)
        return subscription
    
    async def _get_user_order(self, user_id: uuid.UUID, provider_order_id: str) -> Optional[Order]:
        result = await self.db.execute(
            select(Order).where(
                Order.provider_order_id == provider_order_id,
                Order.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()
    
    async def _claim_order(self, order_id: uuid.UUID, now: datetime) -> bool:
        """Compare-and-set the order to PAID. False if another request won."""
        result = await self.db.execute(
            update(Order)
            .where(
                Order.id == order_id,
                Order.status != OrderStatus.PAID,
            )
            .values(status=OrderStatus.PAID, paid_at=now, updated_at=now)
        )
        return result.rowcount == 1
    
    async def _activate(
        self,
        order: Order,
        provider_payment_id: str,
        provider_signature: str,
        now: datetime,
    ) -> Subscription:
        payment = Payment(
            payment_id=provider_payment_id,
            order_id=order.id,
            provider_order_id=order.provider_order_id,
            user_id=order.user_id,
            amount=order.amount,
            currency=order.currency,
            status=PaymentStatus.SUCCESS,
            signature=provider_signature,
        )
        self.db.add(payment)
        
        # Supersede earlier active subscriptions so at most one stays active
        await self.db.execute(
            update(Subscription)
            .where(
                Subscription.user_id == order.user_id,
                Subscription.status == SubscriptionStatus.ACTIVE,
            )
            .values(status=SubscriptionStatus.INACTIVE, updated_at=now)
        )
        
        subscription = Subscription(
            user_id=order.user_id,
            order_id=order.id,
            portals=list(order.selected_portals),
            features=list(order.selected_features),
            amount=order.amount,
            billing_cycle=order.billing_cycle,
            start_date=now,
            end_date=calculate_subscription_end(now, order.billing_cycle),
            status=SubscriptionStatus.ACTIVE,
            auto_renew=True,
        )
        self.db.add(subscription)
        await self.db.flush()
        
        payment.subscription_id = subscription.id
        
        user = await self.db.get(User, order.user_id)
        if user is not None:
            user.subscription_status = SubscriptionStatus.ACTIVE
            user.current_subscription_id = subscription.id
            user.purchased_portals = list(subscription.portals)
            user.enabled_features = list(subscription.features)
        
        await self.db.flush()
        return subscription
    
    async def _notify(
        self,
        user_id: uuid.UUID,
        subscription: Subscription,
        provider_payment_id: str,
    ) -> None:
        """Fire-and-forget confirmation; failures are logged only."""
        try:
            user = await self.db.get(User, user_id)
            if user is None:
                return
            sent = await self.email_service.send_payment_success(
                email=user.email,
                name=user.name,
                portals=subscription.portals,
                features=subscription.features,
                amount=subscription.amount,
                billing_cycle=subscription.billing_cycle.value,
                payment_id=provider_payment_id,
                valid_until=subscription.end_date,
            )
            if not sent:
                logger.warning(f"Payment confirmation email not sent for {provider_payment_id}")
        except Exception as e:
            logger.error(f"Payment confirmation notification failed for {provider_payment_id}: {e}")
