"""
EduPortal Billing - Subscription Service

Read path with lazy expiry, plus user-initiated lifecycle changes
(auto-renew toggle, cancellation) and the background reconciliation pass.

Expired subscriptions are detected when read. The reconciliation pass
applies the same transition to subscriptions nobody reads.
"""

import logging
import math
import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.base import utcnow
from app.models.billing import Subscription
from app.models.billing_enums import SubscriptionStatus
from app.models.user import User
from app.utils.error_handling import NoActiveSubscriptionException

logger = logging.getLogger(__name__)


def days_remaining(subscription: Subscription, now: Optional[datetime] = None) -> int:
    """Whole days until the end date, rounded up, never negative."""
    now = now or utcnow()
    seconds = (subscription.end_date - now).total_seconds()
    return max(0, math.ceil(seconds / 86400))


def subscription_to_dict(subscription: Subscription, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Summary returned by the payment and subscription endpoints."""
    return {
        "id": str(subscription.id),
        "portals": list(subscription.portals),
        "features": list(subscription.features),
        "amount": subscription.amount,
        "billing_cycle": subscription.billing_cycle.value,
        "start_date": subscription.start_date,
        "end_date": subscription.end_date,
        "status": subscription.status.value,
        "auto_renew": subscription.auto_renew,
        "days_remaining": days_remaining(subscription, now),
    }


class SubscriptionService:
    """Subscription lifecycle for a user."""
    
    def __init__(self, db: AsyncSession):
        self.db = db
    
    async def _latest_active(self, user_id: uuid.UUID) -> Optional[Subscription]:
        result = await self.db.execute(
            select(Subscription)
            .where(
                Subscription.user_id == user_id,
                Subscription.status == SubscriptionStatus.ACTIVE,
            )
            .order_by(Subscription.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()
    
    async def get_active(self, user_id: uuid.UUID) -> Optional[Subscription]:
        """
        Most recent active subscription, or None.
        
        A subscription found past its end date is moved to INACTIVE (and the
        user's snapshot status with it) before returning None.
        """
        subscription = await self._latest_active(user_id)
        if subscription is None:
            return None
        
        now = utcnow()
        if subscription.end_date < now:
            subscription.status = SubscriptionStatus.INACTIVE
            user = await self.db.get(User, user_id)
            if user is not None:
                user.subscription_status = SubscriptionStatus.INACTIVE
            await self.db.flush()
            logger.info(f"Subscription {subscription.id} expired on read (ended {subscription.end_date})")
            return None
        
        return subscription
    
    async def toggle_auto_renew(self, user_id: uuid.UUID) -> bool:
        """Flip auto-renew on the active subscription and return the new value."""
        subscription = await self.get_active(user_id)
        if subscription is None:
            raise NoActiveSubscriptionException()
        
        subscription.auto_renew = not subscription.auto_renew
        await self.db.flush()
        
        logger.info(f"Subscription {subscription.id} auto_renew set to {subscription.auto_renew}")
        return subscription.auto_renew
    
    async def cancel(self, user_id: uuid.UUID) -> Subscription:
        """
        Cancel the active subscription.
        
        Access is not revoked: portals and features stay on the user
        snapshot until the end date.
        """
        subscription = await self.get_active(user_id)
        if subscription is None:
            raise NoActiveSubscriptionException()
        
        subscription.status = SubscriptionStatus.CANCELLED
        subscription.auto_renew = False
        subscription.cancelled_at = utcnow()
        
        user = await self.db.get(User, user_id)
        if user is not None:
            user.subscription_status = SubscriptionStatus.CANCELLED
        
        await self.db.flush()
        logger.info(f"Subscription {subscription.id} cancelled by user {user_id}")
        return subscription
    
    async def reconcile_expired(self, now: Optional[datetime] = None) -> int:
        """
        Expire every active subscription past its end date. Idempotent.
        
        Users whose current subscription expired get status INACTIVE.
        """
        now = now or utcnow()
        result = await self.db.execute(
            select(Subscription.id).where(
                Subscription.status == SubscriptionStatus.ACTIVE,
                Subscription.end_date < now,
            )
        )
        expired_ids = list(result.scalars().all())
        if not expired_ids:
            return 0
        
        await self.db.execute(
            update(Subscription)
            .where(
                Subscription.id.in_(expired_ids),
                Subscription.status == SubscriptionStatus.ACTIVE,
            )
            .values(status=SubscriptionStatus.INACTIVE, updated_at=now)
        )
        await self.db.execute(
            update(User)
            .where(
                User.current_subscription_id.in_(expired_ids),
                User.subscription_status == SubscriptionStatus.ACTIVE,
            )
            .values(subscription_status=SubscriptionStatus.INACTIVE, updated_at=now)
        )
        await self.db.flush()
        
        logger.info(f"Reconciled {len(expired_ids)} expired subscriptions")
        return len(expired_ids)
