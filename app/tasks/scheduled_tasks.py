"""
EduPortal Billing - Background Tasks

Reconciliation passes run by celery beat. Each takes a session, is
idempotent and commits its own work.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.services import order_service
from app.services.subscription_service import SubscriptionService

logger = logging.getLogger(__name__)


# ===========================================
# SCHEDULED TASK: SUBSCRIPTION EXPIRY
# ===========================================

async def reconcile_expired_subscriptions(
    db: AsyncSession,
    now: Optional[datetime] = None,
) -> dict:
    """
    Move active subscriptions past their end date to inactive.
    Should run hourly.
    """
    service = SubscriptionService(db)
    count = await service.reconcile_expired(now)
    await db.commit()
    
    logger.info(f"Marked {count} subscriptions as expired")
    return {"expired_subscriptions": count}


# ===========================================
# SCHEDULED TASK: STALE ORDERS
# ===========================================

async def expire_stale_orders(
    db: AsyncSession,
    now: Optional[datetime] = None,
) -> dict:
    """
    Mark checkout orders still unpaid after their expiry window as expired.
    Should run every 15 minutes.
    """
    count = await order_service.expire_stale_orders(db, now)
    await db.commit()
    
    logger.info(f"Marked {count} orders as expired")
    return {"expired_orders": count}
