"""
EduPortal Billing - Payment History Service

Read-only views over a user's own payments and the dashboard summary.
Payments are listed newest first with the subscription they created.
"""

import uuid
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.billing import Payment, Subscription
from app.models.billing_enums import PaymentStatus
from app.models.user import User
from app.services.subscription_service import SubscriptionService, subscription_to_dict


RECENT_PAYMENTS_LIMIT = 50
DASHBOARD_PAYMENTS_LIMIT = 5


def payment_to_dict(payment: Payment, subscription: Optional[Subscription] = None) -> Dict[str, Any]:
    return {
        "id": str(payment.id),
        "payment_id": payment.payment_id,
        "provider_order_id": payment.provider_order_id,
        "amount": payment.amount,
        "currency": payment.currency,
        "status": payment.status.value,
        "created_at": payment.created_at,
        "subscription": {
            "id": str(subscription.id),
            "portals": list(subscription.portals),
            "features": list(subscription.features),
            "billing_cycle": subscription.billing_cycle.value,
            "start_date": subscription.start_date,
            "end_date": subscription.end_date,
        } if subscription is not None else None,
    }


class PaymentHistoryService:
    """Payment listings scoped to one user."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_payments_for_user(
        self,
        user_id: uuid.UUID,
        page: int = 1,
        page_size: int = 10,
    ) -> Tuple[List[Dict[str, Any]], int]:
        """Return one page of the user's payments and the total count."""
        count_result = await self.db.execute(
            select(func.count(Payment.id)).where(Payment.user_id == user_id)
        )
        total = count_result.scalar() or 0

        offset = (page - 1) * page_size
        query = (
            select(Payment, Subscription)
            .outerjoin(Subscription, Payment.subscription_id == Subscription.id)
            .where(Payment.user_id == user_id)
            .order_by(Payment.created_at.desc())
            .limit(page_size)
            .offset(offset)
        )
        result = await self.db.execute(query)
        payments = [payment_to_dict(payment, subscription) for payment, subscription in result.all()]

        return payments, total

    async def get_recent_payments(
        self,
        user_id: uuid.UUID,
        limit: int = RECENT_PAYMENTS_LIMIT,
    ) -> List[Dict[str, Any]]:
        payments, _ = await self.get_payments_for_user(user_id, page=1, page_size=limit)
        return payments

    async def get_dashboard_summary(self, user: User) -> Dict[str, Any]:
        """
        Snapshot status, the active subscription (lazy expiry applies) and
        the last few successful payments.
        """
        subscription = await SubscriptionService(self.db).get_active(user.id)

        result = await self.db.execute(
            select(Payment)
            .where(
                Payment.user_id == user.id,
                Payment.status == PaymentStatus.SUCCESS,
            )
            .order_by(Payment.created_at.desc())
            .limit(DASHBOARD_PAYMENTS_LIMIT)
        )
        recent = [
            {
                "id": str(p.id),
                "amount": p.amount,
                "status": p.status.value,
                "date": p.created_at,
            }
            for p in result.scalars().all()
        ]

        return {
            "user": {
                "name": user.name,
                "email": user.email,
                "subscription_status": user.subscription_status.value,
                "purchased_portals": list(user.purchased_portals or []),
                "enabled_features": list(user.enabled_features or []),
            },
            "subscription": subscription_to_dict(subscription) if subscription else None,
            "recent_payments": recent,
        }
