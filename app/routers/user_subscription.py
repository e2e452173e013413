"""
EduPortal Billing - User Subscription Router

Current subscription, auto-renew toggle, cancellation, portal access,
paginated payment history and the dashboard summary.
"""

import logging
import math

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.config.pricing_config import Portal
from app.database import get_db
from app.dependencies import get_current_active_user, has_portal_access
from app.models.user import User
from app.schemas.billing import (
    AutoRenewResponse,
    CancelSubscriptionResponse,
    DashboardSummaryResponse,
    PaymentListResponse,
    PortalAccessResponse,
    SubscriptionStatusResponse,
)
from app.services.payment_history_service import PaymentHistoryService
from app.services.subscription_service import SubscriptionService, subscription_to_dict


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/user", tags=["Subscriptions"])


@router.get(
    "/subscription",
    response_model=SubscriptionStatusResponse,
    summary="Get current subscription",
)
async def get_subscription(
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
):
    """Current active subscription. Expires it first if its end date passed."""
    service = SubscriptionService(db)
    subscription = await service.get_active(current_user.id)
    await db.commit()
    
    if subscription is None:
        return SubscriptionStatusResponse(has_subscription=False)
    
    return SubscriptionStatusResponse(
        has_subscription=True,
        subscription=subscription_to_dict(subscription),
    )


@router.patch(
    "/subscription/auto-renew",
    response_model=AutoRenewResponse,
    summary="Toggle auto-renew",
)
async def toggle_auto_renew(
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
):
    service = SubscriptionService(db)
    auto_renew = await service.toggle_auto_renew(current_user.id)
    await db.commit()
    
    return AutoRenewResponse(
        auto_renew=auto_renew,
        message=f"Auto-renew {'enabled' if auto_renew else 'disabled'}",
    )


@router.post(
    "/subscription/cancel",
    response_model=CancelSubscriptionResponse,
    summary="Cancel subscription",
)
async def cancel_subscription(
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Cancel the active subscription.
    
    Access continues until the end of the paid period.
    """
    service = SubscriptionService(db)
    subscription = await service.cancel(current_user.id)
    await db.commit()
    
    return CancelSubscriptionResponse(
        message=(
            "Subscription cancelled. You can continue to use the service until "
            f"{subscription.end_date.strftime('%d %B %Y')}"
        ),
        subscription=subscription_to_dict(subscription),
    )


@router.get(
    "/access/{portal}",
    response_model=PortalAccessResponse,
    summary="Check portal access",
)
async def check_portal_access(
    portal: Portal = Path(..., description="Portal id"),
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
):
    return PortalAccessResponse(
        portal=portal,
        has_access=await has_portal_access(db, current_user, portal),
    )


@router.get(
    "/payments",
    response_model=PaymentListResponse,
    summary="List payments",
)
async def list_payments(
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
):
    service = PaymentHistoryService(db)
    payments, total = await service.get_payments_for_user(
        current_user.id, page=page, page_size=page_size
    )
    
    return PaymentListResponse(
        payments=payments,
        total=total,
        page=page,
        page_size=page_size,
        total_pages=math.ceil(total / page_size),
    )


@router.get(
    "/dashboard",
    response_model=DashboardSummaryResponse,
    summary="Dashboard summary",
)
async def dashboard_summary(
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
):
    """Entitlement snapshot, active subscription and the last successful payments."""
    service = PaymentHistoryService(db)
    summary = await service.get_dashboard_summary(current_user)
    await db.commit()
    return summary
