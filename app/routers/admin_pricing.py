"""
EduPortal Billing - Admin Pricing Router

Read and edit the live price catalog. Admin role required.
"""

import logging

from fastapi import APIRouter, Depends

from app.dependencies import require_admin
from app.models.user import User
from app.schemas.billing import AdminPricingResponse, AdminPricingUpdateRequest
from app.services.pricing_catalog import PriceCatalog, get_price_catalog


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["Admin Pricing"])


@router.get(
    "/pricing",
    response_model=AdminPricingResponse,
    summary="Get full pricing configuration",
)
async def get_pricing_config(
    admin: User = Depends(require_admin),
    catalog: PriceCatalog = Depends(get_price_catalog),
):
    return AdminPricingResponse(pricing=catalog.get_snapshot())


@router.put(
    "/pricing",
    response_model=AdminPricingResponse,
    summary="Update pricing configuration",
)
async def update_pricing_config(
    request: AdminPricingUpdateRequest,
    admin: User = Depends(require_admin),
    catalog: PriceCatalog = Depends(get_price_catalog),
):
    """
    Apply partial price updates.
    
    Changes take effect for every calculation that starts afterwards.
    Unknown ids and invalid values are skipped and reported as ignored.
    """
    result = catalog.apply_updates(
        portal_prices=request.portal_prices,
        feature_prices=request.feature_prices,
        bundle_discounts=request.bundle_discounts,
    )
    if result.changed:
        await catalog.persist()
    
    logger.info(
        f"Pricing updated by {admin.email}: applied={result.applied} ignored={result.ignored}"
    )
    return AdminPricingResponse(
        pricing=catalog.get_snapshot(),
        applied=result.applied,
        ignored=result.ignored,
    )
