"""
EduPortal Billing - Pricing Router

Public pricing endpoints: catalog display data and price calculation.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query

from app.config.pricing_config import Portal
from app.schemas.billing import PriceCalculationResponse, PriceSelectionRequest
from app.services.price_calculator import calculate_price
from app.services.pricing_catalog import PriceCatalog, get_price_catalog


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/pricing", tags=["Pricing"])


@router.get(
    "",
    summary="Get pricing page data",
)
async def get_pricing_page_data(
    catalog: PriceCatalog = Depends(get_price_catalog),
) -> Dict[str, Any]:
    """Portals, features, bundle discounts and billing options in one call."""
    return catalog.pricing_page_data()


@router.get(
    "/portals",
    summary="List portals with prices",
)
async def get_portals(
    catalog: PriceCatalog = Depends(get_price_catalog),
) -> Dict[str, Any]:
    return {"portals": catalog.available_portals()}


@router.get(
    "/features",
    summary="List add-on features grouped by portal",
)
async def get_features(
    portal: Optional[Portal] = Query(None, description="Only this portal's features"),
    catalog: PriceCatalog = Depends(get_price_catalog),
) -> Dict[str, Any]:
    return {"features": catalog.available_features(portal)}


@router.get(
    "/bundle-discounts",
    summary="List bundle discounts",
)
async def get_bundle_discounts(
    catalog: PriceCatalog = Depends(get_price_catalog),
) -> Dict[str, Any]:
    return {"discounts": catalog.bundle_discount_info()}


@router.post(
    "/calculate",
    response_model=PriceCalculationResponse,
    summary="Calculate price for a selection",
)
async def calculate_selection_price(
    request: PriceSelectionRequest,
    catalog: PriceCatalog = Depends(get_price_catalog),
):
    """
    Calculate the price breakdown for a set of portals and add-ons.
    
    Features whose portal is not selected are dropped from the breakdown.
    """
    breakdown = calculate_price(
        catalog,
        request.portals,
        request.features,
        request.billing_cycle,
    )
    return PriceCalculationResponse(price_breakdown=breakdown.to_dict())
