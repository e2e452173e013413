"""
EduPortal Billing - Price Calculator

Turns a selection of portals, add-on features and a billing cycle into a
PriceBreakdown. Pure: reads a copy of the catalog tables and performs no I/O.

Rules:
- base price is the sum of the selected portals' prices
- a feature only counts when its owning portal is selected; others are dropped
- bundle discounts apply to the base price only, never to add-ons
- the discount is rounded to whole units before the billing multiplier
- every monetary field is multiplied last, so
  total == (subtotal - discount_amount) * multiplier
"""

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Union

from app.config.pricing_config import (
    BUNDLE_PORTALS,
    DEFAULT_PAIR_DISCOUNT,
    FEATURE_INFO,
    FEATURE_PORTAL,
    PORTAL_INFO,
    BillingCycle,
    BundleKey,
    Feature,
    Portal,
)
from app.services.pricing_catalog import PriceCatalog, PricingTables


@dataclass(frozen=True)
class LineItem:
    """A portal or feature line, priced per billing cycle."""
    id: str
    name: str
    price: int
    
    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "price": self.price}


@dataclass
class PriceBreakdown:
    """Computed price for a selection. Never persisted."""
    base_price: int
    add_on_price: int
    subtotal: int
    discount_percentage: Decimal
    discount_amount: int
    total: int
    billing_cycle: BillingCycle
    portals: List[LineItem] = field(default_factory=list)
    features: List[LineItem] = field(default_factory=list)
    
    @property
    def portal_ids(self) -> List[str]:
        return [item.id for item in self.portals]
    
    @property
    def feature_ids(self) -> List[str]:
        return [item.id for item in self.features]
    
    def to_dict(self) -> Dict[str, Any]:
        percent = self.discount_percentage
        return {
            "base_price": self.base_price,
            "add_on_price": self.add_on_price,
            "subtotal": self.subtotal,
            "discount_percentage": int(percent) if percent == percent.to_integral_value() else float(percent),
            "discount_amount": self.discount_amount,
            "total": self.total,
            "billing_cycle": self.billing_cycle.value,
            "portals": [item.to_dict() for item in self.portals],
            "features": [item.to_dict() for item in self.features],
        }


def _unique_portals(values: Iterable[Union[Portal, str]]) -> List[Portal]:
    portals: List[Portal] = []
    for value in values:
        try:
            portal = Portal(value)
        except ValueError:
            continue
        if portal not in portals:
            portals.append(portal)
    return portals


def _eligible_features(
    values: Iterable[Union[Feature, str]],
    portals: FrozenSet[Portal],
) -> List[Feature]:
    features: List[Feature] = []
    for value in values:
        try:
            feature = Feature(value)
        except ValueError:
            continue
        if FEATURE_PORTAL[feature] in portals and feature not in features:
            features.append(feature)
    return features


def resolve_discount_percentage(
    portals: FrozenSet[Portal],
    bundle_discounts: Mapping[BundleKey, Decimal],
) -> Decimal:
    """
    Bundle discount percent for a set of portals.
    
    Three portals use the all-three bundle. Two portals use a named pair
    bundle when one matches (membership, not order), otherwise the default
    pair discount. A single portal gets nothing.
    """
    if len(portals) >= 3:
        return bundle_discounts[BundleKey.ALL_THREE]
    if len(portals) == 2:
        for key, members in BUNDLE_PORTALS.items():
            if key is not BundleKey.ALL_THREE and members == portals:
                return bundle_discounts[key]
        return DEFAULT_PAIR_DISCOUNT
    return Decimal("0")


def calculate_price(
    catalog: Union[PriceCatalog, PricingTables],
    selected_portals: Iterable[Union[Portal, str]],
    selected_features: Optional[Iterable[Union[Feature, str]]] = None,
    billing_cycle: Union[BillingCycle, str] = BillingCycle.MONTHLY,
) -> PriceBreakdown:
    """
    Calculate the price breakdown for a selection.
    
    An empty portal selection yields an all-zero breakdown; callers are
    expected to reject it before getting here.
    """
    tables = catalog.tables() if isinstance(catalog, PriceCatalog) else catalog
    cycle = BillingCycle(billing_cycle)
    multiplier = tables.billing_multipliers[cycle]
    
    portals = _unique_portals(selected_portals)
    portal_set = frozenset(portals)
    features = _eligible_features(selected_features or [], portal_set)
    
    base_price = sum(tables.portal_prices[p] for p in portals)
    add_on_price = sum(tables.feature_prices[f] for f in features)
    subtotal = base_price + add_on_price
    
    discount_percentage = resolve_discount_percentage(portal_set, tables.bundle_discounts)
    discount_amount = int(
        (Decimal(base_price) * discount_percentage / Decimal(100)).quantize(
            Decimal("1"), rounding=ROUND_HALF_UP
        )
    )
    
    total = (subtotal - discount_amount) * multiplier
    
    return PriceBreakdown(
        base_price=base_price * multiplier,
        add_on_price=add_on_price * multiplier,
        subtotal=subtotal * multiplier,
        discount_percentage=discount_percentage,
        discount_amount=discount_amount * multiplier,
        total=total,
        billing_cycle=cycle,
        portals=[
            LineItem(p.value, PORTAL_INFO[p].name, tables.portal_prices[p] * multiplier)
            for p in portals
        ],
        features=[
            LineItem(f.value, FEATURE_INFO[f].name, tables.feature_prices[f] * multiplier)
            for f in features
        ],
    )
