"""
EduPortal Billing - Price Catalog

Holds the live, admin-editable price tables:
- portal base prices
- add-on feature prices
- bundle discount percentages

The catalog is an explicit service object with injected storage
(in-memory for tests, database-backed in production). Setters validate
their input and silently ignore unknown ids or invalid values, returning
False so callers can report what was dropped.
"""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config.pricing_config import (
    ANNUAL_SAVINGS_NOTE,
    BILLING_MULTIPLIERS,
    BUNDLE_INFO,
    DEFAULT_BUNDLE_DISCOUNTS,
    DEFAULT_FEATURE_PRICES,
    DEFAULT_PORTAL_PRICES,
    FEATURE_INFO,
    FEATURE_PORTAL,
    PORTAL_FEATURES,
    PORTAL_INFO,
    BillingCycle,
    BundleKey,
    Feature,
    Portal,
)
from app.models.pricing_setting import PricingSetting

logger = logging.getLogger(__name__)


PORTAL_PRICES_KEY = "portal_prices"
FEATURE_PRICES_KEY = "feature_prices"
BUNDLE_DISCOUNTS_KEY = "bundle_discounts"


# =============================================================================
# VALUE COERCION
# =============================================================================

def _coerce_amount(value: Any) -> Optional[int]:
    """Whole, non-negative currency amount or None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value >= 0 else None
    if isinstance(value, (float, Decimal)):
        try:
            if value >= 0 and value == int(value):
                return int(value)
        except (ValueError, OverflowError, InvalidOperation):
            return None
    return None


def _coerce_percent(value: Any) -> Optional[Decimal]:
    """Percentage in [0, 100] as a Decimal, or None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal, str)):
        try:
            percent = Decimal(str(value))
        except InvalidOperation:
            return None
        if percent.is_finite() and 0 <= percent <= 100:
            return percent
    return None


def _percent_number(percent: Decimal):
    """Render a percentage as int when whole, float otherwise."""
    return int(percent) if percent == percent.to_integral_value() else float(percent)


def _enum_member(enum_cls, value: Any):
    try:
        return enum_cls(value)
    except ValueError:
        return None


# =============================================================================
# STORAGE
# =============================================================================

class CatalogStorage(ABC):
    """Persistence for catalog overrides. Values are JSON-safe dicts."""
    
    @abstractmethod
    async def load(self) -> Dict[str, Dict[str, Any]]:
        """Return stored tables keyed by table name."""
        pass
    
    @abstractmethod
    async def save(self, tables: Dict[str, Dict[str, Any]]) -> None:
        """Persist all tables."""
        pass


class InMemoryCatalogStorage(CatalogStorage):
    """Process-local storage, used by tests and local tooling."""
    
    def __init__(self, initial: Optional[Dict[str, Dict[str, Any]]] = None):
        self._tables: Dict[str, Dict[str, Any]] = {
            key: dict(value) for key, value in (initial or {}).items()
        }
    
    async def load(self) -> Dict[str, Dict[str, Any]]:
        return {key: dict(value) for key, value in self._tables.items()}
    
    async def save(self, tables: Dict[str, Dict[str, Any]]) -> None:
        self._tables = {key: dict(value) for key, value in tables.items()}


class SQLCatalogStorage(CatalogStorage):
    """Stores each table as a JSON row in pricing_settings."""
    
    def __init__(self, session_factory: Callable[[], AsyncSession]):
        self.session_factory = session_factory
    
    async def load(self) -> Dict[str, Dict[str, Any]]:
        async with self.session_factory() as session:
            result = await session.execute(select(PricingSetting))
            return {row.key: dict(row.value or {}) for row in result.scalars().all()}
    
    async def save(self, tables: Dict[str, Dict[str, Any]]) -> None:
        async with self.session_factory() as session:
            result = await session.execute(
                select(PricingSetting).where(PricingSetting.key.in_(list(tables)))
            )
            existing = {row.key: row for row in result.scalars().all()}
            
            for key, value in tables.items():
                row = existing.get(key)
                if row is None:
                    session.add(PricingSetting(key=key, value=dict(value)))
                else:
                    row.value = dict(value)
            
            await session.commit()


# =============================================================================
# CATALOG
# =============================================================================

@dataclass(frozen=True)
class PricingTables:
    """Immutable copy of the price tables used for one calculation."""
    portal_prices: Mapping[Portal, int]
    feature_prices: Mapping[Feature, int]
    bundle_discounts: Mapping[BundleKey, Decimal]
    billing_multipliers: Mapping[BillingCycle, int] = field(
        default_factory=lambda: MappingProxyType(dict(BILLING_MULTIPLIERS))
    )


@dataclass
class CatalogUpdateResult:
    """Outcome of a batch of admin price edits."""
    applied: Dict[str, List[str]] = field(default_factory=dict)
    ignored: Dict[str, List[str]] = field(default_factory=dict)
    
    def record(self, table: str, key: str, accepted: bool) -> None:
        target = self.applied if accepted else self.ignored
        target.setdefault(table, []).append(str(key))
    
    @property
    def changed(self) -> bool:
        return any(self.applied.values())
    
    def to_dict(self) -> Dict[str, Any]:
        return {"applied": self.applied, "ignored": self.ignored}


class PriceCatalog:
    """
    Live price tables.
    
    Each setter replaces a single entry under a lock, so per-field writes are
    atomic. Calculations take a copy through tables() and are unaffected by
    edits made while they run (last write wins).
    """
    
    def __init__(
        self,
        storage: Optional[CatalogStorage] = None,
        portal_prices: Optional[Mapping[Portal, int]] = None,
        feature_prices: Optional[Mapping[Feature, int]] = None,
        bundle_discounts: Optional[Mapping[BundleKey, Decimal]] = None,
    ):
        self.storage = storage
        self._lock = threading.Lock()
        self._portal_prices: Dict[Portal, int] = dict(portal_prices or DEFAULT_PORTAL_PRICES)
        self._feature_prices: Dict[Feature, int] = dict(feature_prices or DEFAULT_FEATURE_PRICES)
        self._bundle_discounts: Dict[BundleKey, Decimal] = dict(
            bundle_discounts or DEFAULT_BUNDLE_DISCOUNTS
        )
    
    # ===========================================
    # READ ACCESS
    # ===========================================
    
    def tables(self) -> PricingTables:
        """Copy of the current price tables."""
        with self._lock:
            return PricingTables(
                portal_prices=MappingProxyType(dict(self._portal_prices)),
                feature_prices=MappingProxyType(dict(self._feature_prices)),
                bundle_discounts=MappingProxyType(dict(self._bundle_discounts)),
            )
    
    def get_snapshot(self) -> Dict[str, Any]:
        """Read-only copy of all price tables plus display metadata."""
        tables = self.tables()
        return {
            "portal_prices": {portal.value: price for portal, price in tables.portal_prices.items()},
            "feature_prices": [
                {
                    "id": feature.value,
                    "name": FEATURE_INFO[feature].name,
                    "description": FEATURE_INFO[feature].description,
                    "portal": FEATURE_PORTAL[feature].value,
                    "price": price,
                }
                for feature, price in tables.feature_prices.items()
            ],
            "bundle_discounts": [
                {
                    "id": key.value,
                    "name": BUNDLE_INFO[key],
                    "discount": _percent_number(percent),
                }
                for key, percent in tables.bundle_discounts.items()
            ],
            "portal_features": {
                portal.value: [feature.value for feature in features]
                for portal, features in PORTAL_FEATURES.items()
            },
            "billing_multipliers": {
                cycle.value: multiplier for cycle, multiplier in tables.billing_multipliers.items()
            },
        }
    
    # ===========================================
    # MUTATORS (silently ignore invalid input)
    # ===========================================
    
    def set_portal_price(self, portal_id: Any, amount: Any) -> bool:
        portal = _enum_member(Portal, portal_id)
        value = _coerce_amount(amount)
        if portal is None or value is None:
            logger.info(f"Ignoring portal price update {portal_id!r}={amount!r}")
            return False
        with self._lock:
            self._portal_prices[portal] = value
        return True
    
    def set_feature_price(self, feature_id: Any, amount: Any) -> bool:
        feature = _enum_member(Feature, feature_id)
        value = _coerce_amount(amount)
        if feature is None or value is None:
            logger.info(f"Ignoring feature price update {feature_id!r}={amount!r}")
            return False
        with self._lock:
            self._feature_prices[feature] = value
        return True
    
    def set_bundle_discount(self, bundle_key: Any, percent: Any) -> bool:
        key = _enum_member(BundleKey, bundle_key)
        value = _coerce_percent(percent)
        if key is None or value is None:
            logger.info(f"Ignoring bundle discount update {bundle_key!r}={percent!r}")
            return False
        with self._lock:
            self._bundle_discounts[key] = value
        return True
    
    def apply_updates(
        self,
        portal_prices: Optional[Mapping[str, Any]] = None,
        feature_prices: Optional[Mapping[str, Any]] = None,
        bundle_discounts: Optional[Mapping[str, Any]] = None,
    ) -> CatalogUpdateResult:
        """Apply partial updates to any of the three tables."""
        result = CatalogUpdateResult()
        for portal_id, amount in (portal_prices or {}).items():
            result.record(PORTAL_PRICES_KEY, portal_id, self.set_portal_price(portal_id, amount))
        for feature_id, amount in (feature_prices or {}).items():
            result.record(FEATURE_PRICES_KEY, feature_id, self.set_feature_price(feature_id, amount))
        for bundle_key, percent in (bundle_discounts or {}).items():
            result.record(BUNDLE_DISCOUNTS_KEY, bundle_key, self.set_bundle_discount(bundle_key, percent))
        return result
    
    # ===========================================
    # PERSISTENCE
    # ===========================================
    
    def _serialize(self) -> Dict[str, Dict[str, Any]]:
        tables = self.tables()
        return {
            PORTAL_PRICES_KEY: {p.value: price for p, price in tables.portal_prices.items()},
            FEATURE_PRICES_KEY: {f.value: price for f, price in tables.feature_prices.items()},
            BUNDLE_DISCOUNTS_KEY: {k.value: str(pct) for k, pct in tables.bundle_discounts.items()},
        }
    
    async def load(self) -> None:
        """Apply stored overrides on top of the current tables."""
        if self.storage is None:
            return
        stored = await self.storage.load()
        result = self.apply_updates(
            portal_prices=stored.get(PORTAL_PRICES_KEY),
            feature_prices=stored.get(FEATURE_PRICES_KEY),
            bundle_discounts=stored.get(BUNDLE_DISCOUNTS_KEY),
        )
        if result.ignored:
            logger.warning(f"Ignored invalid stored pricing entries: {result.ignored}")
        logger.info("Price catalog loaded from storage")
    
    async def persist(self) -> None:
        """Write the current tables to storage."""
        if self.storage is None:
            return
        await self.storage.save(self._serialize())
    
    # ===========================================
    # DISPLAY DATA
    # ===========================================
    
    def _feature_entries(self, tables: PricingTables, portal: Portal) -> List[Dict[str, Any]]:
        return [
            {
                "id": feature.value,
                "name": FEATURE_INFO[feature].name,
                "description": FEATURE_INFO[feature].description,
                "price": tables.feature_prices[feature],
            }
            for feature in PORTAL_FEATURES[portal]
        ]
    
    def available_portals(self) -> List[Dict[str, Any]]:
        """All portals with base price and their add-on features."""
        tables = self.tables()
        return [
            {
                "id": portal.value,
                "name": PORTAL_INFO[portal].name,
                "description": PORTAL_INFO[portal].description,
                "core_features": list(PORTAL_INFO[portal].core_features),
                "base_price": tables.portal_prices[portal],
                "available_features": self._feature_entries(tables, portal),
            }
            for portal in Portal
        ]
    
    def available_features(self, portal: Optional[Portal] = None) -> List[Dict[str, Any]]:
        """Features grouped by portal, optionally for a single portal."""
        tables = self.tables()
        portals = [portal] if portal else list(Portal)
        return [
            {
                "portal_id": p.value,
                "portal_name": PORTAL_INFO[p].name,
                "features": self._feature_entries(tables, p),
            }
            for p in portals
        ]
    
    def bundle_discount_info(self) -> List[Dict[str, Any]]:
        """Bundle discounts with display names and descriptions."""
        tables = self.tables()
        descriptions = {
            BundleKey.ADMIN_TEACHER: "off Admin and Teacher portals together",
            BundleKey.TEACHER_STUDENT: "off Teacher and Student portals together",
            BundleKey.ALL_THREE: "off all three portals",
        }
        entries = []
        for key in BundleKey:
            percent = tables.bundle_discounts[key]
            entries.append({
                "id": key.value,
                "name": BUNDLE_INFO[key],
                "discount": _percent_number(percent),
                "description": f"{_percent_number(percent)}% {descriptions[key]}",
            })
        return entries
    
    def pricing_page_data(self) -> Dict[str, Any]:
        """Everything the pricing page renders."""
        return {
            "portals": self.available_portals(),
            "features": self.available_features(),
            "discounts": self.bundle_discount_info(),
            "billing_options": [cycle.value for cycle in BillingCycle],
            "annual_savings": ANNUAL_SAVINGS_NOTE,
        }


# =============================================================================
# PROCESS-WIDE INSTANCE
# =============================================================================

_price_catalog: Optional[PriceCatalog] = None


def get_price_catalog() -> PriceCatalog:
    """
    FastAPI dependency returning the process-wide catalog.
    Tests override this with a catalog on in-memory storage.
    """
    global _price_catalog
    if _price_catalog is None:
        from app.database import async_session_factory
        _price_catalog = PriceCatalog(storage=SQLCatalogStorage(async_session_factory))
    return _price_catalog
