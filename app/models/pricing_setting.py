"""
EduPortal Billing - Pricing Setting Model

Persisted admin overrides of the price catalog, one JSON row per table
(portal_prices, feature_prices, bundle_discounts).
"""

from typing import Any, Dict

from sqlalchemy import JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import BaseModel


class PricingSetting(BaseModel):
    """A named price table stored as JSON."""
    
    __tablename__ = "pricing_settings"
    
    key: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    value: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    
    def __repr__(self) -> str:
        return f"<PricingSetting(key={self.key})>"
