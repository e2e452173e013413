"""
EduPortal Billing - Configuration Package

Application settings and pricing tables.
"""

from app.config.settings import Settings, get_settings, settings
from app.config.pricing_config import (
    BillingCycle,
    BundleKey,
    Feature,
    Portal,
)

__all__ = [
    "Settings",
    "get_settings",
    "settings",
    "BillingCycle",
    "BundleKey",
    "Feature",
    "Portal",
]
