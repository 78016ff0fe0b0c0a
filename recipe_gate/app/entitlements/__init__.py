"""Entitlement snapshot models, tier catalog and cache."""

from .catalog import (
    PRODUCT_CATALOG,
    TIER_CATALOG,
    UNLIMITED,
    ProductDefinition,
    TierDefinition,
    TierLimits,
    get_product_definition,
    get_tier_definition,
)
from .cache import EntitlementCache, StatusSource
from .models import (
    ACTIVE_TIERS,
    EntitlementSnapshot,
    FeatureBundle,
    RefreshResult,
    Tier,
    is_valid_transition,
)

__all__ = [
    "PRODUCT_CATALOG",
    "TIER_CATALOG",
    "UNLIMITED",
    "ProductDefinition",
    "TierDefinition",
    "TierLimits",
    "get_product_definition",
    "get_tier_definition",
    "EntitlementCache",
    "StatusSource",
    "ACTIVE_TIERS",
    "EntitlementSnapshot",
    "FeatureBundle",
    "RefreshResult",
    "Tier",
    "is_valid_transition",
]
