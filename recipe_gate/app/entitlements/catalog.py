"""Static catalog definitions for tiers, daily allowances and products."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Dict, Literal, Mapping, Optional, Union

from ..usage.models import UsageAction
from .models import FeatureBundle, Tier

UNLIMITED: Literal["unlimited"] = "unlimited"

Allowance = Union[int, Literal["unlimited"]]


@dataclass(frozen=True)
class TierDefinition:
    """Describes a tier and the features it unlocks."""

    tier: Tier
    display_name: str
    features: FeatureBundle


FREE_BUNDLE = FeatureBundle()

PREMIUM_BUNDLE = FeatureBundle(
    ad_free=True,
    favorites=True,
    search_history=True,
    recipe_qa=True,
    advanced_filters=True,
    export_recipes=True,
)

TIER_CATALOG: Dict[Tier, TierDefinition] = {
    Tier.FREE: TierDefinition(tier=Tier.FREE, display_name="Free", features=FREE_BUNDLE),
    Tier.TRIAL: TierDefinition(tier=Tier.TRIAL, display_name="Premium Trial", features=PREMIUM_BUNDLE),
    Tier.PREMIUM: TierDefinition(tier=Tier.PREMIUM, display_name="Premium", features=PREMIUM_BUNDLE),
}


def get_tier_definition(tier: Tier) -> TierDefinition:
    """Return the definition governing ``tier``; inactive tiers fall back to free."""

    return TIER_CATALOG.get(tier, TIER_CATALOG[Tier.FREE])


@dataclass(frozen=True)
class ProductDefinition:
    """A store product and the entitlement it grants."""

    product_id: str
    grants: Tier
    period: Optional[timedelta]
    renews: bool = True


PRODUCT_CATALOG: Dict[str, ProductDefinition] = {
    "premium_monthly": ProductDefinition(
        product_id="premium_monthly",
        grants=Tier.PREMIUM,
        period=timedelta(days=30),
    ),
    "premium_annual": ProductDefinition(
        product_id="premium_annual",
        grants=Tier.PREMIUM,
        period=timedelta(days=365),
    ),
    "premium_trial": ProductDefinition(
        product_id="premium_trial",
        grants=Tier.TRIAL,
        period=timedelta(days=7),
        renews=False,
    ),
}


def get_product_definition(product_id: str) -> ProductDefinition:
    """Return a product definition, raising if unsupported."""

    try:
        return PRODUCT_CATALOG[product_id]
    except KeyError as exc:
        raise KeyError(f"Unknown product id: {product_id}") from exc


DEFAULT_FREE_LIMITS: Dict[UsageAction, int] = {
    UsageAction.RECIPE_VIEW: 5,
    UsageAction.SEARCH: 5,
    UsageAction.AI_GENERATION: 1,
    UsageAction.RECIPE_QA: 1,
}


@dataclass(frozen=True)
class TierLimits:
    """Per-tier daily allowances. Not persisted."""

    allowances: Mapping[Tier, Mapping[UsageAction, Allowance]] = field(default_factory=dict)

    @classmethod
    def from_free_limits(cls, free_limits: Mapping[UsageAction, int]) -> "TierLimits":
        for action, limit in free_limits.items():
            if limit < 0:
                raise ValueError(f"daily limit for {action.value} must be >= 0")
        unlimited = {action: UNLIMITED for action in UsageAction}
        return cls(
            allowances={
                Tier.FREE: dict(free_limits),
                Tier.TRIAL: dict(unlimited),
                Tier.PREMIUM: dict(unlimited),
            }
        )

    @classmethod
    def default(cls) -> "TierLimits":
        return cls.from_free_limits(DEFAULT_FREE_LIMITS)

    def governing_tier(self, tier: Tier) -> Tier:
        """Tiers without their own table (unknown, expired) use the free table."""

        if tier in self.allowances:
            return tier
        return Tier.FREE

    def limit_for(self, tier: Tier, action: UsageAction) -> Allowance:
        table = self.allowances.get(self.governing_tier(tier), {})
        return table.get(action, 0)


__all__ = [
    "Allowance",
    "DEFAULT_FREE_LIMITS",
    "FREE_BUNDLE",
    "PREMIUM_BUNDLE",
    "PRODUCT_CATALOG",
    "ProductDefinition",
    "TIER_CATALOG",
    "TierDefinition",
    "TierLimits",
    "UNLIMITED",
    "get_product_definition",
    "get_tier_definition",
]
