"""Domain models for entitlement snapshots and tier transitions."""
from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, FrozenSet, Optional

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from ..errors import OperationError


class Tier(str, Enum):
    """Subscription tiers an entitlement snapshot can report."""

    FREE = "free"
    TRIAL = "trial"
    PREMIUM = "premium"
    EXPIRED = "expired"
    UNKNOWN = "unknown"


ACTIVE_TIERS: FrozenSet[Tier] = frozenset({Tier.PREMIUM, Tier.TRIAL})

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# Logout (any tier -> unknown) is handled by clearing the cache, not by a commit.
_ALLOWED_TRANSITIONS: Dict[Tier, FrozenSet[Tier]] = {
    Tier.UNKNOWN: frozenset({Tier.UNKNOWN, Tier.FREE, Tier.TRIAL, Tier.PREMIUM, Tier.EXPIRED}),
    Tier.FREE: frozenset({Tier.FREE, Tier.TRIAL, Tier.PREMIUM, Tier.EXPIRED}),
    Tier.TRIAL: frozenset({Tier.TRIAL, Tier.PREMIUM, Tier.FREE, Tier.EXPIRED}),
    Tier.PREMIUM: frozenset({Tier.PREMIUM, Tier.FREE, Tier.EXPIRED}),
    Tier.EXPIRED: frozenset({Tier.EXPIRED, Tier.FREE, Tier.PREMIUM}),
}


def is_valid_transition(current: Tier, requested: Tier) -> bool:
    """Return whether ``current -> requested`` is allowed for a commit."""

    return requested in _ALLOWED_TRANSITIONS[current]


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class EntitlementSnapshot(BaseModel):
    """Last known statement of the user's subscription tier."""

    tier: Tier = Tier.UNKNOWN
    expires_at: Optional[datetime] = None
    will_renew: bool = False
    fetched_at: datetime = _EPOCH
    is_sandbox_or_mock: bool = False
    product_id: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @field_validator("expires_at", "fetched_at")
    @classmethod
    def _normalize_timestamps(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(value)

    @model_validator(mode="after")
    def _check_active_expiry(self) -> "EntitlementSnapshot":
        if self.tier in ACTIVE_TIERS and self.expires_at is not None:
            if self.expires_at <= self.fetched_at:
                raise ValueError(
                    f"{self.tier.value} snapshot must expire after it was fetched"
                )
        return self

    @classmethod
    def unknown(cls) -> "EntitlementSnapshot":
        return cls()

    @property
    def is_active(self) -> bool:
        return self.tier in ACTIVE_TIERS

    @property
    def is_lifetime(self) -> bool:
        return self.is_active and self.expires_at is None

    def has_expired(self, now: datetime) -> bool:
        return self.is_active and self.expires_at is not None and self.expires_at <= now

    def effective(self, now: datetime) -> "EntitlementSnapshot":
        """Apply the lazy expiry check, returning an ``expired`` copy if due."""

        if not self.has_expired(now):
            return self
        return self.model_copy(update={"tier": Tier.EXPIRED, "will_renew": False})


class RefreshResult(BaseModel):
    """Outcome of asking the provider for a fresh snapshot."""

    snapshot: EntitlementSnapshot
    refreshed: bool
    error: Optional[OperationError] = None

    model_config = ConfigDict(frozen=True)


@dataclass(frozen=True)
class FeatureBundle:
    """Represents a normalized set of entitlement feature flags."""

    ad_free: bool = False
    favorites: bool = False
    search_history: bool = False
    recipe_qa: bool = False
    advanced_filters: bool = False
    export_recipes: bool = False

    def to_flags(self) -> Dict[str, bool]:
        """Serialize bundle to flattened flag keys."""

        return {field.name: getattr(self, field.name) for field in fields(self)}

    def has(self, feature: str) -> bool:
        return bool(self.to_flags().get(feature, False))


__all__ = [
    "ACTIVE_TIERS",
    "EntitlementSnapshot",
    "FeatureBundle",
    "RefreshResult",
    "Tier",
    "is_valid_transition",
]
