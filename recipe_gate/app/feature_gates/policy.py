"""Pure allow/deny decisions for metered actions."""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict

from ..entitlements.catalog import UNLIMITED, Allowance, TierLimits
from ..entitlements.models import ACTIVE_TIERS, EntitlementSnapshot, Tier
from ..errors import OperationError
from ..usage.models import UsageAction, UsageCounters


class Verdict(BaseModel):
    """Outcome of a gating check.

    ``remaining`` is the allowance left before the action is performed; it is
    ``"unlimited"`` for premium and trial tiers.
    """

    action: UsageAction
    tier: Tier
    allowed: bool
    remaining: Union[int, str]
    limit: Union[int, str]
    used: int
    warning: Optional[OperationError] = None

    model_config = ConfigDict(frozen=True)

    @property
    def unlimited(self) -> bool:
        return self.remaining == UNLIMITED


def _used(counters: Union[UsageCounters, Mapping[UsageAction, int]], action: UsageAction) -> int:
    if isinstance(counters, UsageCounters):
        return counters.get(action)
    return int(counters.get(action, 0))


def evaluate(
    action: UsageAction,
    snapshot: EntitlementSnapshot,
    counters: Union[UsageCounters, Mapping[UsageAction, int]],
    limits: TierLimits,
    *,
    now: Optional[datetime] = None,
) -> Verdict:
    """Decide whether ``action`` may proceed. Never raises, never mutates."""

    effective = snapshot.effective(now) if now is not None else snapshot
    tier = effective.tier
    used = _used(counters, action)

    if tier in ACTIVE_TIERS:
        return Verdict(action=action, tier=tier, allowed=True, remaining=UNLIMITED, limit=UNLIMITED, used=used)

    limit: Allowance = limits.limit_for(tier, action)
    if limit == UNLIMITED:
        return Verdict(action=action, tier=tier, allowed=True, remaining=UNLIMITED, limit=UNLIMITED, used=used)

    if used < limit:
        return Verdict(action=action, tier=tier, allowed=True, remaining=limit - used, limit=limit, used=used)
    return Verdict(action=action, tier=tier, allowed=False, remaining=0, limit=limit, used=used)


def apply_offline_grace(
    snapshot: EntitlementSnapshot,
    now: datetime,
    grace: Optional[timedelta],
) -> EntitlementSnapshot:
    """Downgrade an active snapshot that has not been confirmed for too long.

    A ``premium`` or ``trial`` snapshot keeps its tier until
    ``fetched_at + grace``; past that it is treated as ``free`` until the
    provider confirms it again. ``grace=None`` never downgrades.
    """

    if grace is None or not snapshot.is_active:
        return snapshot
    if now - snapshot.fetched_at <= grace:
        return snapshot
    return snapshot.model_copy(update={"tier": Tier.FREE, "will_renew": False})


__all__ = ["Verdict", "apply_offline_grace", "evaluate"]
