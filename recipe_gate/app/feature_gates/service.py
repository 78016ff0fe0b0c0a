"""Facade exposing the quota and entitlement operations to the UI layer."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, Optional, Tuple

from ..clock import Clock
from ..entitlements.cache import EntitlementCache
from ..entitlements.catalog import UNLIMITED, Allowance, TierLimits, get_tier_definition
from ..entitlements.models import ACTIVE_TIERS, EntitlementSnapshot, Tier
from ..errors import OperationError, StorageReadFailed, StorageWriteFailed
from ..purchases.coordinator import PurchaseCoordinator
from ..purchases.models import PurchaseResult
from ..purchases.provider import EntitlementProvider
from ..usage.models import ActionUsage, UsageAction, UsageReceipt, UsageSummary
from ..usage.store import UsageCounterStore
from .policy import Verdict, apply_offline_grace, evaluate

logger = logging.getLogger(__name__)

DEFAULT_OFFLINE_GRACE = timedelta(days=3)


@dataclass
class FeatureGateService:
    """Single entry point for gating checks, usage recording and purchases.

    Component failures never escape as exceptions from ``can_perform``,
    ``record_usage``, ``purchase`` or ``restore``; they are reported on the
    returned value instead.
    """

    usage_store: UsageCounterStore
    entitlement_cache: EntitlementCache
    coordinator: PurchaseCoordinator
    provider: EntitlementProvider
    clock: Clock
    limits: TierLimits = field(default_factory=TierLimits.default)
    offline_grace: Optional[timedelta] = DEFAULT_OFFLINE_GRACE

    async def can_perform(self, action: UsageAction) -> Verdict:
        try:
            snapshot, warning = await self._gating_snapshot()
        except StorageReadFailed as exc:
            logger.warning("Entitlement unreadable; denying %s", action.value)
            return self._denied(action, Tier.UNKNOWN, exc.to_error())

        now = self.clock.now()
        try:
            counters = await self.usage_store.snapshot()
        except StorageReadFailed as exc:
            if snapshot.is_active:
                counters = None
                warning = warning or exc.to_error()
            else:
                logger.warning("Usage counters unreadable; denying %s", action.value)
                return self._denied(action, snapshot.tier, exc.to_error())

        verdict = evaluate(action, snapshot, counters if counters is not None else {}, self.limits, now=now)
        if warning is not None:
            verdict = verdict.model_copy(update={"warning": warning})
        return verdict

    async def record_usage(self, action: UsageAction) -> UsageReceipt:
        try:
            count = await self.usage_store.increment(action)
        except (StorageReadFailed, StorageWriteFailed) as exc:
            logger.warning("Usage for %s was not recorded: %s", action.value, exc.message)
            return UsageReceipt(action=action, error=exc.to_error())

        now = self.clock.now()
        remaining: Optional[Allowance] = None
        try:
            cached = await self.entitlement_cache.get()
        except StorageReadFailed:
            logger.debug("Entitlement unreadable; receipt for %s omits remaining", action.value)
        else:
            tier = apply_offline_grace(cached, now, self.offline_grace).tier
            remaining = self._remaining_after(tier, action, count)
        return UsageReceipt(
            action=action,
            count=count,
            remaining=remaining,
            day_key=self.clock.day_key(now),
        )

    async def current_entitlement(self) -> EntitlementSnapshot:
        try:
            result = await self.entitlement_cache.ensure_fresh()
        except StorageReadFailed:
            logger.warning("Entitlement unreadable; reporting unknown")
            return EntitlementSnapshot.unknown()
        return result.snapshot

    async def purchase(self, product_id: str) -> PurchaseResult:
        return await self.coordinator.purchase(product_id)

    async def restore(self) -> PurchaseResult:
        return await self.coordinator.restore()

    async def usage_summary(self) -> UsageSummary:
        """Per-action usage for today. Raises ``StorageReadFailed``."""

        snapshot, _ = await self._gating_snapshot()
        counters = await self.usage_store.snapshot()
        now = self.clock.now()
        actions: Dict[UsageAction, ActionUsage] = {}
        for action in UsageAction:
            verdict = evaluate(action, snapshot, counters, self.limits, now=now)
            actions[action] = ActionUsage(used=verdict.used, limit=verdict.limit, remaining=verdict.remaining)
        return UsageSummary(
            day_key=counters.day_key,
            tier=snapshot.effective(now).tier.value,
            actions=actions,
            resets_at=self.clock.next_day_start(now),
        )

    async def has_feature(self, feature: str) -> bool:
        try:
            snapshot, _ = await self._gating_snapshot()
        except StorageReadFailed:
            return False
        return get_tier_definition(snapshot.tier).features.has(feature)

    def management_url(self) -> str:
        return self.provider.management_url()

    async def logout(self) -> None:
        """Detach from the provider and forget the cached entitlement.

        Today's usage counters are kept; they belong to the device, not the
        account.
        """

        try:
            await self.provider.log_out()
        except Exception:
            logger.warning("Provider log-out failed; clearing local entitlement anyway", exc_info=True)
        await self.entitlement_cache.clear()

    async def debug_info(self) -> Dict[str, Any]:
        now = self.clock.now()
        snapshot = await self.entitlement_cache.get()
        counters = await self.usage_store.snapshot()
        in_flight = self.coordinator.in_flight
        return {
            "tier": snapshot.tier.value,
            "expires_at": snapshot.expires_at.isoformat() if snapshot.expires_at else None,
            "will_renew": snapshot.will_renew,
            "product_id": snapshot.product_id,
            "fetched_at": snapshot.fetched_at.isoformat(),
            "is_sandbox_or_mock": snapshot.is_sandbox_or_mock,
            "is_stale": await self.entitlement_cache.is_stale(),
            "gating_tier": apply_offline_grace(snapshot, now, self.offline_grace).tier.value,
            "day_key": counters.day_key,
            "usage": {action.value: counters.get(action) for action in UsageAction},
            "in_flight": in_flight.model_dump(mode="json") if in_flight is not None else None,
            "max_age_seconds": self.entitlement_cache.max_age.total_seconds(),
            "fetch_timeout_seconds": self.entitlement_cache.fetch_timeout,
            "offline_grace_seconds": self.offline_grace.total_seconds() if self.offline_grace is not None else None,
        }

    async def _gating_snapshot(self) -> Tuple[EntitlementSnapshot, Optional[OperationError]]:
        result = await self.entitlement_cache.ensure_fresh()
        now = self.clock.now()
        snapshot = apply_offline_grace(result.snapshot, now, self.offline_grace)
        if snapshot.tier != result.snapshot.tier:
            logger.info(
                "Cached %s entitlement unconfirmed since %s; gating as free",
                result.snapshot.tier.value,
                result.snapshot.fetched_at.isoformat(),
            )
        return snapshot, result.error

    def _remaining_after(self, tier: Tier, action: UsageAction, count: int) -> Allowance:
        if tier in ACTIVE_TIERS:
            return UNLIMITED
        limit = self.limits.limit_for(tier, action)
        if limit == UNLIMITED:
            return UNLIMITED
        return max(limit - count, 0)

    def _denied(self, action: UsageAction, tier: Tier, warning: OperationError) -> Verdict:
        limit = self.limits.limit_for(tier, action)
        return Verdict(action=action, tier=tier, allowed=False, remaining=0, limit=limit, used=0, warning=warning)


__all__ = ["DEFAULT_OFFLINE_GRACE", "FeatureGateService"]
