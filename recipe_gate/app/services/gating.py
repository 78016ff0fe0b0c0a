"""Application wiring for the feature gate service."""
from __future__ import annotations

import logging
from functools import lru_cache
from typing import Optional

from ...settings import GateSettings, load_settings
from ..clock import SystemClock
from ..entitlements import EntitlementCache, TierLimits
from ..feature_gates import FeatureGateService
from ..purchases import (
    PurchaseAuditEvent,
    PurchaseCoordinator,
    PurchaseEventLogger,
    SandboxEntitlementProvider,
)
from ..storage import DurableStore, FileDurableStore, InMemoryDurableStore
from ..usage import UsageCounterStore

logger = logging.getLogger("purchases")


class LoggingPurchaseEventLogger(PurchaseEventLogger):
    """Simple event logger forwarding purchase audit events to logging."""

    def log(self, event: PurchaseAuditEvent) -> None:
        logger.info(
            "Purchase event %s kind=%s key=%s product=%s metadata=%s",
            event.event_type.value,
            event.kind.value,
            event.idempotency_key,
            event.product_id,
            event.metadata,
        )


def build_store(settings: GateSettings) -> DurableStore:
    if settings.storage_dir:
        return FileDurableStore(settings.storage_dir)
    logger.warning("GATE_STORAGE_DIR not set; usage and entitlement state will not survive a restart")
    return InMemoryDurableStore()


def build_gate_service(
    settings: GateSettings,
    *,
    store: Optional[DurableStore] = None,
) -> FeatureGateService:
    clock = SystemClock(settings.timezone)
    store = store if store is not None else build_store(settings)
    provider = SandboxEntitlementProvider(store, clock, management_url=settings.management_url)
    cache = EntitlementCache(
        store,
        provider,
        clock,
        max_age=settings.entitlement_max_age,
        fetch_timeout=settings.entitlement_fetch_timeout_seconds,
    )
    coordinator = PurchaseCoordinator(
        provider,
        cache,
        clock,
        timeout_seconds=settings.purchase_timeout_seconds,
        event_logger=LoggingPurchaseEventLogger(),
    )
    return FeatureGateService(
        usage_store=UsageCounterStore(store, clock),
        entitlement_cache=cache,
        coordinator=coordinator,
        provider=provider,
        clock=clock,
        limits=TierLimits.from_free_limits(settings.free_daily_limits),
        offline_grace=settings.offline_grace,
    )


@lru_cache(maxsize=1)
def get_gate_service() -> FeatureGateService:
    return build_gate_service(load_settings())


__all__ = ["build_gate_service", "get_gate_service", "LoggingPurchaseEventLogger"]
