"""Local stand-in for the store SDK, used in development and tests."""
from __future__ import annotations

import asyncio
import logging
from typing import Optional

from pydantic import ValidationError

from ..clock import Clock
from ..entitlements.catalog import get_product_definition
from ..entitlements.models import EntitlementSnapshot, Tier
from ..errors import ProviderUnreachable
from ..storage import SANDBOX_ENTITLEMENT_KEY, DurableStore
from .models import ProviderErrorCode, ProviderOutcome

logger = logging.getLogger(__name__)

DEFAULT_MANAGEMENT_URL = "https://apps.apple.com/account/subscriptions"


class SandboxEntitlementProvider:
    """Simulated subscription backend.

    The "server side" subscription lives in the durable store under its own
    key, so it survives restarts when a file store is used. Set
    ``reachable = False`` to simulate the provider being offline and
    ``delay`` to simulate a slow store.
    """

    def __init__(
        self,
        store: DurableStore,
        clock: Clock,
        *,
        management_url: str = DEFAULT_MANAGEMENT_URL,
        delay: float = 0.0,
        key: str = SANDBOX_ENTITLEMENT_KEY,
    ) -> None:
        self._store = store
        self._clock = clock
        self._management_url = management_url
        self._key = key
        self.delay = delay
        self.reachable = True

    async def fetch_status(self) -> EntitlementSnapshot:
        await self._simulate_network()
        now = self._clock.now()
        stored = await self._load()
        if stored is None:
            return EntitlementSnapshot(tier=Tier.FREE, fetched_at=now, is_sandbox_or_mock=True)
        return stored.effective(now).model_copy(update={"fetched_at": now})

    async def purchase(self, product_id: str) -> ProviderOutcome:
        await self._simulate_network()
        try:
            product = get_product_definition(product_id)
        except KeyError:
            logger.info("Sandbox purchase of unknown product %s", product_id)
            return ProviderOutcome.failed(
                ProviderErrorCode.PRODUCT_NOT_FOUND, f"Unknown product '{product_id}'."
            )

        now = self._clock.now()
        current = await self._load()
        if current is not None:
            current = current.effective(now)
            if current.tier in (Tier.PREMIUM, Tier.EXPIRED) and product.grants == Tier.TRIAL:
                return ProviderOutcome.failed(
                    ProviderErrorCode.PRODUCT_NOT_AVAILABLE,
                    "Trial is only available before a first subscription.",
                )
            if current.is_active and current.product_id == product_id:
                return ProviderOutcome.failed(
                    ProviderErrorCode.ALREADY_PURCHASED, "This subscription is already active."
                )

        expires_at = now + product.period if product.period is not None else None
        snapshot = EntitlementSnapshot(
            tier=product.grants,
            expires_at=expires_at,
            will_renew=product.renews,
            fetched_at=now,
            is_sandbox_or_mock=True,
            product_id=product.product_id,
        )
        await self._save(snapshot)
        logger.info("Sandbox purchase of %s granted %s until %s", product_id, snapshot.tier.value, expires_at)
        return ProviderOutcome.succeeded(snapshot)

    async def restore(self) -> ProviderOutcome:
        snapshot = await self.fetch_status()
        logger.info("Sandbox restore found tier=%s", snapshot.tier.value)
        return ProviderOutcome.succeeded(snapshot)

    def management_url(self) -> str:
        return self._management_url

    async def log_out(self) -> None:
        await self._store.delete(self._key)
        logger.info("Sandbox session logged out")

    async def _simulate_network(self) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if not self.reachable:
            raise ProviderUnreachable("Sandbox provider is offline.")

    async def _load(self) -> Optional[EntitlementSnapshot]:
        raw = await self._store.get(self._key)
        if raw is None:
            return None
        try:
            return EntitlementSnapshot.model_validate_json(raw)
        except (ValidationError, ValueError):
            logger.warning("Invalid sandbox subscription data, clearing it")
            await self._store.delete(self._key)
            return None

    async def _save(self, snapshot: EntitlementSnapshot) -> None:
        await self._store.set(self._key, snapshot.model_dump_json().encode("utf-8"))


__all__ = ["DEFAULT_MANAGEMENT_URL", "SandboxEntitlementProvider"]
