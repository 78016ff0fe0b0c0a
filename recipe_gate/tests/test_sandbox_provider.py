from __future__ import annotations

from datetime import timedelta

import pytest

from recipe_gate.app.entitlements import EntitlementCache, Tier
from recipe_gate.app.errors import ProviderUnreachable
from recipe_gate.app.purchases import (
    DEFAULT_MANAGEMENT_URL,
    ProviderErrorCode,
    PurchaseCoordinator,
    PurchaseStatus,
    SandboxEntitlementProvider,
)
from recipe_gate.app.storage import SANDBOX_ENTITLEMENT_KEY


@pytest.fixture
def sandbox(store, clock) -> SandboxEntitlementProvider:
    return SandboxEntitlementProvider(store, clock)


@pytest.mark.asyncio
async def test_new_user_is_free_sandbox(sandbox, clock) -> None:
    snapshot = await sandbox.fetch_status()

    assert snapshot.tier == Tier.FREE
    assert snapshot.is_sandbox_or_mock is True
    assert snapshot.fetched_at == clock.now()


@pytest.mark.asyncio
async def test_purchase_grants_catalog_period(sandbox, store, clock) -> None:
    outcome = await sandbox.purchase("premium_monthly")

    assert outcome.success is True
    assert outcome.snapshot.tier == Tier.PREMIUM
    assert outcome.snapshot.expires_at == clock.now() + timedelta(days=30)
    assert outcome.snapshot.will_renew is True
    assert outcome.snapshot.product_id == "premium_monthly"

    reopened = SandboxEntitlementProvider(store, clock)
    assert (await reopened.fetch_status()).tier == Tier.PREMIUM


@pytest.mark.asyncio
async def test_trial_does_not_renew(sandbox) -> None:
    outcome = await sandbox.purchase("premium_trial")

    assert outcome.snapshot.tier == Tier.TRIAL
    assert outcome.snapshot.will_renew is False


@pytest.mark.asyncio
async def test_unknown_product_is_not_found(sandbox) -> None:
    outcome = await sandbox.purchase("premium_forever")

    assert outcome.success is False
    assert outcome.error_code == ProviderErrorCode.PRODUCT_NOT_FOUND
    assert outcome.user_cancelled is False


@pytest.mark.asyncio
async def test_trial_unavailable_after_premium(sandbox) -> None:
    await sandbox.purchase("premium_monthly")

    outcome = await sandbox.purchase("premium_trial")

    assert outcome.error_code == ProviderErrorCode.PRODUCT_NOT_AVAILABLE


@pytest.mark.asyncio
async def test_repeat_purchase_is_already_purchased(sandbox) -> None:
    await sandbox.purchase("premium_annual")

    outcome = await sandbox.purchase("premium_annual")

    assert outcome.error_code == ProviderErrorCode.ALREADY_PURCHASED


@pytest.mark.asyncio
async def test_subscription_expires_after_period(sandbox, clock) -> None:
    await sandbox.purchase("premium_monthly")
    clock.advance(days=31)

    assert (await sandbox.fetch_status()).tier == Tier.EXPIRED


@pytest.mark.asyncio
async def test_offline_sandbox_raises(sandbox) -> None:
    sandbox.reachable = False

    with pytest.raises(ProviderUnreachable):
        await sandbox.fetch_status()
    with pytest.raises(ProviderUnreachable):
        await sandbox.purchase("premium_monthly")


@pytest.mark.asyncio
async def test_log_out_forgets_subscription(sandbox, store) -> None:
    await sandbox.purchase("premium_monthly")

    await sandbox.log_out()

    assert await store.get(SANDBOX_ENTITLEMENT_KEY) is None
    assert (await sandbox.fetch_status()).tier == Tier.FREE
    assert sandbox.management_url() == DEFAULT_MANAGEMENT_URL


@pytest.mark.asyncio
async def test_corrupt_sandbox_state_is_cleared(sandbox, store) -> None:
    await store.set(SANDBOX_ENTITLEMENT_KEY, b"garbage")

    assert (await sandbox.fetch_status()).tier == Tier.FREE
    assert await store.get(SANDBOX_ENTITLEMENT_KEY) is None


@pytest.mark.asyncio
async def test_purchase_then_restore_through_coordinator(sandbox, store, clock) -> None:
    cache = EntitlementCache(store, sandbox, clock)
    coordinator = PurchaseCoordinator(sandbox, cache, clock)

    purchased = await coordinator.purchase("premium_monthly")
    await cache.clear()
    restored = await coordinator.restore()

    assert purchased.status == PurchaseStatus.SUCCEEDED
    assert purchased.snapshot.is_sandbox_or_mock is True
    assert restored.status == PurchaseStatus.SUCCEEDED
    assert (await cache.get()).tier == Tier.PREMIUM
