from __future__ import annotations

import logging
from datetime import datetime, timezone

import pytest

from recipe_gate.app.entitlements import Tier
from recipe_gate.app.purchases import PurchaseAuditEvent, PurchaseAuditEventType, TransactionKind
from recipe_gate.app.services import gating as gating_service
from recipe_gate.app.storage import InMemoryDurableStore
from recipe_gate.app.usage import UsageAction
from recipe_gate.settings import load_settings


@pytest.mark.asyncio
async def test_build_gate_service_persists_to_storage_dir(tmp_path) -> None:
    settings = load_settings({"GATE_STORAGE_DIR": str(tmp_path), "FREE_DAILY_SEARCHES": "2"})

    service = gating_service.build_gate_service(settings)
    await service.record_usage(UsageAction.SEARCH)
    purchased = await service.purchase("premium_annual")

    reopened = gating_service.build_gate_service(settings)
    summary = await reopened.usage_summary()

    assert purchased.snapshot.is_sandbox_or_mock is True
    assert any(tmp_path.iterdir())
    assert summary.actions[UsageAction.SEARCH].used == 1
    assert summary.tier == Tier.PREMIUM.value


@pytest.mark.asyncio
async def test_build_gate_service_applies_free_limits() -> None:
    settings = load_settings({"FREE_DAILY_SEARCHES": "2"})

    service = gating_service.build_gate_service(settings, store=InMemoryDurableStore())
    verdict = await service.can_perform(UsageAction.SEARCH)

    assert verdict.limit == 2
    assert service.coordinator.timeout_seconds == 30.0
    assert service.entitlement_cache.fetch_timeout == 10.0


def test_build_store_without_directory_warns(caplog) -> None:
    with caplog.at_level(logging.WARNING, logger="purchases"):
        store = gating_service.build_store(load_settings({}))

    assert isinstance(store, InMemoryDurableStore)
    assert "GATE_STORAGE_DIR" in caplog.text


def test_logging_event_logger_writes_purchase_events(caplog) -> None:
    event = PurchaseAuditEvent(
        event_type=PurchaseAuditEventType.SUCCEEDED,
        kind=TransactionKind.PURCHASE,
        idempotency_key="txn_abc",
        product_id="premium_monthly",
        metadata={"tier": "premium"},
        occurred_at=datetime(2024, 3, 10, tzinfo=timezone.utc),
    )

    with caplog.at_level(logging.INFO, logger="purchases"):
        gating_service.LoggingPurchaseEventLogger().log(event)

    assert "Purchase event succeeded" in caplog.text
    assert "txn_abc" in caplog.text


def test_get_gate_service_is_cached(monkeypatch) -> None:
    monkeypatch.setattr(gating_service, "load_settings", lambda: load_settings({}))
    gating_service.get_gate_service.cache_clear()
    try:
        assert gating_service.get_gate_service() is gating_service.get_gate_service()
    finally:
        gating_service.get_gate_service.cache_clear()
