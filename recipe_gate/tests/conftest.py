from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Callable, List, Optional

import pytest

from recipe_gate.app.clock import SystemClock
from recipe_gate.app.entitlements import EntitlementCache, EntitlementSnapshot, Tier
from recipe_gate.app.feature_gates import FeatureGateService
from recipe_gate.app.purchases import (
    ProviderOutcome,
    PurchaseAuditEvent,
    PurchaseCoordinator,
    PurchaseEventLogger,
)
from recipe_gate.app.storage import InMemoryDurableStore
from recipe_gate.app.usage import UsageCounterStore

START = datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc)


class ManualClock(SystemClock):
    def __init__(self, start: datetime = START, tz: tzinfo = timezone.utc) -> None:
        super().__init__(tz)
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


class FlakyStore(InMemoryDurableStore):
    """In-memory store that yields on every call and fails on demand."""

    def __init__(self) -> None:
        super().__init__()
        self.fail_get = False
        self.fail_set = False
        self.fail_delete = False
        self.writes = 0

    async def get(self, key: str) -> Optional[bytes]:
        await asyncio.sleep(0)
        if self.fail_get:
            raise OSError("storage unavailable")
        return await super().get(key)

    async def set(self, key: str, value: bytes) -> None:
        await asyncio.sleep(0)
        if self.fail_set:
            raise OSError("disk full")
        self.writes += 1
        await super().set(key, value)

    async def delete(self, key: str) -> None:
        await asyncio.sleep(0)
        if self.fail_delete:
            raise OSError("storage unavailable")
        await super().delete(key)


class ScriptedProvider:
    """Entitlement provider whose answers are set by the test."""

    def __init__(self, clock: ManualClock) -> None:
        self.clock = clock
        self.status = EntitlementSnapshot(tier=Tier.FREE)
        self.fetch_error: Optional[Exception] = None
        self.fetch_gate: Optional[asyncio.Event] = None
        self.purchase_outcome: Optional[ProviderOutcome] = None
        self.restore_outcome: Optional[ProviderOutcome] = None
        self.call_error: Optional[Exception] = None
        self.gate: Optional[asyncio.Event] = None
        self.fetch_calls = 0
        self.purchase_calls: List[str] = []
        self.restore_calls = 0
        self.cancelled = False
        self.logged_out = False

    async def fetch_status(self) -> EntitlementSnapshot:
        self.fetch_calls += 1
        if self.fetch_gate is not None:
            await self.fetch_gate.wait()
        if self.fetch_error is not None:
            raise self.fetch_error
        return self.status.model_copy(update={"fetched_at": self.clock.now()})

    async def purchase(self, product_id: str) -> ProviderOutcome:
        self.purchase_calls.append(product_id)
        outcome = self.purchase_outcome
        if outcome is None:
            outcome = ProviderOutcome.succeeded(
                EntitlementSnapshot(
                    tier=Tier.PREMIUM,
                    expires_at=self.clock.now() + timedelta(days=30),
                    will_renew=True,
                    fetched_at=self.clock.now(),
                    product_id=product_id,
                )
            )
        return await self._respond(outcome)

    async def restore(self) -> ProviderOutcome:
        self.restore_calls += 1
        outcome = self.restore_outcome or ProviderOutcome.succeeded(
            self.status.model_copy(update={"fetched_at": self.clock.now()})
        )
        return await self._respond(outcome)

    def management_url(self) -> str:
        return "https://example.test/manage"

    async def log_out(self) -> None:
        self.logged_out = True

    async def _respond(self, outcome: ProviderOutcome) -> ProviderOutcome:
        try:
            if self.gate is not None:
                await self.gate.wait()
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        if self.call_error is not None:
            raise self.call_error
        return outcome


class RecordingEventLogger(PurchaseEventLogger):
    def __init__(self) -> None:
        self.events: List[PurchaseAuditEvent] = []

    def log(self, event: PurchaseAuditEvent) -> None:
        self.events.append(event)

    @property
    def types(self) -> List[str]:
        return [event.event_type.value for event in self.events]


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def store() -> FlakyStore:
    return FlakyStore()


@pytest.fixture
def provider(clock: ManualClock) -> ScriptedProvider:
    return ScriptedProvider(clock)


@pytest.fixture
def cache(store: FlakyStore, provider: ScriptedProvider, clock: ManualClock) -> EntitlementCache:
    return EntitlementCache(store, provider, clock, max_age=timedelta(minutes=15))


@pytest.fixture
def usage_store(store: FlakyStore, clock: ManualClock) -> UsageCounterStore:
    return UsageCounterStore(store, clock)


@pytest.fixture
def events() -> RecordingEventLogger:
    return RecordingEventLogger()


@pytest.fixture
def coordinator(
    provider: ScriptedProvider,
    cache: EntitlementCache,
    clock: ManualClock,
    events: RecordingEventLogger,
) -> PurchaseCoordinator:
    return PurchaseCoordinator(provider, cache, clock, timeout_seconds=5.0, event_logger=events)


@pytest.fixture
def gate_service(
    usage_store: UsageCounterStore,
    cache: EntitlementCache,
    coordinator: PurchaseCoordinator,
    provider: ScriptedProvider,
    clock: ManualClock,
) -> FeatureGateService:
    return FeatureGateService(
        usage_store=usage_store,
        entitlement_cache=cache,
        coordinator=coordinator,
        provider=provider,
        clock=clock,
    )


@pytest.fixture
def make_snapshot(clock: ManualClock) -> Callable[..., EntitlementSnapshot]:
    def _make(tier: Tier = Tier.PREMIUM, *, days: Optional[float] = 30, **extra) -> EntitlementSnapshot:
        values = {"tier": tier, "will_renew": tier == Tier.PREMIUM, "fetched_at": clock.now(), **extra}
        if days is not None:
            values["expires_at"] = clock.now() + timedelta(days=days)
        return EntitlementSnapshot(**values)

    return _make
