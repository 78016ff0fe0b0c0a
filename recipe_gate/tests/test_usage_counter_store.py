from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from recipe_gate.app.errors import ErrorCode, StorageReadFailed, StorageWriteFailed
from recipe_gate.app.storage import USAGE_COUNTERS_KEY
from recipe_gate.app.usage import UsageAction, UsageCounters, UsageCounterStore


async def _stored(store) -> UsageCounters:
    return UsageCounters.model_validate_json(await store.get(USAGE_COUNTERS_KEY))


@pytest.mark.asyncio
async def test_increment_returns_persisted_count(usage_store, store) -> None:
    assert await usage_store.increment(UsageAction.SEARCH) == 1
    assert await usage_store.increment(UsageAction.SEARCH) == 2

    assert await usage_store.get(UsageAction.SEARCH) == (2, "2024-03-10")
    assert await usage_store.get(UsageAction.RECIPE_VIEW) == (0, "2024-03-10")
    assert (await _stored(store)).get(UsageAction.SEARCH) == 2


@pytest.mark.asyncio
async def test_concurrent_increments_are_not_lost(usage_store, store) -> None:
    await asyncio.gather(
        *[usage_store.increment(UsageAction.RECIPE_VIEW) for _ in range(25)],
        *[usage_store.increment(UsageAction.AI_GENERATION) for _ in range(10)],
    )

    stored = await _stored(store)
    assert stored.get(UsageAction.RECIPE_VIEW) == 25
    assert stored.get(UsageAction.AI_GENERATION) == 10


@pytest.mark.asyncio
async def test_day_rollover_resets_exactly_once(usage_store, store, clock) -> None:
    await usage_store.increment(UsageAction.RECIPE_VIEW)
    await usage_store.increment(UsageAction.RECIPE_VIEW)

    clock.advance(days=1)

    assert await usage_store.get(UsageAction.RECIPE_VIEW) == (0, "2024-03-11")
    assert (await _stored(store)).day_key == "2024-03-11"

    await usage_store.increment(UsageAction.RECIPE_VIEW)
    assert await usage_store.get(UsageAction.RECIPE_VIEW) == (1, "2024-03-11")


@pytest.mark.asyncio
async def test_concurrent_reads_after_rollover_write_once(usage_store, store, clock) -> None:
    await usage_store.increment(UsageAction.SEARCH)
    writes_before = store.writes
    clock.advance(days=1)

    results = await asyncio.gather(*[usage_store.get(UsageAction.SEARCH) for _ in range(5)])

    assert results == [(0, "2024-03-11")] * 5
    assert store.writes == writes_before + 1


@pytest.mark.asyncio
async def test_day_key_follows_clock_time_zone(store, clock) -> None:
    local = type(clock)(datetime(2024, 3, 10, 3, 30, tzinfo=timezone.utc), ZoneInfo("America/New_York"))
    counters = UsageCounterStore(store, local)

    assert await counters.get(UsageAction.SEARCH) == (0, "2024-03-09")


@pytest.mark.asyncio
async def test_corrupt_record_is_reinitialised(usage_store, store, caplog) -> None:
    await store.set(USAGE_COUNTERS_KEY, b"{not json")

    with caplog.at_level(logging.WARNING, logger="recipe_gate.app.usage.store"):
        assert await usage_store.get(UsageAction.SEARCH) == (0, "2024-03-10")

    assert "unreadable" in caplog.text
    assert (await _stored(store)).counts == {}


@pytest.mark.asyncio
async def test_negative_count_is_treated_as_corrupt(usage_store, store) -> None:
    payload = {"day_key": "2024-03-10", "counts": {"search": -3}}
    await store.set(USAGE_COUNTERS_KEY, json.dumps(payload).encode("utf-8"))

    assert await usage_store.increment(UsageAction.SEARCH) == 1


@pytest.mark.asyncio
async def test_failed_increment_is_retryable_and_not_committed(usage_store, store) -> None:
    await usage_store.increment(UsageAction.SEARCH)
    store.fail_set = True

    with pytest.raises(StorageWriteFailed) as exc:
        await usage_store.increment(UsageAction.SEARCH)

    assert exc.value.retryable is True
    assert exc.value.code == ErrorCode.STORAGE_WRITE_FAILED

    store.fail_set = False
    assert await usage_store.get(UsageAction.SEARCH) == (1, "2024-03-10")


@pytest.mark.asyncio
async def test_failed_reset_write_still_reports_zero(usage_store, store, clock) -> None:
    await usage_store.increment(UsageAction.SEARCH)
    clock.advance(days=1)
    store.fail_set = True

    assert await usage_store.get(UsageAction.SEARCH) == (0, "2024-03-11")

    store.fail_set = False
    assert await usage_store.increment(UsageAction.SEARCH) == 1


@pytest.mark.asyncio
async def test_read_failure_raises(usage_store, store) -> None:
    store.fail_get = True

    with pytest.raises(StorageReadFailed):
        await usage_store.get(UsageAction.SEARCH)


@pytest.mark.asyncio
async def test_reset_all_clears_counts(usage_store, store) -> None:
    await usage_store.increment(UsageAction.SEARCH)
    await usage_store.increment(UsageAction.RECIPE_QA)

    counters = await usage_store.reset_all()

    assert counters.counts == {}
    assert await usage_store.get(UsageAction.SEARCH) == (0, "2024-03-10")


@pytest.mark.asyncio
async def test_reset_all_write_failure_raises(usage_store, store) -> None:
    store.fail_set = True

    with pytest.raises(StorageWriteFailed):
        await usage_store.reset_all()
