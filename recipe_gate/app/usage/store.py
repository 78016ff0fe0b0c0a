"""Daily usage counters persisted in the durable store."""
from __future__ import annotations

import asyncio
import logging
from typing import Optional, Tuple

from pydantic import ValidationError

from ..clock import Clock
from ..errors import StorageCorrupt, StorageReadFailed, StorageWriteFailed
from ..storage import USAGE_COUNTERS_KEY, DurableStore
from .models import UsageAction, UsageCounters

logger = logging.getLogger(__name__)


class UsageCounterStore:
    """Owns the per-action counters for the current calendar day.

    All counts live under a single storage key, so every read-modify-write is
    serialized through one lock. Two overlapping ``increment`` calls are both
    reflected in the persisted record.
    """

    def __init__(self, store: DurableStore, clock: Clock, *, key: str = USAGE_COUNTERS_KEY) -> None:
        self._store = store
        self._clock = clock
        self._key = key
        self._lock = asyncio.Lock()

    async def get(self, action: UsageAction) -> Tuple[int, str]:
        counters = await self.snapshot()
        return counters.get(action), counters.day_key

    async def snapshot(self) -> UsageCounters:
        """Return today's counters, resetting first if the day rolled over."""

        async with self._lock:
            counters, needs_write = await self._load_current()
            if needs_write:
                try:
                    await self._write(counters)
                except StorageWriteFailed:
                    # Zeroed counters for today are still correct; the reset is retried next read.
                    logger.warning("Could not persist usage reset for %s", counters.day_key)
            return counters

    async def increment(self, action: UsageAction) -> int:
        async with self._lock:
            counters, _ = await self._load_current()
            updated = counters.incremented(action)
            await self._write(updated)
            new_count = updated.get(action)
        logger.debug("Usage %s=%d on %s", action.value, new_count, updated.day_key)
        return new_count

    async def reset_all(self) -> UsageCounters:
        async with self._lock:
            counters = UsageCounters.fresh(self._today())
            await self._write(counters)
        logger.info("Usage counters reset manually for %s", counters.day_key)
        return counters

    def _today(self) -> str:
        return self._clock.day_key(self._clock.now())

    async def _load_current(self) -> Tuple[UsageCounters, bool]:
        today = self._today()
        stored = await self._read()
        if stored is None:
            return UsageCounters.fresh(today), True
        if stored.day_key != today:
            logger.info("Day rolled over %s -> %s; resetting usage counters", stored.day_key, today)
            return UsageCounters.fresh(today), True
        return stored, False

    async def _read(self) -> Optional[UsageCounters]:
        try:
            raw = await self._store.get(self._key)
        except Exception as exc:
            raise StorageReadFailed(self._key) from exc
        if raw is None:
            return None
        try:
            return UsageCounters.model_validate_json(raw)
        except (ValidationError, ValueError) as exc:
            corrupt = StorageCorrupt(self._key)
            logger.warning("%s Reinitialising usage counters (%s)", corrupt.message, exc)
            return None

    async def _write(self, counters: UsageCounters) -> None:
        try:
            await self._store.set(self._key, counters.model_dump_json().encode("utf-8"))
        except Exception as exc:
            raise StorageWriteFailed(self._key) from exc


__all__ = ["UsageCounterStore"]
