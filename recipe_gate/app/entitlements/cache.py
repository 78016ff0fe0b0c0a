"""Durable cache of the last known entitlement snapshot."""
from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import Optional, Protocol

from pydantic import ValidationError

from ..clock import Clock
from ..errors import (
    InvalidTierTransition,
    ProviderUnreachable,
    StorageCorrupt,
    StorageReadFailed,
    StorageWriteFailed,
)
from ..storage import ENTITLEMENT_SNAPSHOT_KEY, DurableStore
from .models import EntitlementSnapshot, RefreshResult, is_valid_transition

logger = logging.getLogger(__name__)

DEFAULT_FETCH_TIMEOUT_SECONDS = 10.0


class StatusSource(Protocol):
    """The part of the entitlement provider the cache depends on."""

    async def fetch_status(self) -> EntitlementSnapshot:
        ...


class EntitlementCache:
    """Owns the persisted entitlement snapshot and its staleness.

    ``set`` is reserved for the purchase coordinator; background refreshes go
    through ``refresh``. A refresh that was already running when ``set``
    committed a new state discards its own result. Stale checks that overlap
    share one provider call.
    """

    def __init__(
        self,
        store: DurableStore,
        provider: StatusSource,
        clock: Clock,
        *,
        max_age: timedelta = timedelta(minutes=15),
        fetch_timeout: float = DEFAULT_FETCH_TIMEOUT_SECONDS,
        key: str = ENTITLEMENT_SNAPSHOT_KEY,
    ) -> None:
        if fetch_timeout <= 0:
            raise ValueError("fetch_timeout must be > 0")
        self._store = store
        self._provider = provider
        self._clock = clock
        self._max_age = max_age
        self._fetch_timeout = fetch_timeout
        self._key = key
        self._write_lock = asyncio.Lock()
        self._generation = 0
        self._pending_refresh: Optional["asyncio.Future[RefreshResult]"] = None

    @property
    def max_age(self) -> timedelta:
        return self._max_age

    @property
    def fetch_timeout(self) -> float:
        return self._fetch_timeout

    async def get(self) -> EntitlementSnapshot:
        stored = await self._read()
        return stored.effective(self._clock.now())

    async def is_stale(self, max_age: Optional[timedelta] = None) -> bool:
        limit = self._max_age if max_age is None else max_age
        stored = await self._read()
        return self._clock.now() - stored.fetched_at > limit

    async def refresh(self) -> RefreshResult:
        generation = self._generation
        try:
            fetched = await asyncio.wait_for(self._provider.fetch_status(), timeout=self._fetch_timeout)
        except asyncio.TimeoutError:
            logger.warning("Entitlement provider silent for %gs; serving cached snapshot", self._fetch_timeout)
            unreachable = ProviderUnreachable(
                f"Entitlement provider did not answer within {self._fetch_timeout:g} seconds."
            )
            cached = await self.get()
            return RefreshResult(snapshot=cached, refreshed=False, error=unreachable.to_error())
        except Exception as exc:
            if isinstance(exc, ProviderUnreachable):
                unreachable = exc
            else:
                unreachable = ProviderUnreachable(f"Entitlement provider is unreachable: {exc}")
            logger.warning("Entitlement refresh failed; serving cached snapshot: %s", exc)
            cached = await self.get()
            return RefreshResult(snapshot=cached, refreshed=False, error=unreachable.to_error())

        now = self._clock.now()
        async with self._write_lock:
            if generation != self._generation:
                logger.info("Discarding refresh result superseded by a committed transaction")
                current = await self.get()
                return RefreshResult(snapshot=current, refreshed=False)
            previous = (await self._read()).effective(now)
            snapshot = fetched.model_copy(update={"fetched_at": now}).effective(now)
            if not is_valid_transition(previous.tier, snapshot.tier):
                logger.warning(
                    "Provider reported unexpected tier change %s -> %s; accepting provider state",
                    previous.tier.value,
                    snapshot.tier.value,
                )
            try:
                await self._write(snapshot)
            except StorageWriteFailed as exc:
                logger.warning("Fetched entitlement could not be persisted: %s", exc.message)
                return RefreshResult(snapshot=snapshot, refreshed=False, error=exc.to_error())
        return RefreshResult(snapshot=snapshot, refreshed=True)

    async def ensure_fresh(self) -> RefreshResult:
        """Refresh only when the cached snapshot is older than ``max_age``."""

        if not await self.is_stale():
            return RefreshResult(snapshot=await self.get(), refreshed=False)
        if self._pending_refresh is None:
            pending = asyncio.ensure_future(self.refresh())
            self._pending_refresh = pending
            pending.add_done_callback(self._release_refresh)
        return await asyncio.shield(self._pending_refresh)

    async def set(self, snapshot: EntitlementSnapshot) -> EntitlementSnapshot:
        now = self._clock.now()
        async with self._write_lock:
            previous = (await self._read()).effective(now)
            committed = snapshot.model_copy(update={"fetched_at": now}).effective(now)
            if not is_valid_transition(previous.tier, committed.tier):
                raise InvalidTierTransition(previous.tier.value, committed.tier.value)
            await self._write(committed)
            self._generation += 1
        logger.info(
            "Entitlement committed tier=%s expires_at=%s sandbox=%s",
            committed.tier.value,
            committed.expires_at,
            committed.is_sandbox_or_mock,
        )
        return committed

    async def clear(self) -> None:
        """Forget the snapshot (logout); ``get`` then reports ``unknown``."""

        async with self._write_lock:
            try:
                await self._store.delete(self._key)
            except Exception as exc:
                raise StorageWriteFailed(self._key) from exc
            self._generation += 1
        logger.info("Entitlement snapshot cleared")

    def _release_refresh(self, pending: "asyncio.Future[RefreshResult]") -> None:
        if self._pending_refresh is pending:
            self._pending_refresh = None

    async def _read(self) -> EntitlementSnapshot:
        try:
            raw = await self._store.get(self._key)
        except Exception as exc:
            raise StorageReadFailed(self._key) from exc
        if raw is None:
            return EntitlementSnapshot.unknown()
        try:
            return EntitlementSnapshot.model_validate_json(raw)
        except (ValidationError, ValueError) as exc:
            corrupt = StorageCorrupt(self._key)
            logger.warning("%s Falling back to unknown entitlement (%s)", corrupt.message, exc)
            return EntitlementSnapshot.unknown()

    async def _write(self, snapshot: EntitlementSnapshot) -> None:
        try:
            await self._store.set(self._key, snapshot.model_dump_json().encode("utf-8"))
        except Exception as exc:
            raise StorageWriteFailed(self._key) from exc


__all__ = ["DEFAULT_FETCH_TIMEOUT_SECONDS", "EntitlementCache", "StatusSource"]
