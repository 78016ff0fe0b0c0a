"""Serializes purchase and restore calls and commits their outcome."""
from __future__ import annotations

import asyncio
import logging
from typing import Dict, Optional, Tuple
from uuid import uuid4

from ..clock import Clock
from ..entitlements.cache import EntitlementCache
from ..entitlements.models import EntitlementSnapshot
from ..errors import (
    ErrorCode,
    InvalidTierTransition,
    OperationError,
    ProviderRejected,
    ProviderUnreachable,
    QuotaEngineError,
    StorageReadFailed,
    StorageWriteFailed,
    TransactionTimeout,
)
from .models import (
    ProviderErrorCode,
    ProviderOutcome,
    PurchaseAuditEvent,
    PurchaseAuditEventType,
    PurchaseResult,
    PurchaseStatus,
    Transaction,
    TransactionKind,
)
from .provider import EntitlementProvider, NullPurchaseEventLogger, PurchaseEventLogger

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0


class PurchaseCoordinator:
    """Runs at most one purchase or restore at a time.

    A call made while a transaction is in flight attaches to it and receives
    the very same ``PurchaseResult``; the provider is called once. A watchdog
    bounds the whole transaction, commit included, and the slot is released
    however the transaction ends so the next call always starts fresh.
    """

    def __init__(
        self,
        provider: EntitlementProvider,
        cache: EntitlementCache,
        clock: Clock,
        *,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        event_logger: Optional[PurchaseEventLogger] = None,
    ) -> None:
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        self._provider = provider
        self._cache = cache
        self._clock = clock
        self._timeout_seconds = timeout_seconds
        self._event_logger = event_logger or NullPurchaseEventLogger()
        self._inflight: Optional[Tuple[Transaction, "asyncio.Future[PurchaseResult]"]] = None

    @property
    def in_flight(self) -> Optional[Transaction]:
        return self._inflight[0] if self._inflight is not None else None

    @property
    def timeout_seconds(self) -> float:
        return self._timeout_seconds

    async def purchase(self, product_id: str) -> PurchaseResult:
        return await self._run(TransactionKind.PURCHASE, product_id)

    async def restore(self) -> PurchaseResult:
        return await self._run(TransactionKind.RESTORE, None)

    async def _run(self, kind: TransactionKind, product_id: Optional[str]) -> PurchaseResult:
        if self._inflight is not None:
            transaction, task = self._inflight
            if transaction.kind != kind or transaction.product_id != product_id:
                logger.warning(
                    "Requested %s(%s) while %s(%s) is in flight; attaching to the running transaction",
                    kind.value,
                    product_id,
                    transaction.kind.value,
                    transaction.product_id,
                )
            self._emit(
                PurchaseAuditEventType.ATTACHED,
                transaction,
                {"requested_kind": kind.value, "requested_product_id": product_id or ""},
            )
            return await asyncio.shield(task)

        transaction = Transaction(
            kind=kind,
            product_id=product_id,
            started_at=self._clock.now(),
            idempotency_key=f"txn_{uuid4().hex}",
        )
        task = asyncio.ensure_future(self._execute(transaction))
        self._inflight = (transaction, task)
        self._emit(PurchaseAuditEventType.STARTED, transaction)
        # Cancelling one waiter must not cancel the transaction other callers share.
        return await asyncio.shield(task)

    async def _execute(self, transaction: Transaction) -> PurchaseResult:
        try:
            return await asyncio.wait_for(self._transact(transaction), timeout=self._timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning(
                "%s %s timed out after %gs",
                transaction.kind.value,
                transaction.idempotency_key,
                self._timeout_seconds,
            )
            return self._finish(
                transaction,
                PurchaseStatus.TIMED_OUT,
                error=TransactionTimeout(self._timeout_seconds),
            )
        finally:
            if self._inflight is not None and self._inflight[0] is transaction:
                self._inflight = None

    async def _transact(self, transaction: Transaction) -> PurchaseResult:
        # The watchdog covers the provider call and the commit that follows it.
        try:
            outcome = await self._call_provider(transaction)
        except ProviderUnreachable as exc:
            return self._finish(transaction, PurchaseStatus.UNREACHABLE, error=exc)
        except ConnectionError as exc:
            return self._finish(
                transaction,
                PurchaseStatus.UNREACHABLE,
                error=ProviderUnreachable(f"Entitlement provider is unreachable: {exc}"),
            )
        except Exception:
            logger.exception("Provider raised during %s %s", transaction.kind.value, transaction.idempotency_key)
            return self._finish(
                transaction,
                PurchaseStatus.REJECTED,
                error=ProviderRejected("The store reported an unexpected error."),
            )
        return await self._apply(transaction, outcome)

    async def _call_provider(self, transaction: Transaction) -> ProviderOutcome:
        if transaction.kind == TransactionKind.RESTORE:
            return await self._provider.restore()
        return await self._provider.purchase(transaction.product_id or "")

    async def _apply(self, transaction: Transaction, outcome: ProviderOutcome) -> PurchaseResult:
        if not outcome.success:
            return self._reject(transaction, outcome)

        snapshot = outcome.snapshot
        if snapshot is None and transaction.kind == TransactionKind.RESTORE:
            return self._finish(transaction, PurchaseStatus.NOTHING_TO_RESTORE)
        if snapshot is None:
            # Provider confirmed without a payload; ask it for the resulting state.
            try:
                refreshed = await self._cache.refresh()
            except (StorageReadFailed, StorageWriteFailed) as exc:
                return self._finish(transaction, PurchaseStatus.STORAGE_FAILED, error=exc)
            if refreshed.error is not None:
                logger.warning(
                    "%s %s succeeded but the entitlement could not be refreshed: %s",
                    transaction.kind.value,
                    transaction.idempotency_key,
                    refreshed.error.message,
                )
            return self._finish(
                transaction, PurchaseStatus.SUCCEEDED, snapshot=refreshed.snapshot, warning=refreshed.error
            )

        effective = snapshot.effective(self._clock.now())
        if transaction.kind == TransactionKind.RESTORE and not effective.is_active:
            return self._finish(transaction, PurchaseStatus.NOTHING_TO_RESTORE)

        try:
            committed = await self._cache.set(snapshot)
        except InvalidTierTransition as exc:
            logger.warning("Refusing to commit %s: %s", transaction.idempotency_key, exc.message)
            return self._finish(transaction, PurchaseStatus.REJECTED, error=exc)
        except (StorageReadFailed, StorageWriteFailed) as exc:
            return self._finish(transaction, PurchaseStatus.STORAGE_FAILED, error=exc)
        return self._finish(transaction, PurchaseStatus.SUCCEEDED, snapshot=committed)

    def _reject(self, transaction: Transaction, outcome: ProviderOutcome) -> PurchaseResult:
        detail: Dict[str, str] = {}
        if outcome.error_code is not None:
            detail["provider_code"] = outcome.error_code.value
        if outcome.user_cancelled:
            error = ProviderRejected(
                outcome.error or "The purchase was cancelled.",
                detail=detail,
                code=ErrorCode.PURCHASE_CANCELLED,
            )
            return self._finish(transaction, PurchaseStatus.CANCELLED, error=error)
        if outcome.error_code == ProviderErrorCode.NETWORK_ERROR:
            error = ProviderUnreachable(outcome.error or "Entitlement provider is unreachable.")
            return self._finish(transaction, PurchaseStatus.UNREACHABLE, error=error)
        error = ProviderRejected(outcome.error or "The purchase could not be completed.", detail=detail)
        return self._finish(transaction, PurchaseStatus.REJECTED, error=error)

    def _finish(
        self,
        transaction: Transaction,
        status: PurchaseStatus,
        *,
        snapshot: Optional[EntitlementSnapshot] = None,
        error: Optional[QuotaEngineError] = None,
        warning: Optional[OperationError] = None,
    ) -> PurchaseResult:
        result = PurchaseResult(
            status=status,
            transaction=transaction,
            snapshot=snapshot,
            error=error.to_error() if error is not None else warning,
        )
        if status == PurchaseStatus.SUCCEEDED:
            event_type = PurchaseAuditEventType.SUCCEEDED
        elif status == PurchaseStatus.NOTHING_TO_RESTORE:
            event_type = PurchaseAuditEventType.NOTHING_TO_RESTORE
        elif status == PurchaseStatus.TIMED_OUT:
            event_type = PurchaseAuditEventType.TIMED_OUT
        else:
            event_type = PurchaseAuditEventType.FAILED
        metadata = {"status": status.value}
        if result.error is not None:
            metadata["error"] = result.error.code.value
        if snapshot is not None:
            metadata["tier"] = snapshot.tier.value
        self._emit(event_type, transaction, metadata)
        return result

    def _emit(
        self,
        event_type: PurchaseAuditEventType,
        transaction: Transaction,
        metadata: Optional[Dict[str, str]] = None,
    ) -> None:
        self._event_logger.log(
            PurchaseAuditEvent(
                event_type=event_type,
                kind=transaction.kind,
                idempotency_key=transaction.idempotency_key,
                product_id=transaction.product_id,
                metadata=metadata or {},
            )
        )


__all__ = ["DEFAULT_TIMEOUT_SECONDS", "PurchaseCoordinator"]
