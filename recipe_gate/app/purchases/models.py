"""Domain models for purchase and restore transactions."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..entitlements.models import EntitlementSnapshot
from ..errors import OperationError


class TransactionKind(str, Enum):
    PURCHASE = "purchase"
    RESTORE = "restore"


class Transaction(BaseModel):
    """One in-flight purchase or restore attempt. Never persisted."""

    kind: TransactionKind
    product_id: Optional[str] = None
    started_at: datetime
    idempotency_key: str = Field(description="Client-side key identifying this logical attempt")

    model_config = ConfigDict(frozen=True)


class PurchaseStatus(str, Enum):
    """Terminal states a transaction can resolve to."""

    SUCCEEDED = "succeeded"
    NOTHING_TO_RESTORE = "nothing_to_restore"
    CANCELLED = "cancelled"
    REJECTED = "rejected"
    UNREACHABLE = "unreachable"
    TIMED_OUT = "timed_out"
    STORAGE_FAILED = "storage_failed"


class PurchaseResult(BaseModel):
    """Typed outcome handed back to every caller attached to a transaction."""

    status: PurchaseStatus
    transaction: Transaction
    snapshot: Optional[EntitlementSnapshot] = None
    error: Optional[OperationError] = None

    model_config = ConfigDict(frozen=True)

    @property
    def success(self) -> bool:
        return self.status in {PurchaseStatus.SUCCEEDED, PurchaseStatus.NOTHING_TO_RESTORE}

    @property
    def nothing_to_restore(self) -> bool:
        return self.status == PurchaseStatus.NOTHING_TO_RESTORE


class ProviderErrorCode(str, Enum):
    """Store error categories reported by the entitlement provider."""

    PURCHASE_CANCELLED = "purchase_cancelled"
    PRODUCT_NOT_FOUND = "product_not_found"
    PRODUCT_NOT_AVAILABLE = "product_not_available"
    ALREADY_PURCHASED = "already_purchased"
    PAYMENT_PENDING = "payment_pending"
    NETWORK_ERROR = "network_error"
    UNKNOWN = "unknown"


class ProviderOutcome(BaseModel):
    """Provider response to a purchase or restore call."""

    success: bool
    snapshot: Optional[EntitlementSnapshot] = None
    error: Optional[str] = None
    error_code: Optional[ProviderErrorCode] = None
    user_cancelled: bool = False

    model_config = ConfigDict(frozen=True)

    @classmethod
    def succeeded(cls, snapshot: Optional[EntitlementSnapshot]) -> "ProviderOutcome":
        return cls(success=True, snapshot=snapshot)

    @classmethod
    def failed(cls, code: ProviderErrorCode, message: str) -> "ProviderOutcome":
        return cls(
            success=False,
            error=message,
            error_code=code,
            user_cancelled=code == ProviderErrorCode.PURCHASE_CANCELLED,
        )


class PurchaseAuditEventType(str, Enum):
    """Audit event categories emitted by the purchase coordinator."""

    STARTED = "started"
    ATTACHED = "attached"
    SUCCEEDED = "succeeded"
    NOTHING_TO_RESTORE = "nothing_to_restore"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


class PurchaseAuditEvent(BaseModel):
    """Structured audit event describing a transaction's lifecycle."""

    event_type: PurchaseAuditEventType
    kind: TransactionKind
    idempotency_key: str
    product_id: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(frozen=True)


__all__ = [
    "ProviderErrorCode",
    "ProviderOutcome",
    "PurchaseAuditEvent",
    "PurchaseAuditEventType",
    "PurchaseResult",
    "PurchaseStatus",
    "Transaction",
    "TransactionKind",
]
