"""Error taxonomy shared by the quota and entitlement components."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from fastapi import HTTPException, status
from pydantic import BaseModel, ConfigDict, Field


class ErrorCode(str, Enum):
    """Stable identifiers surfaced to callers of the gating engine."""

    STORAGE_CORRUPT = "storage_corrupt"
    STORAGE_READ_FAILED = "storage_read_failed"
    STORAGE_WRITE_FAILED = "storage_write_failed"
    PROVIDER_UNREACHABLE = "provider_unreachable"
    PROVIDER_REJECTED = "provider_rejected"
    TRANSACTION_TIMEOUT = "transaction_timeout"
    PURCHASE_CANCELLED = "purchase_cancelled"
    INVALID_TIER_TRANSITION = "invalid_tier_transition"
    QUOTA_EXCEEDED = "quota_exceeded"


class OperationError(BaseModel):
    """Error description carried inside typed results instead of raising."""

    code: ErrorCode
    message: str
    retryable: bool = False
    detail: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)


@dataclass
class QuotaEngineError(Exception):
    """Base class for failures raised inside the engine's components."""

    code: ErrorCode
    message: str
    retryable: bool = False
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    detail: Optional[Mapping[str, Any]] = None

    def __post_init__(self) -> None:
        base_detail: Dict[str, Any] = {"error": self.code.value, "message": self.message}
        if self.detail:
            base_detail.update(self.detail)
        object.__setattr__(self, "_payload", base_detail)
        super().__init__(self.message)

    @property
    def payload(self) -> Mapping[str, Any]:
        """Serialized representation suitable for JSON responses."""

        return self._payload

    def to_error(self) -> OperationError:
        """Convert the exception into the value carried by typed results."""

        return OperationError(
            code=self.code,
            message=self.message,
            retryable=self.retryable,
            detail=dict(self.detail or {}),
        )

    def to_http_exception(self) -> HTTPException:
        """Convert the domain error into a FastAPI HTTPException."""

        return HTTPException(status_code=self.status_code, detail=dict(self.payload))


class StorageCorrupt(QuotaEngineError):
    """Persisted bytes could not be decoded; callers self-heal and never see it."""

    def __init__(self, key: str, message: Optional[str] = None) -> None:
        super().__init__(
            code=ErrorCode.STORAGE_CORRUPT,
            message=message or f"Stored value for '{key}' is unreadable.",
            detail={"key": key},
        )


class StorageReadFailed(QuotaEngineError):
    def __init__(self, key: str, message: Optional[str] = None) -> None:
        super().__init__(
            code=ErrorCode.STORAGE_READ_FAILED,
            message=message or f"Could not read '{key}' from storage.",
            retryable=True,
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"key": key},
        )


class StorageWriteFailed(QuotaEngineError):
    def __init__(self, key: str, message: Optional[str] = None) -> None:
        super().__init__(
            code=ErrorCode.STORAGE_WRITE_FAILED,
            message=message or f"Could not persist '{key}'. Try again.",
            retryable=True,
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"key": key},
        )


class ProviderUnreachable(QuotaEngineError):
    """The entitlement provider could not be contacted."""

    def __init__(self, message: str = "Entitlement provider is unreachable.") -> None:
        super().__init__(
            code=ErrorCode.PROVIDER_UNREACHABLE,
            message=message,
            retryable=True,
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        )


class ProviderRejected(QuotaEngineError):
    """The provider refused the operation; fatal for the current attempt."""

    def __init__(
        self,
        message: str = "The purchase could not be completed.",
        *,
        detail: Optional[Mapping[str, Any]] = None,
        code: ErrorCode = ErrorCode.PROVIDER_REJECTED,
        status_code: int = status.HTTP_402_PAYMENT_REQUIRED,
    ) -> None:
        super().__init__(
            code=code,
            message=message,
            status_code=status_code,
            detail=detail,
        )


class TransactionTimeout(ProviderRejected):
    def __init__(self, timeout_seconds: float) -> None:
        super().__init__(
            f"The store did not respond within {timeout_seconds:g} seconds.",
            detail={"timeout_seconds": timeout_seconds},
            code=ErrorCode.TRANSACTION_TIMEOUT,
            status_code=status.HTTP_504_GATEWAY_TIMEOUT,
        )


class InvalidTierTransition(QuotaEngineError):
    def __init__(self, current: str, requested: str) -> None:
        super().__init__(
            code=ErrorCode.INVALID_TIER_TRANSITION,
            message=f"Cannot move entitlement from '{current}' to '{requested}'.",
            status_code=status.HTTP_409_CONFLICT,
            detail={"current_tier": current, "requested_tier": requested},
        )


class QuotaExceeded(QuotaEngineError):
    """Raised by enforcement helpers when a metered action is denied."""

    def __init__(self, action: str, *, limit: Optional[int] = None, used: Optional[int] = None) -> None:
        detail: Dict[str, Any] = {"action": action}
        if limit is not None:
            detail["limit"] = limit
        if used is not None:
            detail["used"] = used
        super().__init__(
            code=ErrorCode.QUOTA_EXCEEDED,
            message=f"Daily limit reached for '{action}'.",
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
        )


__all__ = [
    "ErrorCode",
    "InvalidTierTransition",
    "OperationError",
    "ProviderRejected",
    "ProviderUnreachable",
    "QuotaEngineError",
    "QuotaExceeded",
    "StorageCorrupt",
    "StorageReadFailed",
    "StorageWriteFailed",
    "TransactionTimeout",
]
