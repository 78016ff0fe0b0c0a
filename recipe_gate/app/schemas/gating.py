"""API schemas for gating endpoints."""
from __future__ import annotations

from datetime import datetime
from typing import Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from ..entitlements.models import EntitlementSnapshot, Tier
from ..errors import OperationError
from ..feature_gates.policy import Verdict
from ..purchases.models import PurchaseResult, PurchaseStatus, TransactionKind
from ..usage.models import ActionUsage, UsageAction, UsageReceipt, UsageSummary


class VerdictResponse(BaseModel):
    action: UsageAction
    tier: Tier
    allowed: bool
    remaining: Union[int, str]
    limit: Union[int, str]
    used: int
    warning: Optional[OperationError] = None

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_verdict(cls, verdict: Verdict) -> "VerdictResponse":
        return cls(**verdict.model_dump())


class UsageReceiptResponse(BaseModel):
    action: UsageAction
    count: int
    remaining: Optional[Union[int, str]] = None
    day_key: str = Field(alias="dayKey")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_receipt(cls, receipt: UsageReceipt) -> "UsageReceiptResponse":
        return cls(
            action=receipt.action,
            count=receipt.count or 0,
            remaining=receipt.remaining,
            day_key=receipt.day_key or "",
        )


class EntitlementResponse(BaseModel):
    tier: Tier
    expires_at: Optional[datetime] = Field(alias="expiresAt", default=None)
    will_renew: bool = Field(alias="willRenew")
    fetched_at: datetime = Field(alias="fetchedAt")
    is_sandbox_or_mock: bool = Field(alias="isSandboxOrMock")
    product_id: Optional[str] = Field(alias="productId", default=None)

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_snapshot(cls, snapshot: EntitlementSnapshot) -> "EntitlementResponse":
        return cls(
            tier=snapshot.tier,
            expires_at=snapshot.expires_at,
            will_renew=snapshot.will_renew,
            fetched_at=snapshot.fetched_at,
            is_sandbox_or_mock=snapshot.is_sandbox_or_mock,
            product_id=snapshot.product_id,
        )


class PurchaseRequest(BaseModel):
    product_id: str = Field(alias="productId", min_length=1)

    model_config = ConfigDict(populate_by_name=True)


class PurchaseResponse(BaseModel):
    status: PurchaseStatus
    kind: TransactionKind
    transaction_id: str = Field(alias="transactionId")
    product_id: Optional[str] = Field(alias="productId", default=None)
    entitlement: Optional[EntitlementResponse] = None
    warning: Optional[OperationError] = None

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_result(cls, result: PurchaseResult) -> "PurchaseResponse":
        return cls(
            status=result.status,
            kind=result.transaction.kind,
            transaction_id=result.transaction.idempotency_key,
            product_id=result.transaction.product_id,
            entitlement=EntitlementResponse.from_snapshot(result.snapshot) if result.snapshot else None,
            warning=result.error,
        )


class UsageSummaryResponse(BaseModel):
    day_key: str = Field(alias="dayKey")
    tier: str
    actions: Dict[UsageAction, ActionUsage]
    resets_at: datetime = Field(alias="resetsAt")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_summary(cls, summary: UsageSummary) -> "UsageSummaryResponse":
        return cls(
            day_key=summary.day_key,
            tier=summary.tier,
            actions=dict(summary.actions),
            resets_at=summary.resets_at,
        )


class FeatureResponse(BaseModel):
    feature: str
    enabled: bool


class ManagementUrlResponse(BaseModel):
    url: str
