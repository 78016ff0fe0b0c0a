"""API routes exposing usage gating and subscription operations."""
from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, HTTPException, Response, status

from ..errors import ErrorCode, OperationError, StorageReadFailed
from ..purchases.models import PurchaseResult, PurchaseStatus
from ..schemas.gating import (
    EntitlementResponse,
    FeatureResponse,
    ManagementUrlResponse,
    PurchaseRequest,
    PurchaseResponse,
    UsageReceiptResponse,
    UsageSummaryResponse,
    VerdictResponse,
)
from ..services.gating import get_gate_service
from ..usage.models import UsageAction

router = APIRouter(prefix="/api/gating", tags=["gating"])

_STATUS_BY_CODE = {
    ErrorCode.STORAGE_READ_FAILED: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCode.STORAGE_WRITE_FAILED: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCode.PROVIDER_UNREACHABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCode.PROVIDER_REJECTED: status.HTTP_402_PAYMENT_REQUIRED,
    ErrorCode.TRANSACTION_TIMEOUT: status.HTTP_504_GATEWAY_TIMEOUT,
    ErrorCode.INVALID_TIER_TRANSITION: status.HTTP_409_CONFLICT,
}

# Outcomes the UI renders itself; everything else is an HTTP error.
_ANSWERED_STATUSES = {
    PurchaseStatus.SUCCEEDED,
    PurchaseStatus.NOTHING_TO_RESTORE,
    PurchaseStatus.CANCELLED,
}


def _http_error(error: OperationError) -> HTTPException:
    detail: Dict[str, Any] = {"error": error.code.value, "message": error.message, "retryable": error.retryable}
    detail.update(error.detail)
    return HTTPException(
        status_code=_STATUS_BY_CODE.get(error.code, status.HTTP_500_INTERNAL_SERVER_ERROR),
        detail=detail,
    )


def _purchase_response(result: PurchaseResult) -> PurchaseResponse:
    if result.status not in _ANSWERED_STATUSES and result.error is not None:
        raise _http_error(result.error)
    return PurchaseResponse.from_result(result)


@router.get("/verdict/{action}", response_model=VerdictResponse)
async def get_verdict(action: UsageAction) -> VerdictResponse:
    service = get_gate_service()
    verdict = await service.can_perform(action)
    return VerdictResponse.from_verdict(verdict)


@router.post("/usage/{action}", response_model=UsageReceiptResponse)
async def record_usage(action: UsageAction) -> UsageReceiptResponse:
    service = get_gate_service()
    receipt = await service.record_usage(action)
    if receipt.error is not None:
        raise _http_error(receipt.error)
    return UsageReceiptResponse.from_receipt(receipt)


@router.get("/usage", response_model=UsageSummaryResponse)
async def get_usage_summary() -> UsageSummaryResponse:
    service = get_gate_service()
    try:
        summary = await service.usage_summary()
    except StorageReadFailed as exc:
        raise exc.to_http_exception() from exc
    return UsageSummaryResponse.from_summary(summary)


@router.get("/entitlement", response_model=EntitlementResponse)
async def get_entitlement() -> EntitlementResponse:
    service = get_gate_service()
    snapshot = await service.current_entitlement()
    return EntitlementResponse.from_snapshot(snapshot)


@router.post("/purchase", response_model=PurchaseResponse)
async def purchase(payload: PurchaseRequest) -> PurchaseResponse:
    service = get_gate_service()
    result = await service.purchase(payload.product_id)
    return _purchase_response(result)


@router.post("/restore", response_model=PurchaseResponse)
async def restore() -> PurchaseResponse:
    service = get_gate_service()
    result = await service.restore()
    return _purchase_response(result)


@router.get("/features/{feature}", response_model=FeatureResponse)
async def get_feature(feature: str) -> FeatureResponse:
    service = get_gate_service()
    return FeatureResponse(feature=feature, enabled=await service.has_feature(feature))


@router.get("/management-url", response_model=ManagementUrlResponse)
def get_management_url() -> ManagementUrlResponse:
    service = get_gate_service()
    return ManagementUrlResponse(url=service.management_url())


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout() -> Response:
    service = get_gate_service()
    await service.logout()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/debug")
async def get_debug_info() -> Dict[str, Any]:
    service = get_gate_service()
    try:
        return await service.debug_info()
    except StorageReadFailed as exc:
        raise exc.to_http_exception() from exc
