"""Purchase and restore transactions against the entitlement provider."""

from .coordinator import DEFAULT_TIMEOUT_SECONDS, PurchaseCoordinator
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
from .sandbox import DEFAULT_MANAGEMENT_URL, SandboxEntitlementProvider

__all__ = [
    "DEFAULT_MANAGEMENT_URL",
    "DEFAULT_TIMEOUT_SECONDS",
    "EntitlementProvider",
    "NullPurchaseEventLogger",
    "ProviderErrorCode",
    "ProviderOutcome",
    "PurchaseAuditEvent",
    "PurchaseAuditEventType",
    "PurchaseCoordinator",
    "PurchaseEventLogger",
    "PurchaseResult",
    "PurchaseStatus",
    "SandboxEntitlementProvider",
    "Transaction",
    "TransactionKind",
]
