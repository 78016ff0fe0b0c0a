"""Interfaces for the remote entitlement provider and audit sink."""
from __future__ import annotations

from typing import Protocol

from ..entitlements.models import EntitlementSnapshot
from .models import ProviderOutcome, PurchaseAuditEvent


class EntitlementProvider(Protocol):
    """Remote subscription service (store SDK or its sandbox)."""

    async def fetch_status(self) -> EntitlementSnapshot:
        """Return the current entitlement; raise when the service is unreachable."""

    async def purchase(self, product_id: str) -> ProviderOutcome:
        """Charge for ``product_id``. Idempotent per the provider's own transaction id."""

    async def restore(self) -> ProviderOutcome:
        """Re-associate previous purchases with this device."""

    def management_url(self) -> str:
        """Opaque URL where the user manages the subscription."""

    async def log_out(self) -> None:
        """Detach the current user from the provider session."""


class PurchaseEventLogger(Protocol):
    """Captures structured purchase audit events."""

    def log(self, event: PurchaseAuditEvent) -> None:
        ...


class NullPurchaseEventLogger:
    def log(self, event: PurchaseAuditEvent) -> None:
        return None


__all__ = ["EntitlementProvider", "NullPurchaseEventLogger", "PurchaseEventLogger"]
