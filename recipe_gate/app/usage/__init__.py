"""Usage counter models and storage."""

from .models import ActionUsage, UsageAction, UsageCounters, UsageReceipt, UsageSummary
from .store import UsageCounterStore

__all__ = [
    "ActionUsage",
    "UsageAction",
    "UsageCounterStore",
    "UsageCounters",
    "UsageReceipt",
    "UsageSummary",
]
