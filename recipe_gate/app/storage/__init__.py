"""Durable key/value storage used by the gating engine."""

from .store import DurableStore, FileDurableStore, InMemoryDurableStore

USAGE_COUNTERS_KEY = "usage_counters"
ENTITLEMENT_SNAPSHOT_KEY = "entitlement_snapshot"
SANDBOX_ENTITLEMENT_KEY = "sandbox_entitlement"

__all__ = [
    "DurableStore",
    "FileDurableStore",
    "InMemoryDurableStore",
    "USAGE_COUNTERS_KEY",
    "ENTITLEMENT_SNAPSHOT_KEY",
    "SANDBOX_ENTITLEMENT_KEY",
]
