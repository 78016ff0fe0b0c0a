"""Gating policy, enforcement helpers and the public facade."""
from .enforcement import perform_metered, require_allowed
from .policy import Verdict, apply_offline_grace, evaluate
from .service import DEFAULT_OFFLINE_GRACE, FeatureGateService

__all__ = [
    "DEFAULT_OFFLINE_GRACE",
    "FeatureGateService",
    "Verdict",
    "apply_offline_grace",
    "evaluate",
    "perform_metered",
    "require_allowed",
]
