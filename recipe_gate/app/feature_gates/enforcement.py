"""Helpers for enforcing usage gates around metered operations."""
from __future__ import annotations

from typing import TYPE_CHECKING, Awaitable, Callable, Tuple, TypeVar

from ..errors import QuotaExceeded
from ..usage.models import UsageAction, UsageReceipt
from .policy import Verdict

if TYPE_CHECKING:
    from .service import FeatureGateService

T = TypeVar("T")


def require_allowed(verdict: Verdict) -> Verdict:
    """Raise :class:`QuotaExceeded` unless the verdict allows the action.

    Parameters
    ----------
    verdict:
        The result of :meth:`FeatureGateService.can_perform`.
    """

    if not verdict.allowed:
        limit = verdict.limit if isinstance(verdict.limit, int) else None
        raise QuotaExceeded(verdict.action.value, limit=limit, used=verdict.used)
    return verdict


async def perform_metered(
    gate: "FeatureGateService",
    action: UsageAction,
    operation: Callable[[], Awaitable[T]],
) -> Tuple[T, UsageReceipt]:
    """Check the gate, run ``operation`` and record one unit of usage.

    Usage is recorded only when ``operation`` completes; a failing operation
    does not consume allowance. A failed usage write does not undo the
    operation's result and is reported on the returned receipt.
    """

    require_allowed(await gate.can_perform(action))
    result = await operation()
    receipt = await gate.record_usage(action)
    return result, receipt


__all__ = ["perform_metered", "require_allowed"]
