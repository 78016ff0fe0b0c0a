"""Domain models for daily usage counters."""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..errors import OperationError


class UsageAction(str, Enum):
    """Metered actions tracked against the daily allowance."""

    RECIPE_VIEW = "recipe_view"
    SEARCH = "search"
    AI_GENERATION = "ai_generation"
    RECIPE_QA = "recipe_qa"


class UsageCounters(BaseModel):
    """Counts for a single calendar day; superseded when the day changes."""

    day_key: str
    counts: Dict[UsageAction, int] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)

    @field_validator("counts")
    @classmethod
    def _validate_counts(cls, value: Dict[UsageAction, int]) -> Dict[UsageAction, int]:
        for action, count in value.items():
            if count < 0:
                raise ValueError(f"count for {action.value} must be >= 0")
        return value

    @classmethod
    def fresh(cls, day_key: str) -> "UsageCounters":
        return cls(day_key=day_key, counts={})

    def get(self, action: UsageAction) -> int:
        return self.counts.get(action, 0)

    def incremented(self, action: UsageAction) -> "UsageCounters":
        counts = dict(self.counts)
        counts[action] = counts.get(action, 0) + 1
        return UsageCounters(day_key=self.day_key, counts=counts)


class UsageReceipt(BaseModel):
    """Result of ``record_usage``: the persisted count or the failure."""

    action: UsageAction
    count: Optional[int] = None
    remaining: Optional[Union[int, str]] = None
    day_key: Optional[str] = None
    error: Optional[OperationError] = None

    model_config = ConfigDict(frozen=True)

    @property
    def ok(self) -> bool:
        return self.error is None


class ActionUsage(BaseModel):
    used: int
    limit: Union[int, str]
    remaining: Union[int, str]

    model_config = ConfigDict(frozen=True)


class UsageSummary(BaseModel):
    """Per-action usage for the current day and when it resets."""

    day_key: str
    tier: str
    actions: Dict[UsageAction, ActionUsage]
    resets_at: datetime

    model_config = ConfigDict(frozen=True)


__all__ = ["ActionUsage", "UsageAction", "UsageCounters", "UsageReceipt", "UsageSummary"]
