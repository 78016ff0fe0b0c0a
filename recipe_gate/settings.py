"""Gating engine configuration helpers."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta, tzinfo
from typing import Dict, Mapping, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
import os

from dotenv import load_dotenv

from .app.purchases.sandbox import DEFAULT_MANAGEMENT_URL
from .app.usage.models import UsageAction

SUPPORTED_PROVIDERS = frozenset({"sandbox"})


@dataclass(frozen=True)
class GateSettings:
    """Configuration for the quota and entitlement engine."""

    provider_name: str
    storage_dir: Optional[str]
    timezone_name: Optional[str]
    entitlement_max_age_seconds: int
    entitlement_fetch_timeout_seconds: float
    offline_grace_seconds: Optional[int]
    purchase_timeout_seconds: float
    free_daily_limits: Mapping[UsageAction, int]
    management_url: str

    @property
    def entitlement_max_age(self) -> timedelta:
        return timedelta(seconds=self.entitlement_max_age_seconds)

    @property
    def offline_grace(self) -> Optional[timedelta]:
        if self.offline_grace_seconds is None:
            return None
        return timedelta(seconds=self.offline_grace_seconds)

    @property
    def timezone(self) -> Optional[tzinfo]:
        if not self.timezone_name:
            return None
        return ZoneInfo(self.timezone_name)


def _to_int(value: Optional[str], *, default: int) -> int:
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Expected integer value, got {value!r}") from exc


def _to_float(value: Optional[str], *, default: float) -> float:
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Expected float value, got {value!r}") from exc


def _to_optional_int(value: Optional[str], *, default: int) -> Optional[int]:
    if value is not None and value.strip().lower() in {"none", "never", "off"}:
        return None
    return _to_int(value, default=default)


def load_settings(env: Optional[Mapping[str, str]] = None) -> GateSettings:
    """Load :class:`GateSettings` from environment variables.

    ``.env`` files are honoured only when reading the process environment.
    """

    if env is None:
        load_dotenv()
        env_mapping: Mapping[str, str] = os.environ
    else:
        env_mapping = env

    provider_name = (env_mapping.get("ENTITLEMENT_PROVIDER") or "sandbox").strip().lower() or "sandbox"
    if provider_name not in SUPPORTED_PROVIDERS:
        raise ValueError(f"Unsupported entitlement provider: {provider_name!r}")

    storage_dir = (env_mapping.get("GATE_STORAGE_DIR") or "").strip() or None
    timezone_name = (env_mapping.get("GATE_TIMEZONE") or "").strip() or None
    if timezone_name is not None:
        try:
            ZoneInfo(timezone_name)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown time zone: {timezone_name!r}") from exc

    max_age = _to_int(env_mapping.get("ENTITLEMENT_MAX_AGE_SECONDS"), default=900)
    if max_age < 0:
        raise ValueError("ENTITLEMENT_MAX_AGE_SECONDS must be >= 0")

    fetch_timeout = _to_float(env_mapping.get("ENTITLEMENT_FETCH_TIMEOUT_SECONDS"), default=10.0)
    if fetch_timeout <= 0:
        raise ValueError("ENTITLEMENT_FETCH_TIMEOUT_SECONDS must be > 0")

    offline_grace = _to_optional_int(env_mapping.get("ENTITLEMENT_OFFLINE_GRACE_SECONDS"), default=259200)
    if offline_grace is not None and offline_grace < 0:
        raise ValueError("ENTITLEMENT_OFFLINE_GRACE_SECONDS must be >= 0")

    purchase_timeout = _to_float(env_mapping.get("PURCHASE_TIMEOUT_SECONDS"), default=30.0)
    if purchase_timeout <= 0:
        raise ValueError("PURCHASE_TIMEOUT_SECONDS must be > 0")

    free_daily_limits: Dict[UsageAction, int] = {
        UsageAction.RECIPE_VIEW: _to_int(env_mapping.get("FREE_DAILY_RECIPE_VIEWS"), default=5),
        UsageAction.SEARCH: _to_int(env_mapping.get("FREE_DAILY_SEARCHES"), default=5),
        UsageAction.AI_GENERATION: _to_int(env_mapping.get("FREE_DAILY_AI_GENERATIONS"), default=1),
        UsageAction.RECIPE_QA: _to_int(env_mapping.get("FREE_DAILY_RECIPE_QA"), default=1),
    }

    management_url = env_mapping.get("SUBSCRIPTION_MANAGEMENT_URL") or DEFAULT_MANAGEMENT_URL

    return GateSettings(
        provider_name=provider_name,
        storage_dir=storage_dir,
        timezone_name=timezone_name,
        entitlement_max_age_seconds=max_age,
        entitlement_fetch_timeout_seconds=fetch_timeout,
        offline_grace_seconds=offline_grace,
        purchase_timeout_seconds=purchase_timeout,
        free_daily_limits=free_daily_limits,
        management_url=management_url,
    )


__all__ = ["GateSettings", "load_settings"]
