"""Time source used by the usage and entitlement components."""
from __future__ import annotations

from datetime import datetime, time, timedelta, timezone, tzinfo
from typing import Optional, Protocol


class Clock(Protocol):
    """Supplies wall-clock time and calendar-day keys."""

    def now(self) -> datetime:
        ...

    def day_key(self, moment: datetime) -> str:
        ...

    def next_day_start(self, moment: datetime) -> datetime:
        ...


class SystemClock:
    """Wall clock whose day boundaries follow the configured time zone.

    Without a zone, the host's local time rules are applied to each moment,
    so daylight-saving changes move the day boundary with them.
    """

    def __init__(self, tz: Optional[tzinfo] = None) -> None:
        self._tz = tz

    @property
    def tz(self) -> Optional[tzinfo]:
        return self._tz

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def day_key(self, moment: datetime) -> str:
        return self._localize(moment).date().isoformat()

    def next_day_start(self, moment: datetime) -> datetime:
        tomorrow = self._localize(moment).date() + timedelta(days=1)
        if self._tz is None:
            # A naive datetime is read as host local time for that date.
            start = datetime.combine(tomorrow, time.min).astimezone()
        else:
            start = datetime.combine(tomorrow, time.min, tzinfo=self._tz)
        return start.astimezone(timezone.utc)

    def _localize(self, moment: datetime) -> datetime:
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        if self._tz is None:
            return moment.astimezone()
        return moment.astimezone(self._tz)


__all__ = ["Clock", "SystemClock"]
