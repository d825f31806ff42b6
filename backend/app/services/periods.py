"""Rolling reporting windows and chart bucketing for the dashboard."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, replace
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, Dict, List, Optional

LOGGER = logging.getLogger(__name__)


class Timeframe(str, enum.Enum):
    """Named rolling windows accepted by the dashboard endpoints."""

    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    QUARTER = "quarter"
    YEAR = "year"


class BucketGranularity(str, enum.Enum):
    HOUR = "hour"
    DAY = "day"
    MONTH = "month"


_WINDOW_DAYS: Dict[Timeframe, int] = {
    Timeframe.WEEK: 7,
    Timeframe.MONTH: 30,
    Timeframe.QUARTER: 90,
    Timeframe.YEAR: 365,
}

_GRANULARITY: Dict[Timeframe, BucketGranularity] = {
    Timeframe.DAY: BucketGranularity.HOUR,
    Timeframe.WEEK: BucketGranularity.DAY,
    Timeframe.MONTH: BucketGranularity.DAY,
    Timeframe.QUARTER: BucketGranularity.MONTH,
    Timeframe.YEAR: BucketGranularity.MONTH,
}

# Fixed English labels so chart output does not depend on the server locale.
_WEEKDAY_LABELS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")
_MONTH_LABELS = (
    "Jan",
    "Feb",
    "Mar",
    "Apr",
    "May",
    "Jun",
    "Jul",
    "Aug",
    "Sep",
    "Oct",
    "Nov",
    "Dec",
)


def _hour_label(value: datetime) -> str:
    hour = value.hour % 12 or 12
    suffix = "AM" if value.hour < 12 else "PM"
    return f"{hour} {suffix}"


def _weekday_label(value: datetime) -> str:
    return _WEEKDAY_LABELS[value.weekday()]


def _day_of_month_label(value: datetime) -> str:
    return str(value.day)


def _month_label(value: datetime) -> str:
    return _MONTH_LABELS[value.month - 1]


_LABEL_FORMATTERS: Dict[Timeframe, Callable[[datetime], str]] = {
    Timeframe.DAY: _hour_label,
    Timeframe.WEEK: _weekday_label,
    Timeframe.MONTH: _day_of_month_label,
    Timeframe.QUARTER: _month_label,
    Timeframe.YEAR: _month_label,
}


def ensure_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime, treating naive input as UTC."""

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def coerce_timestamp(value: object) -> Optional[datetime]:
    """Best-effort conversion of a stored sale date; ``None`` when unusable."""

    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    if isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
        return ensure_utc(parsed)
    return None


def _midnight(value: datetime) -> datetime:
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


def _next_month(value: datetime) -> datetime:
    if value.month == 12:
        return value.replace(year=value.year + 1, month=1)
    return value.replace(month=value.month + 1)


@dataclass(frozen=True)
class ResolvedPeriod:
    """A concrete reporting interval with its chart bucketing plan.

    The current period includes both ends. Periods produced by
    :meth:`previous` exclude their end, which is the current period's start,
    so no sale is counted twice.
    """

    timeframe: Timeframe
    start: datetime
    end: datetime
    granularity: BucketGranularity
    end_inclusive: bool = True

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def label(self, value: datetime) -> str:
        return _LABEL_FORMATTERS[self.timeframe](ensure_utc(value))

    def contains(self, value: datetime) -> bool:
        if value < self.start:
            return False
        if self.end_inclusive:
            return value <= self.end
        return value < self.end

    def truncate(self, value: datetime) -> datetime:
        """Normalise ``value`` to the start of the bucket holding it."""

        value = ensure_utc(value)
        if self.granularity is BucketGranularity.HOUR:
            return value.replace(minute=0, second=0, microsecond=0)
        if self.granularity is BucketGranularity.DAY:
            return _midnight(value)
        return _midnight(value).replace(day=1)

    def bucket_starts(self) -> List[datetime]:
        if self.granularity is BucketGranularity.HOUR:
            base = _midnight(self.start)
            return [base + timedelta(hours=hour) for hour in range(24)]

        cursor = self.truncate(self.start)
        last = self.truncate(self.end)
        starts: List[datetime] = []
        while cursor <= last:
            starts.append(cursor)
            if self.granularity is BucketGranularity.DAY:
                cursor = cursor + timedelta(days=1)
            else:
                cursor = _next_month(cursor)
        return starts

    def previous(self) -> "ResolvedPeriod":
        return replace(
            self,
            start=self.start - self.duration,
            end=self.start,
            end_inclusive=False,
        )


class PeriodResolver:
    """Maps timeframe keywords to rolling windows ending at ``now``."""

    DEFAULT_TIMEFRAME = Timeframe.MONTH

    @staticmethod
    def normalize_timeframe(raw: str | Timeframe | None) -> Timeframe:
        if isinstance(raw, Timeframe):
            return raw
        candidate = (raw or "").strip().lower()
        try:
            return Timeframe(candidate)
        except ValueError:
            if candidate:
                LOGGER.debug("Unknown timeframe %r; using %s", raw, PeriodResolver.DEFAULT_TIMEFRAME.value)
            return PeriodResolver.DEFAULT_TIMEFRAME

    @staticmethod
    def resolve(
        timeframe: str | Timeframe | None,
        now: Optional[datetime] = None,
    ) -> ResolvedPeriod:
        normalized = PeriodResolver.normalize_timeframe(timeframe)
        end = ensure_utc(now) if now is not None else datetime.now(timezone.utc)

        if normalized is Timeframe.DAY:
            start = _midnight(end)
        else:
            start = _midnight(end - timedelta(days=_WINDOW_DAYS[normalized]))

        return ResolvedPeriod(
            timeframe=normalized,
            start=start,
            end=end,
            granularity=_GRANULARITY[normalized],
        )
