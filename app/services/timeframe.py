"""
Dashboard timeframes and their date windows.

Every timeframe covers N whole UTC days ending today, compared against the N
days immediately before it.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Optional, Union

from app.exceptions import UnsupportedTimeframeError

Clock = Callable[[], datetime]


class DashboardTimeframe(str, Enum):
    LAST_7_DAYS = "7d"
    LAST_14_DAYS = "14d"
    LAST_30_DAYS = "30d"


TIMEFRAME_DAYS = {
    DashboardTimeframe.LAST_7_DAYS: 7,
    DashboardTimeframe.LAST_14_DAYS: 14,
    DashboardTimeframe.LAST_30_DAYS: 30,
}

# Refresh order
TIMEFRAMES = tuple(DashboardTimeframe)


@dataclass(frozen=True)
class DateWindow:
    current_start: datetime
    current_end: datetime
    previous_start: datetime
    previous_end: datetime

    def as_dict(self) -> dict:
        return {
            "startDate": self.current_start.isoformat(),
            "endDate": self.current_end.isoformat(),
            "previousPeriodStartDate": self.previous_start.isoformat(),
            "previousPeriodEndDate": self.previous_end.isoformat(),
        }


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def start_of_day(dt: datetime) -> datetime:
    return dt.replace(hour=0, minute=0, second=0, microsecond=0)


def end_of_day(dt: datetime) -> datetime:
    return dt.replace(hour=23, minute=59, second=59, microsecond=999999)


def as_utc(dt: datetime) -> datetime:
    """Naive datetimes are taken to be UTC already."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_timeframe(timeframe: Union[DashboardTimeframe, str]) -> DashboardTimeframe:
    """Coerce an enum member or its string value; reject anything else."""
    if isinstance(timeframe, DashboardTimeframe):
        return timeframe
    try:
        return DashboardTimeframe(timeframe)
    except ValueError:
        raise UnsupportedTimeframeError(timeframe) from None


def compute_window(
    timeframe: Union[DashboardTimeframe, str],
    now: Optional[datetime] = None,
    clock: Clock = utc_now,
) -> DateWindow:
    """
    Build the current and previous period boundaries for a timeframe.

    Args:
        timeframe: One of ``DashboardTimeframe`` (or its value, e.g. ``"7d"``)
        now: Reference instant; read from ``clock`` when omitted

    Raises:
        UnsupportedTimeframeError: for anything outside the enumeration
    """
    days = TIMEFRAME_DAYS[parse_timeframe(timeframe)]

    now = as_utc(now if now is not None else clock())

    return DateWindow(
        current_start=start_of_day(now - timedelta(days=days - 1)),
        current_end=end_of_day(now),
        previous_start=start_of_day(now - timedelta(days=2 * days - 1)),
        previous_end=end_of_day(now - timedelta(days=days)),
    )
