# settlement/utils/time_windows.py
"""
Settlement day windows.

Mining accrual settles by UTC calendar day; team override payouts settle
by a regional business day at a fixed UTC offset. The two windows are
computed by separate functions and must not be mixed.

All datetimes handled here are naive UTC, which is what the database
columns store.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional


@dataclass(frozen=True)
class DayWindow:
    """Half-open window [start, end) plus the label used in unique keys."""
    start: datetime
    end: datetime
    dayKey: str

    @property
    def lastInstant(self) -> datetime:
        """Last representable instant inside the window (millisecond precision)."""
        return self.end - timedelta(milliseconds=1)

    def contains(self, moment: datetime) -> bool:
        return self.start <= to_naive_utc(moment) < self.end


def utc_now() -> datetime:
    """Current time as naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(moment: Optional[datetime]) -> datetime:
    """
    Convert an aware datetime to naive UTC.
    Naive input is assumed to already be UTC. None means now.
    """
    if moment is None:
        return utc_now()
    if moment.tzinfo is not None:
        return moment.astimezone(timezone.utc).replace(tzinfo=None)
    return moment


def previous_utc_day(reference: Optional[datetime] = None) -> DayWindow:
    """
    UTC calendar day immediately preceding the reference instant.

    Example:
        previous_utc_day(datetime(2025, 1, 3, 0, 10))
        -> DayWindow(2025-01-02 00:00, 2025-01-03 00:00, "2025-01-02")
    """
    ref = to_naive_utc(reference)
    end = datetime(ref.year, ref.month, ref.day)
    start = end - timedelta(days=1)
    return DayWindow(start=start, end=end, dayKey=start.strftime("%Y-%m-%d"))


def previous_business_day(reference: Optional[datetime] = None, utc_offset_hours: int = 5) -> DayWindow:
    """
    Business day (local time at a fixed UTC offset) preceding the reference.

    The dayKey is the local calendar date; start/end are naive UTC.

    Example (offset +5):
        previous_business_day(datetime(2025, 1, 3, 19, 10), 5)
        local now is 2025-01-04 00:10, so the window is local 2025-01-03,
        i.e. UTC [2025-01-02 19:00, 2025-01-03 19:00)
    """
    offset = timedelta(hours=utc_offset_hours)
    local_ref = to_naive_utc(reference) + offset
    local_end = datetime(local_ref.year, local_ref.month, local_ref.day)
    local_start = local_end - timedelta(days=1)
    return DayWindow(
        start=local_start - offset,
        end=local_end - offset,
        dayKey=local_start.strftime("%Y-%m-%d"),
    )
