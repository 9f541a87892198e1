"""
Pure time arithmetic for clock-in/clock-out pairs.

A clock-out that is not later than its clock-in belongs to the next calendar
day (overnight shift). Identical timestamps are a zero-length same-day event
and are left alone.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Protocol

DEFAULT_THRESHOLD_HOURS = 8


class _HasTimes(Protocol):
    in_time: datetime | None
    out_time: datetime | None


def adjust_out_time(in_time: datetime | None, out_time: datetime | None) -> datetime | None:
    """Return the clock-out moved to the next day when it precedes clock-in."""
    if in_time is None or out_time is None:
        return out_time
    if in_time > out_time:
        return out_time + timedelta(days=1)
    return out_time


def effective_out_time(record: _HasTimes) -> datetime | None:
    return adjust_out_time(record.in_time, record.out_time)


def worked_minutes(in_time: datetime | None, out_time: datetime | None) -> int:
    """Whole minutes between clock-in and the (adjusted) clock-out."""
    if in_time is None or out_time is None:
        return 0
    adjusted = adjust_out_time(in_time, out_time)
    # Out-times more than a day behind are malformed and count as nothing
    return max(0, int((adjusted - in_time).total_seconds() // 60))


def break_minutes(break_start: datetime | None, break_end: datetime | None) -> int | None:
    """Recorded break length, or ``None`` when it cannot be trusted."""
    if break_start is None or break_end is None or break_end < break_start:
        return None
    return int((break_end - break_start).total_seconds() // 60)


def actual_worked_hours(worked: int, break_length: int) -> int:
    """Net hours for one day, rounded up to the next whole hour."""
    if worked < 0:
        raise ValueError(f"worked minutes must not be negative, got {worked}")
    net = worked - max(break_length, 0)
    if net <= 0:
        return 0
    return -(-net // 60)


def daily_overtime_hours(
    worked: int,
    break_length: int,
    threshold_hours: int = DEFAULT_THRESHOLD_HOURS,
) -> Decimal:
    hours = actual_worked_hours(worked, break_length)
    return Decimal(max(0, hours - threshold_hours))
