"""Tests for monthly attendance aggregation."""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import update

from clockfix.core.exceptions import NotFoundError, ValidationError
from clockfix.models.employee import Employee
from clockfix.services.aggregator import (YearMonth, daily_metrics,
                                          monthly_summary, trailing_months)


@dataclass
class Day:
    work_date: date
    in_time: datetime | None
    out_time: datetime | None
    break_start_time: datetime | None = None
    break_end_time: datetime | None = None


def _at(day: date, hour: int, minute: int = 0) -> datetime:
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=timezone.utc)


def _workdays(year: int, month: int, count: int) -> list[date]:
    days, current = [], date(year, month, 1)
    while len(days) < count:
        if current.weekday() < 5:
            days.append(current)
        current += timedelta(days=1)
    return days


def _standard_month(out_hour: int) -> list[Day]:
    return [
        Day(d, _at(d, 9), _at(d, out_hour), _at(d, 12), _at(d, 13))
        for d in _workdays(2024, 5, 20)
    ]


MAY = YearMonth(2024, 5)


def test_regular_month_has_no_overtime():
    summary = monthly_summary(1, MAY, _standard_month(18), 60)
    assert summary.total_hours == Decimal(160)
    assert summary.overtime_hours == Decimal(0)
    assert summary.days_worked == 20
    assert summary.late_count == 0
    assert summary.year_month == "2024-05"
    assert summary.paid_leave_hours == Decimal(0)


def test_one_extra_hour_a_day_is_overtime():
    summary = monthly_summary(1, MAY, _standard_month(19), 60)
    assert summary.total_hours == Decimal(180)
    assert summary.overtime_hours == Decimal(20)


def test_missing_break_uses_schedule_break():
    d = date(2024, 5, 2)
    record = Day(d, _at(d, 9), _at(d, 18))
    assert daily_metrics(record, schedule_break_minutes=60).hours == 8
    assert daily_metrics(record, schedule_break_minutes=0).hours == 9


def test_missing_data_counts_nothing():
    d = date(2024, 5, 2)
    records = [
        Day(d, _at(d, 10), None),
        Day(d + timedelta(days=1), None, _at(d, 22)),
    ]
    summary = monthly_summary(1, MAY, records, 60)
    assert summary.total_hours == Decimal(0)
    assert summary.overtime_hours == Decimal(0)
    assert summary.late_count == 0
    assert summary.days_worked == 0


def test_late_is_strictly_after_schedule_start():
    d = date(2024, 5, 2)
    on_time = Day(d, _at(d, 9), _at(d, 18))
    late = Day(d, _at(d, 9, 1), _at(d, 18))
    assert daily_metrics(on_time).is_late is False
    assert daily_metrics(late).is_late is True
    assert daily_metrics(late, schedule_start=time(9, 30)).is_late is False


def test_late_uses_work_timezone():
    d = date(2024, 5, 2)
    # 00:30 UTC is 09:30 in UTC+9
    record = Day(d, _at(d, 0, 30), _at(d, 9, 30))
    tokyo = timezone(timedelta(hours=9))
    assert daily_metrics(record, tz=tokyo).is_late is True
    assert daily_metrics(record).is_late is False


def test_overnight_shift_in_summary():
    d = date(2024, 5, 3)
    record = Day(d, _at(d, 22), _at(d, 8))
    summary = monthly_summary(1, MAY, [record], 60)
    assert summary.total_hours == Decimal(9)
    assert summary.overtime_hours == Decimal(1)
    assert summary.late_count == 1


def test_records_outside_month_are_ignored():
    d = date(2024, 6, 3)
    summary = monthly_summary(1, MAY, [Day(d, _at(d, 9), _at(d, 18))], 60)
    assert summary.days_worked == 0


def test_trailing_months_oldest_first():
    months = trailing_months(date(2024, 3, 15), 6)
    assert [str(m) for m in months] == [
        "2023-10", "2023-11", "2023-12", "2024-01", "2024-02", "2024-03",
    ]


def test_year_month_parse():
    assert YearMonth.parse("2024-02") == YearMonth(2024, 2)
    assert YearMonth(2024, 2).last_day == date(2024, 2, 29)
    with pytest.raises(ValidationError):
        YearMonth.parse("2024-13")
    with pytest.raises(ValidationError):
        YearMonth.parse("May 2024")


# ── Service ─────────────────────────────────────────────────────────
async def test_statistics_service_monthly(statistics, staff, make_record):
    for d in _workdays(2024, 5, 3):
        await make_record(staff.alice.employee_id, d, _at(d, 9, 15), _at(d, 19), _at(d, 12), _at(d, 13))

    summary = await statistics.monthly(staff.alice.employee_id, MAY)
    assert summary.days_worked == 3
    assert summary.total_hours == Decimal(27)  # 8h45 rounds up to 9h
    assert summary.overtime_hours == Decimal(3)
    assert summary.late_count == 3


async def test_statistics_service_uses_employee_schedule(statistics, staff, make_record, session_factory):
    async with session_factory() as session, session.begin():
        await session.execute(
            update(Employee)
            .where(Employee.id == staff.alice.employee_id)
            .values(schedule_start="10:00", schedule_break_minutes=30)
        )
    d = date(2024, 5, 2)
    await make_record(staff.alice.employee_id, d, _at(d, 9, 45), _at(d, 18, 15))

    summary = await statistics.monthly(staff.alice.employee_id, MAY)
    assert summary.late_count == 0
    assert summary.total_hours == Decimal(8)


async def test_statistics_service_trailing(statistics, staff, make_record):
    d = date(2024, 1, 8)
    await make_record(staff.alice.employee_id, d, _at(d, 9), _at(d, 18), _at(d, 12), _at(d, 13))

    summaries = await statistics.trailing(staff.alice.employee_id, date(2024, 3, 1))
    assert [s.year_month for s in summaries][-1] == "2024-03"
    assert len(summaries) == 6
    january = next(s for s in summaries if s.year_month == "2024-01")
    assert january.total_hours == Decimal(8)
    assert sum(s.days_worked for s in summaries) == 1


async def test_statistics_service_unknown_employee(statistics, staff):
    with pytest.raises(NotFoundError):
        await statistics.monthly(9999, MAY)


async def test_statistics_service_invalid_month(statistics, staff):
    with pytest.raises(ValidationError):
        await statistics.monthly(staff.alice.employee_id, YearMonth(2024, 0))
