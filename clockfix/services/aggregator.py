"""
Monthly attendance aggregation.

Each day is evaluated on its own (worked hours rounded up, overtime against
the daily threshold) and the per-day values are summed without re-rounding.
Missing data never produces hours, overtime or lateness.
"""

from __future__ import annotations

import calendar
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date, datetime, time, timezone, tzinfo
from decimal import Decimal
from typing import NamedTuple, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from clockfix.core.config import Settings, parse_hhmm
from clockfix.core.config import settings as default_settings
from clockfix.core.exceptions import NotFoundError, ValidationError
from clockfix.models.attendance import AttendanceRecord
from clockfix.models.employee import Employee
from clockfix.services.time_adjustment import (DEFAULT_THRESHOLD_HOURS,
                                               actual_worked_hours,
                                               break_minutes,
                                               daily_overtime_hours,
                                               worked_minutes)

logger = logging.getLogger(__name__)

DEFAULT_BREAK_MINUTES = 60
DEFAULT_WORK_START = time(9, 0)


class DailyRecord(Protocol):
    work_date: date
    in_time: datetime | None
    out_time: datetime | None
    break_start_time: datetime | None
    break_end_time: datetime | None


class YearMonth(NamedTuple):
    year: int
    month: int

    @classmethod
    def of(cls, day: date) -> "YearMonth":
        return cls(day.year, day.month)

    @classmethod
    def parse(cls, value: str) -> "YearMonth":
        try:
            year_str, month_str = value.split("-")
            ym = cls(int(year_str), int(month_str))
        except ValueError as exc:
            raise ValidationError(f"Invalid month {value!r}, expected YYYY-MM") from exc
        ym.validate()
        return ym

    def validate(self) -> None:
        if not 1 <= self.month <= 12 or not 1 <= self.year <= 9999:
            raise ValidationError(f"Invalid month {self.year}-{self.month}")

    @property
    def first_day(self) -> date:
        return date(self.year, self.month, 1)

    @property
    def last_day(self) -> date:
        return date(self.year, self.month, calendar.monthrange(self.year, self.month)[1])

    def shift(self, months: int) -> "YearMonth":
        index = self.year * 12 + (self.month - 1) + months
        return YearMonth(index // 12, index % 12 + 1)

    def __contains__(self, day: object) -> bool:  # type: ignore[override]
        return isinstance(day, date) and (day.year, day.month) == (self.year, self.month)

    def __str__(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"


@dataclass(frozen=True)
class DailyMetrics:
    work_date: date
    worked_minutes: int
    break_minutes: int
    hours: int
    overtime_hours: Decimal
    is_late: bool


@dataclass(frozen=True)
class MonthlyAttendanceSummary:
    employee_id: int
    year_month: str
    total_hours: Decimal
    overtime_hours: Decimal
    late_count: int
    days_worked: int
    # Leave accounting is not implemented; always zero
    paid_leave_hours: Decimal = Decimal(0)


def daily_metrics(
    record: DailyRecord,
    *,
    schedule_break_minutes: int = DEFAULT_BREAK_MINUTES,
    schedule_start: time = DEFAULT_WORK_START,
    threshold_hours: int = DEFAULT_THRESHOLD_HOURS,
    tz: tzinfo = timezone.utc,
) -> DailyMetrics | None:
    """Evaluate one day, or ``None`` when clock-in or clock-out is missing."""
    if record.in_time is None or record.out_time is None:
        return None

    worked = worked_minutes(record.in_time, record.out_time)
    recorded_break = break_minutes(record.break_start_time, record.break_end_time)
    brk = recorded_break if recorded_break is not None else schedule_break_minutes

    local_in = record.in_time.astimezone(tz) if record.in_time.tzinfo else record.in_time
    return DailyMetrics(
        work_date=record.work_date,
        worked_minutes=worked,
        break_minutes=brk,
        hours=actual_worked_hours(worked, brk),
        overtime_hours=daily_overtime_hours(worked, brk, threshold_hours),
        is_late=local_in.time() > schedule_start,
    )


def monthly_summary(
    employee_id: int,
    year_month: YearMonth,
    records: Iterable[DailyRecord],
    schedule_break_minutes: int = DEFAULT_BREAK_MINUTES,
    *,
    schedule_start: time = DEFAULT_WORK_START,
    threshold_hours: int = DEFAULT_THRESHOLD_HOURS,
    tz: tzinfo = timezone.utc,
) -> MonthlyAttendanceSummary:
    total = Decimal(0)
    overtime = Decimal(0)
    late = 0
    days = 0

    for record in records:
        if record.work_date not in year_month:
            continue
        metrics = daily_metrics(
            record,
            schedule_break_minutes=schedule_break_minutes,
            schedule_start=schedule_start,
            threshold_hours=threshold_hours,
            tz=tz,
        )
        if metrics is None:
            continue
        days += 1
        total += metrics.hours
        overtime += metrics.overtime_hours
        if metrics.is_late:
            late += 1

    return MonthlyAttendanceSummary(
        employee_id=employee_id,
        year_month=str(year_month),
        total_hours=total,
        overtime_hours=overtime,
        late_count=late,
        days_worked=days,
    )


def trailing_months(today: date, count: int = 6) -> list[YearMonth]:
    """The current month and the ``count - 1`` before it, oldest first."""
    current = YearMonth.of(today)
    return [current.shift(-offset) for offset in range(count - 1, -1, -1)]


def trailing_summaries(
    employee_id: int,
    today: date,
    records: Sequence[DailyRecord],
    schedule_break_minutes: int = DEFAULT_BREAK_MINUTES,
    *,
    count: int = 6,
    schedule_start: time = DEFAULT_WORK_START,
    threshold_hours: int = DEFAULT_THRESHOLD_HOURS,
    tz: tzinfo = timezone.utc,
) -> list[MonthlyAttendanceSummary]:
    return [
        monthly_summary(
            employee_id,
            ym,
            records,
            schedule_break_minutes,
            schedule_start=schedule_start,
            threshold_hours=threshold_hours,
            tz=tz,
        )
        for ym in trailing_months(today, count)
    ]


class AttendanceStatisticsService:
    """Loads an employee's schedule and records, then aggregates them."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings = default_settings,
    ) -> None:
        self._session_factory = session_factory
        self._settings = settings

    async def monthly(self, employee_id: int, year_month: YearMonth) -> MonthlyAttendanceSummary:
        year_month.validate()
        employee, records = await self._load(employee_id, year_month.first_day, year_month.last_day)
        return monthly_summary(
            employee_id,
            year_month,
            records,
            self._break_minutes(employee),
            **self._schedule_kwargs(employee),
        )

    async def trailing(self, employee_id: int, today: date) -> list[MonthlyAttendanceSummary]:
        months = trailing_months(today, self._settings.TRAILING_MONTHS)
        employee, records = await self._load(employee_id, months[0].first_day, months[-1].last_day)
        return trailing_summaries(
            employee_id,
            today,
            records,
            self._break_minutes(employee),
            count=self._settings.TRAILING_MONTHS,
            **self._schedule_kwargs(employee),
        )

    def _break_minutes(self, employee: Employee) -> int:
        if employee.schedule_break_minutes is None:
            return self._settings.DEFAULT_BREAK_MINUTES
        return employee.schedule_break_minutes

    def _schedule_kwargs(self, employee: Employee) -> dict:
        try:
            start = parse_hhmm(employee.schedule_start)
        except (ValueError, AttributeError):
            logger.warning(
                "Employee %s has malformed schedule_start %r, using default",
                employee.id,
                employee.schedule_start,
            )
            start = self._settings.work_start
        return {
            "schedule_start": start,
            "threshold_hours": self._settings.DAILY_OVERTIME_THRESHOLD_HOURS,
            "tz": self._settings.work_timezone,
        }

    async def _load(
        self, employee_id: int, start: date, end: date
    ) -> tuple[Employee, list[AttendanceRecord]]:
        async with self._session_factory() as session:
            employee = await session.get(Employee, employee_id)
            if employee is None:
                raise NotFoundError(f"Employee {employee_id} not found")
            result = await session.execute(
                select(AttendanceRecord)
                .where(
                    AttendanceRecord.employee_id == employee_id,
                    AttendanceRecord.work_date >= start,
                    AttendanceRecord.work_date <= end,
                )
                .order_by(AttendanceRecord.work_date.asc())
            )
            return employee, list(result.scalars().all())
