"""Pydantic schemas for attendance records, monthly summaries and health."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel

from clockfix.models.attendance import AttendanceRecord
from clockfix.services.aggregator import MonthlyAttendanceSummary
from clockfix.services.time_adjustment import effective_out_time


# ── Records ─────────────────────────────────────────────────────────
class AttendanceRecordRead(BaseModel):
    id: int
    employee_id: int
    work_date: date
    in_time: datetime | None
    out_time: datetime | None
    break_start_time: datetime | None
    break_end_time: datetime | None
    is_night_shift: bool | None
    # Clock-out moved to the next day for overnight shifts
    effective_out_time: datetime | None = None
    updated_by: int | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}

    @classmethod
    def from_record(cls, record: AttendanceRecord) -> "AttendanceRecordRead":
        read = cls.model_validate(record)
        read.effective_out_time = effective_out_time(record)
        return read


class AttendanceRecordList(BaseModel):
    year_month: str
    records: list[AttendanceRecordRead]


# ── Summaries ───────────────────────────────────────────────────────
class MonthlySummaryRead(BaseModel):
    employee_id: int
    year_month: str
    total_hours: Decimal
    overtime_hours: Decimal
    late_count: int
    days_worked: int
    paid_leave_hours: Decimal

    @classmethod
    def from_summary(cls, summary: MonthlyAttendanceSummary) -> "MonthlySummaryRead":
        return cls(
            employee_id=summary.employee_id,
            year_month=summary.year_month,
            total_hours=summary.total_hours,
            overtime_hours=summary.overtime_hours,
            late_count=summary.late_count,
            days_worked=summary.days_worked,
            paid_leave_hours=summary.paid_leave_hours,
        )


class StatisticsResponse(BaseModel):
    employee_id: int
    months: list[MonthlySummaryRead]


# ── Health ─────────────────────────────────────────────────────────
class HealthResponse(BaseModel):
    status: str
    db: bool
