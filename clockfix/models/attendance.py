"""
AttendanceRecord model — one clock-in/clock-out row per employee and date.

The overnight rule (clock-out not later than clock-in means the next day) is
applied when reading, see ``clockfix.services.time_adjustment``.
"""

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import (Boolean, Column, Date, ForeignKey, Index, Integer,
                        UniqueConstraint)

from clockfix.db.base import Base
from clockfix.db.types import UTCDateTime, utcnow


class AttendanceRecord(Base):
    __tablename__ = "attendance_records"
    __table_args__ = (
        UniqueConstraint("employee_id", "work_date", name="uq_attendance_emp_date"),
        Index("ix_attendance_employee_date", "employee_id", "work_date"),
    )

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    employee_id: int = Column(Integer, ForeignKey("employees.id"), nullable=False)  # type: ignore[assignment]
    work_date: date = Column(Date, nullable=False)  # type: ignore[assignment]
    in_time: datetime | None = Column(UTCDateTime, nullable=True)  # type: ignore[assignment]
    out_time: datetime | None = Column(UTCDateTime, nullable=True)  # type: ignore[assignment]
    break_start_time: datetime | None = Column(UTCDateTime, nullable=True)  # type: ignore[assignment]
    break_end_time: datetime | None = Column(UTCDateTime, nullable=True)  # type: ignore[assignment]
    # None = unknown
    is_night_shift: bool | None = Column(Boolean, nullable=True)  # type: ignore[assignment]
    updated_by: int | None = Column(Integer, ForeignKey("employees.id"), nullable=True)  # type: ignore[assignment]
    created_at: datetime = Column(UTCDateTime, default=utcnow)  # type: ignore[assignment]
    updated_at: datetime = Column(  # type: ignore[assignment]
        UTCDateTime,
        default=utcnow,
        onupdate=utcnow,
    )
