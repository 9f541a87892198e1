"""
CorrectionRequest model — an employee's proposal to change an attendance
record, plus the decision that closed it.

At most one PENDING request may exist per target. The two partial unique
indexes below are the only guard that holds across concurrent writers:

* ``(employee_id, attendance_record_id)`` while PENDING and the record exists
* ``(employee_id, work_date)`` while PENDING and there is no record yet
"""

from __future__ import annotations

import enum
from datetime import date, datetime

from sqlalchemy import Boolean, Column, Date
from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Index, Integer, String, inspect, text
from sqlalchemy.orm import validates

from clockfix.core.exceptions import ImmutableFieldError
from clockfix.db.base import Base
from clockfix.db.types import UTCDateTime, utcnow


class CorrectionStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


_PENDING_WITH_RECORD = "status = 'PENDING' AND attendance_record_id IS NOT NULL"
_PENDING_WITHOUT_RECORD = "status = 'PENDING' AND attendance_record_id IS NULL"

# Fixed at submission time
IMMUTABLE_FIELDS = (
    "employee_id",
    "attendance_record_id",
    "work_date",
    "original_in_time",
    "original_out_time",
    "original_break_start_time",
    "original_break_end_time",
    "original_is_night_shift",
    "requested_in_time",
    "requested_out_time",
    "requested_break_start_time",
    "requested_break_end_time",
    "requested_is_night_shift",
    "reason",
    "created_at",
)


class CorrectionRequest(Base):
    __tablename__ = "correction_requests"
    __table_args__ = (
        Index(
            "uq_correction_pending_record",
            "employee_id",
            "attendance_record_id",
            unique=True,
            postgresql_where=text(_PENDING_WITH_RECORD),
            sqlite_where=text(_PENDING_WITH_RECORD),
        ),
        Index(
            "uq_correction_pending_date",
            "employee_id",
            "work_date",
            unique=True,
            postgresql_where=text(_PENDING_WITHOUT_RECORD),
            sqlite_where=text(_PENDING_WITHOUT_RECORD),
        ),
        Index("ix_correction_status_created", "status", "created_at"),
        Index("ix_correction_employee_status", "employee_id", "status"),
    )

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    employee_id: int = Column(Integer, ForeignKey("employees.id"), nullable=False)  # type: ignore[assignment]
    attendance_record_id: int | None = Column(  # type: ignore[assignment]
        Integer, ForeignKey("attendance_records.id"), nullable=True
    )
    work_date: date = Column(Date, nullable=False)  # type: ignore[assignment]
    status: CorrectionStatus = Column(  # type: ignore[assignment]
        SAEnum(CorrectionStatus, native_enum=False, length=16, name="correction_status"),
        nullable=False,
        default=CorrectionStatus.PENDING,
    )

    # ── Snapshot of the record when the request was submitted ───────
    original_in_time: datetime | None = Column(UTCDateTime)  # type: ignore[assignment]
    original_out_time: datetime | None = Column(UTCDateTime)  # type: ignore[assignment]
    original_break_start_time: datetime | None = Column(UTCDateTime)  # type: ignore[assignment]
    original_break_end_time: datetime | None = Column(UTCDateTime)  # type: ignore[assignment]
    original_is_night_shift: bool | None = Column(Boolean)  # type: ignore[assignment]

    # ── Values the employee asked for ───────────────────────────────
    requested_in_time: datetime | None = Column(UTCDateTime)  # type: ignore[assignment]
    requested_out_time: datetime | None = Column(UTCDateTime)  # type: ignore[assignment]
    requested_break_start_time: datetime | None = Column(UTCDateTime)  # type: ignore[assignment]
    requested_break_end_time: datetime | None = Column(UTCDateTime)  # type: ignore[assignment]
    requested_is_night_shift: bool | None = Column(Boolean)  # type: ignore[assignment]

    reason: str = Column(String(500), nullable=False)  # type: ignore[assignment]

    # ── Decision ────────────────────────────────────────────────────
    approval_note: str | None = Column(String(500))  # type: ignore[assignment]
    rejection_reason: str | None = Column(String(500))  # type: ignore[assignment]
    cancellation_reason: str | None = Column(String(500))  # type: ignore[assignment]
    approval_employee_id: int | None = Column(Integer, ForeignKey("employees.id"))  # type: ignore[assignment]
    rejection_employee_id: int | None = Column(Integer, ForeignKey("employees.id"))  # type: ignore[assignment]

    created_at: datetime = Column(UTCDateTime, nullable=False, default=utcnow)  # type: ignore[assignment]
    updated_at: datetime = Column(  # type: ignore[assignment]
        UTCDateTime,
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )
    approved_at: datetime | None = Column(UTCDateTime)  # type: ignore[assignment]
    rejected_at: datetime | None = Column(UTCDateTime)  # type: ignore[assignment]
    cancelled_at: datetime | None = Column(UTCDateTime)  # type: ignore[assignment]

    @validates(*IMMUTABLE_FIELDS)
    def _guard_immutable(self, key: str, value):
        if not inspect(self).has_identity:
            return value
        if key in self.__dict__ and self.__dict__[key] == value:
            return value
        raise ImmutableFieldError(f"{key} cannot be changed after submission")

    def __repr__(self) -> str:
        return (
            f"<CorrectionRequest id={self.id} employee={self.employee_id} "
            f"date={self.work_date} status={self.status}>"
        )
