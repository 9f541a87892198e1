"""Pydantic schemas for the correction request workflow."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, field_validator

from clockfix.services.correction_query import CorrectionPage, CorrectionView
from clockfix.services.correction_workflow import (BulkOperationResult,
                                                   RequestedValues)


# ── Commands ────────────────────────────────────────────────────────
class CorrectionCreate(BaseModel):
    attendance_record_id: int | None = None
    work_date: date | None = None
    requested_in_time: datetime | None = None
    requested_out_time: datetime | None = None
    requested_break_start_time: datetime | None = None
    requested_break_end_time: datetime | None = None
    requested_is_night_shift: bool | None = None
    # Blank / missing reasons are reported by the workflow as a 400
    reason: str | None = None

    @field_validator("attendance_record_id")
    @classmethod
    def _positive_id(cls, v: int | None) -> int | None:
        if v is not None and v <= 0:
            raise ValueError("attendance_record_id must be positive")
        return v

    def requested_values(self) -> RequestedValues:
        return RequestedValues(
            in_time=self.requested_in_time,
            out_time=self.requested_out_time,
            break_start_time=self.requested_break_start_time,
            break_end_time=self.requested_break_end_time,
            is_night_shift=self.requested_is_night_shift,
        )


class ApprovalRequest(BaseModel):
    note: str | None = None


class RejectionRequest(BaseModel):
    reason: str | None = None


class CancellationRequest(BaseModel):
    reason: str | None = None


class BulkApprovalRequest(BaseModel):
    request_ids: list[int | None] = []
    note: str | None = None


class BulkRejectionRequest(BaseModel):
    request_ids: list[int | None] = []
    reason: str | None = None


# ── Responses ───────────────────────────────────────────────────────
class CorrectionRead(BaseModel):
    id: int
    employee_id: int
    employee_name: str | None
    attendance_record_id: int | None
    work_date: date
    status: str
    original_in_time: datetime | None
    original_out_time: datetime | None
    original_break_start_time: datetime | None
    original_break_end_time: datetime | None
    original_is_night_shift: bool | None
    requested_in_time: datetime | None
    requested_out_time: datetime | None
    requested_break_start_time: datetime | None
    requested_break_end_time: datetime | None
    requested_is_night_shift: bool | None
    reason: str
    approval_note: str | None
    rejection_reason: str | None
    cancellation_reason: str | None
    approval_employee_id: int | None
    approval_employee_name: str | None
    rejection_employee_id: int | None
    rejection_employee_name: str | None
    created_at: datetime
    updated_at: datetime
    approved_at: datetime | None
    rejected_at: datetime | None
    cancelled_at: datetime | None
    submitted_timestamp: int | None  # epoch milliseconds
    updated_timestamp: int | None


class CorrectionListResponse(BaseModel):
    items: list[CorrectionRead]
    total_count: int
    page: int
    size: int


class BulkFailureRead(BaseModel):
    request_id: int
    reason: str


class BulkOperationResponse(BaseModel):
    success_count: int
    failure_count: int
    failures: list[BulkFailureRead]
    failed_ids: list[int]


# ── Serialisation ───────────────────────────────────────────────────
def _epoch_millis(value: datetime | None) -> int | None:
    return int(value.timestamp() * 1000) if value is not None else None


def to_correction_read(view: CorrectionView) -> CorrectionRead:
    return CorrectionRead(
        id=view.id,
        employee_id=view.employee_id,
        employee_name=view.employee_name,
        attendance_record_id=view.attendance_record_id,
        work_date=view.work_date,
        status=view.status.value,
        original_in_time=view.original_in_time,
        original_out_time=view.original_out_time,
        original_break_start_time=view.original_break_start_time,
        original_break_end_time=view.original_break_end_time,
        original_is_night_shift=view.original_is_night_shift,
        requested_in_time=view.requested_in_time,
        requested_out_time=view.requested_out_time,
        requested_break_start_time=view.requested_break_start_time,
        requested_break_end_time=view.requested_break_end_time,
        requested_is_night_shift=view.requested_is_night_shift,
        reason=view.reason,
        approval_note=view.approval_note,
        rejection_reason=view.rejection_reason,
        cancellation_reason=view.cancellation_reason,
        approval_employee_id=view.approval_employee_id,
        approval_employee_name=view.approval_employee_name,
        rejection_employee_id=view.rejection_employee_id,
        rejection_employee_name=view.rejection_employee_name,
        created_at=view.created_at,
        updated_at=view.updated_at,
        approved_at=view.approved_at,
        rejected_at=view.rejected_at,
        cancelled_at=view.cancelled_at,
        submitted_timestamp=_epoch_millis(view.created_at),
        updated_timestamp=_epoch_millis(view.updated_at),
    )


def to_list_response(page: CorrectionPage) -> CorrectionListResponse:
    return CorrectionListResponse(
        items=[to_correction_read(v) for v in page.items],
        total_count=page.total,
        page=page.page,
        size=page.size,
    )


def to_bulk_response(result: BulkOperationResult) -> BulkOperationResponse:
    return BulkOperationResponse(
        success_count=result.success_count,
        failure_count=result.failure_count,
        failures=[BulkFailureRead(request_id=f.request_id, reason=f.reason) for f in result.failures],
        failed_ids=[f.request_id for f in result.failures],
    )
