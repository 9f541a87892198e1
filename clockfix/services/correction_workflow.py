"""
Correction request state machine.

    PENDING ──approve──▶ APPROVED
       │ ├──reject───▶ REJECTED
       │ └──cancel───▶ CANCELLED

Every terminal state is final. Each single operation runs in its own
transaction; bulk operations run one transaction per id and report partial
success instead of raising.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from datetime import date, datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from clockfix.core.config import Settings
from clockfix.core.config import settings as default_settings
from clockfix.core.exceptions import (AuthorizationError, ConflictError,
                                      DuplicateRequestError, InvalidStateError,
                                      NotFoundError, ValidationError,
                                      WorkflowError)
from clockfix.db.types import ensure_utc, utcnow
from clockfix.models.attendance import AttendanceRecord
from clockfix.models.correction_request import (CorrectionRequest,
                                                CorrectionStatus)
from clockfix.services.attendance_records import AttendanceRecordRepository
from clockfix.services.correction_store import CorrectionRequestStore
from clockfix.services.identity import Actor, require_actor, require_admin
from clockfix.services.time_adjustment import adjust_out_time

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RequestedValues:
    in_time: datetime | None = None
    out_time: datetime | None = None
    break_start_time: datetime | None = None
    break_end_time: datetime | None = None
    is_night_shift: bool | None = None

    def normalised(self) -> "RequestedValues":
        return RequestedValues(
            in_time=ensure_utc(self.in_time),
            out_time=ensure_utc(self.out_time),
            break_start_time=ensure_utc(self.break_start_time),
            break_end_time=ensure_utc(self.break_end_time),
            is_night_shift=self.is_night_shift,
        )

    def is_empty(self) -> bool:
        return all(
            value is None
            for value in (
                self.in_time,
                self.out_time,
                self.break_start_time,
                self.break_end_time,
                self.is_night_shift,
            )
        )


@dataclass(frozen=True)
class BulkFailure:
    request_id: int
    reason: str


@dataclass(frozen=True)
class BulkOperationResult:
    success_count: int
    failure_count: int
    failures: list[BulkFailure] = field(default_factory=list)
    succeeded_ids: list[int] = field(default_factory=list)


def ensure_pending(request: CorrectionRequest) -> None:
    status = request.status
    if status is CorrectionStatus.PENDING:
        return
    if status in (CorrectionStatus.APPROVED, CorrectionStatus.REJECTED, CorrectionStatus.CANCELLED):
        raise InvalidStateError(
            f"Correction request {request.id} is already {status.value} and cannot be changed"
        )
    raise AssertionError(f"Unhandled status {status!r}")


class CorrectionWorkflow:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Callable[[], datetime] = utcnow,
        settings: Settings = default_settings,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock
        self._settings = settings

    # ── Submit ──────────────────────────────────────────────────────
    async def submit(
        self,
        actor: Actor | None,
        *,
        requested: RequestedValues,
        reason: str | None,
        attendance_record_id: int | None = None,
        work_date: date | None = None,
    ) -> CorrectionRequest:
        actor = require_actor(actor)
        reason = self._required_text(reason, "Reason")
        requested = requested.normalised()
        self._validate_requested(requested)

        async with self._session_factory() as session, session.begin():
            store = CorrectionRequestStore(session, self._clock)
            records = AttendanceRecordRepository(session)

            if attendance_record_id is not None:
                record = await records.get_by_id(attendance_record_id)
                if record is None:
                    raise NotFoundError(f"Attendance record {attendance_record_id} not found")
                if record.employee_id != actor.employee_id:
                    raise AuthorizationError("You can only request corrections to your own records")
                target_date = record.work_date
            else:
                target_date = work_date or self._date_of(requested.in_time)
                if target_date is None:
                    raise ValidationError("A target date or a requested clock-in time is required")
                record = await records.find_by_employee_date(actor.employee_id, target_date)

            record_id = record.id if record is not None else None
            existing = await store.find_pending_for(
                actor.employee_id, attendance_record_id=record_id, work_date=target_date
            )
            if existing is not None:
                raise DuplicateRequestError(
                    f"Correction request {existing.id} is already pending for this attendance target"
                )

            original_night_shift = record.is_night_shift if record is not None else None
            request = CorrectionRequest(
                employee_id=actor.employee_id,
                attendance_record_id=record_id,
                work_date=target_date,
                status=CorrectionStatus.PENDING,
                original_in_time=record.in_time if record is not None else None,
                original_out_time=record.out_time if record is not None else None,
                original_break_start_time=record.break_start_time if record is not None else None,
                original_break_end_time=record.break_end_time if record is not None else None,
                original_is_night_shift=original_night_shift,
                requested_in_time=requested.in_time,
                requested_out_time=requested.out_time,
                requested_break_start_time=requested.break_start_time,
                requested_break_end_time=requested.break_end_time,
                requested_is_night_shift=(
                    requested.is_night_shift
                    if requested.is_night_shift is not None
                    else original_night_shift
                ),
                reason=reason,
            )
            try:
                await store.insert(request)
            except ConflictError as exc:
                raise DuplicateRequestError(exc.message) from exc

        logger.info(
            "Correction request %s submitted by employee %s for %s",
            request.id,
            actor.employee_id,
            target_date,
        )
        return request

    # ── Decisions ───────────────────────────────────────────────────
    async def approve(
        self, request_id: int, actor: Actor | None, note: str | None = None
    ) -> CorrectionRequest:
        actor = require_admin(actor)
        note = self._optional_text(note, "Approval note")

        async with self._session_factory() as session, session.begin():
            store = CorrectionRequestStore(session, self._clock)
            records = AttendanceRecordRepository(session)
            request = await self._load_pending(store, request_id)

            record = await self._target_record(records, request)
            now = self._clock()
            self._apply_requested_values(record, request, actor.employee_id, now)
            await records.save(record)

            updated = await store.update_status(
                request_id,
                CorrectionStatus.APPROVED,
                {
                    "approval_note": note,
                    "approval_employee_id": actor.employee_id,
                    "approved_at": now,
                },
            )

        logger.info("Correction request %s approved by %s", request_id, actor.employee_id)
        return updated

    async def reject(
        self, request_id: int, actor: Actor | None, reason: str | None
    ) -> CorrectionRequest:
        actor = require_admin(actor)
        reason = self._rejection_reason(reason)

        async with self._session_factory() as session, session.begin():
            store = CorrectionRequestStore(session, self._clock)
            await self._load_pending(store, request_id)
            updated = await store.update_status(
                request_id,
                CorrectionStatus.REJECTED,
                {"rejection_reason": reason, "rejection_employee_id": actor.employee_id},
            )

        logger.info("Correction request %s rejected by %s", request_id, actor.employee_id)
        return updated

    async def cancel(
        self, request_id: int, actor: Actor | None, reason: str | None
    ) -> CorrectionRequest:
        actor = require_actor(actor)
        reason = self._required_text(reason, "Cancellation reason")

        async with self._session_factory() as session, session.begin():
            store = CorrectionRequestStore(session, self._clock)
            request = await store.find_by_id(request_id)
            if request is None:
                raise NotFoundError(f"Correction request {request_id} not found")
            if request.employee_id != actor.employee_id:
                raise AuthorizationError("Only the submitting employee can cancel this request")
            ensure_pending(request)
            updated = await store.update_status(
                request_id,
                CorrectionStatus.CANCELLED,
                {"cancellation_reason": reason},
            )

        logger.info("Correction request %s cancelled by %s", request_id, actor.employee_id)
        return updated

    # ── Bulk ────────────────────────────────────────────────────────
    async def bulk_approve(
        self,
        request_ids: Iterable[int | None] | None,
        actor: Actor | None,
        note: str | None = None,
    ) -> BulkOperationResult:
        actor = require_admin(actor)
        note = self._optional_text(note, "Approval note")
        ids = self._validate_batch(request_ids)
        return await self._run_bulk("approve", ids, lambda rid: self.approve(rid, actor, note))

    async def bulk_reject(
        self,
        request_ids: Iterable[int | None] | None,
        actor: Actor | None,
        reason: str | None,
    ) -> BulkOperationResult:
        actor = require_admin(actor)
        reason = self._rejection_reason(reason)
        ids = self._validate_batch(request_ids)
        return await self._run_bulk("reject", ids, lambda rid: self.reject(rid, actor, reason))

    async def _run_bulk(
        self,
        action: str,
        ids: list[int],
        operation: Callable[[int], Awaitable[CorrectionRequest]],
    ) -> BulkOperationResult:
        succeeded: list[int] = []
        failures: list[BulkFailure] = []
        timeout = self._settings.BULK_ITEM_TIMEOUT_SECONDS

        for request_id in ids:
            try:
                await asyncio.wait_for(operation(request_id), timeout=timeout)
            except WorkflowError as exc:
                logger.warning("Bulk %s: request %s failed: %s", action, request_id, exc.message)
                failures.append(BulkFailure(request_id, exc.message))
            except asyncio.TimeoutError:
                logger.warning("Bulk %s: request %s timed out after %ss", action, request_id, timeout)
                failures.append(BulkFailure(request_id, f"Timed out after {timeout} seconds"))
            except SQLAlchemyError:
                logger.exception("Bulk %s: storage failure on request %s", action, request_id)
                failures.append(BulkFailure(request_id, "Storage error while processing request"))
            else:
                succeeded.append(request_id)

        logger.info(
            "Bulk %s finished: %d succeeded, %d failed", action, len(succeeded), len(failures)
        )
        return BulkOperationResult(
            success_count=len(succeeded),
            failure_count=len(failures),
            failures=failures,
            succeeded_ids=succeeded,
        )

    # ── Helpers ─────────────────────────────────────────────────────
    async def _load_pending(self, store: CorrectionRequestStore, request_id: int) -> CorrectionRequest:
        request = await store.find_by_id(request_id)
        if request is None:
            raise NotFoundError(f"Correction request {request_id} not found")
        ensure_pending(request)
        return request

    async def _target_record(
        self, records: AttendanceRecordRepository, request: CorrectionRequest
    ) -> AttendanceRecord:
        if request.attendance_record_id is not None:
            record = await records.get_by_id(request.attendance_record_id)
            if record is None:
                raise NotFoundError(f"Attendance record {request.attendance_record_id} not found")
        else:
            record = await records.find_by_employee_date(request.employee_id, request.work_date)
            if record is None:
                return AttendanceRecord(employee_id=request.employee_id, work_date=request.work_date)

        snapshot = (
            request.original_in_time,
            request.original_out_time,
            request.original_break_start_time,
            request.original_break_end_time,
            request.original_is_night_shift,
        )
        current = (
            record.in_time,
            record.out_time,
            record.break_start_time,
            record.break_end_time,
            record.is_night_shift,
        )
        if snapshot != current:
            raise ConflictError(
                f"Attendance record for {request.work_date} changed after the request was submitted"
            )
        return record

    @staticmethod
    def _apply_requested_values(
        record: AttendanceRecord, request: CorrectionRequest, approver_id: int, now: datetime
    ) -> None:
        # Absent requested values keep what the record already has
        if request.requested_in_time is not None:
            record.in_time = request.requested_in_time
        if request.requested_out_time is not None:
            record.out_time = adjust_out_time(record.in_time, request.requested_out_time)
        if request.requested_break_start_time is not None:
            record.break_start_time = request.requested_break_start_time
        if request.requested_break_end_time is not None:
            record.break_end_time = request.requested_break_end_time
        if request.requested_is_night_shift is not None:
            record.is_night_shift = request.requested_is_night_shift
        record.updated_by = approver_id
        record.updated_at = now

    def _validate_requested(self, requested: RequestedValues) -> None:
        if requested.is_empty():
            raise ValidationError("At least one corrected value is required")

        in_time = requested.in_time
        if in_time is not None and in_time > self._clock():
            raise ValidationError("Clock-in time cannot be in the future")

        start, end = requested.break_start_time, requested.break_end_time
        if (start is None) != (end is None):
            raise ValidationError("Break start and break end must be given together")
        if start is None or end is None:
            return
        if end <= start:
            raise ValidationError("Break end must be after break start")
        if in_time is not None and start < in_time:
            raise ValidationError("Break must start after clock-in")
        out_time = adjust_out_time(in_time, requested.out_time)
        if out_time is not None and end > out_time:
            raise ValidationError("Break must end before clock-out")

    def _validate_batch(self, request_ids: Iterable[int | None] | None) -> list[int]:
        raw = list(request_ids or [])
        if not raw:
            raise ValidationError("No correction requests selected")
        if len(raw) > self._settings.BULK_MAX_SIZE:
            raise ValidationError(
                f"At most {self._settings.BULK_MAX_SIZE} requests can be processed at once"
            )
        return [rid for rid in raw if rid is not None]

    def _required_text(self, value: str | None, label: str) -> str:
        if value is None or not value.strip():
            raise ValidationError(f"{label} is required")
        return self._optional_text(value, label)  # type: ignore[return-value]

    def _rejection_reason(self, value: str | None) -> str:
        reason = self._required_text(value, "Rejection reason")
        minimum = self._settings.MIN_REJECTION_REASON_LENGTH
        if len(reason) < minimum:
            raise ValidationError(f"Rejection reason must be at least {minimum} characters")
        return reason

    def _optional_text(self, value: str | None, label: str) -> str | None:
        if value is None:
            return None
        value = value.strip()
        if len(value) > self._settings.MAX_TEXT_LENGTH:
            raise ValidationError(
                f"{label} must be at most {self._settings.MAX_TEXT_LENGTH} characters"
            )
        return value or None

    def _date_of(self, moment: datetime | None) -> date | None:
        if moment is None:
            return None
        return moment.astimezone(self._settings.work_timezone).date()
