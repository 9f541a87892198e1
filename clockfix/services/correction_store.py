"""
Persistence for correction requests.

The PENDING-uniqueness invariant lives in the database (partial unique
indexes on ``correction_requests``). This store turns a violation into
``ConflictError`` and never emulates the check with application locks.
Status changes are compare-and-set updates guarded by ``status = 'PENDING'``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from datetime import date, datetime
from typing import Any

from sqlalchemy import String, cast, delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Select

from clockfix.core.exceptions import (ConflictError, InvalidStateError,
                                      NotFoundError, ValidationError)
from clockfix.db.types import utcnow
from clockfix.models.correction_request import (CorrectionRequest,
                                                CorrectionStatus)
from clockfix.models.employee import Employee

logger = logging.getLogger(__name__)

SORT_RECENT = "recent"
SORT_OLDEST = "oldest"
SORT_STATUS = "status"
SORT_ORDERS = (SORT_RECENT, SORT_OLDEST, SORT_STATUS)


def decision_fields(status: CorrectionStatus) -> tuple[str, frozenset[str]]:
    """Timestamp column and writable decision columns for a target status."""
    if status is CorrectionStatus.APPROVED:
        return "approved_at", frozenset({"approval_note", "approval_employee_id", "approved_at"})
    if status is CorrectionStatus.REJECTED:
        return "rejected_at", frozenset({"rejection_reason", "rejection_employee_id", "rejected_at"})
    if status is CorrectionStatus.CANCELLED:
        return "cancelled_at", frozenset({"cancellation_reason", "cancelled_at"})
    if status is CorrectionStatus.PENDING:
        raise InvalidStateError("A request cannot be moved back to PENDING")
    raise AssertionError(f"Unhandled status {status!r}")


class CorrectionRequestStore:
    def __init__(self, session: AsyncSession, clock: Callable[[], datetime] = utcnow) -> None:
        self._session = session
        self._clock = clock

    # ── Writes ──────────────────────────────────────────────────────
    async def insert(self, request: CorrectionRequest) -> int:
        """Persist a new request; ``ConflictError`` if a PENDING one already holds the target."""
        now = self._clock()
        if request.created_at is None:
            request.created_at = now
        if request.updated_at is None:
            request.updated_at = request.created_at
        if request.status is None:
            request.status = CorrectionStatus.PENDING

        self._session.add(request)
        try:
            await self._session.flush()
        except IntegrityError as exc:
            logger.info(
                "Pending-uniqueness violation for employee %s (record=%s, date=%s)",
                request.employee_id,
                request.attendance_record_id,
                request.work_date,
            )
            raise ConflictError(
                "A pending correction request already exists for this attendance target"
            ) from exc
        return request.id

    async def update_status(
        self,
        request_id: int,
        new_status: CorrectionStatus,
        decision: Mapping[str, Any] | None = None,
    ) -> CorrectionRequest:
        timestamp_field, allowed = decision_fields(new_status)
        decision = dict(decision or {})
        rejected = set(decision) - allowed
        if rejected:
            raise ValidationError(
                f"Fields {sorted(rejected)} cannot be changed when moving to {new_status.value}"
            )

        now = self._clock()
        decision.setdefault(timestamp_field, now)
        result = await self._session.execute(
            update(CorrectionRequest)
            .where(
                CorrectionRequest.id == request_id,
                CorrectionRequest.status == CorrectionStatus.PENDING,
            )
            .values(status=new_status, updated_at=now, **decision)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            existing = await self.find_by_id(request_id)
            if existing is None:
                raise NotFoundError(f"Correction request {request_id} not found")
            raise InvalidStateError(
                f"Correction request {request_id} is already {existing.status.value}"
            )

        refreshed = await self._session.get(CorrectionRequest, request_id, populate_existing=True)
        if refreshed is None:
            raise NotFoundError(f"Correction request {request_id} not found")
        return refreshed

    async def delete(self, request_id: int) -> bool:
        result = await self._session.execute(
            delete(CorrectionRequest)
            .where(CorrectionRequest.id == request_id)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount > 0

    # ── Reads ───────────────────────────────────────────────────────
    async def find_by_id(self, request_id: int) -> CorrectionRequest | None:
        return await self._session.get(CorrectionRequest, request_id)

    async def find_pending_for(
        self,
        employee_id: int,
        *,
        attendance_record_id: int | None = None,
        work_date: date | None = None,
    ) -> CorrectionRequest | None:
        stmt = select(CorrectionRequest).where(
            CorrectionRequest.employee_id == employee_id,
            CorrectionRequest.status == CorrectionStatus.PENDING,
        )
        if attendance_record_id is not None:
            stmt = stmt.where(CorrectionRequest.attendance_record_id == attendance_record_id)
        elif work_date is not None:
            stmt = stmt.where(
                CorrectionRequest.attendance_record_id.is_(None),
                CorrectionRequest.work_date == work_date,
            )
        else:
            raise ValidationError("Either an attendance record or a date is required")
        result = await self._session.execute(stmt.limit(1))
        return result.scalar_one_or_none()

    async def list_by_employee(
        self,
        employee_id: int,
        status: CorrectionStatus | None = None,
        page: int = 0,
        size: int = 20,
    ) -> tuple[list[CorrectionRequest], int]:
        stmt = self._by_employee(employee_id, status)
        items = await self._page(_ordered(stmt, SORT_RECENT), page, size)
        return items, await self._count(stmt)

    async def count_by_employee(self, employee_id: int, status: CorrectionStatus | None = None) -> int:
        return await self._count(self._by_employee(employee_id, status))

    async def list_pending(
        self,
        page: int = 0,
        size: int = 20,
        status: CorrectionStatus | None = CorrectionStatus.PENDING,
        search: str | None = None,
        sort: str = SORT_RECENT,
    ) -> tuple[list[CorrectionRequest], int]:
        """Moderation queue. ``status=None`` lists every status."""
        stmt = self._queue(status, search)
        items = await self._page(_ordered(stmt, sort), page, size)
        return items, await self._count(stmt)

    async def count_pending(
        self,
        status: CorrectionStatus | None = CorrectionStatus.PENDING,
        search: str | None = None,
    ) -> int:
        return await self._count(self._queue(status, search))

    # ── Helpers ─────────────────────────────────────────────────────
    @staticmethod
    def _by_employee(employee_id: int, status: CorrectionStatus | None) -> Select:
        stmt = select(CorrectionRequest).where(CorrectionRequest.employee_id == employee_id)
        if status is not None:
            stmt = stmt.where(CorrectionRequest.status == status)
        return stmt

    @staticmethod
    def _queue(status: CorrectionStatus | None, search: str | None) -> Select:
        stmt = select(CorrectionRequest)
        if status is not None:
            stmt = stmt.where(CorrectionRequest.status == status)
        term = (search or "").strip().lower()
        if term:
            full_name = func.lower(Employee.first_name + " " + Employee.last_name)
            stmt = stmt.outerjoin(Employee, Employee.id == CorrectionRequest.employee_id).where(
                or_(
                    func.lower(CorrectionRequest.reason).contains(term, autoescape=True),
                    cast(CorrectionRequest.id, String).contains(term, autoescape=True),
                    full_name.contains(term, autoescape=True),
                )
            )
        return stmt

    async def _page(self, stmt: Select, page: int, size: int) -> list[CorrectionRequest]:
        size = max(size, 1)
        result = await self._session.execute(stmt.offset(max(page, 0) * size).limit(size))
        return list(result.scalars().all())

    async def _count(self, stmt: Select) -> int:
        result = await self._session.execute(
            select(func.count()).select_from(stmt.order_by(None).subquery())
        )
        return int(result.scalar_one())


def _ordered(stmt: Select, sort: str) -> Select:
    key = (sort or SORT_RECENT).strip().lower()
    if key == SORT_OLDEST:
        return stmt.order_by(CorrectionRequest.created_at.asc(), CorrectionRequest.id.asc())
    if key == SORT_STATUS:
        return stmt.order_by(
            CorrectionRequest.status.asc(),
            CorrectionRequest.created_at.desc(),
            CorrectionRequest.id.desc(),
        )
    return stmt.order_by(CorrectionRequest.created_at.desc(), CorrectionRequest.id.desc())
