"""
Read side of the correction workflow: own requests, the admin queue and
request details, with display names resolved for each id.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, fields
from datetime import date, datetime

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from clockfix.core.config import Settings
from clockfix.core.config import settings as default_settings
from clockfix.core.exceptions import (AuthorizationError, NotFoundError,
                                      ValidationError)
from clockfix.models.correction_request import (CorrectionRequest,
                                                CorrectionStatus)
from clockfix.services.correction_store import (SORT_ORDERS, SORT_RECENT,
                                                CorrectionRequestStore)
from clockfix.services.directory import EmployeeDirectory
from clockfix.services.identity import Actor, require_actor, require_admin

ALL_STATUSES = "ALL"


@dataclass(frozen=True)
class CorrectionView:
    """Immutable copy of a request plus resolved display names."""

    id: int
    employee_id: int
    attendance_record_id: int | None
    work_date: date
    status: CorrectionStatus
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
    rejection_employee_id: int | None
    created_at: datetime
    updated_at: datetime
    approved_at: datetime | None
    rejected_at: datetime | None
    cancelled_at: datetime | None
    employee_name: str | None = None
    approval_employee_name: str | None = None
    rejection_employee_name: str | None = None

    @classmethod
    def from_model(cls, request: CorrectionRequest, names: dict[int, str]) -> "CorrectionView":
        values = {
            f.name: getattr(request, f.name)
            for f in fields(cls)
            if not f.name.endswith("_name")
        }
        return cls(
            **values,
            employee_name=names.get(request.employee_id),
            approval_employee_name=names.get(request.approval_employee_id),
            rejection_employee_name=names.get(request.rejection_employee_id),
        )


@dataclass(frozen=True)
class CorrectionPage:
    items: list[CorrectionView]
    total: int
    page: int
    size: int


def parse_status_filter(
    value: str | CorrectionStatus | None,
    default: CorrectionStatus | None = None,
) -> CorrectionStatus | None:
    """Blank means ``default``; ``ALL`` means no filter."""
    if isinstance(value, CorrectionStatus):
        return value
    if value is None or not value.strip():
        return default
    normalised = value.strip().upper()
    if normalised == ALL_STATUSES:
        return None
    try:
        return CorrectionStatus(normalised)
    except ValueError as exc:
        raise ValidationError(f"Unknown status {value!r}") from exc


class WorkflowQueryService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings = default_settings,
    ) -> None:
        self._session_factory = session_factory
        self._settings = settings

    async def list_own(
        self,
        actor: Actor | None,
        status: str | CorrectionStatus | None = None,
        page: int | None = 0,
        size: int | None = None,
    ) -> CorrectionPage:
        actor = require_actor(actor)
        status_filter = parse_status_filter(status)
        page, size = self._paging(page, size)
        async with self._session_factory() as session:
            store = CorrectionRequestStore(session)
            items, total = await store.list_by_employee(actor.employee_id, status_filter, page, size)
            views = await self._views(session, items)
        return CorrectionPage(items=views, total=total, page=page, size=size)

    async def list_queue(
        self,
        actor: Actor | None,
        status: str | CorrectionStatus | None = None,
        search: str | None = None,
        sort: str | None = SORT_RECENT,
        page: int | None = 0,
        size: int | None = None,
    ) -> CorrectionPage:
        require_admin(actor)
        status_filter = parse_status_filter(status, default=CorrectionStatus.PENDING)
        sort_key = (sort or SORT_RECENT).strip().lower()
        if sort_key not in SORT_ORDERS:
            sort_key = SORT_RECENT
        page, size = self._paging(page, size)
        async with self._session_factory() as session:
            store = CorrectionRequestStore(session)
            items, total = await store.list_pending(page, size, status_filter, search, sort_key)
            views = await self._views(session, items)
        return CorrectionPage(items=views, total=total, page=page, size=size)

    async def get_detail(self, actor: Actor | None, request_id: int) -> CorrectionView:
        actor = require_actor(actor)
        async with self._session_factory() as session:
            request = await CorrectionRequestStore(session).find_by_id(request_id)
            if request is None:
                raise NotFoundError(f"Correction request {request_id} not found")
            if not actor.is_admin and request.employee_id != actor.employee_id:
                raise AuthorizationError("You are not allowed to view this request")
            return (await self._views(session, [request]))[0]

    async def describe(self, request: CorrectionRequest) -> CorrectionView:
        """View of a request returned by a workflow command."""
        async with self._session_factory() as session:
            return (await self._views(session, [request]))[0]

    async def _views(
        self, session: AsyncSession, requests: Sequence[CorrectionRequest]
    ) -> list[CorrectionView]:
        directory = EmployeeDirectory(session)
        names = await directory.display_names(
            eid
            for r in requests
            for eid in (r.employee_id, r.approval_employee_id, r.rejection_employee_id)
        )
        return [CorrectionView.from_model(r, names) for r in requests]

    def _paging(self, page: int | None, size: int | None) -> tuple[int, int]:
        page = max(page or 0, 0)
        if not size or size <= 0:
            size = self._settings.DEFAULT_PAGE_SIZE
        return page, min(size, self._settings.MAX_PAGE_SIZE)
