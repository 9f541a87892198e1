"""
Attendance endpoints — own records, monthly summaries, trailing statistics
and the public health check.
"""

from __future__ import annotations

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from clockfix.api.v1.deps import (get_current_actor, get_db,
                                  get_statistics_service)
from clockfix.core.config import settings
from clockfix.core.exceptions import AuthorizationError
from clockfix.schemas.attendance import (AttendanceRecordList,
                                         AttendanceRecordRead, HealthResponse,
                                         MonthlySummaryRead,
                                         StatisticsResponse)
from clockfix.services.aggregator import (AttendanceStatisticsService,
                                          YearMonth)
from clockfix.services.attendance_records import AttendanceRecordRepository
from clockfix.services.identity import Actor

logger = logging.getLogger(__name__)

router = APIRouter(tags=["attendance"])


def _target_employee(actor: Actor, employee_id: int | None) -> int:
    """Employees see their own figures; admins may ask for anyone's."""
    if employee_id is None or employee_id == actor.employee_id:
        return actor.employee_id
    if not actor.is_admin:
        raise AuthorizationError("You can only view your own attendance")
    return employee_id


def _today():
    return datetime.now(settings.work_timezone).date()


# ── Records ─────────────────────────────────────────────────────────
@router.get("/attendance/records", response_model=AttendanceRecordList)
async def list_my_records(
    year: int | None = Query(None),
    month: int | None = Query(None),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> AttendanceRecordList:
    """Own attendance records for one month (current month by default)."""
    current = YearMonth.of(_today())
    ym = YearMonth(year or current.year, month or current.month)
    ym.validate()

    records = await AttendanceRecordRepository(db).list_for_month(
        actor.employee_id, ym.first_day, ym.last_day
    )
    return AttendanceRecordList(
        year_month=str(ym),
        records=[AttendanceRecordRead.from_record(r) for r in records],
    )


# ── Summaries ───────────────────────────────────────────────────────
@router.get("/attendance/summary/{year}/{month}", response_model=MonthlySummaryRead)
async def monthly_summary(
    year: int,
    month: int,
    employee_id: int | None = Query(None),
    actor: Actor = Depends(get_current_actor),
    stats: AttendanceStatisticsService = Depends(get_statistics_service),
) -> MonthlySummaryRead:
    target = _target_employee(actor, employee_id)
    summary = await stats.monthly(target, YearMonth(year, month))
    return MonthlySummaryRead.from_summary(summary)


@router.get("/attendance/statistics", response_model=StatisticsResponse)
async def trailing_statistics(
    employee_id: int | None = Query(None),
    actor: Actor = Depends(get_current_actor),
    stats: AttendanceStatisticsService = Depends(get_statistics_service),
) -> StatisticsResponse:
    """Monthly summaries for the trailing months, oldest first."""
    target = _target_employee(actor, employee_id)
    summaries = await stats.trailing(target, _today())
    return StatisticsResponse(
        employee_id=target,
        months=[MonthlySummaryRead.from_summary(s) for s in summaries],
    )


# ── Health ──────────────────────────────────────────────────────────
@router.get("/health", response_model=HealthResponse)
async def health(db: AsyncSession = Depends(get_db)) -> HealthResponse:
    """Public health check — database connectivity."""
    try:
        await db.execute(select(1))
    except SQLAlchemyError as e:
        logger.error("Health check DB failure: %s", e)
        return HealthResponse(status="degraded", db=False)
    return HealthResponse(status="ok", db=True)
