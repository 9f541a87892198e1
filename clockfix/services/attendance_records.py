"""
Read/write access to attendance records for the correction workflow.
"""

from __future__ import annotations

from datetime import date

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from clockfix.models.attendance import AttendanceRecord


class AttendanceRecordRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, record_id: int) -> AttendanceRecord | None:
        return await self._session.get(AttendanceRecord, record_id)

    async def find_by_employee_date(self, employee_id: int, work_date: date) -> AttendanceRecord | None:
        result = await self._session.execute(
            select(AttendanceRecord).where(
                AttendanceRecord.employee_id == employee_id,
                AttendanceRecord.work_date == work_date,
            )
        )
        return result.scalar_one_or_none()

    async def list_for_month(self, employee_id: int, start: date, end: date) -> list[AttendanceRecord]:
        result = await self._session.execute(
            select(AttendanceRecord)
            .where(
                AttendanceRecord.employee_id == employee_id,
                AttendanceRecord.work_date >= start,
                AttendanceRecord.work_date <= end,
            )
            .order_by(AttendanceRecord.work_date.asc())
        )
        return list(result.scalars().all())

    async def save(self, record: AttendanceRecord) -> AttendanceRecord:
        self._session.add(record)
        await self._session.flush()
        return record
