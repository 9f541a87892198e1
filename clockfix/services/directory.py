"""
Employee id -> display name lookups for read responses.
"""

from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from clockfix.models.employee import Employee


class EmployeeDirectory:
    """Resolves names in one query per batch and remembers them for the session."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._cache: dict[int, str] = {}

    async def display_names(self, employee_ids: Iterable[int | None]) -> dict[int, str]:
        wanted = {eid for eid in employee_ids if eid is not None}
        missing = wanted - self._cache.keys()
        if missing:
            result = await self._session.execute(
                select(Employee.id, Employee.first_name, Employee.last_name).where(
                    Employee.id.in_(missing)
                )
            )
            for emp_id, first, last in result.all():
                self._cache[emp_id] = f"{first} {last}".strip()
        return {eid: self._cache[eid] for eid in wanted if eid in self._cache}
