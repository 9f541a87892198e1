"""
FastAPI dependencies — database access, the current actor and services.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Optional

from fastapi import Cookie, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from clockfix.core.security import decode_token
from clockfix.db.session import async_session_factory
from clockfix.models.employee import Employee
from clockfix.services.aggregator import AttendanceStatisticsService
from clockfix.services.correction_query import WorkflowQueryService
from clockfix.services.correction_workflow import CorrectionWorkflow
from clockfix.services.identity import Actor

# auto_error=False so the HttpOnly cookie can be checked when the header is missing
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login", auto_error=False)


# ── Database ────────────────────────────────────────────────────────
def get_session_factory() -> async_sessionmaker[AsyncSession]:
    return async_session_factory


async def get_db(
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> AsyncGenerator[AsyncSession, None]:
    async with factory() as session:
        try:
            yield session
        finally:
            await session.close()


# ── Identity ────────────────────────────────────────────────────────
async def get_current_employee(
    token: Optional[str] = Depends(oauth2_scheme),
    access_token: Optional[str] = Cookie(default=None),
    db: AsyncSession = Depends(get_db),
) -> Employee:
    """Decode the JWT from the Authorization header or the cookie and load the employee."""
    final_token = token
    if not final_token and access_token:
        final_token = access_token.removeprefix("Bearer ")

    credentials_exc = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if not final_token:
        raise credentials_exc

    employee_id = decode_token(final_token)
    if employee_id is None:
        raise credentials_exc

    employee = await db.get(Employee, employee_id)
    if employee is None:
        raise credentials_exc
    if not employee.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Inactive employee account")
    return employee


async def get_current_actor(employee: Employee = Depends(get_current_employee)) -> Actor:
    return Actor(employee_id=employee.id, is_admin=employee.is_admin)


# ── Services ────────────────────────────────────────────────────────
def get_workflow(
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> CorrectionWorkflow:
    return CorrectionWorkflow(factory)


def get_query_service(
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> WorkflowQueryService:
    return WorkflowQueryService(factory)


def get_statistics_service(
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> AttendanceStatisticsService:
    return AttendanceStatisticsService(factory)
