"""
Employee model — identity, role-based access control and work schedule.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, Column, Integer, String

from clockfix.db.base import Base
from clockfix.db.types import UTCDateTime, utcnow

ROLE_ADMIN = "admin"
ROLE_EMPLOYEE = "employee"


class Employee(Base):
    __tablename__ = "employees"

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    email: str = Column(String(320), unique=True, nullable=False, index=True)  # type: ignore[assignment]
    hashed_password: str = Column(String(128), nullable=False, default="")  # type: ignore[assignment]
    first_name: str = Column(String(100), nullable=False)  # type: ignore[assignment]
    last_name: str = Column(String(100), nullable=False)  # type: ignore[assignment]
    role: str = Column(  # type: ignore[assignment]
        String(20),
        nullable=False,
        default=ROLE_EMPLOYEE,
        server_default=ROLE_EMPLOYEE,
    )  # admin | employee
    is_active: bool = Column(Boolean, default=True, server_default="true")  # type: ignore[assignment]
    # Schedule used when a day has no recorded break / for late detection
    schedule_start: str = Column(String(5), nullable=False, default="09:00")  # type: ignore[assignment]
    schedule_break_minutes: int = Column(Integer, nullable=False, default=60)  # type: ignore[assignment]
    created_at: datetime = Column(UTCDateTime, default=utcnow)  # type: ignore[assignment]

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN
