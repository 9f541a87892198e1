"""Pydantic schemas for JWT tokens."""

from __future__ import annotations

from pydantic import BaseModel


class Token(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class RefreshRequest(BaseModel):
    refresh_token: str


class LogoutResponse(BaseModel):
    message: str


class CurrentEmployee(BaseModel):
    id: int
    email: str
    display_name: str
    role: str
    schedule_start: str
    schedule_break_minutes: int

    model_config = {"from_attributes": True}
