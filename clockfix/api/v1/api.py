"""
V1 API router aggregator — wires all endpoint modules together.
"""

from fastapi import APIRouter

from clockfix.api.v1.endpoints import attendance, auth, corrections

api_router = APIRouter()

# Auth (login, refresh, logout, me)
api_router.include_router(auth.router)

# Correction requests: submit, review queue, decisions, bulk
api_router.include_router(corrections.router)

# Attendance records, summaries, statistics, health
api_router.include_router(attendance.router)
