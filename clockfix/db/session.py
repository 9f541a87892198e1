"""
Async SQLAlchemy engine & session factory (asyncpg in production,
aiosqlite for local runs and tests).
"""

from __future__ import annotations

from typing import Any

from sqlalchemy.ext.asyncio import (AsyncEngine, AsyncSession,
                                    async_sessionmaker, create_async_engine)

from clockfix.core.config import settings


def build_engine(url: str, **overrides: Any) -> AsyncEngine:
    """Create an engine with pool settings suited to the backend."""
    engine_args: dict[str, Any] = {
        "echo": False,
        "pool_pre_ping": True,
    }
    if url.startswith("postgresql"):
        engine_args.update(
            {
                "pool_size": 20,
                "max_overflow": 10,
                "pool_recycle": 300,
            }
        )
    elif url.startswith("sqlite"):
        # Writers wait on each other instead of failing with "database is locked".
        engine_args["connect_args"] = {"timeout": 15}
    engine_args.update(overrides)
    return create_async_engine(url, **engine_args)


def make_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = build_engine(settings.DATABASE_URL)
async_session_factory = make_session_factory(engine)
