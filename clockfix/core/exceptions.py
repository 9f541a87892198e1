"""
Domain error taxonomy and global exception handlers.

Services raise the ``WorkflowError`` family; the handlers below turn them
into JSON responses and keep stack traces away from clients.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

logger = logging.getLogger(__name__)


# ── Domain errors ───────────────────────────────────────────────────
class WorkflowError(Exception):
    """Base class for every expected, client-facing failure."""

    status_code: int = 400
    code: str = "workflow_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(WorkflowError):
    """Malformed or incomplete input. Never retried automatically."""

    status_code = 400
    code = "validation_error"


class ImmutableFieldError(ValidationError):
    code = "immutable_field"


class AuthorizationError(WorkflowError):
    status_code = 403
    code = "forbidden"


class NotFoundError(WorkflowError):
    status_code = 404
    code = "not_found"


class InvalidStateError(WorkflowError):
    """The action is not valid for the request's current status."""

    status_code = 409
    code = "invalid_state"


class ConflictError(WorkflowError):
    """A storage-level uniqueness constraint rejected the write."""

    status_code = 409
    code = "conflict"


class DuplicateRequestError(ConflictError):
    code = "duplicate_request"


# ── Handlers ────────────────────────────────────────────────────────
async def _workflow_error_handler(_request: Request, exc: WorkflowError) -> JSONResponse:
    if exc.status_code >= 409:
        logger.info("%s: %s", type(exc).__name__, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code, "success": False},
    )


async def _http_exception_handler(_request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "success": False},
        headers=getattr(exc, "headers", None),
    )


async def _integrity_error_handler(_request: Request, exc: IntegrityError) -> JSONResponse:
    logger.error("Database integrity error: %s", exc, exc_info=True)
    return JSONResponse(
        status_code=409,
        content={"detail": "Database constraint violation", "success": False},
    )


async def _sqlalchemy_error_handler(_request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error("Database error: %s", exc, exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal database error", "success": False},
    )


async def _generic_exception_handler(_request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception: %s", exc)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "success": False},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Attach all exception handlers to the FastAPI app."""
    app.add_exception_handler(WorkflowError, _workflow_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(HTTPException, _http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(IntegrityError, _integrity_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(SQLAlchemyError, _sqlalchemy_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _generic_exception_handler)
