"""Custom exceptions and the ``{"error": ...}`` error handlers."""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


# ── Exception hierarchy ─────────────────────────────────────────────

class AppException(Exception):
    """Base for all application exceptions → ``{"error": detail}`` JSON."""

    def __init__(
        self,
        status_code: int,
        error_type: str,
        detail: str,
        errors: Optional[dict[str, Any]] = None,
    ) -> None:
        self.status_code = status_code
        self.error_type = error_type
        self.detail = detail
        self.errors = errors
        super().__init__(detail)


class UnauthorizedException(AppException):
    """401 — no or invalid session."""

    def __init__(self, detail: str = "Unauthorized") -> None:
        super().__init__(status_code=401, error_type="unauthorized", detail=detail)


class ForbiddenException(AppException):
    """403 — insufficient permissions."""

    def __init__(
        self,
        detail: str = "You do not have permission to perform this action.",
    ) -> None:
        super().__init__(status_code=403, error_type="forbidden", detail=detail)


class NotFoundException(AppException):
    """404 — entity not found (or not visible to the caller)."""

    def __init__(self, entity_type: str, entity_id: Any) -> None:
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            status_code=404,
            error_type="not-found",
            detail=f"{entity_type} with id '{entity_id}' does not exist.",
        )


class InvalidStateException(AppException):
    """400 — illegal transition or unmet precondition."""

    def __init__(
        self,
        detail: str,
        errors: Optional[dict[str, list[str]]] = None,
    ) -> None:
        super().__init__(
            status_code=400,
            error_type="invalid-state",
            detail=detail,
            errors=errors,
        )


class PersistenceException(AppException):
    """500 — the underlying store failed."""

    def __init__(self, detail: str = "A database error occurred.") -> None:
        super().__init__(status_code=500, error_type="persistence-error", detail=detail)


# ── Response builder ────────────────────────────────────────────────

def _build_error_body(exc: AppException) -> dict[str, Any]:
    body: dict[str, Any] = {"error": exc.detail}
    if exc.errors:
        body["errors"] = exc.errors
    return body


# ── FastAPI handlers ────────────────────────────────────────────────

async def _handle_app_exception(
    request: Request,
    exc: AppException,
) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=_build_error_body(exc))


async def _handle_validation_error(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    field_errors: dict[str, list[str]] = {}
    for err in exc.errors():
        loc = err.get("loc", ())
        name = (
            ".".join(str(p) for p in loc[1:])
            if len(loc) > 1
            else str(loc[0]) if loc else "unknown"
        )
        field_errors.setdefault(name, []).append(err.get("msg", "Invalid value"))

    return JSONResponse(
        status_code=422,
        content={"error": "Request validation failed.", "errors": field_errors},
    )


async def _handle_sqlalchemy_error(
    request: Request,
    exc: SQLAlchemyError,
) -> JSONResponse:
    logger.exception("Database error on %s %s", request.method, request.url.path)
    return await _handle_app_exception(request, PersistenceException())


# ── Registration helper (called from main.py) ──────────────────────

def register_exception_handlers(app: FastAPI) -> None:
    """Attach all custom exception handlers to the FastAPI app."""
    app.add_exception_handler(AppException, _handle_app_exception)          # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _handle_validation_error)  # type: ignore[arg-type]
    app.add_exception_handler(SQLAlchemyError, _handle_sqlalchemy_error)    # type: ignore[arg-type]
