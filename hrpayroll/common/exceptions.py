"""Custom exceptions and RFC 7807 Problem Detail error handlers."""

from __future__ import annotations

from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

BASE_ERROR_URI = "https://hr.example.com/errors"


# ── Exception hierarchy ─────────────────────────────────────────────

class AppException(Exception):
    """Base for all application exceptions → RFC 7807 JSON."""

    def __init__(
        self,
        status_code: int,
        error_type: str,
        title: str,
        detail: str,
        errors: Optional[dict[str, Any]] = None,
    ) -> None:
        self.status_code = status_code
        self.error_type = error_type
        self.title = title
        self.detail = detail
        self.errors = errors
        super().__init__(detail)


class NotFoundException(AppException):
    """404 — entity not found."""

    def __init__(self, entity_type: str, entity_id: Any) -> None:
        super().__init__(
            status_code=404,
            error_type="not-found",
            title=f"{entity_type} Not Found",
            detail=f"{entity_type} with id '{entity_id}' does not exist.",
        )


class ConflictError(AppException):
    """409 — state conflict."""

    def __init__(self, detail: str, errors: Optional[dict[str, Any]] = None) -> None:
        super().__init__(
            status_code=409,
            error_type="conflict",
            title="Conflict",
            detail=detail,
            errors=errors,
        )


class ForbiddenException(AppException):
    """403 — insufficient permissions."""

    def __init__(
        self,
        detail: str = "You do not have permission to perform this action.",
    ) -> None:
        super().__init__(
            status_code=403,
            error_type="forbidden",
            title="Forbidden",
            detail=detail,
        )


class ValidationException(AppException):
    """422 — business-logic validation failures."""

    def __init__(self, errors: dict[str, list[str]]) -> None:
        super().__init__(
            status_code=422,
            error_type="validation-error",
            title="Validation Error",
            detail="One or more fields failed validation.",
            errors=errors,
        )


ValidationError = ValidationException


# ── Payroll freeze errors ───────────────────────────────────────────

def _period(year: int, month: int) -> str:
    return f"{year}-{month:02d}"


class AlreadyFrozenError(ConflictError):
    """409 — finalize attempted on a frozen period."""

    def __init__(self, year: int, month: int) -> None:
        super().__init__(
            f"Attendance already frozen for {_period(year, month)}. Unfreeze it first.",
            errors={"period": [_period(year, month)]},
        )
        self.error_type = "already-frozen"


class NotFrozenError(ConflictError):
    """409 — unfreeze attempted on an open period."""

    def __init__(self, year: int, month: int) -> None:
        super().__init__(
            f"Month {_period(year, month)} is not frozen.",
            errors={"period": [_period(year, month)]},
        )
        self.error_type = "not-frozen"


class PeriodNotFrozenError(ConflictError):
    """409 — a payroll consumer asked for snapshots of an open period."""

    def __init__(self, year: int, month: int) -> None:
        super().__init__(
            f"Snapshots for {_period(year, month)} are not final until the month is frozen.",
            errors={"period": [_period(year, month)]},
        )
        self.error_type = "period-not-frozen"


class NoDataError(NotFoundException):
    """404 — no attendance rows for the requested period."""

    def __init__(self, year: int, month: int) -> None:
        super().__init__("Attendance", _period(year, month))
        self.error_type = "no-data"
        self.title = "No Attendance Data"
        self.detail = f"No attendance found for period {_period(year, month)}."


class PersistenceError(AppException):
    """500 — the transactional write phase failed and was rolled back."""

    def __init__(self, detail: str = "Failed to persist payroll snapshots.") -> None:
        super().__init__(
            status_code=500,
            error_type="persistence-error",
            title="Persistence Error",
            detail=detail,
        )


# ── RFC 7807 builder ────────────────────────────────────────────────

def _build_problem_detail(exc: AppException, request: Request) -> dict[str, Any]:
    body: dict[str, Any] = {
        "type": f"{BASE_ERROR_URI}/{exc.error_type}",
        "title": exc.title,
        "status": exc.status_code,
        "detail": exc.detail,
        "instance": str(request.url.path),
    }
    if exc.errors:
        body["errors"] = exc.errors
    return body


# ── FastAPI handlers ────────────────────────────────────────────────

async def _handle_app_exception(
    request: Request,
    exc: AppException,
) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=_build_problem_detail(exc, request),
        media_type="application/problem+json",
    )


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
        content={
            "type": f"{BASE_ERROR_URI}/validation-error",
            "title": "Validation Error",
            "status": 422,
            "detail": "Request validation failed.",
            "instance": str(request.url.path),
            "errors": field_errors,
        },
        media_type="application/problem+json",
    )


# ── Registration helper (called from main.py) ──────────────────────

def register_exception_handlers(app: FastAPI) -> None:
    """Attach all custom exception handlers to the FastAPI app."""
    app.add_exception_handler(AppException, _handle_app_exception)          # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _handle_validation_error)  # type: ignore[arg-type]
