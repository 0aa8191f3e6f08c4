"""
Domain exceptions and their HTTP rendering.

Handlers raise these exceptions; the functions registered by
``register_exception_handlers`` turn them into problem-details JSON bodies:

    {"status": 409, "title": "Conflict", "detail": "...", "instance": "/api/v1/..."}

Validation failures additionally carry ``errors: {field: [messages]}``.
"""
import logging
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

logger = logging.getLogger(__name__)


CONCURRENCY_CONFLICT_DETAIL = "The record was modified by another user. Please refresh and try again."


class DomainError(Exception):
    """Base class for errors raised by request handlers."""
    status_code: int = status.HTTP_400_BAD_REQUEST
    title: str = "Bad Request"

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class NotFoundError(DomainError):
    status_code = status.HTTP_404_NOT_FOUND
    title = "Not Found"

    def __init__(self, entity: str, key: object = None):
        detail = f"{entity} not found" if key is None else f"{entity} '{key}' not found"
        super().__init__(detail)
        self.entity = entity
        self.key = key


class ConflictError(DomainError):
    status_code = status.HTTP_409_CONFLICT
    title = "Conflict"


class ConcurrencyConflictError(ConflictError):
    title = "Concurrency Conflict"

    def __init__(self, detail: str = CONCURRENCY_CONFLICT_DETAIL):
        super().__init__(detail)


class AuthenticationError(DomainError):
    status_code = status.HTTP_401_UNAUTHORIZED
    title = "Unauthorized"


class ValidationFailedError(DomainError):
    status_code = status.HTTP_400_BAD_REQUEST
    title = "Validation Failed"

    def __init__(self, errors: dict[str, list[str]], detail: str = "One or more validation errors occurred."):
        super().__init__(detail)
        self.errors = errors


def problem_response(
    request: Request,
    status_code: int,
    title: str,
    detail: str,
    errors: Optional[dict[str, list[str]]] = None,
    headers: Optional[dict[str, str]] = None,
) -> JSONResponse:
    body = {
        "status": status_code,
        "title": title,
        "detail": detail,
        "instance": request.url.path,
    }
    if errors:
        body["errors"] = errors
    return JSONResponse(status_code=status_code, content=body, headers=headers)


def _field_name(loc: tuple) -> str:
    # ("body", "email") -> "email"; ("query", "page") -> "page"
    parts = [str(part) for part in loc if part not in ("body", "query", "path", "header")]
    return ".".join(parts) or "request"


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    headers = None
    if isinstance(exc, AuthenticationError):
        headers = {"WWW-Authenticate": "Bearer"}
    retry_after = getattr(exc, "retry_after", None)
    if retry_after is not None:
        headers = {"Retry-After": str(retry_after)}
    return problem_response(
        request,
        exc.status_code,
        exc.title,
        exc.detail,
        errors=getattr(exc, "errors", None),
        headers=headers,
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors: dict[str, list[str]] = {}
    for error in exc.errors():
        errors.setdefault(_field_name(tuple(error.get("loc", ()))), []).append(error.get("msg", "Invalid value"))
    return problem_response(
        request,
        status.HTTP_400_BAD_REQUEST,
        "Validation Failed",
        "One or more validation errors occurred.",
        errors=errors,
    )


async def stale_data_handler(request: Request, exc: StaleDataError) -> JSONResponse:
    logger.info(
        "Optimistic concurrency check failed during flush",
        extra={"event": "concurrency_conflict", "path": request.url.path},
    )
    return problem_response(
        request,
        status.HTTP_409_CONFLICT,
        ConcurrencyConflictError.title,
        CONCURRENCY_CONFLICT_DETAIL,
    )


async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    message = str(exc.orig).lower() if exc.orig is not None else ""
    if "foreign key" in message:
        detail = "The record is referenced by other records and cannot be changed."
    elif "unique" in message or "duplicate" in message:
        detail = "A record with the same unique value already exists."
    else:
        detail = "The operation conflicts with existing data."
    logger.warning(
        "Database integrity violation",
        extra={"event": "integrity_error", "path": request.url.path},
    )
    return problem_response(request, status.HTTP_409_CONFLICT, "Conflict", detail)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "Unhandled exception",
        extra={"event": "unhandled_exception", "path": request.url.path, "method": request.method},
    )
    return problem_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "Internal Server Error",
        "An unexpected error occurred.",
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DomainError, domain_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StaleDataError, stale_data_handler)
    app.add_exception_handler(IntegrityError, integrity_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
