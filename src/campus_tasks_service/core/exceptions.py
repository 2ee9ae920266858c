"""Typed service errors and their HTTP rendering."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from campus_tasks_service.logging import get_logger

if TYPE_CHECKING:
    from fastapi import FastAPI, Request


class ServiceError(Exception):
    """
    Base error carrying a machine-readable code and an HTTP status.

    Every failure that reaches a caller is a ServiceError (or subclass),
    rendered as ``{"error": ..., "message": ..., "details": {...}}``.
    """

    def __init__(
        self,
        error: str,
        message: str,
        status_code: int,
        details: dict[str, object] | None = None,
    ) -> None:
        super().__init__(message)
        self.error = error
        self.message = message
        self.status_code = status_code
        self.details: dict[str, object] = details if details is not None else {}


class ValidationError(ServiceError):
    """Malformed or missing input. The caller fixes the input and resubmits."""

    def __init__(
        self,
        message: str,
        details: dict[str, object] | None = None,
        *,
        error: str = "INVALID_PAYLOAD",
    ) -> None:
        super().__init__(error, message, 400, details)


class Forbidden(ServiceError):
    """Authorization denial. Never retried with the same actor."""

    def __init__(self, message: str, details: dict[str, object] | None = None) -> None:
        super().__init__("FORBIDDEN", message, 403, details)


class NotFound(ServiceError):
    """Entity id does not resolve."""

    def __init__(
        self,
        message: str,
        details: dict[str, object] | None = None,
        *,
        error: str = "NOT_FOUND",
    ) -> None:
        super().__init__(error, message, 404, details)


class InvalidTransition(ServiceError):
    """State machine guard failed. Signals a logic bug upstream, not a transient fault."""

    def __init__(self, message: str, details: dict[str, object] | None = None) -> None:
        super().__init__("INVALID_TRANSITION", message, 400, details)


class ConflictRetry(ServiceError):
    """Lost an optimistic-concurrency race. Re-read and retry."""

    def __init__(self, message: str, details: dict[str, object] | None = None) -> None:
        super().__init__("CONFLICT_RETRY", message, 409, details)


class DependencyFailure(ServiceError):
    """A collaborator (identity provider, storage) failed."""

    def __init__(
        self,
        message: str,
        details: dict[str, object] | None = None,
        *,
        error: str = "DEPENDENCY_FAILURE",
    ) -> None:
        super().__init__(error, message, 502, details)


def _error_response(
    status_code: int,
    error: str,
    message: str,
    details: dict[str, object],
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "message": message, "details": details},
    )


async def _service_error_handler(_request: Request, exc: ServiceError) -> JSONResponse:
    return _error_response(exc.status_code, exc.error, exc.message, exc.details)


async def _request_validation_handler(
    _request: Request, exc: RequestValidationError
) -> JSONResponse:
    return _error_response(
        400,
        "INVALID_PAYLOAD",
        "Request validation failed",
        {"errors": [str(error.get("msg", "")) for error in exc.errors()]},
    )


async def _http_exception_handler(
    _request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    if exc.status_code == 404:
        return _error_response(404, "NOT_FOUND", "Resource not found", {})
    if exc.status_code == 405:
        return _error_response(405, "METHOD_NOT_ALLOWED", "Method not allowed", {})
    return _error_response(exc.status_code, "HTTP_ERROR", str(exc.detail), {})


async def _unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    get_logger(__name__).error(
        "Unhandled exception",
        exc_info=exc,
        extra={"path": request.url.path, "method": request.method},
    )
    return _error_response(500, "INTERNAL_ERROR", "An unexpected error occurred", {})


def register_exception_handlers(app: FastAPI) -> None:
    """Attach the JSON error handlers to the application."""
    app.add_exception_handler(ServiceError, _service_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(Exception, _unhandled_exception_handler)
