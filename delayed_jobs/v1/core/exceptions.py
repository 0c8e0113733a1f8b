import uuid
from datetime import UTC, datetime
from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from delayed_jobs.config.logging import add_request_context, get_logger

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


# API errors


class DelayedJobsException(Exception):
    """Base exception for errors surfaced to callers of the job engine."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class ConfigurationError(DelayedJobsException):
    """Raised when the engine is asked to do something it is not set up for."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, status.HTTP_422_UNPROCESSABLE_ENTITY, details)


class HandlerNotRegisteredError(ConfigurationError):
    """Raised when a job is enqueued for a handler that was never registered."""

    def __init__(self, handler: str):
        super().__init__(
            f"Handler not registered: {handler}", details={"handler": handler}
        )


class NotFoundError(DelayedJobsException):
    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, status.HTTP_404_NOT_FOUND, details)


# Handler outcomes


class DelayedJobError(Exception):
    """
    Raised by job handlers to report a classified failure.

    A recoverable failure puts the job back on the schedule with backoff;
    a non-recoverable one completes the job with failure and stops retrying.
    """

    def __init__(self, message: str, recoverable: bool = True):
        self.message = message
        self.recoverable = recoverable
        super().__init__(message)


class RecoverableJobError(DelayedJobError):
    """Transient failure, e.g. a dependency that is temporarily unavailable."""

    def __init__(self, message: str):
        super().__init__(message, recoverable=True)


class TerminalJobError(DelayedJobError):
    """Permanent failure, e.g. the entity the job refers to does not exist."""

    def __init__(self, message: str):
        super().__init__(message, recoverable=False)


# Response envelopes


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


def create_error_response(
    status_code: int,
    message: str,
    details: dict[str, Any] | None = None,
    request_id: str | None = None,
) -> dict[str, Any]:
    return {
        "ok": False,
        "error": {"message": message, "code": status_code, "details": details or {}},
        "request_id": request_id,
        "timestamp": _now_iso(),
    }


def create_success_response(
    data: Any, message: str | None = None, request_id: str | None = None
) -> dict[str, Any]:
    return {
        "ok": True,
        "data": data,
        "message": message,
        "request_id": request_id,
        "timestamp": _now_iso(),
    }


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or str(uuid.uuid4())


def _error_json(
    request: Request,
    status_code: int,
    message: str,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=create_error_response(
            status_code=status_code,
            message=message,
            details=details,
            request_id=_request_id(request),
        ),
    )


# Exception handlers


async def delayed_jobs_exception_handler(
    request: Request, exc: DelayedJobsException
) -> JSONResponse:
    logger.warning(
        "Request rejected",
        exception=type(exc).__name__,
        message=exc.message,
        status_code=exc.status_code,
        details=exc.details,
    )
    return _error_json(request, exc.status_code, exc.message, exc.details)


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Wrap request validation errors in the error envelope."""
    errors = jsonable_encoder(exc.errors())
    logger.info("Request validation failed", errors=errors)

    first = errors[0]["msg"] if errors else "Invalid request"
    return _error_json(
        request,
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        first,
        {"errors": errors},
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    logger.warning("HTTP exception", status_code=exc.status_code, detail=exc.detail)
    return _error_json(request, exc.status_code, str(exc.detail))


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "Unhandled exception",
        exception=type(exc).__name__,
        message=str(exc),
        exc_info=True,
    )
    return _error_json(
        request, status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error"
    )


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Assigns each request a correlation id, reusing the caller's
    ``X-Request-ID`` when present, and echoes it on the response.
    """

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id

        add_request_context(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
