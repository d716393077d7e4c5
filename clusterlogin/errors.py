import logging
import uuid
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException


logger = logging.getLogger(__name__)

PROBLEM_MEDIA_TYPE = "application/problem+json"


class LoginError(Exception):
    """Base class for failures while logging a user in through the platform."""

    status_code = 500
    code = "login_failed"

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ConfigIncomplete(LoginError):
    """A required setting was neither configured nor discovered."""

    code = "config_incomplete"


class InvalidRedirectTarget(LoginError):
    """The post-login redirect target cannot produce a usable callback URL."""

    code = "invalid_redirect_target"


class TransportFailure(LoginError):
    """Network or TLS failure while talking to the platform or its provider."""

    code = "transport_failure"


class ProviderError(LoginError):
    """The platform or its OAuth provider answered with an error payload."""

    code = "provider_error"


class StateMismatch(LoginError):
    """The callback carried a state value that does not match the pending login."""

    status_code = 401
    code = "state_mismatch"


def _problem(
    *,
    code: str,
    message: str,
    status: int,
    trace_id: str,
    details: Optional[Dict[str, Any]] = None,
) -> JSONResponse:
    body = {
        "type": f"about:blank#{code}",
        "title": message,
        "status": status,
        "code": code,
        "message": message,
        "trace_id": trace_id,
    }
    if details:
        body["details"] = details
    return JSONResponse(
        body,
        status_code=status,
        headers={"X-Trace-Id": trace_id},
        media_type=PROBLEM_MEDIA_TYPE,
    )


def login_error_response(exc: LoginError) -> JSONResponse:
    """Render ``exc`` as a problem document without going through the app handlers."""

    return _problem(
        code=exc.code,
        message=exc.message,
        status=exc.status_code,
        trace_id=str(uuid.uuid4()),
    )


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_exc_handler(request: Request, exc: StarletteHTTPException):  # type: ignore[override]
        trace_id = str(uuid.uuid4())
        detail = exc.detail
        if isinstance(detail, dict):
            message = detail.get("message") or detail.get("error") or "HTTP error"
            return _problem(
                code="http_error",
                message=str(message),
                status=exc.status_code,
                trace_id=trace_id,
                details=detail,
            )
        return _problem(code="http_error", message=str(detail), status=exc.status_code, trace_id=trace_id)

    @app.exception_handler(LoginError)
    async def login_exc_handler(request: Request, exc: LoginError):  # type: ignore[override]
        return login_error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def validation_exc_handler(request: Request, exc: RequestValidationError):  # type: ignore[override]
        trace_id = str(uuid.uuid4())
        return _problem(
            code="validation_error",
            message="Request validation failed",
            status=422,
            trace_id=trace_id,
            details={"errors": exc.errors()},
        )

    @app.exception_handler(Exception)
    async def unhandled_exc_handler(request: Request, exc: Exception):  # type: ignore[override]
        trace_id = str(uuid.uuid4())
        logger.exception("Unhandled error: %s", exc)
        return _problem(
            code="internal_error",
            message="An unexpected error occurred",
            status=500,
            trace_id=trace_id,
        )
