"""
Error type raised by operations and the handlers that render it as JSON.

Every failure leaves the service as ``{"error": <message>}`` with an HTTP
status, optionally with a machine ``code`` and a ``friendly`` translation the
client can show in a toast.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from shared.error_messages import format_validation_errors, friendly_error

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """An expected failure with an HTTP status and a client-facing message."""

    def __init__(
        self,
        status_code: int,
        message: str,
        *,
        code: Optional[str] = None,
        headers: Optional[dict[str, str]] = None,
        extra: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.code = code
        self.headers = headers
        self.extra = extra or {}


class RateLimitExceeded(ApiError):
    def __init__(self, retry_after: int) -> None:
        super().__init__(
            429,
            "Too many requests. Please wait before trying again.",
            code="RATE_LIMIT_EXCEEDED",
            headers={"Retry-After": str(retry_after)},
            extra={"retry_after": retry_after},
        )


def error_body(message: str, code: Optional[str] = None, **extra: Any) -> dict:
    body: dict[str, Any] = {"error": message}
    if code:
        body["code"] = code
    body.update(extra)
    body["friendly"] = friendly_error(message).as_dict()
    return body


async def _api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("[%s] %s", request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.message, exc.code, **exc.extra),
        headers=exc.headers,
    )


async def _http_error_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


async def _validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    details = [
        {
            "field": ".".join(str(part) for part in err["loc"] if part != "body"),
            "message": err["msg"],
        }
        for err in exc.errors()
    ]
    message = format_validation_errors(details)
    body = error_body(message, "VALIDATION_ERROR")
    body["details"] = details
    return JSONResponse(status_code=400, content=body)


async def _unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unexpected error in %s", request.url.path)
    return JSONResponse(status_code=500, content=error_body("Internal server error"))


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApiError, _api_error_handler)
    app.add_exception_handler(StarletteHTTPException, _http_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(Exception, _unexpected_error_handler)
