"""
API errors and the JSON error envelope.

Every error response has the shape:
    {"error": {"code": "...", "message": "...", "details": {...}}}
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class APIError(Exception):
    """An error that maps onto an HTTP response."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_code = "BAD_REQUEST"

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict | None = None,
        headers: dict | None = None,
    ):
        self.code = code or self.default_code
        self.message = message
        self.details = details
        self.headers = headers
        super().__init__(f"{self.code}: {message}")


class BadRequest(APIError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_code = "BAD_REQUEST"


class Unauthorized(APIError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_code = "UNAUTHORIZED"

    def __init__(self, message: str = "Authentication required", code: str | None = None):
        super().__init__(message, code, headers={"WWW-Authenticate": "Bearer"})


class Forbidden(APIError):
    status_code = status.HTTP_403_FORBIDDEN
    default_code = "FORBIDDEN"


class NotFound(APIError):
    status_code = status.HTTP_404_NOT_FOUND
    default_code = "NOT_FOUND"


class Conflict(APIError):
    status_code = status.HTTP_409_CONFLICT
    default_code = "CONFLICT"


class UpstreamError(APIError):
    """The upstream price source failed and no cached data could stand in."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_code = "EXTERNAL_API_ERROR"


def error_body(code: str, message: str, details: dict | None = None) -> dict:
    """Build the error envelope."""
    error = {"code": code, "message": message}
    if details:
        error["details"] = details
    return {"error": error}


async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.code, exc.message, exc.details),
        headers=exc.headers,
    )


async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Convert request validation failures into 400 VALIDATION_ERROR."""
    fields: dict[str, list[str]] = {}
    for issue in exc.errors():
        # Drop the leading "body"/"query" location segment
        loc = [str(part) for part in issue.get("loc", ())[1:]]
        fields.setdefault(".".join(loc) or "body", []).append(issue.get("msg", "Invalid value"))

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body("VALIDATION_ERROR", "Invalid request data", {"fields": fields}),
    )


async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    """Wrap framework HTTP errors (404 route, 405 method) in the envelope."""
    code = {
        status.HTTP_404_NOT_FOUND: "NOT_FOUND",
        status.HTTP_405_METHOD_NOT_ALLOWED: "METHOD_NOT_ALLOWED",
    }.get(exc.status_code, "HTTP_ERROR")
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(code, str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body("INTERNAL_ERROR", "An unexpected error occurred"),
    )


def register_error_handlers(app: FastAPI) -> None:
    """Attach the envelope-producing handlers to an application."""
    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
