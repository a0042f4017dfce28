"""Map service errors and framework exceptions onto the JSON error envelope.

Every error response has the shape ``{"success": false, "message": ...}``,
with ``code`` and ``errors`` added when available.
"""
from __future__ import annotations

from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from eventhub.core.config import settings
from eventhub.services.error_codes import ErrorCode
from eventhub.services.exceptions import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ServiceError,
    UnauthorizedError,
    ValidationError,
)

logger = structlog.get_logger()


def http_status_for(err: ServiceError) -> int:
    if isinstance(err, NotFoundError):
        return 404
    if isinstance(err, UnauthorizedError):
        return 401
    if isinstance(err, PermissionDeniedError):
        return 403
    if isinstance(err, (ConflictError, ValidationError)):
        return 400
    return 500


def error_body(message: str, code: str | None = None, errors: Any | None = None) -> dict[str, Any]:
    body: dict[str, Any] = {"success": False, "message": message}
    if code:
        body["code"] = code
    if errors is not None:
        body["errors"] = errors
    return body


def _validation_errors(exc: RequestValidationError) -> list[dict[str, Any]]:
    return [
        {
            "field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"),
            "message": err.get("msg", "invalid value"),
        }
        for err in exc.errors()
    ]


async def _service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    status = http_status_for(exc)
    headers = {"WWW-Authenticate": "Bearer"} if status == 401 else None
    return JSONResponse(status_code=status, content=error_body(exc.message, exc.code), headers=headers)


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content=error_body("validation failed", ErrorCode.VALIDATION_ERROR.value, _validation_errors(exc)),
    )


async def _http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    detail = exc.detail
    if isinstance(detail, dict):
        body = error_body(str(detail.get("message", "error")), detail.get("code"))
    else:
        body = error_body(str(detail))
    return JSONResponse(status_code=exc.status_code, content=body, headers=getattr(exc, "headers", None))


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_error", method=request.method, path=request.url.path)
    body = error_body("internal server error")
    if settings.debug_errors:
        body["detail"] = repr(exc)
    return JSONResponse(status_code=500, content=body)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ServiceError, _service_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, _http_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)
