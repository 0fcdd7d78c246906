# feedesk/core/errors.py
"""
Error types + FastAPI exception handlers.

Every error leaving the API has the same shape:

    {"error": {"code": ..., "message": ..., "details": ...}, "request_id": ...}

Services raise AppError subclasses; routers never build error responses by hand.
Each subclass only fixes the HTTP status and the default code/message; callers
override code/message per situation (e.g. user_not_found vs user_settings_not_found).
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pymongo.errors import DuplicateKeyError, PyMongoError
from starlette import status

logger = logging.getLogger(__name__)


class AppError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_code: str = "internal_error"
    default_message: str = "Internal server error"

    def __init__(
        self,
        *,
        code: str | None = None,
        message: str | None = None,
        details: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.code = code or self.default_code
        self.message = message or self.default_message
        self.details = details
        self.headers = headers
        super().__init__(self.message)


class BadRequestError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_code = "bad_request"
    default_message = "Bad request"


class UnauthorizedError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_code = "unauthorized"
    default_message = "Unauthorized"


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    default_code = "not_found"
    default_message = "Not found"


class ConflictError(AppError):
    """Another writer changed the same record first; the caller may reload and retry."""

    status_code = status.HTTP_409_CONFLICT
    default_code = "conflict"
    default_message = "Conflict"


class PersistenceError(AppError):
    """MongoDB failed; nothing about the request itself was wrong."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_code = "persistence_failure"
    default_message = "Storage operation failed"


def _request_id(request: Request) -> str | None:
    rid = getattr(request.state, "request_id", None) or request.headers.get("x-request-id")
    if isinstance(rid, str) and rid.strip():
        return rid.strip()
    return None


def error_response(
    request: Request,
    status_code: int,
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    rid = _request_id(request)
    out_headers = dict(headers or {})
    if rid:
        out_headers.setdefault("X-Request-ID", rid)

    return JSONResponse(
        status_code=status_code,
        content={
            "error": {"code": code, "message": message, "details": details},
            "request_id": rid,
        },
        headers=out_headers,
    )


def jsonable_errors(exc: RequestValidationError) -> list[dict[str, Any]]:
    """
    Pydantic error dicts may carry the offending Decimal / exception objects in
    `input` and `ctx`; keep only the JSON-safe parts.
    """
    return [
        {
            "loc": list(err.get("loc", ())),
            "msg": str(err.get("msg", "")),
            "type": str(err.get("type", "")),
        }
        for err in exc.errors()
    ]


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def _app_error(request: Request, exc: AppError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s %s -> %s %s details=%s", request.method, request.url.path, exc.status_code, exc.code, exc.details)
        else:
            logger.info("%s %s -> %s %s", request.method, request.url.path, exc.status_code, exc.code)
        return error_response(request, exc.status_code, exc.code, exc.message, exc.details, exc.headers)

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        return error_response(
            request,
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            "validation_error",
            "Request validation failed",
            {"errors": jsonable_errors(exc)},
        )

    @app.exception_handler(HTTPException)
    async def _http_exception(request: Request, exc: HTTPException) -> JSONResponse:
        message = exc.detail if isinstance(exc.detail, str) else "Request failed"
        details = exc.detail if isinstance(exc.detail, dict) else None
        return error_response(
            request, exc.status_code, "http_exception", message, details, getattr(exc, "headers", None)
        )

    # Repositories normally translate driver errors; these catch anything that slipped through.
    @app.exception_handler(DuplicateKeyError)
    async def _duplicate_key(request: Request, _exc: DuplicateKeyError) -> JSONResponse:
        logger.info("DuplicateKeyError on %s %s", request.method, request.url.path)
        return error_response(
            request,
            status.HTTP_409_CONFLICT,
            "duplicate_key",
            "A record with the same unique key already exists",
        )

    @app.exception_handler(PyMongoError)
    async def _mongo_error(request: Request, exc: PyMongoError) -> JSONResponse:
        logger.error("Unwrapped PyMongoError on %s %s: %s", request.method, request.url.path, exc)
        return error_response(
            request,
            PersistenceError.status_code,
            PersistenceError.default_code,
            PersistenceError.default_message,
        )

    @app.exception_handler(Exception)
    async def _unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled exception", exc_info=exc)
        return error_response(
            request,
            AppError.status_code,
            AppError.default_code,
            AppError.default_message,
        )
