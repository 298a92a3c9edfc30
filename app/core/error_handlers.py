"""Глобальные обработчики ошибок: любой сбой отдаётся в одном и том же конверте.

``AppError`` -> статус и код ошибки, ``HTTPException`` фреймворка -> тот же
конверт, ``RequestValidationError`` -> 400 с перечнем полей, всё остальное ->
500 без внутренних подробностей (текст исключения виден только вне продакшена).
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.config import settings
from app.core.errors import AppError

logger = logging.getLogger(__name__)

HTTP_STATUS_CODES = {
    status.HTTP_400_BAD_REQUEST: "VALIDATION_ERROR",
    status.HTTP_401_UNAUTHORIZED: "AUTHENTICATION_REQUIRED",
    status.HTTP_403_FORBIDDEN: "FORBIDDEN",
    status.HTTP_404_NOT_FOUND: "NOT_FOUND",
    status.HTTP_405_METHOD_NOT_ALLOWED: "METHOD_NOT_ALLOWED",
    status.HTTP_409_CONFLICT: "CONFLICT",
    status.HTTP_413_REQUEST_ENTITY_TOO_LARGE: "PAYLOAD_TOO_LARGE",
}


def register_error_handlers(app: FastAPI) -> None:
    _register_app_error_handler(app)
    _register_http_error_handler(app)
    _register_validation_error_handler(app)
    _register_generic_error_handler(app)


def _register_app_error_handler(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        level = logging.ERROR if exc.status_code >= 500 else logging.INFO
        logger.log(
            level,
            "%s: %s",
            type(exc).__name__,
            exc.message,
            extra={"error_code": exc.code, "path": request.url.path},
        )
        content = exc.to_response()
        if exc.status_code >= 500 and not settings.is_production and exc.__cause__ is not None:
            content["error"] = str(exc.__cause__)
        return JSONResponse(status_code=exc.status_code, content=content)


def _register_http_error_handler(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        message = exc.detail if isinstance(exc.detail, str) else "Request failed"
        code = HTTP_STATUS_CODES.get(exc.status_code, "HTTP_ERROR")
        logger.info("HTTP %s: %s", exc.status_code, message, extra={"error_code": code, "path": request.url.path})
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "success": False,
                "message": message,
                "code": code,
            },
            headers=getattr(exc, "headers", None),
        )


def _register_validation_error_handler(app: FastAPI) -> None:
    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        logger.info(
            "Validation error: %s",
            exc.errors(),
            extra={"error_code": "VALIDATION_ERROR", "path": request.url.path},
        )
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "success": False,
                "message": "Invalid request data",
                "code": "VALIDATION_ERROR",
                "errors": format_validation_errors(exc.errors()),
            },
        )


def _register_generic_error_handler(app: FastAPI) -> None:
    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception):
        logger.error(
            "Unhandled exception on %s: %s",
            request.url.path,
            exc,
            exc_info=True,
            extra={"error_code": "INTERNAL_ERROR", "path": request.url.path},
        )
        content: dict[str, Any] = {
            "success": False,
            "message": "Server error",
            "code": "INTERNAL_ERROR",
        }
        if not settings.is_production:
            content["error"] = str(exc)
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=content)


def format_validation_errors(errors) -> list[dict[str, str]]:
    """Приводит ошибки pydantic к виду ``[{field, message, type}]``."""
    return [
        {
            "field": ".".join(str(loc) for loc in error.get("loc", ()) if loc != "body"),
            "message": error.get("msg", ""),
            "type": error.get("type", ""),
        }
        for error in errors
    ]
