"""Иерархия ошибок приложения.

Каждая ошибка знает свой HTTP-статус и машинный код, глобальные обработчики
(см. ``app.core.error_handlers``) превращают их в единый JSON-конверт
``{"success": false, "message": ..., "code": ...}``.
"""

from __future__ import annotations

from typing import Any


class AppError(Exception):
    """Базовая ошибка приложения."""

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, *, details: list[dict[str, Any]] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_response(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"success": False, "message": self.message, "code": self.code}
        if self.details:
            payload["errors"] = self.details
        return payload


class ValidationError(AppError):
    status_code = 400
    code = "VALIDATION_ERROR"


class AuthenticationError(AppError):
    status_code = 401
    code = "AUTHENTICATION_REQUIRED"


class PermissionDeniedError(AppError):
    status_code = 403
    code = "FORBIDDEN"


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, resource: str):
        super().__init__(f"{resource} not found")
        self.resource = resource


class ConflictError(AppError):
    status_code = 409
    code = "CONFLICT"


class PayloadTooLargeError(AppError):
    status_code = 413
    code = "PAYLOAD_TOO_LARGE"


class StorageError(AppError):
    """Сбой базы данных внутри единицы работы (после отката)."""

    status_code = 500
    code = "STORAGE_ERROR"
