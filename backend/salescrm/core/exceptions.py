"""
Ошибки прикладного уровня и их преобразование в HTTP-ответы.

Сервисы и хранилище поднимают эти исключения; роутеры их не перехватывают,
в ответ их превращают обработчики, зарегистрированные в main.py.
"""
import logging
from typing import List, Optional

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


def wire_name(field: str) -> str:
    head, *rest = field.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


class AppError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    message = "Internal server error"

    def __init__(self, message: Optional[str] = None, fields: Optional[List[dict]] = None):
        self.message = message or self.message
        self.fields = fields or []
        super().__init__(self.message)

    def to_dict(self) -> dict:
        body = {"message": self.message}
        if self.fields:
            # Имена полей наружу - как в JSON: paid_amount -> paidAmount
            body["errors"] = [{**error, "field": wire_name(error["field"])} for error in self.fields]
        return body


class NotFound(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    message = "Not found"


class ValidationError(AppError):
    """Перечисляет каждое невалидное поле: [{"field": ..., "message": ...}]"""
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Validation failed"

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        return cls(fields=[{"field": field, "message": message}])


class Forbidden(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    message = "Access denied"


class Unauthorized(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Authentication required"


class StorageFailure(AppError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    message = "Service temporarily unavailable"


def _field_name(loc) -> str:
    # ("query", "status") -> "status", ("body", "amount") -> "amount"
    parts = [str(part) for part in loc if part not in ("query", "body", "path")]
    return ".".join(parts) or "request"


def errors_from_pydantic(errors) -> List[dict]:
    return [{"field": _field_name(err["loc"]), "message": err["msg"]} for err in errors]


async def app_error_handler(request: Request, exc: AppError):
    if isinstance(exc, StorageFailure):
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, Unauthorized) else None
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


async def request_validation_handler(request: Request, exc: RequestValidationError):
    error = ValidationError(fields=errors_from_pydantic(exc.errors()))
    return JSONResponse(status_code=error.status_code, content=error.to_dict())
