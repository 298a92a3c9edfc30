from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from app.core.error_handlers import format_validation_errors
from app.core.errors import ValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)


class CamelModel(BaseModel):
    """Входные модели API: camelCase в JSON, snake_case в коде."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        extra="ignore",
    )


def parse_payload(model: type[ModelT], data: Any, message: str = "Invalid request data") -> ModelT:
    """Валидирует произвольные данные моделью, ошибки pydantic превращает в 400."""
    if not isinstance(data, dict):
        raise ValidationError(message)
    try:
        return model.model_validate(data)
    except PydanticValidationError as exc:
        raise ValidationError(message, details=format_validation_errors(exc.errors())) from exc
