from typing import Annotated, Any, Optional, Union

from pydantic import BeforeValidator, Field, field_validator

from app.schemas import CamelModel


def _number_to_text(value: Any) -> Any:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return str(value)
    return value


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


# Фронтенд присылает время и количество то строкой, то числом.
LooseText = Annotated[Optional[str], BeforeValidator(_number_to_text)]
LooseCount = Annotated[Optional[Annotated[int, Field(ge=0)]], BeforeValidator(_blank_to_none)]


class IngredientInput(CamelModel):
    name: Optional[str] = None
    quantity: LooseText = None
    unit: Optional[str] = None
    notes: Optional[str] = None


class InstructionInput(CamelModel):
    text: Optional[str] = None
    duration: LooseCount = None
    tips: Optional[str] = None


class RecipeInput(CamelModel):
    """Тело запроса на создание и полную замену рецепта."""

    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    cuisine: Optional[str] = None
    difficulty: Optional[str] = None
    cook_time: LooseText = None
    prep_time: LooseText = None
    servings: LooseCount = None
    tags: Union[list[str], str, None] = None
    nutrition_info: Optional[dict[str, Any]] = None
    is_published: bool = True
    image: Optional[str] = None
    ingredients: list[IngredientInput] = Field(default_factory=list)
    instructions: list[InstructionInput] = Field(default_factory=list)

    @field_validator("ingredients", "instructions", mode="before")
    @classmethod
    def none_is_empty(cls, value: Any) -> Any:
        return [] if value is None else value


class CommentInput(CamelModel):
    comment: Optional[str] = None
    rating: Annotated[Optional[int], BeforeValidator(_blank_to_none)] = None
