"""Транзакционная запись рецепта: создание, полная замена и удаление.

Порядок всегда один и тот же: проверка входных данных и прав до открытия
транзакции, затем все изменения строк внутри ``transaction()``, затем
побочные эффекты на файловой системе (удаление старой обложки), ошибки
которых только логируются.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional, Sequence, Union

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from starlette.datastructures import UploadFile

from app.core.errors import NotFoundError, PermissionDeniedError, ValidationError
from app.db.session import transaction
from app.models import (
    Recipe,
    RecipeComment,
    RecipeIngredient,
    RecipeInstruction,
    RecipeLike,
    SavedRecipe,
    User,
)
from app.models.recipe import DEFAULT_DIFFICULTY, DIFFICULTY_LEVELS
from app.schemas.recipes import IngredientInput, InstructionInput, RecipeInput
from app.services.cover_resolver import is_external_url
from app.services.uploads import ImageStore, image_store

logger = logging.getLogger(__name__)

# Строки, ссылающиеся на рецепт; удаляются раньше самого рецепта.
RECIPE_DEPENDENTS = (RecipeIngredient, RecipeInstruction, RecipeLike, RecipeComment, SavedRecipe)


@dataclass(frozen=True)
class IngredientDraft:
    name: str
    quantity: Optional[str] = None
    unit: Optional[str] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class InstructionDraft:
    text: str
    duration: Optional[int] = None
    tips: Optional[str] = None


@dataclass
class RecipeDraft:
    """Проверенные и нормализованные данные рецепта, готовые к записи."""

    title: str
    description: str
    category: str
    cuisine: Optional[str] = None
    difficulty: str = DEFAULT_DIFFICULTY
    cook_time: Optional[str] = None
    prep_time: Optional[str] = None
    servings: Optional[int] = None
    tags: Optional[str] = None
    nutrition_info: Optional[str] = None
    is_published: bool = True
    image_url: Optional[str] = None
    ingredients: list[IngredientDraft] = field(default_factory=list)
    instructions: list[InstructionDraft] = field(default_factory=list)


def join_tags(value: Union[Sequence[str], str, None]) -> Optional[str]:
    if value is None:
        return None
    items: Iterable[str] = value.split(",") if isinstance(value, str) else value
    seen: set[str] = set()
    tags: list[str] = []
    for item in items:
        tag = str(item).strip()
        if not tag or tag in seen:
            continue
        seen.add(tag)
        tags.append(tag)
    return ",".join(tags) or None


def _ingredient_drafts(items: Sequence[IngredientInput]) -> list[IngredientDraft]:
    drafts: list[IngredientDraft] = []
    for position, item in enumerate(items, start=1):
        if not item.name:
            raise ValidationError(f"Ingredient #{position} must have a name")
        drafts.append(
            IngredientDraft(
                name=item.name,
                quantity=item.quantity or None,
                unit=item.unit or None,
                notes=item.notes or None,
            )
        )
    return drafts


def _instruction_drafts(items: Sequence[InstructionInput]) -> list[InstructionDraft]:
    drafts: list[InstructionDraft] = []
    for position, item in enumerate(items, start=1):
        if not item.text:
            raise ValidationError(f"Instruction #{position} must have text")
        drafts.append(InstructionDraft(text=item.text, duration=item.duration, tips=item.tips or None))
    return drafts


def build_draft(payload: RecipeInput) -> RecipeDraft:
    """Проверяет обязательные поля и порядок дочерних записей, ничего не трогая в базе."""
    if not payload.title or not payload.description or not payload.category:
        raise ValidationError("Title, description, and category are required")

    difficulty = payload.difficulty or DEFAULT_DIFFICULTY
    matched = next((level for level in DIFFICULTY_LEVELS if level.lower() == difficulty.lower()), None)
    if matched is None:
        raise ValidationError(f"Difficulty must be one of: {', '.join(DIFFICULTY_LEVELS)}")

    image_url = payload.image or None
    if image_url and not is_external_url(image_url):
        image_url = None

    return RecipeDraft(
        title=payload.title,
        description=payload.description,
        category=payload.category,
        cuisine=payload.cuisine or None,
        difficulty=matched,
        cook_time=payload.cook_time or None,
        prep_time=payload.prep_time or None,
        servings=payload.servings,
        tags=join_tags(payload.tags),
        nutrition_info=json.dumps(payload.nutrition_info) if payload.nutrition_info else None,
        is_published=payload.is_published,
        image_url=image_url,
        ingredients=_ingredient_drafts(payload.ingredients),
        instructions=_instruction_drafts(payload.instructions),
    )


class RecipeWriter:
    """Единственное место, где меняются рецепты и их упорядоченные дочерние строки."""

    def __init__(self, images: ImageStore):
        self.images = images

    @staticmethod
    def _children(draft: RecipeDraft) -> dict[str, Any]:
        return {
            "ingredients": [
                RecipeIngredient(
                    ingredient_name=item.name,
                    quantity=item.quantity,
                    unit=item.unit,
                    notes=item.notes,
                    order_index=position,
                )
                for position, item in enumerate(draft.ingredients, start=1)
            ],
            "instructions": [
                RecipeInstruction(
                    step_number=position,
                    instruction_text=item.text,
                    duration_minutes=item.duration,
                    tips=item.tips,
                )
                for position, item in enumerate(draft.instructions, start=1)
            ],
        }

    @staticmethod
    def _apply_scalars(recipe: Recipe, draft: RecipeDraft) -> None:
        recipe.title = draft.title
        recipe.description = draft.description
        recipe.category = draft.category
        recipe.cuisine = draft.cuisine
        recipe.difficulty_level = draft.difficulty
        recipe.cook_time = draft.cook_time
        recipe.prep_time = draft.prep_time
        recipe.servings = draft.servings
        recipe.tags = draft.tags
        recipe.nutrition_info = draft.nutrition_info
        recipe.is_published = draft.is_published

    @staticmethod
    async def _shift_recipes_count(session: AsyncSession, user_id: int, delta: int) -> None:
        await session.execute(
            update(User)
            .where(User.id == user_id)
            .values(recipes_count=User.recipes_count + delta)
            .execution_options(synchronize_session=False)
        )

    async def load_owned(
        self, session: AsyncSession, recipe_id: int, actor: User, *, with_children: bool = False
    ) -> Recipe:
        """Загружает рецепт и проверяет, что его меняет автор."""
        query = select(Recipe).where(Recipe.id == recipe_id).execution_options(populate_existing=True)
        if with_children:
            query = query.options(
                selectinload(Recipe.ingredients),
                selectinload(Recipe.instructions),
                selectinload(Recipe.author),
            )
        result = await session.execute(query)
        recipe = result.scalar_one_or_none()
        if recipe is None:
            raise NotFoundError("Recipe")
        if recipe.user_id != actor.id:
            raise PermissionDeniedError("Unauthorized to modify this recipe")
        return recipe

    async def create(
        self,
        session: AsyncSession,
        author: User,
        draft: RecipeDraft,
        image: Optional[UploadFile] = None,
    ) -> int:
        stored_image = await self.images.save(image)
        try:
            async with transaction(session):
                recipe = Recipe(
                    user_id=author.id,
                    image_path=stored_image or draft.image_url,
                    **self._children(draft),
                )
                self._apply_scalars(recipe, draft)
                session.add(recipe)
                await session.flush()
                await self._shift_recipes_count(session, author.id, +1)
                recipe_id = recipe.id
        except Exception:
            self.images.discard(stored_image)
            raise
        logger.info("Recipe created", extra={"recipe_id": recipe_id, "user_id": author.id})
        return recipe_id

    async def update(
        self,
        session: AsyncSession,
        recipe_id: int,
        actor: User,
        draft: RecipeDraft,
        image: Optional[UploadFile] = None,
    ) -> int:
        recipe = await self.load_owned(session, recipe_id, actor, with_children=True)
        previous_image = recipe.image_path
        stored_image = await self.images.save(image)
        if stored_image:
            new_image = stored_image
        elif draft.image_url:
            new_image = draft.image_url
        else:
            new_image = previous_image

        try:
            async with transaction(session):
                self._apply_scalars(recipe, draft)
                recipe.image_path = new_image
                # Сначала удаляем все старые строки, потом вставляем новый список.
                recipe.ingredients.clear()
                recipe.instructions.clear()
                await session.flush()
                children = self._children(draft)
                recipe.ingredients.extend(children["ingredients"])
                recipe.instructions.extend(children["instructions"])
                await session.flush()
        except Exception:
            self.images.discard(stored_image)
            raise

        if previous_image and previous_image != new_image:
            self.images.discard(previous_image)
        logger.info("Recipe updated", extra={"recipe_id": recipe_id, "user_id": actor.id})
        return recipe_id

    async def delete(self, session: AsyncSession, recipe_id: int, actor: User) -> None:
        recipe = await self.load_owned(session, recipe_id, actor)
        image_path = recipe.image_path
        owner_id = recipe.user_id

        async with transaction(session):
            for model in RECIPE_DEPENDENTS:
                await session.execute(
                    delete(model)
                    .where(model.recipe_id == recipe_id)
                    .execution_options(synchronize_session=False)
                )
            await session.execute(
                delete(Recipe).where(Recipe.id == recipe_id).execution_options(synchronize_session=False)
            )
            await self._shift_recipes_count(session, owner_id, -1)
        session.expunge(recipe)

        self.images.discard(image_path)
        logger.info("Recipe deleted", extra={"recipe_id": recipe_id, "user_id": actor.id})


recipe_writer = RecipeWriter(image_store)
