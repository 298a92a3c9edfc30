from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import func, literal, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.errors import NotFoundError, ValidationError
from app.db.session import transaction
from app.models import Recipe, RecipeComment, SavedRecipe, User

MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 10
LATEST_COMMENTS = 10
RATING_RANGE = (1, 5)


@dataclass(frozen=True)
class Page:
    page: int
    limit: int

    @classmethod
    def clamp(cls, page: Optional[int], limit: Optional[int]) -> "Page":
        """Страница от 1, размер от 1 до MAX_PAGE_SIZE; ноль и мусор заменяются значениями по умолчанию."""
        safe_page = max(1, page or 1)
        safe_limit = max(1, min(MAX_PAGE_SIZE, limit or DEFAULT_PAGE_SIZE))
        return cls(page=safe_page, limit=safe_limit)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class RecipeCatalog:
    """Выборки рецептов и комментариев для лент, профилей и детальной страницы."""

    def base_query(self):
        return select(Recipe).options(selectinload(Recipe.author)).execution_options(
            populate_existing=True
        )

    def detail_query(self):
        return self.base_query().options(
            selectinload(Recipe.ingredients),
            selectinload(Recipe.instructions),
        )

    def apply_filters(self, query, category: Optional[str] = None, tag: Optional[str] = None):
        if category:
            query = query.where(func.lower(Recipe.category) == category.strip().lower())
        if tag:
            wrapped = func.lower(literal(",") + func.coalesce(Recipe.tags, "") + literal(","))
            query = query.where(wrapped.contains(f",{tag.strip().lower()},", autoescape=True))
        return query

    async def list_published(
        self,
        session: AsyncSession,
        page: Page,
        category: Optional[str] = None,
        tag: Optional[str] = None,
    ) -> tuple[list[Recipe], int]:
        conditions = self.apply_filters(select(Recipe.id).where(Recipe.is_published.is_(True)), category, tag)
        total = await session.scalar(select(func.count()).select_from(conditions.subquery()))
        query = self.apply_filters(
            self.base_query().where(Recipe.is_published.is_(True)), category, tag
        )
        result = await session.execute(
            query.order_by(Recipe.created_at.desc(), Recipe.id.desc()).offset(page.offset).limit(page.limit)
        )
        return list(result.scalars().all()), int(total or 0)

    async def list_by_author(
        self, session: AsyncSession, user_id: int, *, include_unpublished: bool = False
    ) -> list[Recipe]:
        query = self.base_query().where(Recipe.user_id == user_id)
        if not include_unpublished:
            query = query.where(Recipe.is_published.is_(True))
        result = await session.execute(query.order_by(Recipe.created_at.desc(), Recipe.id.desc()))
        return list(result.scalars().all())

    async def list_saved(self, session: AsyncSession, user_id: int) -> list[tuple[Recipe, datetime]]:
        query = (
            self.base_query()
            .add_columns(SavedRecipe.created_at)
            .join(SavedRecipe, SavedRecipe.recipe_id == Recipe.id)
            .where(SavedRecipe.user_id == user_id, Recipe.is_published.is_(True))
            .order_by(SavedRecipe.created_at.desc(), SavedRecipe.id.desc())
        )
        result = await session.execute(query)
        return [(recipe, saved_at) for recipe, saved_at in result.all()]

    async def load_detail(
        self, session: AsyncSession, recipe_id: int, viewer: Optional[User] = None
    ) -> Recipe:
        """Рецепт с ингредиентами и шагами; черновики видны только автору."""
        result = await session.execute(self.detail_query().where(Recipe.id == recipe_id))
        recipe = result.scalar_one_or_none()
        if recipe is None:
            raise NotFoundError("Recipe")
        if not recipe.is_published and (viewer is None or viewer.id != recipe.user_id):
            raise NotFoundError("Recipe")
        return recipe

    async def latest_comments(
        self, session: AsyncSession, recipe_id: int, page: Optional[Page] = None
    ) -> list[RecipeComment]:
        page = page or Page(page=1, limit=LATEST_COMMENTS)
        result = await session.execute(
            select(RecipeComment)
            .options(selectinload(RecipeComment.author))
            .where(RecipeComment.recipe_id == recipe_id)
            .order_by(RecipeComment.created_at.desc(), RecipeComment.id.desc())
            .offset(page.offset)
            .limit(page.limit)
        )
        return list(result.scalars().all())

    async def ensure_published(self, session: AsyncSession, recipe_id: int) -> Recipe:
        recipe = await session.scalar(
            select(Recipe)
            .where(Recipe.id == recipe_id, Recipe.is_published.is_(True))
            .execution_options(populate_existing=True)
        )
        if recipe is None:
            raise NotFoundError("Recipe")
        return recipe

    async def add_comment(
        self,
        session: AsyncSession,
        recipe_id: int,
        author: User,
        text: Optional[str],
        rating: Optional[int] = None,
    ) -> RecipeComment:
        """Добавляет комментарий и в той же транзакции увеличивает счётчик комментариев."""
        if not text:
            raise ValidationError("Comment text is required")
        if rating is not None and not RATING_RANGE[0] <= rating <= RATING_RANGE[1]:
            raise ValidationError(f"Rating must be between {RATING_RANGE[0]} and {RATING_RANGE[1]}")
        await self.ensure_published(session, recipe_id)

        async with transaction(session):
            comment = RecipeComment(
                recipe_id=recipe_id, user_id=author.id, comment_text=text, rating=rating
            )
            session.add(comment)
            await session.flush()
            await session.execute(
                update(Recipe)
                .where(Recipe.id == recipe_id)
                .values(comments_count=Recipe.comments_count + 1)
                .execution_options(synchronize_session=False)
            )
            comment_id = comment.id

        result = await session.execute(
            select(RecipeComment)
            .options(selectinload(RecipeComment.author))
            .where(RecipeComment.id == comment_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()


recipe_catalog = RecipeCatalog()
