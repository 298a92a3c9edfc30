"""Переключаемые связи пользователь -> рецепт/пользователь (лайки, сохранения, подписки).

Наличие строки в таблице связи и есть состояние. Каждое переключение в одной
транзакции вставляет или удаляет строку и сдвигает счётчик на владельце на
единицу; в ответ уходит значение счётчика, перечитанное из базы.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy import delete, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import NotFoundError, ValidationError
from app.db.session import transaction
from app.models import Follower, Recipe, RecipeLike, SavedRecipe, User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RelationKind:
    """Описывает связь: таблицу, её колонки и счётчик на целевой сущности."""

    name: str
    model: Any
    actor_column: str
    target_column: str
    target_model: Any
    target_label: str
    counter_column: str
    published_only: bool = False
    allow_self: bool = True
    self_error: str = "Operation not allowed on yourself"


@dataclass(frozen=True)
class ToggleResult:
    active: bool
    count: int


class RelationToggler:
    def __init__(self, kind: RelationKind):
        self.kind = kind
        self._actor = getattr(kind.model, kind.actor_column)
        self._target = getattr(kind.model, kind.target_column)
        self._counter = getattr(kind.target_model, kind.counter_column)

    def _membership(self, actor_id: int, target_id: int):
        return (self._actor == actor_id, self._target == target_id)

    async def ensure_target(self, session: AsyncSession, target_id: int) -> None:
        target_model = self.kind.target_model
        query = select(target_model.id).where(target_model.id == target_id)
        if self.kind.published_only:
            query = query.where(target_model.is_published.is_(True))
        if await session.scalar(query) is None:
            raise NotFoundError(self.kind.target_label)

    async def is_active(self, session: AsyncSession, actor_id: int, target_id: int) -> bool:
        row_id = await session.scalar(
            select(self.kind.model.id).where(*self._membership(actor_id, target_id))
        )
        return row_id is not None

    async def read_count(self, session: AsyncSession, target_id: int) -> int:
        target_model = self.kind.target_model
        value = await session.scalar(select(self._counter).where(target_model.id == target_id))
        return int(value or 0)

    async def toggle(self, session: AsyncSession, actor_id: int, target_id: int) -> ToggleResult:
        if not self.kind.allow_self and actor_id == target_id:
            raise ValidationError(self.kind.self_error)
        await self.ensure_target(session, target_id)

        target_model = self.kind.target_model
        async with transaction(session):
            active = not await self.is_active(session, actor_id, target_id)
            if active:
                await session.execute(
                    insert(self.kind.model).values(
                        {self.kind.actor_column: actor_id, self.kind.target_column: target_id}
                    )
                )
                delta = 1
            else:
                await session.execute(
                    delete(self.kind.model).where(*self._membership(actor_id, target_id))
                )
                delta = -1
            await session.execute(
                update(target_model)
                .where(target_model.id == target_id)
                .values({self.kind.counter_column: self._counter + delta})
                .execution_options(synchronize_session=False)
            )

        count = await self.read_count(session, target_id)
        logger.info(
            "%s toggled to %s",
            self.kind.name,
            active,
            extra={"user_id": actor_id, "target_id": target_id},
        )
        return ToggleResult(active=active, count=count)


LIKES = RelationKind(
    name="like",
    model=RecipeLike,
    actor_column="user_id",
    target_column="recipe_id",
    target_model=Recipe,
    target_label="Recipe",
    counter_column="likes_count",
    published_only=True,
)
SAVES = RelationKind(
    name="save",
    model=SavedRecipe,
    actor_column="user_id",
    target_column="recipe_id",
    target_model=Recipe,
    target_label="Recipe",
    counter_column="saves_count",
    published_only=True,
)
FOLLOWS = RelationKind(
    name="follow",
    model=Follower,
    actor_column="follower_id",
    target_column="followed_id",
    target_model=User,
    target_label="User",
    counter_column="followers_count",
    allow_self=False,
    self_error="Cannot follow yourself",
)

like_toggler = RelationToggler(LIKES)
save_toggler = RelationToggler(SAVES)
follow_toggler = RelationToggler(FOLLOWS)
