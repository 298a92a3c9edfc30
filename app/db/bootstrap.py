from __future__ import annotations

import logging

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from app.db import base

logger = logging.getLogger(__name__)

# Пересчёт денормализованных счётчиков по таблицам-источникам.
COUNTER_RESYNC_STATEMENTS = (
    "UPDATE users SET recipes_count = "
    "(SELECT COUNT(*) FROM recipes WHERE recipes.user_id = users.id)",
    "UPDATE users SET followers_count = "
    "(SELECT COUNT(*) FROM followers WHERE followers.followed_id = users.id)",
    "UPDATE recipes SET likes_count = "
    "(SELECT COUNT(*) FROM recipe_likes WHERE recipe_likes.recipe_id = recipes.id)",
    "UPDATE recipes SET saves_count = "
    "(SELECT COUNT(*) FROM saved_recipes WHERE saved_recipes.recipe_id = recipes.id)",
    "UPDATE recipes SET comments_count = "
    "(SELECT COUNT(*) FROM recipe_comments WHERE recipe_comments.recipe_id = recipes.id)",
)


async def resync_counters(conn: AsyncConnection) -> None:
    for statement in COUNTER_RESYNC_STATEMENTS:
        await conn.execute(text(statement))


async def bootstrap_database(engine: AsyncEngine, *, resync: bool = True) -> None:
    import app.models  # noqa: F401 Регистрируем SQLAlchemy-модели перед create_all.

    async with engine.begin() as conn:
        await conn.run_sync(base.Base.metadata.create_all)
        if resync:
            await resync_counters(conn)
    logger.info("Database schema ready")
