"""Пул соединений, сессии и единица работы.

Каждый запрос получает собственную ``AsyncSession`` через ``get_session`` и
возвращает соединение в пул на любом пути выхода. Изменения, затрагивающие
больше одной таблицы, выполняются внутри ``transaction()``: commit при успехе,
явный rollback перед тем, как ошибка уйдёт выше.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from app.core.config import Settings, settings
from app.core.errors import ConflictError, StorageError

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"


def build_engine(config: Settings) -> AsyncEngine:
    options: dict = {}
    if not config.database_url.startswith("sqlite"):
        options.update(
            pool_size=config.db_pool_size,
            max_overflow=config.db_max_overflow,
            pool_timeout=config.db_pool_timeout,
            pool_pre_ping=True,
            pool_recycle=3600,
            isolation_level=config.db_isolation_level,
        )
    return create_async_engine(config.database_url, **options)


engine = build_engine(settings)
SessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


def is_unique_violation(exc: IntegrityError) -> bool:
    """Нарушение уникального ключа: SQLSTATE 23505 у PostgreSQL, текст ошибки у SQLite."""
    orig = exc.orig
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if code:
        return code == UNIQUE_VIOLATION
    message = str(orig).lower()
    return "unique" in message or "duplicate key" in message


async def get_session() -> AsyncIterator[AsyncSession]:
    async with SessionLocal() as session:
        yield session


@asynccontextmanager
async def transaction(session: AsyncSession) -> AsyncIterator[AsyncSession]:
    """Фиксирует всё, что сделано внутри блока, либо откатывает целиком."""
    try:
        yield session
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        if is_unique_violation(exc):
            logger.warning("Unique violation, transaction rolled back: %s", exc.orig)
            raise ConflictError("The change conflicts with existing data") from exc
        logger.error("Integrity error, transaction rolled back: %s", exc.orig)
        raise StorageError("Database operation failed") from exc
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.error("Database error, transaction rolled back: %s", exc)
        raise StorageError("Database operation failed") from exc
    except Exception:
        await session.rollback()
        raise
