from __future__ import annotations

from datetime import datetime
from typing import Optional, TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import expression

from app.db.base import Base

if TYPE_CHECKING:
    from app.models.recipe import Recipe

USER_TYPE_HOME_COOK = "home_cook"
USER_TYPE_CHEF = "chef"
USER_TYPES = (USER_TYPE_HOME_COOK, USER_TYPE_CHEF)


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)
    username: Mapped[str] = mapped_column(String(50), unique=True, index=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    password_hash: Mapped[str] = mapped_column(String(255))
    first_name: Mapped[Optional[str]] = mapped_column(String(100))
    last_name: Mapped[Optional[str]] = mapped_column(String(100))
    user_type: Mapped[str] = mapped_column(
        String(16), default=USER_TYPE_HOME_COOK, server_default=USER_TYPE_HOME_COOK
    )
    bio: Mapped[Optional[str]] = mapped_column(Text())
    experience: Mapped[Optional[str]] = mapped_column(String(255))
    speciality: Mapped[Optional[str]] = mapped_column(String(255))
    is_verified: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=expression.false()
    )
    # Денормализованные счётчики, меняются только вместе со строками-источниками.
    recipes_count: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    followers_count: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    recipes: Mapped[list["Recipe"]] = relationship("Recipe", back_populates="author")

    @property
    def display_name(self) -> str:
        full = f"{self.first_name or ''} {self.last_name or ''}".strip()
        return full or self.username
