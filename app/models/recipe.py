from __future__ import annotations

from datetime import datetime
from typing import Optional, TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import expression

from app.db.base import Base

if TYPE_CHECKING:
    from app.models.user import User

DEFAULT_DIFFICULTY = "Medium"
DIFFICULTY_LEVELS = ("Easy", "Medium", "Hard")


class Recipe(Base):
    __tablename__ = "recipes"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    title: Mapped[str] = mapped_column(String(255))
    description: Mapped[str] = mapped_column(Text())
    category: Mapped[str] = mapped_column(String(64), index=True)
    cuisine: Mapped[Optional[str]] = mapped_column(String(64))
    difficulty_level: Mapped[str] = mapped_column(
        String(16), default=DEFAULT_DIFFICULTY, server_default=DEFAULT_DIFFICULTY
    )
    cook_time: Mapped[Optional[str]] = mapped_column(String(64))
    prep_time: Mapped[Optional[str]] = mapped_column(String(64))
    servings: Mapped[Optional[int]] = mapped_column(Integer)
    # Теги хранятся строкой через запятую, в список разбираются при выдаче.
    tags: Mapped[Optional[str]] = mapped_column(Text())
    image_path: Mapped[Optional[str]] = mapped_column(String(512))
    nutrition_info: Mapped[Optional[str]] = mapped_column(Text())
    is_published: Mapped[bool] = mapped_column(
        Boolean, default=True, server_default=expression.true()
    )
    likes_count: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    saves_count: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    comments_count: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    author: Mapped["User"] = relationship("User", back_populates="recipes")
    ingredients: Mapped[list["RecipeIngredient"]] = relationship(
        "RecipeIngredient",
        back_populates="recipe",
        cascade="all, delete-orphan",
        order_by="RecipeIngredient.order_index",
    )
    instructions: Mapped[list["RecipeInstruction"]] = relationship(
        "RecipeInstruction",
        back_populates="recipe",
        cascade="all, delete-orphan",
        order_by="RecipeInstruction.step_number",
    )


class RecipeIngredient(Base):
    __tablename__ = "recipe_ingredients"

    id: Mapped[int] = mapped_column(primary_key=True)
    recipe_id: Mapped[int] = mapped_column(ForeignKey("recipes.id"), index=True)
    ingredient_name: Mapped[str] = mapped_column(String(255))
    quantity: Mapped[Optional[str]] = mapped_column(String(64))
    unit: Mapped[Optional[str]] = mapped_column(String(32))
    notes: Mapped[Optional[str]] = mapped_column(String(255))
    order_index: Mapped[int] = mapped_column(Integer)

    recipe: Mapped["Recipe"] = relationship("Recipe", back_populates="ingredients")


class RecipeInstruction(Base):
    __tablename__ = "recipe_instructions"

    id: Mapped[int] = mapped_column(primary_key=True)
    recipe_id: Mapped[int] = mapped_column(ForeignKey("recipes.id"), index=True)
    step_number: Mapped[int] = mapped_column(Integer)
    instruction_text: Mapped[str] = mapped_column(Text())
    duration_minutes: Mapped[Optional[int]] = mapped_column(Integer)
    tips: Mapped[Optional[str]] = mapped_column(Text())

    recipe: Mapped["Recipe"] = relationship("Recipe", back_populates="instructions")
