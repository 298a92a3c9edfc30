"""Преобразование строк базы во вложенные JSON-представления.

Все функции чистые: ничего не читают из базы и не меняют объекты. Пустые
необязательные поля превращаются в ``None`` или пустой список, а не в ошибку.
"""

from __future__ import annotations

import json
import math
from datetime import datetime
from typing import Any, Iterable, Optional

from app.models import Recipe, RecipeComment, User
from app.services.cover_resolver import RecipeCoverResolver, recipe_cover_resolver


def split_tags(raw: Optional[str]) -> list[str]:
    if not raw:
        return []
    return [tag.strip() for tag in raw.split(",") if tag.strip()]


def parse_nutrition(raw: Optional[str]) -> Any:
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return None


def author_view(user: Optional[User], *, detailed: bool = False) -> Optional[dict[str, Any]]:
    if user is None:
        return None
    view = {
        "id": user.id,
        "username": user.username,
        "name": user.display_name,
        "role": user.user_type,
        "isVerified": bool(user.is_verified),
    }
    if detailed:
        view["bio"] = user.bio
    return view


def user_view(user: User, *, private: bool = False) -> dict[str, Any]:
    """Профиль пользователя; email показывается только владельцу."""
    view: dict[str, Any] = {
        "id": user.id,
        "username": user.username,
        "name": user.display_name,
        "firstName": user.first_name,
        "lastName": user.last_name,
        "role": user.user_type,
        "userType": user.user_type,
        "bio": user.bio,
        "experience": user.experience,
        "speciality": user.speciality,
        "isVerified": bool(user.is_verified),
        "recipesCount": user.recipes_count,
        "followersCount": user.followers_count,
        "createdAt": user.created_at,
        "updatedAt": user.updated_at,
    }
    if private:
        view["email"] = user.email
    return view


def comment_view(comment: RecipeComment) -> dict[str, Any]:
    author = comment.author
    return {
        "id": comment.id,
        "text": comment.comment_text,
        "rating": comment.rating,
        "author": {
            "username": author.username,
            "name": author.display_name,
            "role": author.user_type,
        }
        if author is not None
        else None,
        "createdAt": comment.created_at,
    }


def pagination_view(page: int, limit: int, total: int) -> dict[str, Any]:
    total_pages = math.ceil(total / limit) if limit else 0
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "totalPages": total_pages,
        "hasNext": page < total_pages,
        "hasPrev": page > 1,
    }


class RecipePresenter:
    """Собирает представления рецепта для списков, детальной страницы и редактора."""

    def __init__(self, cover_resolver: RecipeCoverResolver):
        self.cover_resolver = cover_resolver

    def summary(self, recipe: Recipe, base_url: str = "") -> dict[str, Any]:
        return {
            "id": recipe.id,
            "title": recipe.title,
            "description": recipe.description,
            "image": self.cover_resolver.resolve(recipe.image_path, base_url),
            "author": author_view(recipe.author),
            "category": recipe.category,
            "cuisine": recipe.cuisine,
            "difficulty": recipe.difficulty_level,
            "cookTime": recipe.cook_time,
            "prepTime": recipe.prep_time,
            "servings": recipe.servings,
            "tags": split_tags(recipe.tags),
            "likes": recipe.likes_count,
            "saves": recipe.saves_count,
            "commentsCount": recipe.comments_count,
            "isPublished": bool(recipe.is_published),
            "createdAt": recipe.created_at,
            "updatedAt": recipe.updated_at,
        }

    def detail(
        self,
        recipe: Recipe,
        comments: Iterable[RecipeComment] = (),
        base_url: str = "",
        viewer_flags: Optional[dict[str, bool]] = None,
    ) -> dict[str, Any]:
        view = self.summary(recipe, base_url)
        view["author"] = author_view(recipe.author, detailed=True)
        view["nutritionInfo"] = parse_nutrition(recipe.nutrition_info)
        view["ingredients"] = [
            {
                "id": ingredient.id,
                "name": ingredient.ingredient_name,
                "quantity": ingredient.quantity,
                "unit": ingredient.unit,
                "notes": ingredient.notes,
                "orderIndex": ingredient.order_index,
            }
            for ingredient in recipe.ingredients
        ]
        view["instructions"] = [
            {
                "id": step.id,
                "stepNumber": step.step_number,
                "instruction": step.instruction_text,
                "duration": step.duration_minutes,
                "tips": step.tips,
            }
            for step in recipe.instructions
        ]
        view["comments"] = [comment_view(comment) for comment in comments]
        if viewer_flags:
            view.update(viewer_flags)
        return view

    def edit(self, recipe: Recipe, base_url: str = "") -> dict[str, Any]:
        """Сырые значения для формы редактирования (в том же формате, что и ввод)."""
        return {
            "id": recipe.id,
            "title": recipe.title,
            "description": recipe.description,
            "category": recipe.category,
            "cuisine": recipe.cuisine,
            "difficulty": recipe.difficulty_level,
            "cookTime": recipe.cook_time,
            "prepTime": recipe.prep_time,
            "servings": recipe.servings,
            "tags": split_tags(recipe.tags),
            "image": self.cover_resolver.resolve(recipe.image_path, base_url),
            "imagePath": recipe.image_path,
            "nutritionInfo": parse_nutrition(recipe.nutrition_info),
            "isPublished": bool(recipe.is_published),
            "ingredients": [
                {
                    "name": ingredient.ingredient_name,
                    "quantity": ingredient.quantity,
                    "unit": ingredient.unit,
                    "notes": ingredient.notes,
                }
                for ingredient in recipe.ingredients
            ],
            "instructions": [
                {
                    "step": step.step_number,
                    "text": step.instruction_text,
                    "duration": step.duration_minutes,
                    "tips": step.tips,
                }
                for step in recipe.instructions
            ],
            "createdAt": recipe.created_at,
            "updatedAt": recipe.updated_at,
        }

    def saved(self, recipe: Recipe, saved_at: Optional[datetime], base_url: str = "") -> dict[str, Any]:
        view = self.summary(recipe, base_url)
        view["savedAt"] = saved_at
        return view


recipe_presenter = RecipePresenter(recipe_cover_resolver)
