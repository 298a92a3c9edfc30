from __future__ import annotations

import json
import logging
import re
from typing import Any, Optional

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.datastructures import UploadFile

from app.core.errors import ValidationError
from app.db.session import get_session
from app.dependencies.users import get_current_user, get_current_user_required
from app.models import Recipe, User
from app.schemas import parse_payload
from app.schemas.recipes import CommentInput, RecipeInput
from app.services.catalog import Page, recipe_catalog
from app.services.presenters import comment_view, pagination_view, recipe_presenter
from app.services.recipe_writer import RecipeDraft, build_draft, recipe_writer
from app.services.relations import like_toggler, save_toggler

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/recipes", tags=["recipes"])

INVALID_JSON_MESSAGE = "Invalid JSON data format"
FORM_CONTENT_TYPES = ("multipart/form-data", "application/x-www-form-urlencoded")
LEADING_INT = re.compile(r"\s*([+-]?\d+)")


def _query_int(value: Optional[str]) -> Optional[int]:
    """Число в начале строки запроса ("5abc" -> 5); без цифр значение считается отсутствующим."""
    if value is None:
        return None
    match = LEADING_INT.match(value)
    return int(match.group(1)) if match else None


class RecipeRequestReader:
    """Достаёт данные рецепта из multipart-формы (поле ``data`` + ``image``) или JSON-тела."""

    async def read(self, request: Request) -> tuple[RecipeDraft, Optional[UploadFile]]:
        content_type = request.headers.get("content-type", "")
        image: Optional[UploadFile] = None
        if content_type.startswith(FORM_CONTENT_TYPES):
            form = await request.form()
            upload = form.get("image")
            if isinstance(upload, UploadFile) and upload.filename:
                image = upload
            data = self._decode(form.get("data"))
        else:
            try:
                data = await request.json()
            except ValueError as exc:
                raise ValidationError(INVALID_JSON_MESSAGE) from exc
        payload = parse_payload(RecipeInput, data, "Invalid recipe data")
        return build_draft(payload), image

    @staticmethod
    def _decode(raw: Any) -> Any:
        if raw is None or isinstance(raw, UploadFile):
            raise ValidationError("Recipe data is required")
        try:
            return json.loads(raw)
        except ValueError as exc:
            raise ValidationError(INVALID_JSON_MESSAGE) from exc


request_reader = RecipeRequestReader()


async def _viewer_flags(session: AsyncSession, recipe: Recipe, viewer: Optional[User]) -> dict[str, bool]:
    if viewer is None:
        return {}
    return {
        "isLiked": await like_toggler.is_active(session, viewer.id, recipe.id),
        "isSaved": await save_toggler.is_active(session, viewer.id, recipe.id),
        "isOwner": recipe.user_id == viewer.id,
    }


async def _detail_view(
    session: AsyncSession, request: Request, recipe_id: int, viewer: Optional[User]
) -> dict[str, Any]:
    recipe = await recipe_catalog.load_detail(session, recipe_id, viewer)
    comments = await recipe_catalog.latest_comments(session, recipe_id)
    flags = await _viewer_flags(session, recipe, viewer)
    return recipe_presenter.detail(recipe, comments, str(request.base_url), flags)


@router.get("", name="recipes_list")
async def list_recipes(
    request: Request,
    page: Optional[str] = None,
    limit: Optional[str] = None,
    category: Optional[str] = None,
    tag: Optional[str] = None,
    session: AsyncSession = Depends(get_session),
):
    """Лента опубликованных рецептов, новые сначала."""
    window = Page.clamp(_query_int(page), _query_int(limit))
    recipes, total = await recipe_catalog.list_published(session, window, category, tag)
    base_url = str(request.base_url)
    return {
        "success": True,
        "recipes": [recipe_presenter.summary(recipe, base_url) for recipe in recipes],
        "pagination": pagination_view(window.page, window.limit, total),
    }


@router.get("/user/my-recipes", name="my_recipes")
async def list_my_recipes(
    request: Request,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user_required),
):
    recipes = await recipe_catalog.list_by_author(session, current_user.id, include_unpublished=True)
    base_url = str(request.base_url)
    return {
        "success": True,
        "recipes": [recipe_presenter.summary(recipe, base_url) for recipe in recipes],
        "total": len(recipes),
    }


@router.get("/saved", name="saved_recipes")
async def list_saved_recipes(
    request: Request,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user_required),
):
    rows = await recipe_catalog.list_saved(session, current_user.id)
    base_url = str(request.base_url)
    return {
        "success": True,
        "recipes": [recipe_presenter.saved(recipe, saved_at, base_url) for recipe, saved_at in rows],
        "total": len(rows),
    }


@router.post("", status_code=status.HTTP_201_CREATED, name="create_recipe")
async def create_recipe(
    request: Request,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user_required),
):
    draft, image = await request_reader.read(request)
    recipe_id = await recipe_writer.create(session, current_user, draft, image)
    return {
        "success": True,
        "message": "Recipe created successfully",
        "recipeId": recipe_id,
        "recipe": await _detail_view(session, request, recipe_id, current_user),
    }


@router.get("/{recipe_id}", name="recipe_detail")
async def read_recipe(
    request: Request,
    recipe_id: int,
    session: AsyncSession = Depends(get_session),
    viewer: Optional[User] = Depends(get_current_user),
):
    return {"success": True, "recipe": await _detail_view(session, request, recipe_id, viewer)}


@router.get("/{recipe_id}/edit", name="recipe_edit")
async def read_recipe_for_edit(
    request: Request,
    recipe_id: int,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user_required),
):
    recipe = await recipe_writer.load_owned(session, recipe_id, current_user, with_children=True)
    return {"success": True, "recipe": recipe_presenter.edit(recipe, str(request.base_url))}


@router.put("/{recipe_id}", name="update_recipe")
async def update_recipe(
    request: Request,
    recipe_id: int,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user_required),
):
    draft, image = await request_reader.read(request)
    await recipe_writer.update(session, recipe_id, current_user, draft, image)
    return {
        "success": True,
        "message": "Recipe updated successfully",
        "recipe": await _detail_view(session, request, recipe_id, current_user),
    }


@router.delete("/{recipe_id}", name="delete_recipe")
async def delete_recipe(
    recipe_id: int,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user_required),
):
    await recipe_writer.delete(session, recipe_id, current_user)
    return {"success": True, "message": "Recipe deleted successfully"}


@router.post("/{recipe_id}/toggle-like", name="toggle_like")
async def toggle_like(
    recipe_id: int,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user_required),
):
    result = await like_toggler.toggle(session, current_user.id, recipe_id)
    return {
        "success": True,
        "message": "Recipe liked" if result.active else "Recipe unliked",
        "isLiked": result.active,
        "likesCount": result.count,
    }


@router.post("/{recipe_id}/toggle-save", name="toggle_save")
async def toggle_save(
    recipe_id: int,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user_required),
):
    result = await save_toggler.toggle(session, current_user.id, recipe_id)
    return {
        "success": True,
        "message": "Recipe saved successfully" if result.active else "Recipe removed from saved",
        "isSaved": result.active,
        "savesCount": result.count,
    }


@router.post("/{recipe_id}/comments", status_code=status.HTTP_201_CREATED, name="add_comment")
async def add_comment(
    recipe_id: int,
    payload: CommentInput,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user_required),
):
    comment = await recipe_catalog.add_comment(
        session, recipe_id, current_user, payload.comment, payload.rating
    )
    logger.info("Comment added", extra={"recipe_id": recipe_id, "user_id": current_user.id})
    return {
        "success": True,
        "message": "Comment added successfully",
        "comment": comment_view(comment),
    }


@router.get("/{recipe_id}/comments", name="list_comments")
async def list_comments(
    recipe_id: int,
    page: Optional[str] = None,
    limit: Optional[str] = None,
    session: AsyncSession = Depends(get_session),
):
    recipe = await recipe_catalog.ensure_published(session, recipe_id)
    window = Page.clamp(_query_int(page), _query_int(limit))
    comments = await recipe_catalog.latest_comments(session, recipe_id, window)
    return {
        "success": True,
        "comments": [comment_view(comment) for comment in comments],
        "pagination": pagination_view(window.page, window.limit, recipe.comments_count),
    }
