from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import NotFoundError, ValidationError
from app.core.security import hash_password, verify_password
from app.db.session import get_session, transaction
from app.dependencies.users import get_current_user_required
from app.models.user import User
from app.routers.auth import MIN_PASSWORD_LENGTH
from app.schemas.users import PasswordChange, ProfilePatch, ProfileUpdate
from app.services.catalog import recipe_catalog
from app.services.presenters import recipe_presenter, user_view
from app.services.relations import follow_toggler

router = APIRouter(prefix="/users", tags=["users"])

REQUIRED_PROFILE_FIELDS = ("first_name", "last_name")
# Имена полей в ответе PATCH совпадают с ключами запроса.
PATCH_FIELD_NAMES = {
    "first_name": "firstName",
    "last_name": "lastName",
    "bio": "bio",
    "experience": "experience",
    "speciality": "speciality",
}


class ProfileService:
    """Сервис профиля: обновление полей и смена пароля."""

    @staticmethod
    async def load_user(session: AsyncSession, user_id: int) -> User:
        user = await session.get(User, user_id)
        if user is None:
            raise NotFoundError("User")
        return user

    @staticmethod
    async def apply(session: AsyncSession, user: User, changes: dict[str, str | None]) -> User:
        async with transaction(session):
            for name, value in changes.items():
                setattr(user, name, value)
        await session.refresh(user)
        return user

    @staticmethod
    def full_update_changes(payload: ProfileUpdate) -> dict[str, str | None]:
        if not payload.first_name or not payload.last_name:
            raise ValidationError("First name and last name are required")
        return {
            "first_name": payload.first_name,
            "last_name": payload.last_name,
            "bio": payload.bio or None,
            "experience": payload.experience or None,
            "speciality": payload.speciality or None,
        }

    @staticmethod
    def patch_changes(payload: ProfilePatch) -> dict[str, str | None]:
        changes = payload.changes()
        if not changes:
            raise ValidationError("No valid fields to update")
        for name in REQUIRED_PROFILE_FIELDS:
            if name in changes and not changes[name]:
                raise ValidationError(f"{PATCH_FIELD_NAMES[name]} cannot be empty")
        return {name: value or None for name, value in changes.items()}

    @staticmethod
    def validate_password_change(payload: PasswordChange, user: User) -> None:
        if not verify_password(payload.current_password, user.password_hash):
            raise ValidationError("Current password is incorrect")
        if len(payload.new_password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        if payload.new_password != payload.confirm_password:
            raise ValidationError("Passwords do not match")


profile_service = ProfileService()


@router.get("/profile", name="own_profile")
async def read_own_profile(current_user: User = Depends(get_current_user_required)):
    return {
        "success": True,
        "message": "Profile fetched successfully",
        "user": user_view(current_user, private=True),
    }


@router.put("/profile", name="update_profile")
async def update_profile(
    payload: ProfileUpdate,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user_required),
):
    """Полностью заменяет редактируемые поля профиля."""
    changes = profile_service.full_update_changes(payload)
    user = await profile_service.apply(session, current_user, changes)
    return {
        "success": True,
        "message": "Profile updated successfully",
        "user": user_view(user, private=True),
    }


@router.patch("/profile", name="patch_profile")
async def patch_profile(
    payload: ProfilePatch,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user_required),
):
    """Меняет только переданные поля из фиксированного списка."""
    changes = profile_service.patch_changes(payload)
    user = await profile_service.apply(session, current_user, changes)
    return {
        "success": True,
        "message": "Profile updated successfully",
        "user": user_view(user, private=True),
        "updatedFields": [PATCH_FIELD_NAMES[name] for name in changes],
    }


@router.post("/profile/password", name="change_password")
async def change_password(
    payload: PasswordChange,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user_required),
):
    profile_service.validate_password_change(payload, current_user)
    await profile_service.apply(session, current_user, {"password_hash": hash_password(payload.new_password)})
    return {"success": True, "message": "Password updated successfully"}


@router.get("/profile/{user_id}", name="user_profile")
async def read_user_profile(
    user_id: int,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user_required),
):
    """Публичный профиль любого пользователя с отметками для смотрящего."""
    user = await profile_service.load_user(session, user_id)
    is_own = user.id == current_user.id
    return {
        "success": True,
        "message": "Profile fetched successfully",
        "user": {
            **user_view(user, private=is_own),
            "isOwnProfile": is_own,
            "isFollowing": False if is_own else await follow_toggler.is_active(session, current_user.id, user.id),
        },
    }


@router.post("/{user_id}/follow", name="toggle_follow")
async def toggle_follow(
    user_id: int,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user_required),
):
    result = await follow_toggler.toggle(session, current_user.id, user_id)
    return {
        "success": True,
        "message": "User followed" if result.active else "User unfollowed",
        "isFollowing": result.active,
        "followersCount": result.count,
    }


@router.get("/{user_id}/recipes", name="user_recipes")
async def list_user_recipes(
    request: Request,
    user_id: int,
    session: AsyncSession = Depends(get_session),
):
    await profile_service.load_user(session, user_id)
    recipes = await recipe_catalog.list_by_author(session, user_id)
    base_url = str(request.base_url)
    return {
        "success": True,
        "recipes": [recipe_presenter.summary(recipe, base_url) for recipe in recipes],
        "total": len(recipes),
    }


@router.get("/{username}", name="user_by_username")
async def read_user_by_username(username: str, session: AsyncSession = Depends(get_session)):
    result = await session.execute(select(User).where(User.username == username))
    user = result.scalar_one_or_none()
    if user is None:
        raise NotFoundError("User")
    return {"success": True, "user": user_view(user)}
