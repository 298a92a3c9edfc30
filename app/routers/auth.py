from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import AuthenticationError, ConflictError, ValidationError
from app.core.security import create_access_token, hash_password, verify_password
from app.db.session import get_session, transaction
from app.dependencies.users import get_current_user_required
from app.models.user import USER_TYPE_CHEF, USER_TYPE_HOME_COOK, USER_TYPES, User
from app.schemas.auth import LoginRequest, RegisterRequest
from app.services.presenters import user_view

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/auth", tags=["auth"])

MIN_PASSWORD_LENGTH = 6
# Старый фронтенд присылает "user" для обычных пользователей.
LEGACY_USER_TYPES = {"user": USER_TYPE_HOME_COOK}


class AuthService:
    """Регистрация и вход: валидация, поиск пользователя, выдача токена."""

    @staticmethod
    def normalize_email(email: str) -> str:
        return email.strip().lower()

    @staticmethod
    def normalize_user_type(user_type: str | None) -> str:
        if not user_type:
            return USER_TYPE_HOME_COOK
        value = LEGACY_USER_TYPES.get(user_type.lower(), user_type.lower())
        if value not in USER_TYPES:
            raise ValidationError(f"User type must be one of: {', '.join(USER_TYPES)}")
        return value

    @staticmethod
    def validate_registration(payload: RegisterRequest) -> None:
        required = (payload.username, payload.email, payload.password, payload.first_name, payload.last_name)
        if not all(required):
            raise ValidationError("All required fields must be filled")
        if payload.password != payload.confirm_password:
            raise ValidationError("Passwords do not match")
        if len(payload.password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

    @staticmethod
    async def find_by_email(session: AsyncSession, email: str) -> User | None:
        result = await session.execute(select(User).where(User.email == email))
        return result.scalar_one_or_none()

    @staticmethod
    async def find_by_username(session: AsyncSession, username: str) -> User | None:
        result = await session.execute(select(User).where(User.username == username))
        return result.scalar_one_or_none()

    @staticmethod
    async def authenticate(session: AsyncSession, email: str, password: str) -> User | None:
        user = await AuthService.find_by_email(session, email)
        if not user or not verify_password(password, user.password_hash):
            return None
        return user

    @staticmethod
    async def create_user(session: AsyncSession, payload: RegisterRequest, email: str) -> User:
        user_type = AuthService.normalize_user_type(payload.user_type)
        async with transaction(session):
            user = User(
                username=payload.username,
                email=email,
                password_hash=hash_password(payload.password),
                first_name=payload.first_name,
                last_name=payload.last_name,
                user_type=user_type,
                bio=payload.bio or None,
                experience=payload.experience or None,
                speciality=payload.speciality or None,
                is_verified=user_type == USER_TYPE_CHEF,
            )
            session.add(user)
        await session.refresh(user)
        return user


auth_service = AuthService()


@router.post("/register", status_code=status.HTTP_201_CREATED, name="register")
async def register_user(payload: RegisterRequest, session: AsyncSession = Depends(get_session)):
    """Создаёт пользователя и сразу выдаёт токен."""
    auth_service.validate_registration(payload)
    email = auth_service.normalize_email(payload.email)

    if await auth_service.find_by_email(session, email):
        raise ConflictError("Email already exists. Please use a different email.")
    if await auth_service.find_by_username(session, payload.username):
        raise ConflictError("Username already taken. Please choose a different username.")

    user = await auth_service.create_user(session, payload, email)
    logger.info("User registered", extra={"user_id": user.id})
    return {
        "success": True,
        "message": "Registration successful",
        "token": create_access_token(user.id),
        "user": user_view(user, private=True),
    }


@router.post("/login", name="login")
async def login_user(payload: LoginRequest, session: AsyncSession = Depends(get_session)):
    if not payload.email or not payload.password:
        raise ValidationError("Email and password are required")
    user = await auth_service.authenticate(
        session, auth_service.normalize_email(payload.email), payload.password
    )
    if not user:
        raise AuthenticationError("Invalid email or password")
    return {
        "success": True,
        "message": "Login successful",
        "token": create_access_token(user.id),
        "user": user_view(user, private=True),
    }


@router.get("/me", name="me")
async def read_me(current_user: User = Depends(get_current_user_required)):
    return {"success": True, "user": user_view(current_user, private=True)}


@router.post("/logout", name="logout")
async def logout(current_user: User = Depends(get_current_user_required)):
    """Токены не хранятся на сервере: клиенту достаточно забыть свой."""
    return {"success": True, "message": "Logout successful"}
