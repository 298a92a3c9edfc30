"""Общие фикстуры: чистая in-memory база на каждый тест и HTTP-клиент приложения."""

import os
import tempfile

# Настройки читаются при импорте app.*, поэтому окружение задаём до него.
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["ENVIRONMENT"] = "test"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["LOG_FORMAT"] = "text"
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="recipeshare-uploads-"))

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401
from app.core.config import settings
from app.db.base import Base
from app.db.session import get_session
from app.main import app as application


@pytest.fixture
async def test_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def client(session_factory):
    async def override_get_session():
        async with session_factory() as session:
            yield session

    application.dependency_overrides[get_session] = override_get_session
    async with AsyncClient(
        transport=ASGITransport(app=application, raise_app_exceptions=False),
        base_url="http://test",
    ) as c:
        yield c
    application.dependency_overrides.clear()


@pytest.fixture
def upload_dir():
    return settings.upload_dir


def registration(username: str, **overrides) -> dict:
    payload = {
        "username": username,
        "email": f"{username}@example.com",
        "password": "secret123",
        "confirmPassword": "secret123",
        "firstName": username.capitalize(),
        "lastName": "Tester",
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def register(client):
    """Регистрирует пользователя и возвращает (user, заголовки авторизации)."""

    async def _register(username: str = "alice", **overrides):
        res = await client.post("/api/auth/register", json=registration(username, **overrides))
        assert res.status_code == 201, res.text
        body = res.json()
        return body["user"], {"Authorization": f"Bearer {body['token']}"}

    return _register


def recipe_payload(**overrides) -> dict:
    payload = {
        "title": "Soup",
        "description": "Warm",
        "category": "Main Course",
        "ingredients": [
            {"name": "Water", "quantity": "1", "unit": "l"},
            {"name": "Salt", "quantity": 2, "unit": "g"},
        ],
        "instructions": [
            {"text": "Boil the water", "duration": 10},
            {"text": "Add salt"},
        ],
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def create_recipe(client):
    async def _create(headers: dict, **overrides) -> dict:
        res = await client.post("/api/recipes", json=recipe_payload(**overrides), headers=headers)
        assert res.status_code == 201, res.text
        return res.json()["recipe"]

    return _create


@pytest.fixture
def recipe_data():
    return recipe_payload


@pytest.fixture
def registration_data():
    return registration
