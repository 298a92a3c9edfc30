from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import AuthenticationError
from app.core.security import decode_access_token
from app.db.session import get_session
from app.models.user import User

bearer_scheme = HTTPBearer(auto_error=False)


async def _resolve_user(session: AsyncSession, token: str) -> Optional[User]:
    user_id = decode_access_token(token)
    if user_id is None:
        return None
    return await session.get(User, user_id)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    session: AsyncSession = Depends(get_session),
) -> Optional[User]:
    """Пользователь из bearer-токена; для анонимных и неверных токенов None."""
    if credentials is None or not credentials.credentials:
        return None
    return await _resolve_user(session, credentials.credentials)


async def get_current_user_required(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    session: AsyncSession = Depends(get_session),
) -> User:
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Access token required")
    user = await _resolve_user(session, credentials.credentials)
    if user is None:
        raise AuthenticationError("Invalid token")
    return user
