import hashlib
import secrets

from itsdangerous import BadSignature, URLSafeTimedSerializer

from app.core.config import settings

TOKEN_SALT = "recipeshare.access-token"


def hash_password(raw_password: str) -> str:
    """Return salted SHA256 hash for a raw password."""

    salt = secrets.token_hex(16)
    digest = hashlib.sha256(f"{salt}{raw_password}".encode("utf-8")).hexdigest()
    return f"{salt}${digest}"


def verify_password(raw_password: str, stored_hash: str) -> bool:
    try:
        salt, checksum = stored_hash.split("$", 1)
    except ValueError:
        return False
    digest = hashlib.sha256(f"{salt}{raw_password}".encode("utf-8")).hexdigest()
    return secrets.compare_digest(digest, checksum)


def _serializer(secret_key: str | None = None) -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(secret_key or settings.secret_key, salt=TOKEN_SALT)


def create_access_token(user_id: int, secret_key: str | None = None) -> str:
    """Подписывает bearer-токен с идентификатором пользователя."""
    return _serializer(secret_key).dumps({"id": user_id})


def decode_access_token(
    token: str, max_age: int | None = None, secret_key: str | None = None
) -> int | None:
    """Возвращает id пользователя или None, если подпись неверна либо токен истёк."""
    try:
        payload = _serializer(secret_key).loads(
            token, max_age=settings.token_max_age if max_age is None else max_age
        )
    except BadSignature:
        return None
    user_id = payload.get("id") if isinstance(payload, dict) else None
    if not isinstance(user_id, int):
        return None
    return user_id
