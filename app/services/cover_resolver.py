from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from app.core.config import settings

EXTERNAL_SCHEMES = ("http://", "https://")


def is_external_url(path: str) -> bool:
    return path.lower().startswith(EXTERNAL_SCHEMES)


@dataclass(frozen=True)
class RecipeCoverResolver:
    """Строит абсолютный адрес обложки рецепта из пути, сохранённого в базе."""

    public_base_url: Optional[str] = None

    def resolve(self, image_path: Optional[str], request_base_url: str = "") -> Optional[str]:
        """Возвращает абсолютный URL обложки или None, если обложки нет."""
        if not image_path:
            return None
        if is_external_url(image_path):
            return image_path
        base = (self.public_base_url or request_base_url or "").rstrip("/")
        relative = image_path.lstrip("/")
        return f"{base}/{relative}" if base else f"/{relative}"


recipe_cover_resolver = RecipeCoverResolver(public_base_url=settings.public_base_url)
