from __future__ import annotations

import logging
import uuid
from pathlib import Path
from typing import Optional

from starlette.datastructures import UploadFile

from app.core.config import settings
from app.core.errors import ValidationError
from app.services.cover_resolver import is_external_url

logger = logging.getLogger(__name__)


class ImageStore:
    """Сохраняет загруженные обложки на диск и удаляет их по пути из базы."""

    def __init__(self, upload_dir: Path, max_bytes: int, url_prefix: str = "uploads"):
        self.upload_dir = upload_dir
        self.upload_dir.mkdir(parents=True, exist_ok=True)
        self.max_bytes = max_bytes
        self.url_prefix = url_prefix.strip("/")

    async def save(self, upload: Optional[UploadFile]) -> Optional[str]:
        """Проверяет и сохраняет файл, возвращает относительный путь для базы."""
        if upload is None or not upload.filename:
            return None
        content_type = (upload.content_type or "").lower()
        if not content_type.startswith("image/"):
            raise ValidationError("Only image files are allowed!")
        data = await upload.read()
        if len(data) > self.max_bytes:
            raise ValidationError(f"Image must not exceed {self.max_bytes // (1024 * 1024)} MB")
        suffix = Path(upload.filename).suffix.lower()
        if not suffix[1:].isalnum():
            suffix = ""
        filename = f"recipe-{uuid.uuid4().hex}{suffix}"
        (self.upload_dir / filename).write_bytes(data)
        return f"{self.url_prefix}/{filename}"

    def _local_file(self, stored_path: str) -> Optional[Path]:
        prefix = f"{self.url_prefix}/"
        if is_external_url(stored_path) or not stored_path.startswith(prefix):
            return None
        name = stored_path[len(prefix):]
        if not name or "/" in name or "\\" in name or name in {".", ".."}:
            return None
        return self.upload_dir / name

    def discard(self, stored_path: Optional[str]) -> bool:
        """Удаляет файл обложки; ошибка только логируется и не пробрасывается."""
        if not stored_path:
            return False
        target = self._local_file(stored_path)
        if target is None:
            return False
        try:
            target.unlink()
        except FileNotFoundError:
            logger.info("Image already gone", extra={"image_path": stored_path})
            return False
        except OSError as exc:
            logger.warning("Failed to remove image: %s", exc, extra={"image_path": stored_path})
            return False
        return True


image_store = ImageStore(settings.upload_dir, settings.upload_max_bytes)
