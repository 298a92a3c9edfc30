"""Настройка логирования: JSON для продакшена, текст для локальной разработки."""

import json
import logging
from datetime import datetime, timezone

EXTRA_FIELDS = ("user_id", "recipe_id", "target_id", "error_code", "path", "image_path")


class JSONFormatter(logging.Formatter):
    """Форматирует запись лога в одну JSON-строку."""

    def format(self, record: logging.LogRecord) -> str:
        log = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in EXTRA_FIELDS:
            value = record.__dict__.get(key)
            if value is not None:
                log[key] = value
        if record.exc_info:
            log["exception"] = self.formatException(record.exc_info)
        return json.dumps(log, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO", fmt: str = "json") -> None:
    handler = logging.StreamHandler()
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    root = logging.getLogger()
    # Повторный вызов (перезапуск lifespan в тестах) не должен дублировать вывод.
    for existing in list(root.handlers):
        if getattr(existing, "_recipeshare_handler", False):
            root.removeHandler(existing)
    handler._recipeshare_handler = True  # type: ignore[attr-defined]
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
