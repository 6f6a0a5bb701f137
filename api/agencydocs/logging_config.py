import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from .config import LOG_LEVEL, SQL_LOG_LEVEL

_EXTRA_KEYS = ("user_id", "document_id", "invitation_id", "renewal_id")


class JsonFormatter(logging.Formatter):
    """One JSON object per log line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in _EXTRA_KEYS:
            if hasattr(record, key):
                payload[key] = getattr(record, key)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging() -> None:
    root = logging.getLogger()
    root.setLevel(LOG_LEVEL)

    # uvicorn --reload re-runs startup; avoid stacking handlers
    for handler in list(root.handlers):
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(LOG_LEVEL)
    handler.setFormatter(JsonFormatter())
    root.addHandler(handler)

    logging.getLogger("uvicorn.access").setLevel(LOG_LEVEL)
    logging.getLogger("sqlalchemy.engine").setLevel(SQL_LOG_LEVEL)
