import logging
import json
from typing import Iterable, Optional

# Attributes passed via `extra=` that are copied into the JSON line.
CONTEXT_FIELDS = ("stage", "batch", "bookmark_id", "user_id")


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
        }
        for key in CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                payload[key] = value
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def setup_logging(
    level: int | str = logging.INFO,
    quiet_loggers: Optional[Iterable[str]] = ("httpx", "httpcore"),
) -> None:
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = [handler]

    # Per-request lines from the HTTP stack drown out pipeline progress.
    for name in quiet_loggers or ():
        logging.getLogger(name).setLevel(logging.WARNING)
