import json  # JSON serialization
import logging
from datetime import datetime, timezone

# Passed through ``extra=`` by the services so records can be filtered per user
CONTEXT_FIELDS = ("user_id", "session_id", "item_id", "kind")


class JsonFormatter(logging.Formatter):
    """Format log records as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        data = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                data[field] = value
        if record.exc_info:
            data["exc"] = self.formatException(record.exc_info)
        return json.dumps(data, ensure_ascii=False, default=str)


def setup_logging(level: int | str = logging.INFO) -> None:
    """Configure the root logger with the JSON formatter."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    root = logging.getLogger()
    root.setLevel(level)
    if not any(isinstance(h.formatter, JsonFormatter) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(JsonFormatter())
        root.addHandler(handler)
    # boto and httpx log every request at INFO
    for name in ("botocore", "aiobotocore", "httpx"):
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
