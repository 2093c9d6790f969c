# Overview: Structured JSON logging for the inventory engine.

import json
import logging
from datetime import datetime, timezone

# LogRecord attributes that are plumbing, not payload
_RESERVED = frozenset(
    (
        "msg",
        "args",
        "levelname",
        "levelno",
        "name",
        "created",
        "msecs",
        "relativeCreated",
        "pathname",
        "filename",
        "module",
        "lineno",
        "funcName",
        "exc_info",
        "exc_text",
        "stack_info",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "message",
    )
)

_HANDLER_NAME = "locksmith-json"


class JsonFormatter(logging.Formatter):
    """One JSON object per line.

    Base fields are time, level, logger name and message; anything passed via
    ``extra=`` (item_id, event, table...) is merged in. Values that are not
    JSON-serializable are stringified.
    """

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload = {
            "time": datetime.fromtimestamp(record.created, tz=timezone.utc)
            .replace(tzinfo=None)
            .isoformat()
            + "Z",
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }

        for key, value in record.__dict__.items():
            if key in _RESERVED or key.startswith("_"):
                continue
            try:
                json.dumps(value)
                payload.setdefault(key, value)
            except TypeError:
                payload.setdefault(key, str(value))

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False)


def configure_logging(app) -> None:
    """Attach a single stream handler to the ``locksmith`` logger tree.

    Safe to call once per app; a second call replaces the handler instead of
    stacking another one.
    """
    root = logging.getLogger("locksmith")
    root.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    for handler in list(root.handlers):
        if handler.get_name() == _HANDLER_NAME:
            root.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.set_name(_HANDLER_NAME)
    if app.config.get("LOG_JSON", True):
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    root.addHandler(handler)
