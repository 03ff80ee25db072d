from __future__ import annotations

import json
import logging
from datetime import UTC, datetime

# Attributes that adapters and the orchestrator may pass through ``extra=``.
EMAIL_RECORD_FIELDS = ("provider", "email_type", "latency_ms", "status_code")


def _event_fields(message: str) -> dict[str, object] | None:
    if not message.startswith("{"):
        return None
    try:
        parsed = json.loads(message)
    except ValueError:
        return None
    return parsed if isinstance(parsed, dict) else None


class JsonFormatter(logging.Formatter):
    """One JSON object per line.

    Email events are logged as ``json.dumps`` payloads; their keys are lifted
    to the top level instead of being nested as an escaped string.
    """

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        payload: dict[str, object] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
        }
        event = _event_fields(message)
        if event is None:
            payload["message"] = message
        else:
            payload.update({key: value for key, value in event.items() if key not in payload})
        for field in EMAIL_RECORD_FIELDS:
            if hasattr(record, field):
                payload[field] = getattr(record, field)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging(*, log_level: str, app_env: str) -> None:
    level = getattr(logging, log_level.upper(), logging.INFO)
    handler = logging.StreamHandler()
    if app_env.lower() == "production":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(levelname)s %(name)s %(message)s"))
    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level)
    root.addHandler(handler)
    # httpx logs every request line at INFO, which would echo provider URLs per send.
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))
