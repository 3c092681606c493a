# User value: This file makes every retry and key rotation searchable in the log pipeline without leaking keys.
import json
import logging
from datetime import datetime, timezone
from typing import Any

from render_ai.utils.key_masking import mask_key, redact_keys

# Attributes every LogRecord carries; anything else came in through extra=.
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime", "taskName"}

# extra= fields whose values are raw secrets
_SECRET_FIELDS = {"key", "api_key", "apikey", "current_key"}


def _is_secret(name: Any) -> bool:
    return str(name).lower() in _SECRET_FIELDS


def _scrub(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, str):
        return redact_keys(value)
    if isinstance(value, dict):
        return {
            str(k): mask_key(str(v)) if _is_secret(k) else _scrub(v)
            for k, v in value.items()
            if v is not None
        }
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_scrub(v) for v in value]
    return redact_keys(str(value))


class JsonLogFormatter(logging.Formatter):
    def __init__(self, service: str):
        super().__init__()
        self.service = service

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "service": self.service,
            "logger": record.name,
            "message": redact_keys(record.getMessage()),
        }

        extras = {k: v for k, v in vars(record).items() if k not in _RECORD_ATTRS and k not in entry}
        for name, value in extras.items():
            if value is None:
                continue
            entry[name] = mask_key(str(value)) if _is_secret(name) else _scrub(value)

        if record.exc_info:
            entry["exception"] = redact_keys(self.formatException(record.exc_info))

        return json.dumps(entry, ensure_ascii=False, default=str)


# User value: installs JSON logs once at startup so every module logs the same way.
def configure_json_logging(service: str, level: int) -> None:
    handler = logging.StreamHandler()
    handler.setFormatter(JsonLogFormatter(service=service))
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)
