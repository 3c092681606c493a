# User value: This file turns unpredictable provider errors into clear, safe outcomes for render users.
from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Callable, Optional, Tuple

from render_ai.contract import (
    BILLING_REJECTED,
    OTHER,
    POOL_EXHAUSTED,
    QUOTA_EXCEEDED,
    SERVICE_OVERLOADED,
    TRANSIENT,
)
from render_ai.utils.key_masking import redact_keys

OVERLOADED_MESSAGE = "The AI service (Google Gemini) is overloaded right now. Please try again in a few minutes."
UNAVAILABLE_MESSAGE = "The service is temporarily unavailable. Please try again later."
AI_ERROR_PREFIX = "AI service error: "

_QUOTA_MARKERS = ("429", "quota", "exhausted")
_BILLING_MARKERS = ("billed users", "billing", "credits")

Details = Tuple[Optional[int], str]


class PoolExhaustedError(RuntimeError):
    """No key could be leased from the pool."""


class UserFacingError(Exception):
    """Terminal error whose message is already safe to show to an end user."""

    def __init__(self, message: str, *, kind: str = OTHER, status: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.status = status

    @classmethod
    def from_failure(cls, record: Optional["FailureRecord"]) -> "UserFacingError":
        if record is None:
            return cls(UNAVAILABLE_MESSAGE, kind=POOL_EXHAUSTED)
        return cls(user_message_for(record), kind=record.kind, status=record.raw_status)


@dataclass(frozen=True)
class FailureRecord:
    kind: str
    raw_status: Optional[int]
    raw_message: str


# =========================================================
# FIELD ACCESS ON UNKNOWN SHAPES
# =========================================================
def _field(raw: Any, name: str) -> Any:
    if raw is None:
        return None
    if isinstance(raw, Mapping):
        return raw.get(name)
    try:
        return getattr(raw, name, None)
    except Exception:
        # Properties on third-party error objects may raise on access.
        return None


def _as_status(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, float) and value.is_integer():
        return int(value) if value > 0 else None
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip()) or None
    return None


def _safe_text(raw: Any) -> str:
    try:
        return str(raw)
    except Exception:
        return ""


def _looks_like_json(text: str) -> bool:
    stripped = (text or "").lstrip()
    return stripped.startswith("{") or stripped.startswith("[")


def _loads(text: str) -> Any:
    try:
        return json.loads(text)
    except (TypeError, ValueError):
        return None


def _from_error_mapping(payload: Any) -> Optional[Details]:
    if isinstance(payload, list):
        payload = next((item for item in payload if isinstance(item, Mapping)), None)
    error = _field(payload, "error")
    if error is None:
        return None
    status = _as_status(_field(error, "code"))
    message = _field(error, "message")
    message = message if isinstance(message, str) else ""
    if status is None and not message:
        return None
    return status, message


# =========================================================
# EXTRACTION STRATEGIES (ordered)
# =========================================================
def _top_level(raw: Any) -> Details:
    status = None
    for name in ("status", "status_code", "code"):
        status = _as_status(_field(raw, name))
        if status is not None:
            break
    if status is None:
        response = _field(raw, "response")
        status = _as_status(_field(response, "status_code")) or _as_status(_field(response, "status"))

    message = _field(raw, "message")
    if not isinstance(message, str):
        if isinstance(raw, str):
            message = raw
        elif isinstance(raw, BaseException):
            message = _safe_text(raw)
        else:
            message = ""
    return status, message


def _nested_error_field(raw: Any, message: str) -> Optional[Details]:
    found = _from_error_mapping(raw)
    if found is not None:
        return found
    # google-genai APIError keeps the decoded response JSON under `details`.
    return _from_error_mapping(_field(raw, "details"))


def _json_body_field(raw: Any, message: str) -> Optional[Details]:
    body = _field(raw, "body")
    if isinstance(body, (bytes, bytearray)):
        body = body.decode("utf-8", errors="replace")
    if isinstance(body, str):
        body = _loads(body)
    if body is None:
        return None
    return _from_error_mapping(body)


def _json_message(raw: Any, message: str) -> Optional[Details]:
    if not _looks_like_json(message):
        return None
    parsed = _loads(message.strip())
    if parsed is None:
        return None
    return _from_error_mapping(parsed)


_NESTED_STRATEGIES: Tuple[Callable[[Any, str], Optional[Details]], ...] = (
    _nested_error_field,
    _json_body_field,
    _json_message,
)


def _infer_status(message: str) -> Optional[int]:
    low = message.lower()
    if "429" in low or "quota" in low or "exhausted" in low:
        return 429
    if "400" in low or "billing" in low:
        return 400
    if "503" in low or "overloaded" in low:
        return 503
    return None


# User value: reads status and message from any provider error shape so failures are never misread.
def extract_error_details(raw: Any) -> Details:
    status, message = _top_level(raw)
    for strategy in _NESTED_STRATEGIES:
        found = strategy(raw, message)
        if found is None:
            continue
        nested_status, nested_message = found
        if status is None:
            status = nested_status
        if nested_message:
            message = nested_message
        break

    if status is None:
        status = _infer_status(message)
    return status, message


# User value: maps every failure to one recovery class so retries behave predictably.
def classify(raw: Any) -> FailureRecord:
    if isinstance(raw, PoolExhaustedError):
        return FailureRecord(POOL_EXHAUSTED, None, _safe_text(raw))

    status, message = extract_error_details(raw)
    low = message.lower()

    if status == 429 or any(m in low for m in _QUOTA_MARKERS):
        kind = QUOTA_EXCEEDED
    elif status == 400 and any(m in low for m in _BILLING_MARKERS):
        kind = BILLING_REJECTED
    elif status in (500, 503) or "overloaded" in low:
        kind = SERVICE_OVERLOADED
    elif status is None:
        kind = TRANSIENT
    else:
        kind = OTHER
    return FailureRecord(kind, status, message)


# =========================================================
# USER-FACING SANITIZATION
# =========================================================
def _human_message_from_json(text: str) -> str:
    parsed = _loads(text.strip())
    found = _from_error_mapping(parsed)
    if found is not None and found[1]:
        return found[1]
    plain = _field(parsed, "message")
    return plain if isinstance(plain, str) else ""


# User value: users see one friendly sentence instead of raw JSON, stack traces or key fragments.
def user_message_for(record: Optional[FailureRecord]) -> str:
    if record is None or record.kind == POOL_EXHAUSTED:
        return UNAVAILABLE_MESSAGE
    if record.kind == SERVICE_OVERLOADED:
        return OVERLOADED_MESSAGE

    message = (record.raw_message or "").strip()
    if _looks_like_json(message):
        message = _human_message_from_json(message).strip()
        if _looks_like_json(message):
            message = ""

    lines = message.splitlines()
    first_line = lines[0].strip() if lines else ""
    if not first_line or first_line.startswith("Traceback"):
        return UNAVAILABLE_MESSAGE
    return AI_ERROR_PREFIX + redact_keys(first_line)
