# User value: This file keeps API keys out of logs, job rows and user-facing messages.
from __future__ import annotations

import hashlib
import re

_GOOGLE_API_KEY_RE = re.compile(r"AIza[0-9A-Za-z\-_]{35}")
_URL_KEY_PARAM_RE = re.compile(r"([?&](?:key|api_key)=)[^&\s\"']+", re.IGNORECASE)

REDACTED = "[redacted]"


# User value: shows only the last 4 characters so ops can correlate a key without exposing it.
def mask_key(key: str | None) -> str:
    if not key:
        return "<none>"
    return f"...{str(key)[-4:]}"


# User value: gives each key a stable, non-reversible name for Redis rows and logs.
def key_fingerprint(key: str) -> str:
    return hashlib.sha256(str(key).encode("utf-8")).hexdigest()[:16]


# User value: strips anything shaped like a provider key from free text before it is shown or logged.
def redact_keys(text: str) -> str:
    if not text:
        return text
    out = _GOOGLE_API_KEY_RE.sub(REDACTED, text)
    return _URL_KEY_PARAM_RE.sub(lambda m: m.group(1) + REDACTED, out)
