# User value: This module makes retry/rotate/fail-fast decisions explicit so failures are explainable to users and ops.
from __future__ import annotations

from typing import Dict

from render_ai.contract import (
    BILLING_REJECTED,
    POOL_EXHAUSTED,
    QUOTA_EXCEEDED,
    SERVICE_OVERLOADED,
    TRANSIENT,
)

ACTION_ROTATE_KEY = "rotate_key_with_backoff"
ACTION_RETRY = "retry_with_backoff"
ACTION_WAIT_FOR_POOL = "wait_for_pool"
ACTION_FAIL_FAST = "fail_fast"


# User value: labels why an attempt failed so ops can tell key pressure from provider load.
def classify_recovery_reason(kind: str) -> str:
    code = str(kind or "").upper()
    if code == QUOTA_EXCEEDED:
        return "KEY_QUOTA"
    if code == SERVICE_OVERLOADED:
        return "PROVIDER_CAPACITY"
    if code == TRANSIENT:
        return "NETWORK"
    if code == POOL_EXHAUSTED:
        return "POOL_DRAINED"
    if code == BILLING_REJECTED:
        return "KEY_BILLING"
    return "CALLER_ERROR"


# User value: computes a deterministic recovery action so retry behavior is predictable and testable.
def decide_recovery_action(*, kind: str, attempts: int, max_attempts: int) -> Dict[str, object]:
    code = str(kind or "").upper()
    reason = classify_recovery_reason(code)

    if code == QUOTA_EXCEEDED:
        action = ACTION_ROTATE_KEY
    elif code in (SERVICE_OVERLOADED, TRANSIENT):
        action = ACTION_RETRY
    elif code == POOL_EXHAUSTED:
        action = ACTION_WAIT_FOR_POOL
    else:
        action = ACTION_FAIL_FAST

    budget = max(0, int(max_attempts))
    attempt_now = max(0, int(attempts))
    retry_allowed = action != ACTION_FAIL_FAST and attempt_now + 1 < budget
    next_attempt = attempt_now + 1 if action != ACTION_FAIL_FAST else attempt_now

    return {
        "recovery_action": action,
        "recovery_reason": reason,
        "recovery_attempt": next_attempt,
        "recovery_max_attempts": budget,
        "retry_allowed": retry_allowed,
        "mark_key_exhausted": code == QUOTA_EXCEEDED,
        # Overload and network failures say nothing about quota pressure.
        "reset_quota_counter": code in (SERVICE_OVERLOADED, TRANSIENT),
    }
