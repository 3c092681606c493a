# User value: This file keeps retry pacing tunable so a drained key pool recovers without hammering the provider.
import logging
import os
import random
from dataclasses import dataclass
from typing import Optional

from render_ai.contract import (
    POOL_EXHAUSTED,
    QUOTA_EXCEEDED,
    SERVICE_OVERLOADED,
    TRANSIENT,
)

logger = logging.getLogger("render_ai.retry")

COUNTER_CONSECUTIVE_QUOTA = "consecutive_quota"
COUNTER_ATTEMPTS = "attempts"
COUNTER_NONE = "none"


# User value: supports _env_int so operators can tune retries without a redeploy.
def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return max(0, int(raw))
    except ValueError:
        logger.warning("Invalid %s=%s, using default=%s", name, raw, default)
        return default


# User value: supports _env_float so operators can tune retries without a redeploy.
def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return max(0.0, float(raw))
    except ValueError:
        logger.warning("Invalid %s=%s, using default=%s", name, raw, default)
        return default


@dataclass(frozen=True)
class BackoffPolicy:
    name: str
    base_delay_sec: float
    growth_factor: float
    max_delay_sec: float
    jitter_sec: float = 0.0
    # Which per-invocation counter feeds the exponent.
    counter: str = COUNTER_NONE


DEFAULT_MAX_ATTEMPTS = max(1, _env_int("GENAI_MAX_ATTEMPTS", 15))

QUOTA_POLICY = BackoffPolicy(
    name="quota",
    base_delay_sec=_env_float("QUOTA_BACKOFF_BASE_SEC", 2.0),
    growth_factor=_env_float("QUOTA_BACKOFF_FACTOR", 1.5),
    max_delay_sec=_env_float("QUOTA_BACKOFF_MAX_SEC", 20.0),
    jitter_sec=_env_float("QUOTA_BACKOFF_JITTER_SEC", 1.0),
    counter=COUNTER_CONSECUTIVE_QUOTA,
)

OVERLOAD_POLICY = BackoffPolicy(
    name="overload",
    base_delay_sec=_env_float("OVERLOAD_BACKOFF_BASE_SEC", 2.0),
    growth_factor=_env_float("OVERLOAD_BACKOFF_FACTOR", 1.5),
    max_delay_sec=_env_float("OVERLOAD_BACKOFF_MAX_SEC", 15.0),
    counter=COUNTER_ATTEMPTS,
)

TRANSIENT_POLICY = BackoffPolicy(
    name="transient",
    base_delay_sec=_env_float("TRANSIENT_RETRY_DELAY_SEC", 1.0),
    growth_factor=1.0,
    max_delay_sec=_env_float("TRANSIENT_RETRY_DELAY_SEC", 1.0),
)

# Pool waits count toward max attempts but never toward the quota exponent.
POOL_EXHAUSTED_POLICY = BackoffPolicy(
    name="pool_exhausted",
    base_delay_sec=_env_float("POOL_EXHAUSTED_WAIT_SEC", 3.0),
    growth_factor=1.0,
    max_delay_sec=_env_float("POOL_EXHAUSTED_WAIT_SEC", 3.0),
)

POLICIES = {
    QUOTA_EXCEEDED: QUOTA_POLICY,
    SERVICE_OVERLOADED: OVERLOAD_POLICY,
    TRANSIENT: TRANSIENT_POLICY,
    POOL_EXHAUSTED: POOL_EXHAUSTED_POLICY,
}


def policy_for(kind: str) -> Optional[BackoffPolicy]:
    return POLICIES.get(kind)


# User value: computes the wait before the next attempt so retries spread out instead of colliding.
def compute_delay(policy: BackoffPolicy, exponent: int, rng: Optional[random.Random] = None) -> float:
    growth = policy.base_delay_sec * (policy.growth_factor ** max(0, exponent))
    jitter = 0.0
    if policy.jitter_sec > 0:
        jitter = policy.jitter_sec * (rng or random).random()
    return min(growth + jitter, policy.max_delay_sec)
