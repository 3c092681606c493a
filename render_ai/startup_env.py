# User value: This file stops a misconfigured deployment before the first render request hits it.
import logging
import os
from typing import List, Optional

logger = logging.getLogger("render_ai.startup")

KEY_POOL_BACKENDS = ("redis", "static")
STATIC_KEY_VARS = ("GENAI_API_KEYS", "GEMINI_API_KEY", "API_KEY")

# name, min, max
_INT_SETTINGS = (
    ("GENAI_MAX_ATTEMPTS", 1, 100),
    ("KEY_POOL_COOLDOWN_SEC", 1, 86400),
    ("VIDEO_MAX_POLLS", 1, 10000),
)
_NON_NEGATIVE_FLOAT_SETTINGS = (
    "GENAI_DEADLINE_SEC",
    "KEY_POOL_LEASE_JITTER_SEC",
    "POOL_EXHAUSTED_WAIT_SEC",
    "TRANSIENT_RETRY_DELAY_SEC",
)


def _env(name: str) -> Optional[str]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    return raw.strip()


def _redis_url_problem(name: str) -> Optional[str]:
    url = _env(name)
    if url is None:
        return f"{name} is required"
    if not url.startswith(("redis://", "rediss://")):
        return f"{name} must start with redis:// or rediss://"
    return None


def _int_problems(name: str, low: int, high: int) -> List[str]:
    raw = _env(name)
    if raw is None:
        return []
    try:
        value = int(raw)
    except ValueError:
        return [f"{name} must be an integer"]
    if value < low:
        return [f"{name} must be >= {low}"]
    if value > high:
        return [f"{name} must be <= {high}"]
    return []


def _float_problems(name: str) -> List[str]:
    raw = _env(name)
    if raw is None:
        return []
    try:
        value = float(raw)
    except ValueError:
        return [f"{name} must be a number"]
    return [f"{name} must be >= 0.0"] if value < 0 else []


def key_pool_backend() -> str:
    return (_env("KEY_POOL_BACKEND") or "redis").lower()


# User value: reports every configuration problem at once so a deploy can be fixed in one pass.
def validate_startup_env() -> None:
    errors: List[str] = []
    warnings: List[str] = []

    backend = key_pool_backend()
    if backend not in KEY_POOL_BACKENDS:
        errors.append("KEY_POOL_BACKEND must be one of 'redis', 'static'")
    elif backend == "redis":
        problem = _redis_url_problem("REDIS_URL")
        if problem:
            errors.append(problem)
    else:
        if not any(_env(name) for name in STATIC_KEY_VARS):
            errors.append("GENAI_API_KEYS (or GEMINI_API_KEY / API_KEY) is required for KEY_POOL_BACKEND=static")
        if _env("REDIS_URL") is None:
            warnings.append("REDIS_URL is not set; job key reporting is disabled")
        else:
            problem = _redis_url_problem("REDIS_URL")
            if problem:
                errors.append(problem)

    for name, low, high in _INT_SETTINGS:
        errors.extend(_int_problems(name, low, high))
    for name in _NON_NEGATIVE_FLOAT_SETTINGS:
        errors.extend(_float_problems(name))

    if errors:
        for err in errors:
            logger.error("startup_env_invalid %s", err)
        raise RuntimeError("Startup env validation failed: " + "; ".join(errors))

    for warning in warnings:
        logger.warning("startup_env_warning %s", warning)

    logger.info("startup_env_validated key_pool_backend=%s", backend)
