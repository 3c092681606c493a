# User value: This file wires pool, reporter and executor from the environment so callers get one ready service.
import logging
import os

from dotenv import load_dotenv

from render_ai.adapters.job_reporter import RedisJobReporter
from render_ai.json_logging import configure_json_logging
from render_ai.key_pool import RedisKeyPool, StaticKeyPool
from render_ai.operations import GenerationService
from render_ai.orchestrator import KeyRotationExecutor
from render_ai.startup_env import key_pool_backend, validate_startup_env
from render_ai.utils.redis_safe import get_redis
from render_ai.utils.retry_policy import DEFAULT_MAX_ATTEMPTS

SERVICE_NAME = "render-ai-client"

logger = logging.getLogger("render_ai.bootstrap")


def _deadline_sec():
    raw = (os.getenv("GENAI_DEADLINE_SEC") or "").strip()
    return float(raw) if raw else None


def build_executor() -> KeyRotationExecutor:
    backend = key_pool_backend()
    redis_url = (os.getenv("REDIS_URL") or "").strip()

    if backend == "redis":
        client = get_redis(redis_url)
        pool = RedisKeyPool(client)
        seed = [k for k in (os.getenv("GENAI_API_KEYS") or "").split(",") if k.strip()]
        if seed:
            added = pool.add_keys(seed)
            logger.info("key_pool_seeded added=%s offered=%s", added, len(seed))
        reporter = RedisJobReporter(client)
    else:
        pool = StaticKeyPool.from_env()
        reporter = RedisJobReporter(get_redis(redis_url)) if redis_url else None

    return KeyRotationExecutor(
        pool,
        reporter,
        max_attempts=DEFAULT_MAX_ATTEMPTS,
        deadline_sec=_deadline_sec(),
    )


# User value: one call gives the render tools a ready, validated generation service.
def create_service(*, configure_logging: bool = True) -> GenerationService:
    load_dotenv()
    if configure_logging:
        level_name = os.getenv("LOG_LEVEL", "INFO").upper()
        configure_json_logging(service=SERVICE_NAME, level=getattr(logging, level_name, logging.INFO))
    validate_startup_env()
    return GenerationService(build_executor())
