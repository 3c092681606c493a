# User value: This file tells the deploy pipeline whether renders can actually get a key right now.
import json
import os
import sys

import redis
from dotenv import load_dotenv

from render_ai.key_pool import RedisKeyPool, StaticKeyPool
from render_ai.startup_env import key_pool_backend
from render_ai.utils.redis_safe import get_redis


def check() -> dict:
    backend = key_pool_backend()
    checks = {"redis": "skipped", "key_pool": "unknown"}
    available = 0

    if backend == "redis":
        try:
            client = get_redis(os.getenv("REDIS_URL"))
            client.ping()
            checks["redis"] = "ok"
            available = RedisKeyPool(client).available_count()
            checks["key_pool"] = "ok" if available > 0 else "empty"
        except redis.exceptions.RedisError as exc:
            checks["redis"] = f"error:{exc.__class__.__name__}"
            checks["key_pool"] = "unreachable"
    else:
        available = StaticKeyPool.from_env().available_count()
        checks["key_pool"] = "ok" if available > 0 else "empty"

    healthy = checks["key_pool"] == "ok" and checks["redis"] in ("ok", "skipped")
    return {
        "status": "ok" if healthy else "degraded",
        "backend": backend,
        "available_keys": available,
        "checks": checks,
    }


if __name__ == "__main__":
    load_dotenv()
    payload = check()
    print(json.dumps(payload, ensure_ascii=False))
    sys.exit(0 if payload["status"] == "ok" else 1)
