# User value: This file gives every pool and job-status call the same resilient Redis connection.
import logging
import os

import redis

logger = logging.getLogger("render_ai.redis")

DEFAULT_REDIS_URL = "redis://localhost:6379/0"


# User value: loads latest key-pool and job data with keepalive so long retries do not hit stale sockets.
def get_redis(url: str | None = None) -> redis.Redis:
    redis_url = url or os.getenv("REDIS_URL", DEFAULT_REDIS_URL)
    return redis.from_url(
        redis_url,
        decode_responses=True,
        socket_keepalive=True,
        socket_connect_timeout=2,
        socket_timeout=10,
        retry_on_timeout=True,
        health_check_interval=15,
    )
