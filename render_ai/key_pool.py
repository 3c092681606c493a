# User value: This file shares a pool of provider keys across every render request without handing out drained ones.
from __future__ import annotations

import logging
import os
import random
import threading
import time
from typing import Callable, Iterable, List, Optional, Protocol

import redis

from render_ai.utils.key_masking import key_fingerprint, mask_key
from render_ai.utils.redis_safe import get_redis
from render_ai.utils.retry_policy import _env_float, _env_int

logger = logging.getLogger("render_ai.key_pool")

KEY_POOL_SET = os.getenv("KEY_POOL_SET", "genai_key_pool")
EXHAUSTED_PREFIX = os.getenv("KEY_POOL_EXHAUSTED_PREFIX", "genai_key_exhausted:")
DEFAULT_COOLDOWN_SEC = _env_int("KEY_POOL_COOLDOWN_SEC", 60)
DEFAULT_LEASE_JITTER_SEC = _env_float("KEY_POOL_LEASE_JITTER_SEC", 0.3)
DEFAULT_SAMPLE_SIZE = 8

# Anything this short is a placeholder, never a real provider key.
MIN_KEY_LENGTH = 11


class KeyPool(Protocol):
    def lease(self) -> Optional[str]: ...

    def mark_exhausted(self, key: str) -> None: ...


class RedisKeyPool:
    """
    Key pool shared by every process through Redis.

    Keys live in one set. Exhausted keys get a marker with a TTL instead of
    being removed, so they come back on their own after the cooldown. Leases
    are not exclusive: two callers may get the same key.
    """

    def __init__(
        self,
        client: redis.Redis,
        *,
        set_name: str = KEY_POOL_SET,
        exhausted_prefix: str = EXHAUSTED_PREFIX,
        cooldown_sec: int = DEFAULT_COOLDOWN_SEC,
        lease_jitter_sec: float = DEFAULT_LEASE_JITTER_SEC,
        sample_size: int = DEFAULT_SAMPLE_SIZE,
        sleep: Callable[[float], None] = time.sleep,
        rng: Optional[random.Random] = None,
    ):
        self.client = client
        self.set_name = set_name
        self.exhausted_prefix = exhausted_prefix
        self.cooldown_sec = max(1, int(cooldown_sec))
        self.lease_jitter_sec = max(0.0, float(lease_jitter_sec))
        self.sample_size = max(1, int(sample_size))
        self._sleep = sleep
        self._rng = rng or random.Random()

    @classmethod
    def from_env(cls, url: str | None = None) -> "RedisKeyPool":
        return cls(get_redis(url))

    def _exhausted_key(self, key: str) -> str:
        return f"{self.exhausted_prefix}{key_fingerprint(key)}"

    def _healthy(self, keys) -> List[str]:
        keys = list(keys)
        if not keys:
            return []
        pipe = self.client.pipeline(transaction=False)
        for key in keys:
            pipe.exists(self._exhausted_key(key))
        return [key for key, cooling in zip(keys, pipe.execute()) if not cooling]

    # User value: hands out a random healthy key so concurrent renders spread across the pool.
    def lease(self) -> Optional[str]:
        if self.lease_jitter_sec > 0:
            # Desynchronizes bursts of callers that would otherwise sample the same members.
            self._sleep(self._rng.uniform(0, self.lease_jitter_sec))

        candidates = self.client.srandmember(self.set_name, self.sample_size) or []
        if not candidates:
            return None

        healthy = self._healthy(candidates)
        if not healthy and len(candidates) >= self.sample_size:
            # A cooling sample says nothing about the rest of the set.
            healthy = self._healthy(sorted(self.client.smembers(self.set_name) or ()))
            logger.info("key_pool_lease_full_scan sampled=%s healthy=%s", len(candidates), len(healthy))
        if not healthy:
            logger.info("key_pool_lease_empty sampled=%s all_cooling=true", len(candidates))
            return None
        return self._rng.choice(healthy)

    # User value: parks a quota-drained key so other requests stop burning attempts on it.
    def mark_exhausted(self, key: str) -> None:
        self.client.set(self._exhausted_key(key), "1", ex=self.cooldown_sec)

    def add_keys(self, keys: Iterable[str]) -> int:
        cleaned = [k.strip() for k in keys if k and k.strip()]
        if not cleaned:
            return 0
        return int(self.client.sadd(self.set_name, *cleaned))

    def remove_key(self, key: str) -> None:
        pipe = self.client.pipeline(transaction=True)
        pipe.srem(self.set_name, key)
        pipe.delete(self._exhausted_key(key))
        pipe.execute()

    def available_count(self) -> int:
        return len(self._healthy(self.client.smembers(self.set_name) or ()))


class StaticKeyPool:
    """In-process pool for local runs and single-instance deployments."""

    def __init__(
        self,
        keys: Iterable[str],
        *,
        cooldown_sec: float = DEFAULT_COOLDOWN_SEC,
        clock: Callable[[], float] = time.monotonic,
        rng: Optional[random.Random] = None,
    ):
        self._keys = [k.strip() for k in keys if k and k.strip()]
        self.cooldown_sec = max(0.0, float(cooldown_sec))
        self._clock = clock
        self._rng = rng or random.Random()
        self._cooling_until: dict[str, float] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_env(cls) -> "StaticKeyPool":
        raw = os.getenv("GENAI_API_KEYS") or os.getenv("GEMINI_API_KEY") or os.getenv("API_KEY") or ""
        return cls(raw.split(","))

    def lease(self) -> Optional[str]:
        now = self._clock()
        with self._lock:
            healthy = [k for k in self._keys if self._cooling_until.get(k, 0.0) <= now]
        if not healthy:
            return None
        return self._rng.choice(healthy)

    def mark_exhausted(self, key: str) -> None:
        with self._lock:
            self._cooling_until[key] = self._clock() + self.cooldown_sec

    def available_count(self) -> int:
        now = self._clock()
        with self._lock:
            return sum(1 for k in self._keys if self._cooling_until.get(k, 0.0) <= now)


# User value: marks a key exhausted without ever failing the render that noticed it.
def mark_key_exhausted(pool: KeyPool, key: Optional[str]) -> bool:
    if not key or len(key) < MIN_KEY_LENGTH:
        return False
    logger.warning("key_pool_mark_exhausted key=%s", mask_key(key))
    try:
        pool.mark_exhausted(key)
        return True
    except Exception as exc:
        logger.error("key_pool_mark_exhausted_failed key=%s error=%s", mask_key(key), exc.__class__.__name__)
        return False
