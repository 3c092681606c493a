# User value: This test keeps the shared key pool from handing out keys that are cooling down.
import random
import unittest
from unittest import mock

from render_ai.key_pool import RedisKeyPool, StaticKeyPool, mark_key_exhausted
from render_ai.utils.key_masking import key_fingerprint


class _Pipeline:
    def __init__(self, redis):
        self._redis = redis
        self._ops = []

    def exists(self, name):
        self._ops.append(("exists", name))
        return self

    def srem(self, name, value):
        self._ops.append(("srem", name, value))
        return self

    def delete(self, name):
        self._ops.append(("delete", name))
        return self

    def execute(self):
        out = []
        for op in self._ops:
            out.append(getattr(self._redis, op[0])(*op[1:]))
        self._ops = []
        return out


class FakeRedis:
    def __init__(self, seed=0):
        self.sets = {}
        self._rng = random.Random(seed)
        self.values = {}
        self.ttls = {}

    def sadd(self, name, *values):
        bucket = self.sets.setdefault(name, set())
        before = len(bucket)
        bucket.update(values)
        return len(bucket) - before

    def srem(self, name, value):
        bucket = self.sets.get(name, set())
        if value in bucket:
            bucket.remove(value)
            return 1
        return 0

    def smembers(self, name):
        return set(self.sets.get(name, set()))

    def srandmember(self, name, count):
        members = sorted(self.sets.get(name, set()))
        return self._rng.sample(members, min(count, len(members)))

    def set(self, name, value, ex=None):
        self.values[name] = value
        self.ttls[name] = ex
        return True

    def exists(self, name):
        return 1 if name in self.values else 0

    def delete(self, name):
        return 1 if self.values.pop(name, None) is not None else 0

    def pipeline(self, transaction=True):
        return _Pipeline(self)


class ExplodingPool:
    def lease(self):
        return None

    def mark_exhausted(self, key):
        raise ConnectionError("pool offline")


KEY_A = "AIza-test-key-aaaa"
KEY_B = "AIza-test-key-bbbb"


class RedisKeyPoolUnitTests(unittest.TestCase):
    def setUp(self):
        self.redis = FakeRedis()
        self.pool = RedisKeyPool(self.redis, lease_jitter_sec=0, cooldown_sec=60, rng=random.Random(1))
        self.pool.add_keys([KEY_A, KEY_B, "  "])

    # User value: an empty pool says so instead of raising.
    def test_empty_pool_leases_none(self):
        pool = RedisKeyPool(FakeRedis(), lease_jitter_sec=0)
        self.assertIsNone(pool.lease())
        self.assertEqual(pool.available_count(), 0)

    def test_add_keys_ignores_blanks(self):
        self.assertEqual(self.redis.smembers("genai_key_pool"), {KEY_A, KEY_B})

    # User value: a drained key is skipped until its cooldown expires.
    def test_exhausted_key_is_not_leased(self):
        self.pool.mark_exhausted(KEY_A)

        marker = "genai_key_exhausted:" + key_fingerprint(KEY_A)
        self.assertEqual(self.redis.ttls[marker], 60)
        self.assertNotIn(KEY_A, marker)
        for _ in range(10):
            self.assertEqual(self.pool.lease(), KEY_B)
        self.assertEqual(self.pool.available_count(), 1)

    def test_all_cooling_leases_none(self):
        self.pool.mark_exhausted(KEY_A)
        self.pool.mark_exhausted(KEY_B)
        self.assertIsNone(self.pool.lease())

    # User value: concurrent callers are spread out by a small random wait.
    def test_lease_jitter_sleeps_within_bound(self):
        sleeps = []
        pool = RedisKeyPool(self.redis, lease_jitter_sec=0.3, sleep=sleeps.append, rng=random.Random(2))
        self.assertIn(pool.lease(), {KEY_A, KEY_B})
        self.assertEqual(len(sleeps), 1)
        self.assertTrue(0 <= sleeps[0] <= 0.3)

    # User value: a mostly drained pool still hands out its remaining healthy keys on every lease.
    def test_large_pool_with_few_healthy_keys_never_leases_none(self):
        redis_client = FakeRedis(seed=7)
        pool = RedisKeyPool(redis_client, lease_jitter_sec=0, rng=random.Random(3))
        keys = [f"AIza-bulk-key-{n:04d}" for n in range(100)]
        pool.add_keys(keys)
        for key in keys[:92]:
            pool.mark_exhausted(key)
        self.assertEqual(pool.available_count(), 8)

        leased = [pool.lease() for _ in range(200)]

        self.assertEqual(leased.count(None), 0)
        self.assertTrue(set(leased) <= set(keys[92:]))
        self.assertGreater(len(set(leased)), 1)

    def test_fully_cooling_large_pool_leases_none(self):
        pool = RedisKeyPool(FakeRedis(seed=1), lease_jitter_sec=0)
        keys = [f"AIza-bulk-key-{n:04d}" for n in range(20)]
        pool.add_keys(keys)
        for key in keys:
            pool.mark_exhausted(key)
        self.assertIsNone(pool.lease())

    def test_remove_key_clears_marker(self):
        self.pool.mark_exhausted(KEY_A)
        self.pool.remove_key(KEY_A)
        self.assertEqual(self.redis.smembers("genai_key_pool"), {KEY_B})
        self.assertEqual(self.redis.values, {})


class StaticKeyPoolUnitTests(unittest.TestCase):
    # User value: local runs rotate keys and bring them back after the cooldown.
    def test_cooldown_expires(self):
        now = [100.0]
        pool = StaticKeyPool([KEY_A, KEY_B], cooldown_sec=60, clock=lambda: now[0], rng=random.Random(0))
        pool.mark_exhausted(KEY_A)
        self.assertEqual(pool.lease(), KEY_B)
        self.assertEqual(pool.available_count(), 1)

        now[0] = 161.0
        self.assertEqual(pool.available_count(), 2)

    def test_from_env_splits_keys(self):
        with mock.patch.dict("os.environ", {"GENAI_API_KEYS": f"{KEY_A}, {KEY_B},"}, clear=True):
            pool = StaticKeyPool.from_env()
        self.assertEqual(pool.available_count(), 2)

    def test_no_keys(self):
        self.assertIsNone(StaticKeyPool([]).lease())


class MarkKeyExhaustedUnitTests(unittest.TestCase):
    # User value: placeholder keys are never written to the pool.
    def test_short_keys_are_ignored(self):
        pool = StaticKeyPool([KEY_A])
        self.assertFalse(mark_key_exhausted(pool, "short"))
        self.assertFalse(mark_key_exhausted(pool, None))
        self.assertEqual(pool.available_count(), 1)

    # User value: a pool outage while marking never fails the render.
    def test_pool_errors_are_logged_not_raised(self):
        with self.assertLogs("render_ai.key_pool", level="ERROR") as logs:
            self.assertFalse(mark_key_exhausted(ExplodingPool(), KEY_A))
        self.assertNotIn(KEY_A, "\n".join(logs.output))
        self.assertIn("...aaaa", "\n".join(logs.output))

    def test_marks_valid_key(self):
        pool = StaticKeyPool([KEY_A, KEY_B])
        self.assertTrue(mark_key_exhausted(pool, KEY_A))
        self.assertEqual(pool.available_count(), 1)


if __name__ == "__main__":
    unittest.main()
