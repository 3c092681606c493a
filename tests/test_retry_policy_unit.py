import random
import unittest
from unittest import mock

from render_ai.contract import OTHER, POOL_EXHAUSTED, QUOTA_EXCEEDED, SERVICE_OVERLOADED, TRANSIENT
from render_ai.utils import retry_policy
from render_ai.utils.retry_policy import BackoffPolicy, compute_delay, policy_for


class RetryPolicyUnitTests(unittest.TestCase):
    # User value: every retryable kind has a tunable policy; fail-fast kinds have none.
    def test_policy_table(self):
        self.assertEqual(policy_for(QUOTA_EXCEEDED).max_delay_sec, 20.0)
        self.assertEqual(policy_for(SERVICE_OVERLOADED).max_delay_sec, 15.0)
        self.assertEqual(policy_for(TRANSIENT).base_delay_sec, 1.0)
        self.assertEqual(policy_for(POOL_EXHAUSTED).base_delay_sec, 3.0)
        self.assertIsNone(policy_for(OTHER))

    # User value: quota waits grow with consecutive failures but stay under the cap.
    def test_quota_delay_grows_and_caps(self):
        rng = random.Random(7)
        delays = [compute_delay(policy_for(QUOTA_EXCEEDED), n, rng) for n in range(1, 12)]
        self.assertGreaterEqual(delays[0], 3.0)
        self.assertLess(delays[0], 4.0)
        self.assertEqual(delays, sorted(delays))
        self.assertEqual(max(delays), 20.0)

    # User value: overload waits have no jitter and cap at 15s.
    def test_overload_delay(self):
        policy = policy_for(SERVICE_OVERLOADED)
        self.assertEqual(compute_delay(policy, 0), 2.0)
        self.assertEqual(compute_delay(policy, 1), 3.0)
        self.assertEqual(compute_delay(policy, 10), 15.0)

    # User value: flat policies never grow.
    def test_flat_policy(self):
        policy = BackoffPolicy(name="flat", base_delay_sec=1.0, growth_factor=1.0, max_delay_sec=1.0)
        self.assertEqual(compute_delay(policy, 9), 1.0)

    # User value: bad operator input falls back to defaults instead of crashing.
    def test_env_parsing(self):
        with mock.patch.dict("os.environ", {"X_INT": "abc", "X_FLOAT": "-2.5"}):
            self.assertEqual(retry_policy._env_int("X_INT", 4), 4)
            self.assertEqual(retry_policy._env_float("X_FLOAT", 1.0), 0.0)
            self.assertEqual(retry_policy._env_int("X_MISSING", 15), 15)


if __name__ == "__main__":
    unittest.main()
