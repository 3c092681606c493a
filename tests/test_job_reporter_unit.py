# User value: This test keeps job rows traceable to a pool key without ever storing the key.
import unittest

import redis

from render_ai.adapters.job_reporter import JOB_STATUS_TTL_SEC, RedisJobReporter
from render_ai.utils.key_masking import key_fingerprint

KEY = "AIza-reporter-key-7788"


class FakeRedis:
    def __init__(self, fail=False):
        self.rows = {}
        self.expiry = {}
        self.fail = fail

    def hset(self, name, mapping):
        if self.fail:
            raise redis.exceptions.ConnectionError("redis down")
        self.rows.setdefault(name, {}).update(mapping)

    def hget(self, name, field):
        if self.fail:
            raise redis.exceptions.ConnectionError("redis down")
        return self.rows.get(name, {}).get(field)

    def expire(self, name, seconds):
        self.expiry[name] = seconds


class JobReporterUnitTests(unittest.TestCase):
    # User value: ops can see which key served a job without the secret landing in Redis.
    def test_report_key_stores_hint_and_fingerprint(self):
        client = FakeRedis()
        RedisJobReporter(client).report_key_for_job("job-1", KEY)

        row = client.rows["job_status:job-1"]
        self.assertEqual(row["api_key_hint"], "...7788")
        self.assertEqual(row["api_key_fingerprint"], key_fingerprint(KEY))
        self.assertNotIn(KEY, row.values())
        self.assertEqual(client.expiry["job_status:job-1"], JOB_STATUS_TTL_SEC)

    def test_empty_job_ref_is_ignored(self):
        client = FakeRedis()
        RedisJobReporter(client).report_key_for_job("", KEY)
        self.assertEqual(client.rows, {})

    # User value: a Redis outage never interrupts the render.
    def test_report_key_swallows_redis_errors(self):
        RedisJobReporter(FakeRedis(fail=True)).report_key_for_job("job-1", KEY)

    def test_update_status_respects_terminal_state(self):
        client = FakeRedis()
        reporter = RedisJobReporter(client)

        self.assertTrue(reporter.update_status("job-2", "PROCESSING"))
        self.assertTrue(reporter.update_status("job-2", "COMPLETED", result_url="data:image/png;base64,AAA"))
        self.assertFalse(reporter.update_status("job-2", "FAILED", error_message="late failure"))

        row = client.rows["job_status:job-2"]
        self.assertEqual(row["status"], "COMPLETED")
        self.assertEqual(row["result_url"], "data:image/png;base64,AAA")
        self.assertNotIn("error_message", row)

    def test_update_status_reports_redis_failure(self):
        self.assertFalse(RedisJobReporter(FakeRedis(fail=True)).update_status("job-3", "PROCESSING"))


if __name__ == "__main__":
    unittest.main()
