# User value: This test keeps the job row in step with the render from start to finish.
import unittest

from render_ai.error_catalog import AI_ERROR_PREFIX, UserFacingError
from render_ai.jobs import track_job
from render_ai.models import EditResult


class RecordingReporter:
    def __init__(self):
        self.updates = []

    def update_status(self, job_id, status, *, result_url=None, error_message=None):
        self.updates.append((job_id, status, result_url, error_message))
        return True


class JobsUnitTests(unittest.TestCase):
    def setUp(self):
        self.reporter = RecordingReporter()

    # User value: a finished render links its first result on the job row.
    def test_completed_with_first_url(self):
        result = track_job(self.reporter, "job-1", lambda: ["data:a", "data:b"])

        self.assertEqual(result, ["data:a", "data:b"])
        self.assertEqual(
            self.reporter.updates,
            [("job-1", "PROCESSING", None, None), ("job-1", "COMPLETED", "data:a", None)],
        )

    def test_edit_results_and_strings(self):
        track_job(self.reporter, "job-2", lambda: [EditResult(image_url="data:edit")])
        track_job(self.reporter, "job-3", lambda: "data:video")
        self.assertEqual(self.reporter.updates[1][2], "data:edit")
        self.assertEqual(self.reporter.updates[3][2], "data:video")

    # User value: failures land on the job row as the same safe text the user sees.
    def test_user_facing_failure(self):
        def fail():
            raise UserFacingError("The service is temporarily unavailable. Please try again later.")

        with self.assertRaises(UserFacingError):
            track_job(self.reporter, "job-4", fail)
        self.assertEqual(self.reporter.updates[-1][1], "FAILED")
        self.assertEqual(self.reporter.updates[-1][3], "The service is temporarily unavailable. Please try again later.")

    def test_unexpected_failure_is_sanitized_and_reraised(self):
        def fail():
            raise KeyError("missing scene")

        with self.assertLogs("render_ai.jobs", level="ERROR"):
            with self.assertRaises(KeyError):
                track_job(self.reporter, "job-5", fail)
        self.assertEqual(self.reporter.updates[-1][1], "FAILED")
        self.assertTrue(self.reporter.updates[-1][3].startswith(AI_ERROR_PREFIX))


if __name__ == "__main__":
    unittest.main()
