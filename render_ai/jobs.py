# User value: This file keeps a render job's status row honest from start to finish.
import logging
import time
from typing import Callable, Optional, TypeVar

from render_ai.contract import JOB_STATUS_COMPLETED, JOB_STATUS_FAILED, JOB_STATUS_PROCESSING
from render_ai.error_catalog import UserFacingError, classify
from render_ai.metrics import observe_ms

T = TypeVar("T")

logger = logging.getLogger("render_ai.jobs")


def _first_result_url(result) -> Optional[str]:
    if isinstance(result, str):
        return result
    if isinstance(result, (list, tuple)) and result:
        first = result[0]
        return first if isinstance(first, str) else getattr(first, "image_url", None)
    return None


# User value: marks the job processing, then completed with its result or failed with a safe message.
def track_job(reporter, job_id: str, fn: Callable[[], T]) -> T:
    reporter.update_status(job_id, JOB_STATUS_PROCESSING)
    t0 = time.perf_counter()
    try:
        result = fn()
    except UserFacingError as exc:
        reporter.update_status(job_id, JOB_STATUS_FAILED, error_message=exc.message)
        logger.warning("job_failed job_id=%s kind=%s", job_id, exc.kind)
        raise
    except Exception as exc:
        safe = UserFacingError.from_failure(classify(exc))
        reporter.update_status(job_id, JOB_STATUS_FAILED, error_message=safe.message)
        logger.exception("job_failed job_id=%s kind=%s", job_id, safe.kind)
        raise

    duration_ms = (time.perf_counter() - t0) * 1000.0
    observe_ms("render_job_duration_ms", duration_ms)
    reporter.update_status(job_id, JOB_STATUS_COMPLETED, result_url=_first_result_url(result))
    logger.info("job_completed job_id=%s duration_ms=%.1f", job_id, duration_ms)
    return result
