# User value: This file records which pool key served each render job so shared-pool problems can be traced.
import logging
from datetime import datetime, timezone
from typing import Optional, Protocol

import redis

from render_ai.contract import CONTRACT_VERSION
from render_ai.status_machine import guarded_hset
from render_ai.utils.key_masking import key_fingerprint, mask_key
from render_ai.utils.redis_safe import get_redis

logger = logging.getLogger("render_ai.adapters.job_reporter")

JOB_STATUS_TTL_SEC = 24 * 3600


class JobStatusReporter(Protocol):
    def report_key_for_job(self, job_ref: str, key: str) -> None: ...


def _job_key(job_id: str) -> str:
    return f"job_status:{job_id}"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class RedisJobReporter:
    def __init__(self, client: redis.Redis):
        self.client = client

    @classmethod
    def from_env(cls, url: str | None = None) -> "RedisJobReporter":
        return cls(get_redis(url))

    # User value: notes the key behind a job without storing the secret itself.
    def report_key_for_job(self, job_ref: str, key: str) -> None:
        if not job_ref:
            return
        row = _job_key(job_ref)
        try:
            self.client.hset(
                row,
                mapping={
                    "contract_version": CONTRACT_VERSION,
                    "api_key_hint": mask_key(key),
                    "api_key_fingerprint": key_fingerprint(key),
                    "updated_at": _now(),
                },
            )
            self.client.expire(row, JOB_STATUS_TTL_SEC)
        except redis.exceptions.RedisError as exc:
            logger.debug("job_reporter_key_write_failed job_id=%s error=%s", job_ref, exc)

    # User value: keeps the job row in step with the render so users see current status.
    def update_status(
        self,
        job_id: str,
        status: str,
        *,
        result_url: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> bool:
        fields = {
            "contract_version": CONTRACT_VERSION,
            "status": status,
            "updated_at": _now(),
        }
        if result_url:
            fields["result_url"] = result_url
        if error_message:
            fields["error_message"] = error_message

        row = _job_key(job_id)
        try:
            ok, prev_status, _ = guarded_hset(
                self.client, key=row, mapping=fields, context="JOB_REPORTER", job_id=job_id
            )
            self.client.expire(row, JOB_STATUS_TTL_SEC)
        except redis.exceptions.RedisError as exc:
            logger.error("job_reporter_status_write_failed job_id=%s status=%s error=%s", job_id, status, exc)
            return False
        if not ok:
            logger.warning("job_reporter_blocked key=%s from=%s to=%s", row, prev_status, status)
        return ok
