# -*- coding: utf-8 -*-
"""
Key-rotating retry orchestrator for generation calls.

One execute() call is a sequential loop: lease a key, run the operation,
classify any failure, then rotate / back off / wait / give up. Callers in
other threads or processes share only the key pool; nothing here is shared
between invocations.
"""
from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, Set, TypeVar

from render_ai.contract import POOL_EXHAUSTED
from render_ai.error_catalog import FailureRecord, PoolExhaustedError, UserFacingError, classify
from render_ai.key_pool import KeyPool, mark_key_exhausted
from render_ai.metrics import incr, observe_ms
from render_ai.recovery_policy import ACTION_FAIL_FAST, decide_recovery_action
from render_ai.adapters.job_reporter import JobStatusReporter
from render_ai.utils.key_masking import mask_key
from render_ai.utils.retry_policy import (
    COUNTER_ATTEMPTS,
    COUNTER_CONSECUTIVE_QUOTA,
    DEFAULT_MAX_ATTEMPTS,
    compute_delay,
    policy_for,
)

T = TypeVar("T")

logger = logging.getLogger("render_ai.orchestrator")

NO_KEY_MESSAGE = "No API key available in pool"


@dataclass
class AttemptState:
    attempts_made: int = 0
    consecutive_quota_failures: int = 0
    tried_keys: Set[str] = field(default_factory=set)
    last_failure: Optional[FailureRecord] = None


class DeadlineExceeded(Exception):
    pass


class KeyRotationExecutor:
    def __init__(
        self,
        pool: KeyPool,
        reporter: Optional[JobStatusReporter] = None,
        *,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        deadline_sec: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        rng: Optional[random.Random] = None,
    ):
        self.pool = pool
        self.reporter = reporter
        self.max_attempts = max(1, int(max_attempts))
        self.deadline_sec = deadline_sec
        self._sleep = sleep
        self._clock = clock
        self._rng = rng or random.Random()

    # =========================================================
    # HELPERS
    # =========================================================
    def _lease(self) -> str:
        try:
            key = self.pool.lease()
        except Exception as exc:
            logger.warning("key_lease_failed error=%s", exc.__class__.__name__)
            raise PoolExhaustedError(NO_KEY_MESSAGE) from exc
        if not key:
            raise PoolExhaustedError(NO_KEY_MESSAGE)
        return key

    def _report_key(self, job_ref: str, key: str) -> None:
        logger.info("job_key_switched job_id=%s key=%s", job_ref, mask_key(key))
        try:
            self.reporter.report_key_for_job(job_ref, key)
        except Exception as exc:
            logger.warning("job_key_report_failed job_id=%s error=%s", job_ref, exc.__class__.__name__)

    def _wait(self, delay: float, deadline_at: Optional[float]) -> None:
        if deadline_at is not None and self._clock() + delay > deadline_at:
            raise DeadlineExceeded()
        self._sleep(delay)

    def _backoff_for(self, state: AttemptState, kind: str) -> float:
        policy = policy_for(kind)
        if policy is None:
            return 0.0
        if policy.counter == COUNTER_CONSECUTIVE_QUOTA:
            exponent = state.consecutive_quota_failures
        elif policy.counter == COUNTER_ATTEMPTS:
            exponent = state.attempts_made
        else:
            exponent = 0
        return compute_delay(policy, exponent, self._rng)

    # =========================================================
    # ENTRYPOINT
    # =========================================================
    def execute(
        self,
        operation: Callable[[str], T],
        job_ref: Optional[str] = None,
        *,
        max_attempts: Optional[int] = None,
        operation_name: str = "operation",
    ) -> T:
        budget = max(1, int(max_attempts or self.max_attempts))
        state = AttemptState()
        deadline_at = self._clock() + self.deadline_sec if self.deadline_sec is not None else None
        started = self._clock()

        try:
            result = self._run(operation, job_ref, budget, state, deadline_at, operation_name)
        except UserFacingError:
            incr("genai_calls_total", operation=operation_name, outcome="exhausted")
            raise
        except Exception:
            incr("genai_calls_total", operation=operation_name, outcome="rejected")
            raise

        incr("genai_calls_total", operation=operation_name, outcome="success")
        observe_ms("genai_call_latency_ms", (self._clock() - started) * 1000.0, operation=operation_name)
        return result

    def _run(
        self,
        operation: Callable[[str], T],
        job_ref: Optional[str],
        budget: int,
        state: AttemptState,
        deadline_at: Optional[float],
        operation_name: str,
    ) -> T:
        try:
            while state.attempts_made < budget:
                try:
                    key = self._lease()
                except PoolExhaustedError as exc:
                    state.last_failure = classify(exc)
                    incr("genai_attempts_total", operation=operation_name, kind=POOL_EXHAUSTED)
                    delay = self._backoff_for(state, POOL_EXHAUSTED)
                    logger.warning(
                        "key_pool_empty operation=%s attempt=%s/%s wait_sec=%.3f",
                        operation_name,
                        state.attempts_made + 1,
                        budget,
                        delay,
                    )
                    state.attempts_made += 1
                    if state.attempts_made < budget:
                        self._wait(delay, deadline_at)
                    continue

                if key in state.tried_keys:
                    # Pool view lags behind our own mark; re-mark and skip the wasted call.
                    logger.warning("key_lease_stale operation=%s key=%s", operation_name, mask_key(key))
                    mark_key_exhausted(self.pool, key)
                    state.attempts_made += 1
                    continue

                if job_ref and self.reporter is not None:
                    self._report_key(job_ref, key)

                try:
                    return operation(key)
                except Exception as exc:
                    record = classify(exc)
                    state.last_failure = record
                    incr("genai_attempts_total", operation=operation_name, kind=record.kind)

                    decision = decide_recovery_action(
                        kind=record.kind,
                        attempts=state.attempts_made,
                        max_attempts=budget,
                    )
                    if decision["recovery_action"] == ACTION_FAIL_FAST:
                        logger.warning(
                            "attempt_rejected operation=%s kind=%s status=%s key=%s reason=%s",
                            operation_name,
                            record.kind,
                            record.raw_status,
                            mask_key(key),
                            decision["recovery_reason"],
                        )
                        raise

                    if decision["mark_key_exhausted"]:
                        state.consecutive_quota_failures += 1
                        mark_key_exhausted(self.pool, key)
                        state.tried_keys.add(key)
                    if decision["reset_quota_counter"]:
                        state.consecutive_quota_failures = 0

                    delay = self._backoff_for(state, record.kind)
                    logger.warning(
                        "retry_scheduled operation=%s kind=%s status=%s key=%s attempt=%s/%s delay_sec=%.3f action=%s",
                        operation_name,
                        record.kind,
                        record.raw_status,
                        mask_key(key),
                        state.attempts_made + 1,
                        budget,
                        delay,
                        decision["recovery_action"],
                    )
                    state.attempts_made += 1
                    if decision["retry_allowed"]:
                        self._wait(delay, deadline_at)
        except DeadlineExceeded:
            logger.warning(
                "retry_deadline_exceeded operation=%s attempts=%s deadline_sec=%s",
                operation_name,
                state.attempts_made,
                self.deadline_sec,
            )

        last = state.last_failure
        logger.error(
            "retry_budget_exhausted operation=%s attempts=%s last_kind=%s last_status=%s consecutive_quota=%s",
            operation_name,
            state.attempts_made,
            last.kind if last else None,
            last.raw_status if last else None,
            state.consecutive_quota_failures,
        )
        raise UserFacingError.from_failure(last)
