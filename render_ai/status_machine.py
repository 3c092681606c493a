# User value: This file keeps render job rows from moving backwards once a render has finished.
from __future__ import annotations

import logging
from typing import Optional, Tuple

from render_ai.contract import (
    JOB_STATUS_COMPLETED,
    JOB_STATUS_FAILED,
    JOB_STATUS_PENDING,
    JOB_STATUS_PROCESSING,
)

logger = logging.getLogger("render_ai.status_machine")

TERMINAL_STATUSES = frozenset({JOB_STATUS_COMPLETED, JOB_STATUS_FAILED})

# Progress rank; a write may stay put or move forward, never back.
_RANK = {
    JOB_STATUS_PENDING: 0,
    JOB_STATUS_PROCESSING: 1,
    JOB_STATUS_COMPLETED: 2,
    JOB_STATUS_FAILED: 2,
}


def normalize_status(status: Optional[str]) -> Optional[str]:
    if status is None:
        return None
    text = str(status).strip().upper()
    return text or None


def is_allowed_transition(current: Optional[str], target: Optional[str]) -> bool:
    target_n = normalize_status(target)
    if target_n is None:
        return True
    if target_n not in _RANK:
        return False

    current_n = normalize_status(current)
    if current_n not in _RANK:
        # Missing or foreign row: any known status may claim it.
        return True
    if current_n in TERMINAL_STATUSES:
        return target_n == current_n
    return _RANK[target_n] >= _RANK[current_n]


# User value: writes a job row only when the status move is legal, so late writers cannot undo a finished render.
def guarded_hset(
    r, *, key: str, mapping: dict, context: str, job_id: str = ""
) -> Tuple[bool, Optional[str], Optional[str]]:
    target = normalize_status(mapping.get("status"))
    current = normalize_status(r.hget(key, "status")) if target else None

    if target and not is_allowed_transition(current, target):
        logger.warning(
            "status_write_blocked context=%s job_id=%s row=%s current=%s target=%s",
            context,
            job_id,
            key,
            current,
            target,
        )
        return False, current, target

    r.hset(key, mapping=mapping)
    return True, current, target
