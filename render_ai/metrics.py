# User value: This file lets ops see how hard the shared key pool is being pushed.
import logging
import threading
from collections import Counter
from dataclasses import asdict, dataclass
from typing import Dict

logger = logging.getLogger("render_ai.metrics")
_LOCK = threading.Lock()


@dataclass
class _Timer:
    count: float = 0.0
    sum_ms: float = 0.0
    min_ms: float = float("inf")
    max_ms: float = 0.0

    def add(self, value: float) -> None:
        self.count += 1.0
        self.sum_ms += value
        self.min_ms = min(self.min_ms, value)
        self.max_ms = max(self.max_ms, value)


_COUNTERS: Counter = Counter()
_TIMERS: Dict[str, _Timer] = {}


def _series(name: str, tags: dict) -> str:
    labels = "|".join(f"{k}={v}" for k, v in sorted(tags.items()) if v not in (None, ""))
    return f"{name}|{labels}" if labels else name


# User value: counts attempts and outcomes per failure kind so pool pressure is visible.
def incr(name: str, amount: int = 1, **tags) -> int:
    series = _series(name, tags)
    with _LOCK:
        _COUNTERS[series] += int(amount)
        total = _COUNTERS[series]
    logger.debug("metric_counter series=%s delta=%s total=%s", series, amount, total)
    return total


# User value: records call latency so slow provider periods show up before users complain.
def observe_ms(name: str, duration_ms: float, **tags) -> None:
    series = _series(name, tags)
    value = max(0.0, float(duration_ms))
    with _LOCK:
        _TIMERS.setdefault(series, _Timer()).add(value)
    logger.debug("metric_timer series=%s value_ms=%.3f", series, value)


def counter(name: str, **tags) -> int:
    with _LOCK:
        return int(_COUNTERS.get(_series(name, tags), 0))


def snapshot() -> dict:
    with _LOCK:
        return {
            "counters": dict(_COUNTERS),
            "timers_ms": {series: asdict(timer) for series, timer in _TIMERS.items()},
        }


def reset() -> None:
    with _LOCK:
        _COUNTERS.clear()
        _TIMERS.clear()
