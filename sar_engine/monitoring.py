"""Process counters for batch case processing."""
from __future__ import annotations

import time
from functools import wraps
from threading import Lock
from typing import Dict


class Monitoring:
    def __init__(self):
        self._lock = Lock()
        self.counters = {
            "cases_evaluated": 0,
            "cases_skipped": 0,
            "cases_failed": 0,
            "sars_generated": 0,
            "narrative_fallbacks": 0,
            "batch_requests": 0,
        }
        # Running totals only; the process may evaluate cases indefinitely.
        self.latency_total_ms = 0.0
        self.latency_count = 0

    def increment(self, name: str, amount: int = 1):
        with self._lock:
            self.counters[name] += amount

    def record_latency(self, ms: float):
        with self._lock:
            self.latency_total_ms += ms
            self.latency_count += 1

    def reset(self):
        with self._lock:
            for key in self.counters:
                self.counters[key] = 0
            self.latency_total_ms = 0.0
            self.latency_count = 0

    def snapshot(self) -> Dict[str, object]:
        with self._lock:
            counters = dict(self.counters)
            total, count = self.latency_total_ms, self.latency_count
        avg_latency = total / count if count else 0.0
        return {
            "counters": counters,
            "evaluations_timed": count,
            "average_evaluation_latency_ms": round(avg_latency, 2),
        }


monitoring = Monitoring()


def timed(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        start = time.perf_counter()
        try:
            return fn(*args, **kwargs)
        finally:
            monitoring.record_latency((time.perf_counter() - start) * 1000)

    return wrapper
