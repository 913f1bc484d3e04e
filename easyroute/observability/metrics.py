from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache
from threading import Lock
from typing import Any


@dataclass
class _Latency:
    count: int = 0
    total_ms: float = 0.0
    min_ms: float | None = None
    max_ms: float = 0.0

    def add(self, elapsed_ms: float) -> None:
        self.count += 1
        self.total_ms += elapsed_ms
        self.max_ms = max(self.max_ms, elapsed_ms)
        self.min_ms = elapsed_ms if self.min_ms is None else min(self.min_ms, elapsed_ms)

    def as_dict(self) -> dict[str, Any]:
        mean = self.total_ms / self.count if self.count else 0.0
        return {
            "count": self.count,
            "min_ms": round(self.min_ms or 0.0, 3),
            "mean_ms": round(mean, 3),
            "max_ms": round(self.max_ms, 3),
        }


@dataclass
class DispatchMetrics:
    """Thread-safe, process-local dispatch counters (resets on restart)."""

    requests_total: int = 0
    rejected_total: int = 0
    faults_total: int = 0
    dispatch_ms: _Latency = field(default_factory=_Latency)
    _lock: Lock = field(default_factory=Lock, repr=False, compare=False)

    def observe_dispatch(self, elapsed_ms: float, *, rejected: bool = False, fault: bool = False) -> None:
        with self._lock:
            self.requests_total += 1
            self.rejected_total += int(rejected)
            self.faults_total += int(fault)
            self.dispatch_ms.add(float(elapsed_ms))

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return {
                "counters": {
                    "requests_total": self.requests_total,
                    "rejected_total": self.rejected_total,
                    "faults_total": self.faults_total,
                },
                "latency_ms": {"dispatch_ms": self.dispatch_ms.as_dict()},
            }

    def reset(self) -> None:
        with self._lock:
            self.requests_total = self.rejected_total = self.faults_total = 0
            self.dispatch_ms = _Latency()


@lru_cache(maxsize=1)
def get_metrics() -> DispatchMetrics:
    return DispatchMetrics()


def reset_metrics() -> None:
    get_metrics().reset()
