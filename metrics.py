"""
Simple in-process metrics for observability.

Thread-safe counters and duration histograms, keyed by name plus optional
labels, reported as plain dicts on the /metrics and /health/ready endpoints.
"""

import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass
class HistogramStats:
    """Running count/total/min/max for a duration series."""
    count: int = 0
    total: float = 0.0
    minimum: float = float('inf')
    maximum: float = 0.0

    def add(self, value: float) -> None:
        self.count += 1
        self.total += value
        self.minimum = min(self.minimum, value)
        self.maximum = max(self.maximum, value)

    def as_dict(self) -> Dict[str, float]:
        if not self.count:
            return {"count": 0, "avg": 0.0, "min": 0.0, "max": 0.0}
        return {
            "count": self.count,
            "avg": round(self.total / self.count, 2),
            "min": round(self.minimum, 2),
            "max": round(self.maximum, 2),
        }


class Metrics:
    """
    Metrics collector.

    Usage:
        metrics.inc("upstream_calls", labels={"endpoint": "discover"})

        with metrics.timer("catalog_duration_ms"):
            page = catalog.discover_movies(1)

        stats = metrics.get_stats()
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._counters: Dict[str, int] = {}
        self._histograms: Dict[str, HistogramStats] = {}

    @staticmethod
    def _make_key(name: str, labels: Optional[Dict[str, str]] = None) -> str:
        """Create metric key with optional labels: name{a=1,b=2}."""
        if not labels:
            return name
        label_str = ",".join(f"{k}={v}" for k, v in sorted(labels.items()))
        return f"{name}{{{label_str}}}"

    def inc(self, name: str, amount: int = 1, labels: Optional[Dict[str, str]] = None) -> None:
        """Increment a counter."""
        key = self._make_key(name, labels)
        with self._lock:
            self._counters[key] = self._counters.get(key, 0) + amount

    def observe(self, name: str, value: float, labels: Optional[Dict[str, str]] = None) -> None:
        """Record a histogram observation."""
        key = self._make_key(name, labels)
        with self._lock:
            self._histograms.setdefault(key, HistogramStats()).add(value)

    @contextmanager
    def timer(self, name: str, labels: Optional[Dict[str, str]] = None):
        """Time the enclosed block in milliseconds."""
        start = time.monotonic()
        try:
            yield
        finally:
            self.observe(name, (time.monotonic() - start) * 1000, labels)

    def get_counter(self, name: str, labels: Optional[Dict[str, str]] = None) -> int:
        """Get current value of a counter."""
        with self._lock:
            return self._counters.get(self._make_key(name, labels), 0)

    def get_stats(self) -> Dict[str, Any]:
        """All counters and histograms as a dictionary."""
        with self._lock:
            return {
                "counters": dict(self._counters),
                "histograms": {k: v.as_dict() for k, v in self._histograms.items()},
            }

    def reset(self) -> None:
        """Reset all metrics."""
        with self._lock:
            self._counters.clear()
            self._histograms.clear()


# Process-wide default collector
metrics = Metrics()
