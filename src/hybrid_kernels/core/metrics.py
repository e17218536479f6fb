"""
Hybrid Kernels Metrics — in-process counters and gauges.

Tracks routing decisions, remote failures, spec rebuilds and promotions so
/health can show where traffic went. No external dependencies.

Usage:
    from hybrid_kernels.core.metrics import metrics

    metrics.inc("router.kernels.routed", labels={"op": "shutdown", "backend": "local"})
    metrics.gauge_set("specs.count", 4)

    snapshot = metrics.snapshot()  # -> dict for JSON response
"""

from __future__ import annotations

import time
from collections import defaultdict


class MetricsCollector:
    """Counters and gauges keyed by name plus sorted labels."""

    _instance: "MetricsCollector | None" = None

    @classmethod
    def get(cls) -> "MetricsCollector":
        """Return the process-wide singleton."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def __init__(self) -> None:
        self._counters: dict[str, int] = defaultdict(int)
        self._gauges: dict[str, float] = defaultdict(float)
        self._started_at: float = time.time()

    def inc(self, name: str, value: int = 1, labels: dict | None = None) -> None:
        """Increment a counter."""
        self._counters[self._key(name, labels)] += value

    def counter(self, name: str, labels: dict | None = None) -> int:
        """Current value of a counter (0 if never incremented)."""
        return self._counters.get(self._key(name, labels), 0)

    def gauge_set(self, name: str, value: float, labels: dict | None = None) -> None:
        """Set a gauge to an absolute value."""
        self._gauges[self._key(name, labels)] = value

    def gauge(self, name: str, labels: dict | None = None) -> float | None:
        return self._gauges.get(self._key(name, labels))

    def snapshot(self) -> dict:
        """Full metrics snapshot — suitable for JSON response."""
        return {
            "uptime_seconds": round(time.time() - self._started_at, 1),
            "counters": dict(self._counters),
            "gauges": dict(self._gauges),
        }

    def reset(self) -> None:
        self._counters.clear()
        self._gauges.clear()

    def _key(self, name: str, labels: dict | None) -> str:
        """Build a metric key with optional label suffix.

        Example: "router.kernels.routed{backend=local,op=start}"
        """
        if not labels:
            return name
        label_str = ",".join(f"{k}={v}" for k, v in sorted(labels.items()))
        return f"{name}{{{label_str}}}"


# Process-wide singleton — import this directly
metrics = MetricsCollector.get()
