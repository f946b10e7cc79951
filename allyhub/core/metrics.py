"""In-process counters and timings for the API and the ingestion paths.

Three families are kept:

- request timings per (method, route template), with per-status counts;
- named ingest counters such as ``ingest.galaxy.created`` or
  ``background.recompute.failed``;
- named timers for the heavier reads (export, hub overview).

Everything lives behind one lock in the ``metrics`` singleton and is served
as plain JSON by ``GET /metrics``.
"""
from __future__ import annotations

import threading
import time
from collections import deque
from typing import Any, Deque, Dict, Tuple

# Most recent durations kept per timing for the tail percentiles
WINDOW = 256


def _nearest_rank(ordered: list, pct: float) -> float:
    if not ordered:
        return 0.0
    idx = round(pct / 100.0 * (len(ordered) - 1))
    return ordered[min(len(ordered) - 1, max(0, idx))]


class Timing:
    """Running count/total/min/max of durations plus a recent window."""

    __slots__ = ("count", "total", "low", "high", "last", "recent")

    def __init__(self) -> None:
        self.count = 0
        self.total = 0.0
        self.low = 0.0
        self.high = 0.0
        self.last = 0.0
        self.recent: Deque[float] = deque(maxlen=WINDOW)

    def observe(self, seconds: float) -> None:
        self.low = seconds if not self.count else min(self.low, seconds)
        self.high = max(self.high, seconds)
        self.count += 1
        self.total += seconds
        self.last = seconds
        self.recent.append(seconds)

    def summary(self) -> Dict[str, Any]:
        ordered = sorted(self.recent)
        ms = 1000.0
        return {
            "count": self.count,
            "total_ms": self.total * ms,
            "avg_ms": (self.total / self.count * ms) if self.count else 0.0,
            "min_ms": self.low * ms,
            "max_ms": self.high * ms,
            "last_ms": self.last * ms,
            "p95_ms": _nearest_rank(ordered, 95.0) * ms,
            "p99_ms": _nearest_rank(ordered, 99.0) * ms,
        }


class MetricsCollector:
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._started_at = time.time()
        self._started_mono = time.monotonic()
        self._routes: Dict[Tuple[str, str], Timing] = {}
        self._statuses: Dict[Tuple[str, str], Dict[str, int]] = {}
        self._requests = 0
        self._events: Dict[str, int] = {}
        self._timers: Dict[str, Timing] = {}

    def increment_event(self, key: str, count: int = 1) -> None:
        """Add count to a named counter.

        Zero increments are recorded too, so a counter appears in the snapshot
        as soon as its path has run once.
        """
        if not key:
            return
        with self._lock:
            self._events[key] = self._events.get(key, 0) + int(count)

    def record_http(self, method: str, route: str, status_code: int, duration_s: float) -> None:
        key = (method.upper(), route)
        with self._lock:
            self._routes.setdefault(key, Timing()).observe(duration_s)
            statuses = self._statuses.setdefault(key, {})
            statuses[str(status_code)] = statuses.get(str(status_code), 0) + 1
            self._requests += 1

    def record_timer(self, name: str, duration_s: float) -> None:
        if not name:
            return
        with self._lock:
            self._timers.setdefault(name, Timing()).observe(float(duration_s))

    def event_count(self, key: str) -> int:
        with self._lock:
            return self._events.get(key, 0)

    def uptime_s(self) -> float:
        return max(0.0, time.monotonic() - self._started_mono)

    def reset(self) -> None:
        with self._lock:
            self._routes.clear()
            self._statuses.clear()
            self._requests = 0
            self._events.clear()
            self._timers.clear()

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            by_route = {
                f"{method}:{route}": {**timing.summary(), "status_counts": dict(self._statuses[(method, route)])}
                for (method, route), timing in self._routes.items()
            }
            return {
                "process": {"started_at": self._started_at, "uptime_s": self.uptime_s()},
                "http": {"total_count": self._requests, "by_route": by_route},
                "events": dict(self._events),
                "timers": {name: timing.summary() for name, timing in self._timers.items()},
            }


metrics = MetricsCollector()

__all__ = ["metrics", "MetricsCollector", "Timing"]
