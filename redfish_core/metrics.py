"""
Per-session request metrics.

Counters and latency samples for one RedfishSession. Batch workers share a
session, so every update happens under the collector's lock; each individual
update is atomic, while a logical request spans several updates (one per
attempt plus its terminal outcome).
"""

import math
import threading
import time
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel


def percentile(sorted_samples: List[float], fraction: float) -> Optional[float]:
    """
    Nearest-rank percentile using floor(count * fraction) indexing.

    Args:
        sorted_samples: Samples in ascending order
        fraction: Percentile as a fraction, e.g. 0.95

    Returns:
        The sample at the computed index, or None when there are no samples
    """
    if not sorted_samples:
        return None
    index = min(int(math.floor(len(sorted_samples) * fraction)), len(sorted_samples) - 1)
    return sorted_samples[index]


class MetricsSnapshot(BaseModel):
    """Read-only view of a session's metrics."""
    total_requests: int
    successful_requests: int
    failed_requests: int
    success_rate: Optional[float] = None
    average_ms: Optional[float] = None
    min_ms: Optional[float] = None
    max_ms: Optional[float] = None
    p50_ms: Optional[float] = None
    p95_ms: Optional[float] = None
    p99_ms: Optional[float] = None
    sample_count: int = 0
    start_time: datetime
    uptime_seconds: float
    requests_per_second: Optional[float] = None


class SessionMetrics:
    """Request counters and latency samples scoped to one session."""

    def __init__(self):
        self._lock = threading.Lock()
        self.total_requests = 0
        self.successful_requests = 0
        self.failed_requests = 0
        self.request_durations: List[float] = []
        self.start_time = datetime.now(timezone.utc)
        self._start_monotonic = time.monotonic()

    def record_attempt(self, elapsed_ms: float) -> None:
        """Count one sent attempt and keep its latency."""
        with self._lock:
            self.total_requests += 1
            self.request_durations.append(float(elapsed_ms))

    def record_success(self) -> None:
        with self._lock:
            self.successful_requests += 1

    def record_failure(self) -> None:
        with self._lock:
            self.failed_requests += 1

    def reset(self) -> None:
        with self._lock:
            self.total_requests = 0
            self.successful_requests = 0
            self.failed_requests = 0
            self.request_durations = []
            self.start_time = datetime.now(timezone.utc)
            self._start_monotonic = time.monotonic()

    def snapshot(self) -> MetricsSnapshot:
        with self._lock:
            total = self.total_requests
            successful = self.successful_requests
            failed = self.failed_requests
            durations = sorted(self.request_durations)
            start_time = self.start_time
            uptime = time.monotonic() - self._start_monotonic

        finished = successful + failed
        return MetricsSnapshot(
            total_requests=total,
            successful_requests=successful,
            failed_requests=failed,
            success_rate=(successful / finished * 100) if finished else None,
            average_ms=(sum(durations) / len(durations)) if durations else None,
            min_ms=durations[0] if durations else None,
            max_ms=durations[-1] if durations else None,
            p50_ms=percentile(durations, 0.50),
            p95_ms=percentile(durations, 0.95),
            p99_ms=percentile(durations, 0.99),
            sample_count=len(durations),
            start_time=start_time,
            uptime_seconds=uptime,
            requests_per_second=(total / uptime) if uptime > 0 else None,
        )
