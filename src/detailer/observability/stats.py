"""Timing statistics for detailer benchmarks.

Collects per-scenario duration samples and summarizes them as
min/max/avg/p95. Used by ``detailer bench`` to report the per-call cost
of disabled and enabled detailers.

Thread-safe for concurrent recording.

Example:
    stats = TimingStats()

    stats.record("disabled", duration_ns=41.0)
    stats.record("disabled", duration_ns=39.5)

    summary = stats.get_summary("disabled")
    print(f"avg {summary.avg_ns:.1f}ns p95 {summary.p95_ns:.1f}ns")

    data = stats.to_dict()
"""

from __future__ import annotations

import threading
import time
from collections import deque
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

# =============================================================================
# Constants
# =============================================================================

#: Default number of samples retained per scenario. Older samples are
#: dropped once the window is full.
DEFAULT_STATS_WINDOW_SIZE: int = 1000


def _utc_now() -> datetime:
    """Return current UTC datetime."""
    return datetime.now(UTC)


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class TimingSummary:
    """Summary statistics for one scenario.

    Attributes:
        name: Scenario name
        total_samples: Samples recorded since the last reset
        min_ns: Fastest sample
        max_ns: Slowest sample
        avg_ns: Mean of the retained window
        p95_ns: 95th percentile of the retained window
        uptime_seconds: Time since the collector was created or reset
    """

    name: str
    total_samples: int = 0
    min_ns: float = 0.0
    max_ns: float = 0.0
    avg_ns: float = 0.0
    p95_ns: float = 0.0
    uptime_seconds: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        """Convert the summary to a JSON-serializable dictionary.

        Returns:
            Dictionary with the same keys as the dataclass fields.

        Example:
            >>> json.dumps(stats.get_summary("disabled").to_dict())
        """
        return {
            "name": self.name,
            "total_samples": self.total_samples,
            "min_ns": self.min_ns,
            "max_ns": self.max_ns,
            "avg_ns": self.avg_ns,
            "p95_ns": self.p95_ns,
            "uptime_seconds": self.uptime_seconds,
        }


class TimingCollector:
    """Rolling window of duration samples for a single scenario."""

    def __init__(
        self,
        name: str,
        window_size: int = DEFAULT_STATS_WINDOW_SIZE,
    ) -> None:
        """Initialize an empty collector.

        Args:
            name: Scenario name, used to label the summary.
            window_size: Maximum samples retained for min/max/avg/p95.
                The total count keeps growing past the window.
        """
        self.name = name
        self._window_size = window_size
        self._samples: deque[float] = deque(maxlen=window_size)
        self._total_samples = 0
        self._start_time = time.monotonic()
        self._lock = threading.Lock()

    def record(self, duration_ns: float) -> None:
        """Record one duration sample in nanoseconds.

        Raises:
            ValueError: If duration_ns is negative.
        """
        if duration_ns < 0:
            raise ValueError(f"Duration must be non-negative, got {duration_ns}")
        with self._lock:
            self._samples.append(duration_ns)
            self._total_samples += 1

    def get_summary(self) -> TimingSummary:
        """Compute a summary of the retained samples.

        Samples are copied under the lock and sorted outside it.

        Returns:
            TimingSummary; all durations are 0.0 when nothing was recorded.

        Example:
            >>> collector = TimingCollector("enabled")
            >>> collector.record(100.0)
            >>> collector.record(200.0)
            >>> collector.get_summary().avg_ns
            150.0
        """
        with self._lock:
            samples = list(self._samples)
            total = self._total_samples
            start_time = self._start_time

        if samples:
            ordered = sorted(samples)
            min_ns = ordered[0]
            max_ns = ordered[-1]
            avg_ns = sum(ordered) / len(ordered)
            p95_ns = _percentile(ordered, 95)
        else:
            min_ns = max_ns = avg_ns = p95_ns = 0.0

        return TimingSummary(
            name=self.name,
            total_samples=total,
            min_ns=min_ns,
            max_ns=max_ns,
            avg_ns=avg_ns,
            p95_ns=p95_ns,
            uptime_seconds=time.monotonic() - start_time,
        )

    def reset(self) -> None:
        """Drop all samples and restart the uptime clock."""
        with self._lock:
            self._samples.clear()
            self._total_samples = 0
            self._start_time = time.monotonic()


class TimingStats:
    """Named collection of TimingCollectors, created on first use.

    Usage:
        stats = TimingStats()
        stats.record("enabled with time", duration_ns=812.0)
        for name, summary in stats.get_all_summaries().items():
            print(name, summary.avg_ns)
    """

    def __init__(self, window_size: int = DEFAULT_STATS_WINDOW_SIZE) -> None:
        """Initialize with the window size used for every scenario."""
        self._window_size = window_size
        self._collectors: dict[str, TimingCollector] = {}
        self._lock = threading.Lock()

    def _get_collector(self, name: str) -> TimingCollector:
        with self._lock:
            if name not in self._collectors:
                self._collectors[name] = TimingCollector(name, self._window_size)
            return self._collectors[name]

    def record(self, name: str, duration_ns: float) -> None:
        """Record a sample for scenario ``name``, creating it if needed."""
        self._get_collector(name).record(duration_ns)

    def get_summary(self, name: str) -> TimingSummary:
        """Get the summary for one scenario (empty if never recorded)."""
        return self._get_collector(name).get_summary()

    def get_all_summaries(self) -> dict[str, TimingSummary]:
        """Get summaries for every scenario, in first-recorded order."""
        with self._lock:
            collectors = list(self._collectors.values())
        return {collector.name: collector.get_summary() for collector in collectors}

    def reset(self, name: str | None = None) -> None:
        """Reset one scenario, or all of them when ``name`` is None.

        Unknown names are ignored.
        """
        with self._lock:
            if name is not None:
                if name in self._collectors:
                    self._collectors[name].reset()
            else:
                for collector in self._collectors.values():
                    collector.reset()

    def to_dict(self) -> dict[str, Any]:
        """Export all summaries with a UTC timestamp.

        Returns:
            {"scenarios": {name: {...summary...}}, "timestamp": "..."}
        """
        return {
            "scenarios": {
                name: summary.to_dict()
                for name, summary in self.get_all_summaries().items()
            },
            "timestamp": _utc_now().isoformat(),
        }


def _percentile(sorted_data: list[float], p: float) -> float:
    """Calculate a percentile from pre-sorted data.

    Linear interpolation between neighbouring samples, matching numpy's
    default 'linear' method.

    Args:
        sorted_data: Values sorted ascending. Empty input returns 0.0.
        p: Percentile, 0-100 inclusive.

    Returns:
        The interpolated percentile value.

    Raises:
        ValueError: If p is outside [0, 100].

    Example:
        >>> _percentile([1.0, 2.0, 3.0, 4.0, 5.0], 50)
        3.0
        >>> _percentile([100.0, 150.0, 200.0], 95)
        195.0
    """
    if not 0 <= p <= 100:
        raise ValueError(f"Percentile must be between 0 and 100, got {p}")

    if not sorted_data:
        return 0.0

    k = (len(sorted_data) - 1) * (p / 100)
    floor_idx = int(k)
    ceil_idx = min(floor_idx + 1, len(sorted_data) - 1)

    if floor_idx == ceil_idx:
        return sorted_data[floor_idx]

    fraction = k - floor_idx
    return sorted_data[floor_idx] * (1 - fraction) + sorted_data[ceil_idx] * fraction
