"""Observability support for detailer.

Wires flushed detail records into Python's logging module and provides
timing statistics for the benchmark command.

Example:
    from detailer.observability import configure_logging, LogContext

    configure_logging(level=logging.DEBUG, json_format=True)

    with LogContext(workflow="nightly-import"):
        detailer.flush()

Statistics Example:
    from detailer.observability import TimingStats

    stats = TimingStats()
    stats.record("disabled", duration_ns=40.0)
    print(stats.get_summary("disabled").p95_ns)
"""

from detailer.observability.logging import (
    DetailFormatter,
    JSONFormatter,
    LogContext,
    StructuredLogger,
    configure_logging,
    get_logger,
    reset_logging,
)
from detailer.observability.stats import (
    TimingStats,
    TimingSummary,
)

__all__ = [
    # Logging
    "DetailFormatter",
    "JSONFormatter",
    "LogContext",
    "StructuredLogger",
    "configure_logging",
    "get_logger",
    "reset_logging",
    # Statistics
    "TimingStats",
    "TimingSummary",
]
