"""CLI entry point for detailer.

Provides the ``detailer`` console script with subcommands:

- ``bench`` — Measure per-workflow overhead of disabled and enabled detailers
- ``demo`` — Record a sample nested workflow and flush it to stderr

Usage::

    # Overhead of the four standard scenarios
    detailer bench --iterations 20000

    # Machine-readable results
    detailer bench --json

    # See what a flushed record looks like
    detailer demo --level DEBUG --backend-level DEBUG

Module Structure:
    - ``main()`` — CLI entry point, dispatches subcommands
    - ``run_bench()`` — Time the benchmark scenarios
    - ``run_demo()`` — Emit a sample detail record
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from collections.abc import Callable
from functools import lru_cache

from detailer.config import OFF, TimingSetting, resolve_level
from detailer.detailer import Detailer, new_detailer
from detailer.observability.logging import LogContext, configure_logging
from detailer.observability.stats import TimingStats

# Constants
PROGRAM_NAME = "detailer"
CLI_LOGGER_NAME = "detailer_cli"
BENCH_LOGGER_NAME = "detailer.bench"
DEFAULT_ITERATIONS = 10_000


@lru_cache(maxsize=1)
def _get_logger() -> logging.Logger:
    """Get the CLI report logger with cached initialization.

    Writes bare messages to stdout, independent of the ``detailer``
    hierarchy that demo records go to.

    Returns:
        logging.Logger: Configured logger for CLI output.
    """
    logger = logging.getLogger(CLI_LOGGER_NAME)
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    logger.propagate = False
    return logger


def _log(message: str) -> None:
    """Print a line of CLI output through the report logger.

    Args:
        message: Text to write to stdout.

    Example:
        >>> _log("scenario   avg ns")
    """
    _get_logger().info(message)


@lru_cache(maxsize=1)
def _bench_logger() -> logging.Logger:
    """Logger that accepts INFO records and discards them.

    Enabled detailers in the benchmark really build and emit records;
    the NullHandler keeps the terminal quiet.
    """
    logger = logging.getLogger(BENCH_LOGGER_NAME)
    logger.addHandler(logging.NullHandler())
    logger.setLevel(logging.INFO)
    logger.propagate = False
    return logger


# =========================================================================
# bench
# =========================================================================


def _workflow(detailer: Detailer) -> None:
    """Record the benchmark workload: one line, then a scope with two.

    Args:
        detailer: Handle to record into; flushing is left to the caller.
    """
    detailer.detail("it does something")
    with detailer.enter_scope("suspended"):
        detailer.detail("it does something else")
        detailer.detail("it does something else again")


def _disabled() -> None:
    """Construct an OFF Detailer and run the workload (nothing recorded)."""
    detailer = Detailer(OFF, logger=_bench_logger())
    _workflow(detailer)


def _enabled_no_time() -> None:
    """Construct an enabled Detailer without timings, record and flush."""
    detailer = Detailer(logging.INFO, TimingSetting.NO_TIMINGS, logger=_bench_logger())
    _workflow(detailer)
    detailer.flush()


def _enabled_with_time() -> None:
    """Construct an enabled, timed Detailer, record and flush."""
    detailer = Detailer(logging.INFO, TimingSetting.WITH_TIMINGS, logger=_bench_logger())
    _workflow(detailer)
    detailer.flush()


def _make_cached() -> Callable[[], None]:
    """Build a scenario that reuses one timed Detailer across runs.

    Returns:
        Callable that resets the shared Detailer, records the workload
        and flushes, so construction cost is excluded.
    """
    detailer = Detailer(logging.INFO, TimingSetting.WITH_TIMINGS, logger=_bench_logger())

    def cached() -> None:
        detailer.reset()
        _workflow(detailer)
        detailer.flush()

    return cached


def bench_scenarios() -> dict[str, Callable[[], None]]:
    """Return the benchmark scenarios in reporting order.

    Each callable runs one complete workflow: construct (or reuse) a
    Detailer, record a line, open a scope holding two more lines, close
    it, and flush where the Detailer is enabled.

    Returns:
        Mapping of scenario name to a zero-argument callable.
    """
    return {
        "disabled": _disabled,
        "enabled no time": _enabled_no_time,
        "enabled with time": _enabled_with_time,
        "cached enabled with time": _make_cached(),
    }


def run_bench(iterations: int = DEFAULT_ITERATIONS) -> TimingStats:
    """Time each scenario ``iterations`` times.

    Args:
        iterations: Workflows executed per scenario. Must be positive.

    Returns:
        TimingStats holding one nanosecond sample per iteration, with the
        window sized to keep every sample.

    Raises:
        ValueError: If iterations is less than 1.

    Example:
        >>> stats = run_bench(iterations=100)
        >>> stats.get_summary("disabled").total_samples
        100
    """
    if iterations < 1:
        raise ValueError(f"iterations must be at least 1, got {iterations}")

    stats = TimingStats(window_size=iterations)
    clock = time.perf_counter_ns
    for name, scenario in bench_scenarios().items():
        scenario()  # warm-up
        for _ in range(iterations):
            start = clock()
            scenario()
            stats.record(name, clock() - start)
    return stats


def _print_bench(stats: TimingStats, as_json: bool) -> None:
    """Report benchmark results as a table or as indented JSON.

    Args:
        stats: Samples collected by ``run_bench``.
        as_json: Print ``stats.to_dict()`` instead of the table.
    """
    if as_json:
        _log(json.dumps(stats.to_dict(), indent=2))
        return
    _log(f"{'scenario':<26} {'avg ns':>10} {'p95 ns':>10} {'min ns':>10}")
    for name, summary in stats.get_all_summaries().items():
        _log(
            f"{name:<26} {summary.avg_ns:>10.0f} "
            f"{summary.p95_ns:>10.0f} {summary.min_ns:>10.0f}"
        )


# =========================================================================
# demo
# =========================================================================


def run_demo(
    level: int | str = logging.INFO,
    backend_level: int | str = logging.INFO,
    timing: TimingSetting = TimingSetting.WITH_TIMINGS,
    json_format: bool = False,
    line_timestamps: bool = False,
) -> Detailer:
    """Record a small nested workflow and flush it.

    Reconfigures the ``detailer`` logging backend at ``backend_level`` so
    the gating decision is visible: a demo at DEBUG against an INFO
    backend prints nothing.

    Args:
        level: Detailer threshold.
        backend_level: Minimum level the backend emits.
        timing: Timing mode for the demo Detailer.
        json_format: Emit the record as JSON.
        line_timestamps: Prefix lines with elapsed microseconds.

    Returns:
        The flushed Detailer (for inspection in tests).
    """
    configure_logging(level=backend_level, json_format=json_format, force=True)
    detailer = new_detailer(level, timing, line_timestamps=line_timestamps)

    with LogContext(workflow="demo"), detailer:
        detailer.detail("request received")
        with detailer.enter_scope("load %s", "orders.csv"):
            detailer.detail("read %d rows", 3)
            with detailer.enter_scope("validate"):
                detailer.debug(lambda: "row checks: " + ", ".join(["schema", "dates"]))
                detailer.detail("3 valid, %d rejected", 0)
        detailer.warning("cache miss for %s", "customer 42")
        detailer.detail("response sent")

    return detailer


# =========================================================================
# main
# =========================================================================


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with ``bench`` and ``demo`` subcommands.

    Returns:
        argparse.ArgumentParser: Parser for ``main()``.
    """
    parser = argparse.ArgumentParser(
        prog=PROGRAM_NAME,
        description="Scoped, buffering workflow logger utilities.",
    )
    subparsers = parser.add_subparsers(dest="command")

    bench = subparsers.add_parser("bench", help="Measure detailer overhead")
    bench.add_argument(
        "--iterations",
        type=int,
        default=DEFAULT_ITERATIONS,
        help=f"Workflows per scenario (default {DEFAULT_ITERATIONS})",
    )
    bench.add_argument("--json", action="store_true", help="Output JSON")

    demo = subparsers.add_parser("demo", help="Flush a sample workflow record")
    demo.add_argument("--level", default="INFO", help="Detailer threshold")
    demo.add_argument(
        "--backend-level", default="INFO", help="Minimum level the backend emits"
    )
    demo.add_argument(
        "--no-timings", action="store_true", help="Omit scope elapsed lines"
    )
    demo.add_argument(
        "--line-timestamps",
        action="store_true",
        help="Prefix lines with microseconds since start",
    )
    demo.add_argument("--json", action="store_true", help="Emit the record as JSON")

    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entry point for the ``detailer`` console script.

    Args:
        argv: Command-line arguments (defaults to sys.argv[1:]).

    Returns:
        Exit code: 0 on success, 2 on usage errors.

    Example:
        >>> main(["bench", "--iterations", "100"])
        0
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command == "bench":
        try:
            stats = run_bench(args.iterations)
        except ValueError as exc:
            parser.error(str(exc))
        _print_bench(stats, args.json)
        return 0

    if args.command == "demo":
        try:
            level = resolve_level(args.level)
            backend_level = resolve_level(args.backend_level)
        except ValueError as exc:
            parser.error(str(exc))
        timing = TimingSetting.NO_TIMINGS if args.no_timings else TimingSetting.WITH_TIMINGS
        run_demo(
            level,
            backend_level,
            timing,
            json_format=args.json,
            line_timestamps=args.line_timestamps,
        )
        return 0

    parser.print_help()
    return 2


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
