"""Tests for the observability module (backend logging and timing stats)."""

import io
import json
import logging
import sys

import pytest

from detailer.observability.logging import (
    DetailFormatter,
    JSONFormatter,
    LogContext,
    StructuredLogger,
    _format_value,
    _log_context,
    configure_logging,
    get_logger,
    reset_logging,
)
from detailer.observability.stats import (
    TimingCollector,
    TimingStats,
    TimingSummary,
    _percentile,
)


def _record(msg: str, **structured) -> logging.LogRecord:
    record = logging.LogRecord(
        name="detailer.workflow",
        level=logging.INFO,
        pathname="test.py",
        lineno=1,
        msg=msg,
        args=(),
        exc_info=None,
    )
    if structured:
        record.structured_data = structured
    return record


# =============================================================================
# Structured Logging Tests
# =============================================================================


class TestStructuredLogger:
    """Tests for StructuredLogger keyword handling."""

    def test_kwargs_become_structured_data(self, backend):
        """Verifies keyword arguments land in record.structured_data.

        Arrangement:
        1. Logger from get_logger() under the detailer hierarchy.
        2. info() and log() called with keyword data.

        Assertion Strategy:
        - Both records carry their keywords as structured_data.
        """
        logger = get_logger("detailer.test")
        assert isinstance(logger, StructuredLogger)

        logger.info("one", rows=3)
        logger.log(logging.WARNING, "two", depth=1)

        assert backend.records[0].structured_data == {"rows": 3}
        assert backend.records[1].structured_data == {"depth": 1}
        assert backend.records[1].levelno == logging.WARNING

    def test_percent_args_still_work(self, backend):
        """Verifies %-style args are formatted as with a standard logger."""
        get_logger("detailer.test").info("%d rows", 5, table="orders")
        assert backend.messages == ["5 rows"]
        assert backend.records[0].structured_data == {"table": "orders"}

    def test_disabled_level_is_skipped(self, backend):
        """Verifies records below the backend level are not created."""
        get_logger("detailer.test").debug("hidden", rows=1)
        assert backend.records == []

    def test_extra_is_preserved(self, backend):
        """Verifies extra attributes coexist with structured_data."""
        get_logger("detailer.test").info("x", extra={"request": "r1"}, rows=2)
        record = backend.records[0]
        assert record.request == "r1"
        assert record.structured_data == {"rows": 2}


class TestLogContext:
    """Tests for LogContext."""

    def test_context_merges_and_restores(self, backend):
        """Verifies nested contexts merge and unwind in order.

        Arrangement:
        1. Outer context workflow=a, inner context overrides step.

        Assertion Strategy:
        - Inner record has both keys; outer-only record has one.
        - Context is empty after both exit.
        """
        logger = get_logger("detailer.test")
        with LogContext(workflow="a", step="outer"):
            with LogContext(step="inner"):
                logger.info("inner")
            logger.info("outer")

        assert backend.records[0].structured_data == {"workflow": "a", "step": "inner"}
        assert backend.records[1].structured_data == {"workflow": "a", "step": "outer"}
        assert _log_context.get() == {}

    def test_kwargs_override_context(self, backend):
        """Verifies explicit keywords win over context values."""
        with LogContext(rows=1):
            get_logger("detailer.test").info("x", rows=2)
        assert backend.records[0].structured_data == {"rows": 2}

    def test_restores_on_exception(self):
        """Verifies the context is restored when the block raises."""
        with pytest.raises(RuntimeError):
            with LogContext(workflow="failing"):
                raise RuntimeError("boom")
        assert _log_context.get() == {}

    def test_enter_returns_self(self):
        """Verifies `with LogContext(...) as ctx` binds the context."""
        context = LogContext(a=1)
        with context as entered:
            assert entered is context


class TestDetailFormatter:
    """Tests for DetailFormatter."""

    def test_plain_message(self):
        """Verifies records without structured data use the base format."""
        formatter = DetailFormatter(fmt="%(levelname)s - %(message)s")
        assert formatter.format(_record("hello")) == "INFO - hello"

    def test_structured_on_first_line(self):
        """Verifies structured pairs go on the first line of a block.

        Assertion Strategy:
        - Continuation lines keep their indentation, unchanged.
        """
        formatter = DetailFormatter(fmt="%(levelname)s - %(message)s")
        record = _record("outer\n  a\n  b", detail_lines=3, workflow="nightly run")

        assert formatter.format(record) == (
            'INFO - outer | detail_lines=3 workflow="nightly run"\n  a\n  b'
        )

    def test_structured_disabled(self):
        """Verifies include_structured=False omits the pairs."""
        formatter = DetailFormatter(
            fmt="%(message)s", include_structured=False
        )
        assert formatter.format(_record("x", rows=1)) == "x"

    def test_default_format_includes_name_and_level(self):
        """Verifies the default format has logger name and level."""
        output = DetailFormatter().format(_record("msg"))
        assert " - detailer.workflow - INFO - msg" in output


class TestJSONFormatter:
    """Tests for JSONFormatter."""

    def test_fields_and_lines(self):
        """Verifies base fields, split lines and structured keys.

        Assertion Strategy:
        - Output parses as JSON on a single line.
        - lines mirrors the message split on newlines.
        """
        record = _record("outer\n  a", detail_lines=2)
        output = JSONFormatter().format(record)

        assert "\n" not in output
        data = json.loads(output)
        assert data["level"] == "INFO"
        assert data["logger"] == "detailer.workflow"
        assert data["message"] == "outer\n  a"
        assert data["lines"] == ["outer", "  a"]
        assert data["detail_lines"] == 2
        assert data["timestamp"].endswith("+00:00")

    def test_exception_info(self):
        """Verifies exception text is included when exc_info is set."""
        try:
            raise ValueError("bad")
        except ValueError:
            record = logging.LogRecord(
                "detailer", logging.ERROR, "t.py", 1, "failed", (), sys.exc_info()
            )
        data = json.loads(JSONFormatter().format(record))
        assert "ValueError: bad" in data["exception"]

    def test_non_serializable_values(self):
        """Verifies unknown objects fall back to str()."""
        record = _record("x", obj=object())
        data = json.loads(JSONFormatter().format(record))
        assert data["obj"].startswith("<object object")


class TestFormatValue:
    """Tests for _format_value."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (None, "null"),
            ("simple", "simple"),
            ("has spaces", '"has spaces"'),
            ({"depth": 2}, '{"depth": 2}'),
            ([1, 2], "[1, 2]"),
            (42, "42"),
            (True, "True"),
        ],
    )
    def test_values(self, value, expected):
        """Verifies each value type renders as documented."""
        assert _format_value(value) == expected


class TestConfigureLogging:
    """Tests for configure_logging, reset_logging and get_logger."""

    def test_configure_installs_one_handler(self):
        """Verifies configure sets level, handler and disables propagation."""
        stream = io.StringIO()
        configure_logging(level="DEBUG", stream=stream)

        root = logging.getLogger("detailer")
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert root.propagate is False
        assert isinstance(root.handlers[0].formatter, DetailFormatter)

    def test_configure_is_idempotent(self):
        """Verifies a second call without force changes nothing."""
        configure_logging(level=logging.INFO, stream=io.StringIO())
        configure_logging(level=logging.DEBUG, stream=io.StringIO())

        root = logging.getLogger("detailer")
        assert root.level == logging.INFO
        assert len(root.handlers) == 1

    def test_force_reconfigures(self):
        """Verifies force=True replaces the handler and level."""
        configure_logging(level=logging.INFO, stream=io.StringIO())
        configure_logging(level=logging.ERROR, json_format=True, force=True)

        root = logging.getLogger("detailer")
        assert root.level == logging.ERROR
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, JSONFormatter)

    def test_json_output_end_to_end(self):
        """Verifies JSON configuration writes parseable lines to the stream."""
        stream = io.StringIO()
        configure_logging(json_format=True, stream=stream, force=True)

        get_logger("detailer.workflow").info("a\nb", detail_lines=2)

        data = json.loads(stream.getvalue().strip())
        assert data["lines"] == ["a", "b"]
        assert data["detail_lines"] == 2

    def test_reset_removes_handlers(self):
        """Verifies reset_logging removes and unconfigures the handler."""
        configure_logging(stream=io.StringIO())
        reset_logging()

        from detailer.observability import logging as log_module

        assert logging.getLogger("detailer").handlers == []
        assert log_module._configured is False

    def test_get_logger_configures_lazily(self):
        """Verifies get_logger() configures defaults on first use."""
        from detailer.observability import logging as log_module

        assert log_module._configured is False
        logger = get_logger("detailer.lazy")

        assert log_module._configured is True
        assert isinstance(logger, StructuredLogger)
        assert logging.getLogger("detailer").level == logging.INFO


# =============================================================================
# Statistics Tests
# =============================================================================


class TestTimingCollector:
    """Tests for TimingCollector."""

    def test_empty_summary(self):
        """Verifies an unused collector reports zeros."""
        summary = TimingCollector("idle").get_summary()
        assert summary.name == "idle"
        assert summary.total_samples == 0
        assert summary.avg_ns == 0.0
        assert summary.p95_ns == 0.0

    def test_summary_values(self):
        """Verifies min/max/avg/p95 over recorded samples."""
        collector = TimingCollector("enabled")
        for value in (100.0, 200.0, 300.0, 400.0, 500.0):
            collector.record(value)

        summary = collector.get_summary()
        assert summary.total_samples == 5
        assert summary.min_ns == 100.0
        assert summary.max_ns == 500.0
        assert summary.avg_ns == 300.0
        assert summary.p95_ns == pytest.approx(480.0)

    def test_window_drops_old_samples(self):
        """Verifies only the newest window_size samples are summarized.

        Assertion Strategy:
        - total_samples counts everything; min reflects the window.
        """
        collector = TimingCollector("windowed", window_size=2)
        for value in (1.0, 50.0, 60.0):
            collector.record(value)

        summary = collector.get_summary()
        assert summary.total_samples == 3
        assert summary.min_ns == 50.0

    def test_negative_duration_rejected(self):
        """Verifies negative samples raise ValueError."""
        with pytest.raises(ValueError):
            TimingCollector("x").record(-1.0)

    def test_reset(self):
        """Verifies reset clears samples and counts."""
        collector = TimingCollector("x")
        collector.record(10.0)
        collector.reset()
        assert collector.get_summary().total_samples == 0


class TestTimingStats:
    """Tests for TimingStats."""

    def test_records_per_scenario(self):
        """Verifies samples are kept per name in first-recorded order."""
        stats = TimingStats()
        stats.record("disabled", 40.0)
        stats.record("enabled", 900.0)
        stats.record("disabled", 60.0)

        summaries = stats.get_all_summaries()
        assert list(summaries) == ["disabled", "enabled"]
        assert summaries["disabled"].avg_ns == 50.0
        assert isinstance(summaries["enabled"], TimingSummary)

    def test_reset_one_and_all(self):
        """Verifies reset(name) and reset() scopes, ignoring unknown names."""
        stats = TimingStats()
        stats.record("a", 1.0)
        stats.record("b", 1.0)

        stats.reset("a")
        stats.reset("unknown")
        assert stats.get_summary("a").total_samples == 0
        assert stats.get_summary("b").total_samples == 1

        stats.reset()
        assert stats.get_summary("b").total_samples == 0

    def test_to_dict_is_serializable(self):
        """Verifies the export round-trips through json."""
        stats = TimingStats()
        stats.record("disabled", 42.0)

        data = json.loads(json.dumps(stats.to_dict()))
        assert data["scenarios"]["disabled"]["max_ns"] == 42.0
        assert "timestamp" in data


class TestPercentile:
    """Tests for _percentile."""

    def test_values(self):
        """Verifies interpolation, bounds and empty input."""
        assert _percentile([1.0, 2.0, 3.0, 4.0, 5.0], 50) == 3.0
        assert _percentile([100.0, 150.0, 200.0], 95) == pytest.approx(195.0)
        assert _percentile([7.0], 95) == 7.0
        assert _percentile([], 50) == 0.0
        assert _percentile([1.0, 9.0], 0) == 1.0
        assert _percentile([1.0, 9.0], 100) == 9.0

    def test_out_of_range(self):
        """Verifies p outside [0, 100] raises."""
        with pytest.raises(ValueError):
            _percentile([1.0], 101)
