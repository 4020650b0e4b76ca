"""Pytest configuration and fixtures for detailer tests.

The logging backend and the default DetailerConfig are process-wide, so
every test starts and ends with both reset. Tests that need to observe
flushed records use the ``backend`` fixture, which configures the
``detailer`` logger at INFO and records everything it emits.
"""

from __future__ import annotations

import io
import logging
from collections.abc import Iterator

import pytest

from detailer.config import configure
from detailer.observability.logging import (
    ROOT_LOGGER_NAME,
    configure_logging,
    reset_logging,
)


class RecordingHandler(logging.Handler):
    """Handler that keeps every record it receives.

    Attributes:
        records: Emitted LogRecords in order.
        stream: StringIO receiving the formatted text output.
    """

    def __init__(self, stream: io.StringIO) -> None:
        super().__init__(logging.NOTSET)
        self.records: list[logging.LogRecord] = []
        self.stream = stream

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(record)

    @property
    def messages(self) -> list[str]:
        return [record.getMessage() for record in self.records]


class FakeClock:
    """Manually advanced clock for deterministic scope timings.

    Advance by binary fractions (0.25, 0.5) so elapsed microseconds are
    exact.
    """

    def __init__(self) -> None:
        self.now = 0.0
        self.calls = 0

    def __call__(self) -> float:
        self.calls += 1
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def clean_detailer_state() -> Iterator[None]:
    """Reset the logging backend and default config around each test.

    Business context:
    Detailers decide whether they are enabled from the backend level at
    construction, so state leaking between tests would change results.

    Yields:
        None.
    """
    reset_logging()
    configure(None)
    yield
    reset_logging()
    configure(None)


@pytest.fixture
def backend() -> Iterator[RecordingHandler]:
    """Configure the backend at INFO and capture what it emits.

    Yields:
        RecordingHandler attached to the ``detailer`` logger; its
        ``stream`` holds the formatted text from the regular handler.
    """
    stream = io.StringIO()
    configure_logging(level=logging.INFO, stream=stream, force=True)
    handler = RecordingHandler(stream)
    logging.getLogger(ROOT_LOGGER_NAME).addHandler(handler)
    yield handler


@pytest.fixture
def clock() -> FakeClock:
    """Provide a FakeClock starting at 0.0 seconds."""
    return FakeClock()
