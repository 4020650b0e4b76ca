"""Detailer configuration: levels, timing modes and process defaults.

A Detailer's configuration is the pair (severity threshold, timing mode),
fixed when the handle is created. This module resolves user-facing level
values to the stdlib ``logging`` integer scale and keeps the process-wide
default used by ``new_detailer()``.

Example:
    from detailer.config import DetailerConfig, TimingSetting, configure

    # Quieter defaults for a batch job
    configure(DetailerConfig(level="DEBUG", timing=TimingSetting.NO_TIMINGS))
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

# =============================================================================
# Constants
# =============================================================================

#: Level below DEBUG for extremely chatty detail lines.
TRACE: int = 5

#: Threshold that disables a Detailer entirely. Above every stdlib level,
#: so no backend configuration can enable it.
OFF: int = 100

#: Default threshold for new detailers.
DEFAULT_LEVEL: int = logging.INFO

#: Indentation added per open scope.
DEFAULT_INDENT: str = "  "

#: Logger that receives flushed detail records.
DEFAULT_LOGGER_NAME: str = "detailer.workflow"

_LEVEL_NAMES: dict[str, int] = {
    "TRACE": TRACE,
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
    "OFF": OFF,
}


class TimingSetting(Enum):
    """Whether closing a scope records its elapsed time."""

    WITH_TIMINGS = "with_timings"  # Elapsed line on every scope exit
    NO_TIMINGS = "no_timings"  # Scope exit writes nothing

    @classmethod
    def coerce(cls, value: TimingSetting | str | bool) -> TimingSetting:
        """Convert a loosely-typed timing value to a TimingSetting.

        Accepts the enum itself, its string value or name in any case
        ("with_timings", "NO_TIMINGS"), or a bool (True means timings on).

        Args:
            value: Timing mode in any of the accepted forms.

        Returns:
            The matching TimingSetting member.

        Raises:
            ValueError: If a string does not name a timing mode.
            TypeError: If value is of an unsupported type.

        Example:
            >>> TimingSetting.coerce("no_timings")
            <TimingSetting.NO_TIMINGS: 'no_timings'>
            >>> TimingSetting.coerce(True)
            <TimingSetting.WITH_TIMINGS: 'with_timings'>
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, bool):
            return cls.WITH_TIMINGS if value else cls.NO_TIMINGS
        if isinstance(value, str):
            key = value.strip().lower()
            for member in cls:
                if member.value == key:
                    return member
            raise ValueError(
                f"Unknown timing setting '{value}'. "
                f"Valid settings: {', '.join(m.value for m in cls)}"
            )
        raise TypeError(f"Expected TimingSetting, str or bool, got {type(value).__name__}")


def resolve_level(value: int | str) -> int:
    """Resolve a level name or number to a stdlib logging level.

    Names are matched case-insensitively and include the extra ``TRACE``
    and ``OFF`` levels. Integers pass through unchanged so custom levels
    registered with ``logging.addLevelName`` keep working.

    Args:
        value: Level as int (``logging.DEBUG``, 25, ...) or name
            ("debug", "WARN", "off").

    Returns:
        Numeric level on the stdlib logging scale.

    Raises:
        ValueError: If a string is not a known level name.
        TypeError: If value is neither int nor str (bools are rejected).

    Example:
        >>> resolve_level("debug")
        10
        >>> resolve_level("OFF")
        100
    """
    if isinstance(value, bool):
        raise TypeError("Expected int or str level, got bool")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return _LEVEL_NAMES[value.strip().upper()]
        except KeyError:
            raise ValueError(
                f"Unknown log level '{value}'. "
                f"Valid levels: {', '.join(_LEVEL_NAMES)}"
            ) from None
    raise TypeError(f"Expected int or str level, got {type(value).__name__}")


def level_name(level: int) -> str:
    """Display name for a numeric level ("OFF", "TRACE" or the stdlib name)."""
    if level >= OFF:
        return "OFF"
    if level == TRACE:
        return "TRACE"
    return logging.getLevelName(level)


@dataclass
class DetailerConfig:
    """Defaults applied by ``new_detailer()``.

    Attributes:
        level: Severity threshold (int or level name).
        timing: Whether scope exits record elapsed time.
        logger_name: Backend logger that receives flushed records.
        indent: Text prepended once per open scope.
        line_timestamps: Prefix recorded messages with elapsed
            microseconds (only with WITH_TIMINGS).
    """

    level: int | str = DEFAULT_LEVEL
    timing: TimingSetting = TimingSetting.WITH_TIMINGS
    logger_name: str = DEFAULT_LOGGER_NAME
    indent: str = DEFAULT_INDENT
    line_timestamps: bool = False

    def __post_init__(self) -> None:
        """Validate and normalize level and timing on construction."""
        self.level = resolve_level(self.level)
        self.timing = TimingSetting.coerce(self.timing)


# =============================================================================
# Process defaults
# =============================================================================

_config: DetailerConfig | None = None


def get_config() -> DetailerConfig:
    """Get the process-wide default configuration.

    Created with ``DetailerConfig()`` defaults (INFO, with timings) on
    first access.

    Returns:
        The current default DetailerConfig.
    """
    global _config
    if _config is None:
        _config = DetailerConfig()
    return _config


def configure(config: DetailerConfig | None = None) -> None:
    """Replace the process-wide default configuration.

    Only detailers created afterwards see the change; existing handles
    keep the configuration they were built with.

    Args:
        config: New defaults, or None to restore the built-in defaults.

    Example:
        >>> configure(DetailerConfig(level="DEBUG"))
        >>> get_config().level
        10
    """
    global _config
    _config = config
