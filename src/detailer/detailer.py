"""The Detailer: a scoped, buffering workflow logger.

A Detailer collects indented detail lines about one unit of work and
delivers them to the logging backend as a single multi-line record when
flushed. Whether it does any work at all is decided once, at
construction, by comparing its threshold with the backend's level; a
disabled Detailer turns every call into a single attribute check.

Example:
    detailer = new_detailer()  # INFO, with timings

    with detailer.enter_scope("load %s", path):
        detailer.detail("read %d rows", len(rows))
        with detailer.enter_scope("validate"):
            detailer.detail(lambda: describe(rows))  # only called if enabled

    detailer.flush()

    # Produces one record:
    #   load data.csv
    #     read 120 rows
    #     validate
    #       rows ok
    #     validate elapsed 812us
    #   load data.csv elapsed 1520us

Design Principles:
- Disabled handles never format arguments or read the clock
- Scopes are context managers; unwinding closes them innermost first
- Recording and flushing never raise into the caller's workflow
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from detailer.config import (
    DEFAULT_INDENT,
    DEFAULT_LOGGER_NAME,
    OFF,
    TRACE,
    DetailerConfig,
    TimingSetting,
    get_config,
    level_name,
    resolve_level,
)
from detailer.observability.logging import StructuredLogger, get_logger

#: A detail message: a %-style template, or a zero-argument callable
#: producing the text (called only when the Detailer is enabled).
Message = str | Callable[[], object]


class ScopeNestingError(RuntimeError):
    """A scope guard was released while a scope it encloses is still open."""


@dataclass
class _ScopeFrame:
    """One open scope on a Detailer's stack."""

    label: str
    depth: int
    start: float | None = None  # clock reading, only when timing


class ScopeGuard:
    """Token whose release closes exactly one scope.

    Returned by ``Detailer.enter_scope``. Use it as a context manager so
    the scope closes on every exit path; ``close()`` is available for
    manual control. Releasing twice is a no-op. Guards cannot be copied.
    """

    __slots__ = ("_detailer", "_frame")

    def __init__(self, detailer: Detailer | None, frame: _ScopeFrame | None) -> None:
        self._detailer = detailer
        self._frame = frame

    @property
    def closed(self) -> bool:
        """True once released, and always for guards of disabled detailers."""
        return self._frame is None

    def close(self) -> None:
        """Close the scope this guard opened.

        Pops the scope from its Detailer and, when timings are on, writes
        the elapsed-time line. Does nothing if already closed or if the
        scope was discarded by ``Detailer.reset()``.

        Raises:
            ScopeNestingError: If a scope opened inside this one is still
                open. The guard stays open so it can be closed in order.
        """
        if self._frame is None or self._detailer is None:
            return
        self._detailer._exit_scope(self._frame)
        self._frame = None
        self._detailer = None

    def __enter__(self) -> ScopeGuard:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def __copy__(self) -> ScopeGuard:
        raise TypeError("ScopeGuard cannot be copied")

    def __deepcopy__(self, memo: dict[int, Any]) -> ScopeGuard:
        raise TypeError("ScopeGuard cannot be copied")

    def __repr__(self) -> str:
        if self._frame is None:
            return "<ScopeGuard closed>"
        return f"<ScopeGuard {self._frame.label!r} depth={self._frame.depth}>"


#: Guard handed out by disabled detailers. Closing it does nothing.
_NOOP_GUARD = ScopeGuard(None, None)


class Detailer:
    """Scoped, buffering recorder for one workflow.

    Owned by a single call chain on a single thread; pass it down the
    stack instead of sharing it. Reuse across workflows by calling
    ``reset()`` between them.

    Attributes are read-only after construction: ``threshold``,
    ``timing``, ``enabled``.
    """

    def __init__(
        self,
        level: int | str = logging.INFO,
        timing: TimingSetting | str | bool = TimingSetting.WITH_TIMINGS,
        *,
        logger: logging.Logger | None = None,
        indent: str = DEFAULT_INDENT,
        clock: Callable[[], float] = time.perf_counter,
        line_timestamps: bool = False,
    ) -> None:
        """Create a Detailer and decide, once, whether it is enabled.

        The handle is enabled when ``level`` is not OFF and the backend
        logger would emit a record at ``level``. That decision is cached;
        changing the backend level later does not affect this handle.

        Args:
            level: Severity threshold, int or name ("DEBUG", "off", ...).
                Flushed records are emitted at this level.
            timing: WITH_TIMINGS (default) writes an elapsed-time line
                when each scope closes; NO_TIMINGS does not.
            logger: Backend logger. Defaults to ``detailer.workflow``.
            indent: Text added per open scope. Default two spaces.
            clock: Monotonic clock returning seconds, used for scope
                timings. Injected for deterministic tests.
            line_timestamps: With WITH_TIMINGS, prefix each recorded
                message with the microseconds elapsed since construction
                (or the last ``reset()``/``flush()``), left-aligned in a
                six-character column. Ignored with NO_TIMINGS.

        Raises:
            ValueError: If level or timing names an unknown value.
            TypeError: If level or timing has an unsupported type.

        Example:
            >>> detailer = Detailer("DEBUG", TimingSetting.NO_TIMINGS)
            >>> detailer.enabled  # False unless the backend emits DEBUG
            False
        """
        self._threshold = resolve_level(level)
        self._timing = TimingSetting.coerce(timing)
        self._logger = logger if logger is not None else get_logger(DEFAULT_LOGGER_NAME)
        self._indent = indent
        self._clock = clock
        self._timed = self._timing is TimingSetting.WITH_TIMINGS
        self._enabled = self._threshold < OFF and self._logger.isEnabledFor(
            self._threshold
        )
        self._line_timestamps = line_timestamps and self._timed and self._enabled
        self._baseline = self._clock() if self._line_timestamps else None
        self._lines: list[str] = []
        self._scopes: list[_ScopeFrame] = []
        self._dropped_records = 0

    # ── Read-only state ───────────────────────────────────────────

    @property
    def threshold(self) -> int:
        """Severity threshold; flushed records are emitted at this level."""
        return self._threshold

    @property
    def timing(self) -> TimingSetting:
        """Timing mode fixed at construction."""
        return self._timing

    @property
    def enabled(self) -> bool:
        """Whether recording does anything.

        Decided once at construction: True when the threshold is below
        OFF and the backend logger would emit a record at the threshold.
        """
        return self._enabled

    @property
    def line_timestamps(self) -> bool:
        """Whether recorded messages carry an elapsed-microseconds prefix."""
        return self._line_timestamps

    @property
    def logger(self) -> logging.Logger:
        """Backend logger that receives flushed records."""
        return self._logger

    @property
    def depth(self) -> int:
        """Number of currently open scopes."""
        return len(self._scopes)

    @property
    def dropped_records(self) -> int:
        """Flushes whose delivery raised inside the backend."""
        return self._dropped_records

    def peek(self) -> str:
        """Return the buffered, not yet flushed text."""
        if not self._lines:
            return ""
        return "\n".join(self._lines) + "\n"

    # ── Recording ─────────────────────────────────────────────────

    def detail(self, message: Message, *args: Any) -> None:
        """Record one detail line at the current indentation.

        Formatting is deferred: when the Detailer is disabled neither the
        %-arguments nor a callable message are touched. A message that
        fails to format is recorded as best-effort text instead.

        Args:
            message: %-style template, or a callable returning the text.
            *args: Values for the template's placeholders.

        Example:
            >>> detailer.detail("fetched %d rows from %s", 120, "orders")
            >>> detailer.detail(lambda: f"plan: {expensive_explain()}")
        """
        if not self._enabled:
            return
        self._write(len(self._scopes), _render(message, args))

    def detail_at(self, level: int | str, message: Message, *args: Any) -> None:
        """Record a detail line only if ``level`` reaches the threshold.

        Lets one handle carry lines of differing importance: a Detailer
        at INFO keeps ``warning`` lines and drops ``debug`` ones. A level
        that cannot be resolved (unknown name, wrong type) is treated as
        the threshold, so the line is kept and nothing is raised.

        Args:
            level: Line severity (int or name).
            message: %-style template, or a callable returning the text.
            *args: Values for the template's placeholders.

        Example:
            >>> detailer.detail_at("WARNING", "retrying %s", host)
        """
        if not self._enabled:
            return
        try:
            severity = resolve_level(level)
        except (TypeError, ValueError):
            severity = self._threshold
        if severity < self._threshold:
            return
        self._write(len(self._scopes), _render(message, args))

    def trace(self, message: Message, *args: Any) -> None:
        """Record a line at TRACE (see ``detail_at``)."""
        self.detail_at(TRACE, message, *args)

    def debug(self, message: Message, *args: Any) -> None:
        """Record a line at DEBUG (see ``detail_at``)."""
        self.detail_at(logging.DEBUG, message, *args)

    def info(self, message: Message, *args: Any) -> None:
        """Record a line at INFO (see ``detail_at``)."""
        self.detail_at(logging.INFO, message, *args)

    def warning(self, message: Message, *args: Any) -> None:
        """Record a line at WARNING (see ``detail_at``). Alias: ``warn``."""
        self.detail_at(logging.WARNING, message, *args)

    warn = warning

    def error(self, message: Message, *args: Any) -> None:
        """Record a line at ERROR (see ``detail_at``)."""
        self.detail_at(logging.ERROR, message, *args)

    # ── Scopes ────────────────────────────────────────────────────

    def enter_scope(self, message: Message, *args: Any) -> ScopeGuard:
        """Open a nested scope and return the guard that closes it.

        Writes the scope label as a header line at the current
        indentation; lines recorded until the guard is released are
        indented one level deeper. Scopes ignore per-line levels: they
        appear whenever the Detailer is enabled.

        Args:
            message: %-style label template, or a callable returning it.
            *args: Values for the label's placeholders.

        Returns:
            ScopeGuard for this scope. On a disabled Detailer, a shared
            guard whose release does nothing.

        Example:
            >>> with detailer.enter_scope("batch %d", 3):
            ...     detailer.detail("inside")
        """
        if not self._enabled:
            return _NOOP_GUARD
        depth = len(self._scopes)
        label = _render(message, args)
        self._write(depth, label)
        frame = _ScopeFrame(label, depth, self._clock() if self._timed else None)
        self._scopes.append(frame)
        return ScopeGuard(self, frame)

    scope = enter_scope

    def _exit_scope(self, frame: _ScopeFrame) -> None:
        """Pop ``frame`` and write its elapsed line (called by ScopeGuard)."""
        scopes = self._scopes
        if not scopes or scopes[-1] is not frame:
            if any(open_frame is frame for open_frame in scopes):
                raise ScopeNestingError(
                    f"Scope {frame.label!r} released while inner scope "
                    f"{scopes[-1].label!r} is still open"
                )
            # Discarded by reset()
            return
        scopes.pop()
        if frame.start is not None:
            elapsed_us = int((self._clock() - frame.start) * 1_000_000)
            self._write(frame.depth, f"{frame.label} elapsed {elapsed_us}us")

    # ── Lifecycle ─────────────────────────────────────────────────

    def flush(self) -> None:
        """Deliver the buffer as one record and clear it.

        The record is emitted at the Detailer's threshold with trailing
        whitespace trimmed. Structured loggers also receive
        ``detail_lines`` and ``open_scopes``. An empty buffer emits
        nothing. Open scopes stay open, so flushing mid-workflow is fine.

        Failures inside the backend are not raised; they increment
        ``dropped_records``. With ``line_timestamps`` the elapsed-time
        baseline restarts at zero.
        """
        if not self._lines:
            return
        text = "\n".join(self._lines).rstrip()
        line_count = len(self._lines)
        self._lines.clear()
        self._restart_baseline()
        if not text:
            return
        try:
            if isinstance(self._logger, StructuredLogger):
                self._logger.log(
                    self._threshold,
                    text,
                    detail_lines=line_count,
                    open_scopes=len(self._scopes),
                )
            else:
                self._logger.log(self._threshold, text)
        except Exception:
            # Don't raise exceptions in logging
            self._dropped_records += 1

    def reset(self) -> None:
        """Discard buffered lines and open scopes without delivering them.

        Outstanding guards for discarded scopes become no-ops, and the
        ``line_timestamps`` baseline restarts at zero.
        """
        self._lines.clear()
        self._scopes.clear()
        self._restart_baseline()

    def __enter__(self) -> Detailer:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.flush()

    def __repr__(self) -> str:
        return (
            f"Detailer(level={level_name(self._threshold)}, "
            f"timing={self._timing.value}, enabled={self._enabled}, "
            f"depth={len(self._scopes)})"
        )

    def _restart_baseline(self) -> None:
        if self._baseline is not None:
            self._baseline = self._clock()

    def _write(self, depth: int, text: str) -> None:
        """Append ``text`` to the buffer, indented ``depth`` times.

        Every line of a multi-line message is indented; one trailing
        newline is ignored so it does not leave a blank line behind. With
        line timestamps the first line is preceded by the elapsed
        microseconds, e.g. ``"250000 step"`` or ``"42     step"``.

        Args:
            depth: Number of indent units to prepend.
            text: Rendered message, possibly containing newlines.
        """
        prefix = self._indent * depth
        lines = text.split("\n")
        if len(lines) > 1 and not lines[-1]:
            lines.pop()
        rendered = [prefix + line for line in lines]
        if self._baseline is not None:
            elapsed_us = int((self._clock() - self._baseline) * 1_000_000)
            rendered[0] = f"{elapsed_us:<6} {rendered[0]}"
        self._lines.extend(rendered)


def _render(message: Message, args: tuple[Any, ...]) -> str:
    """Produce the text of a detail message, never raising."""
    try:
        text = str(message()) if callable(message) else str(message)
        if args:
            # Same single-mapping convention as logging.LogRecord
            if len(args) == 1 and isinstance(args[0], Mapping) and args[0]:
                return text % args[0]
            return text % args
        return text
    except Exception:
        return " ".join(_safe_str(part) for part in (message, *args))


def _safe_str(value: object) -> str:
    try:
        return str(value)
    except Exception:
        return f"<unprintable {type(value).__name__}>"


def new_detailer(
    level: int | str | None = None,
    timing: TimingSetting | str | bool | None = None,
    *,
    logger: logging.Logger | None = None,
    config: DetailerConfig | None = None,
    **kwargs: Any,
) -> Detailer:
    """Create a Detailer, filling unspecified settings from defaults.

    Values not passed explicitly come from ``config`` or, if that is
    None, the process-wide configuration (see ``detailer.config``).

    Args:
        level: Threshold override.
        timing: Timing mode override.
        logger: Backend logger override. Defaults to the logger named by
            the configuration's ``logger_name``.
        config: Configuration to read defaults from.
        **kwargs: Passed to ``Detailer`` (e.g. ``clock``,
            ``line_timestamps``).

    Returns:
        A new Detailer.

    Example:
        >>> new_detailer()                  # INFO, with timings
        >>> new_detailer("DEBUG")           # DEBUG, with timings
        >>> new_detailer("DEBUG", "no_timings")
    """
    cfg = config if config is not None else get_config()
    kwargs.setdefault("indent", cfg.indent)
    kwargs.setdefault("line_timestamps", cfg.line_timestamps)
    return Detailer(
        cfg.level if level is None else level,
        cfg.timing if timing is None else timing,
        logger=logger if logger is not None else get_logger(cfg.logger_name),
        **kwargs,
    )
