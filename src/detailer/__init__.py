"""detailer: a dynamic, low-overhead workflow trace logger.

Record indented, scoped detail about one unit of work and deliver it as a
single log record, paying almost nothing when the detail is disabled.

Example:
    from detailer import new_detailer

    detailer = new_detailer()  # INFO, with timings
    with detailer.enter_scope("sync %s", account):
        detailer.detail("fetched %d items", len(items))
    detailer.flush()

    quiet = new_detailer("OFF")  # every call is a no-op
"""

from detailer.config import (
    OFF,
    TRACE,
    DetailerConfig,
    TimingSetting,
    configure,
    get_config,
    resolve_level,
)
from detailer.detailer import (
    Detailer,
    ScopeGuard,
    ScopeNestingError,
    new_detailer,
)
from detailer.observability.logging import (
    LogContext,
    configure_logging,
    get_logger,
    reset_logging,
)

__version__ = "0.1.0"

__all__ = [
    # Core
    "Detailer",
    "ScopeGuard",
    "ScopeNestingError",
    "new_detailer",
    # Configuration
    "DetailerConfig",
    "TimingSetting",
    "OFF",
    "TRACE",
    "configure",
    "get_config",
    "resolve_level",
    # Logging backend
    "LogContext",
    "configure_logging",
    "get_logger",
    "reset_logging",
]
