"""
Audit log for routed domain events.

Each line of routes.jsonl is one RouteLogEntry. The logger and its file are
set up on the first write, so enabling auditing costs nothing until an event
actually flows.
"""

import logging
import threading
from logging.handlers import RotatingFileHandler

from .config import LogConfig, get_config
from .entries import RouteLogEntry

ROUTE_LOGGER_NAME = "agentwatch.routes"

_route_logger: logging.Logger | None = None
_lock = threading.Lock()


class RouteLogHandler(RotatingFileHandler):
    """Rotating writer for messages that are already JSON lines."""

    def __init__(self, config: LogConfig):
        config.log_dir.mkdir(parents=True, exist_ok=True)
        super().__init__(
            config.route_log_path,
            maxBytes=config.rotate_at_bytes,
            backupCount=config.keep_rotated,
            encoding="utf-8",
            delay=True,
        )
        self.setFormatter(logging.Formatter("%(message)s"))


def get_route_logger() -> logging.Logger:
    """The audit logger, bound to the active LogConfig on first call."""
    global _route_logger
    with _lock:
        if _route_logger is None:
            route_logger = logging.getLogger(ROUTE_LOGGER_NAME)
            route_logger.setLevel(logging.INFO)
            # Keep JSON lines off the console handler
            route_logger.propagate = False
            route_logger.addHandler(RouteLogHandler(get_config()))
            _route_logger = route_logger
        return _route_logger


def write_route_entry(entry: RouteLogEntry) -> None:
    get_route_logger().info(entry.to_json())


def reset_loggers() -> None:
    """Close the audit file; the next write re-reads the active config."""
    global _route_logger
    with _lock:
        if _route_logger is not None:
            for handler in list(_route_logger.handlers):
                _route_logger.removeHandler(handler)
                handler.close()
        _route_logger = None
