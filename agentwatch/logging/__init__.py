"""
Agentwatch Logging System.

Two outputs:
- routes.jsonl, an audit trail with one RouteLogEntry per routed domain event
- an optional rich console handler on the "agentwatch" package logger

Usage:
    from agentwatch.logging import RouteLogEntry, now_iso, write_route_entry

    write_route_entry(RouteLogEntry(timestamp=now_iso(), kind="task_started", task_id="t1"))

The audit log defaults to ~/.agentwatch/logs/routes.jsonl.
"""

import logging

from rich.logging import RichHandler

from .config import LogConfig, get_config, set_config
from .entries import RouteLogEntry, now_iso
from .routes import get_route_logger, reset_loggers, write_route_entry

PACKAGE_LOGGER = "agentwatch"


def configure_console_logging(level: str | None = None) -> logging.Handler:
    """
    Attach a rich console handler to the package logger.

    Replaces a handler installed by an earlier call.

    Args:
        level: Log level name; defaults to LogConfig.console_level

    Returns:
        The installed handler
    """
    level_name = (level or get_config().console_level).upper()

    pkg_logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in list(pkg_logger.handlers):
        if isinstance(handler, RichHandler):
            pkg_logger.removeHandler(handler)

    handler = RichHandler(show_path=False, rich_tracebacks=True)
    handler.setLevel(getattr(logging, level_name, logging.WARNING))
    pkg_logger.addHandler(handler)
    pkg_logger.setLevel(min(pkg_logger.getEffectiveLevel(), handler.level))
    return handler


__all__ = [
    # Audit log
    "RouteLogEntry",
    "get_route_logger",
    "write_route_entry",
    "reset_loggers",
    "now_iso",
    # Console
    "configure_console_logging",
    # Config
    "LogConfig",
    "get_config",
    "set_config",
]
