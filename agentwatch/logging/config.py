"""
Log settings for Agentwatch.

Where the routed-event audit log lives, when it rotates, and how loud the
console handler is.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

ROUTE_LOG_FILENAME = "routes.jsonl"
MB = 1024 * 1024


def _default_log_dir() -> Path:
    return Path.home() / ".agentwatch" / "logs"


@dataclass
class LogConfig:
    """Audit log location and rotation, plus the console level."""

    log_dir: Path = field(default_factory=_default_log_dir)
    rotate_at_bytes: int = 10 * MB
    keep_rotated: int = 5
    console_level: str = "WARNING"

    @property
    def route_log_path(self) -> Path:
        return self.log_dir / ROUTE_LOG_FILENAME

    @classmethod
    def from_env(cls) -> "LogConfig":
        """
        Read AGENTWATCH_LOG_DIR, AGENTWATCH_LOG_LEVEL and AGENTWATCH_LOG_MAX_SIZE_MB.

        A size that is not a positive integer keeps the default.
        """
        config = cls()
        if log_dir := os.environ.get("AGENTWATCH_LOG_DIR"):
            config.log_dir = Path(log_dir).expanduser()
        if level := os.environ.get("AGENTWATCH_LOG_LEVEL"):
            config.console_level = level.upper()

        size_mb = os.environ.get("AGENTWATCH_LOG_MAX_SIZE_MB", "")
        if size_mb.isdigit() and int(size_mb) > 0:
            config.rotate_at_bytes = int(size_mb) * MB
        return config


_active: LogConfig | None = None


def get_config() -> LogConfig:
    """Active log settings; loaded from the environment on first use."""
    global _active
    if _active is None:
        _active = LogConfig.from_env()
    return _active


def set_config(config: LogConfig) -> None:
    """Replace the active settings. Call reset_loggers() to reopen the audit log."""
    global _active
    _active = config
