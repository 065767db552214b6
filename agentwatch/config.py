"""
Agentwatch - Configuration

Resolved paths and tuning knobs consumed by the pipeline.
Defaults follow the agent's own layout under ~/.claude; every value can be
overridden from AGENTWATCH_* environment variables.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from agentwatch.exceptions import ConfigError


# Default locations
AGENT_HOME = Path.home() / ".claude"
EVENTS_FILENAME = "progress-events.jsonl"
TODOS_DIRNAME = "todos"
PROGRESS_FILENAME = "download-progress.json"
DATABASE_FILENAME = "overlay-history.db"


def _expand(path: str | Path) -> Path:
    return Path(path).expanduser()


def _env_int(name: str) -> int | None:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(
            f"Invalid integer in {name}",
            {"variable": name, "value": raw},
        )


def _env_bool(name: str) -> bool | None:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return None
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class WatchConfig:
    """Main configuration container for the pipeline."""

    events_file: Path = field(default_factory=lambda: AGENT_HOME / EVENTS_FILENAME)
    todos_dir: Path = field(default_factory=lambda: AGENT_HOME / TODOS_DIRNAME)
    progress_file: Path | None = None  # None: next to events_file
    database_file: Path = field(default_factory=lambda: AGENT_HOME / DATABASE_FILENAME)

    # Watching
    debounce_ms: int = 100
    use_polling: bool = False  # Degraded fallback when native notifications are unavailable

    # Routing
    broadcast_capacity: int = 256

    # History
    retention_days: int = 30
    max_recent_tasks: int = 10
    stale_task_threshold_ms: int = 300_000  # 5 minutes
    lock_timeout_s: float = 5.0

    def __post_init__(self) -> None:
        self.events_file = _expand(self.events_file)
        self.todos_dir = _expand(self.todos_dir)
        self.database_file = _expand(self.database_file)
        if self.progress_file is None:
            self.progress_file = self.events_file.parent / PROGRESS_FILENAME
        else:
            self.progress_file = _expand(self.progress_file)

    @property
    def progress_path(self) -> Path:
        """Progress document path; defaults to a sibling of the event log."""
        if self.progress_file is None:
            return self.events_file.parent / PROGRESS_FILENAME
        return self.progress_file

    @classmethod
    def in_dir(cls, base_dir: str | Path, **overrides: Any) -> "WatchConfig":
        """Build a config with every path rooted in one directory."""
        base = _expand(base_dir)
        return cls(
            events_file=base / EVENTS_FILENAME,
            todos_dir=base / TODOS_DIRNAME,
            progress_file=base / PROGRESS_FILENAME,
            database_file=base / DATABASE_FILENAME,
            **overrides,
        )

    @classmethod
    def from_env(cls) -> "WatchConfig":
        """Load config from environment variables with defaults."""
        if home := os.environ.get("AGENTWATCH_HOME"):
            config = cls.in_dir(home)
        else:
            config = cls()

        if events_file := os.environ.get("AGENTWATCH_EVENTS_FILE"):
            config.events_file = _expand(events_file)
            config.progress_file = config.events_file.parent / PROGRESS_FILENAME

        if todos_dir := os.environ.get("AGENTWATCH_TODOS_DIR"):
            config.todos_dir = _expand(todos_dir)

        if progress_file := os.environ.get("AGENTWATCH_PROGRESS_FILE"):
            config.progress_file = _expand(progress_file)

        if db_path := os.environ.get("AGENTWATCH_DB_PATH"):
            config.database_file = _expand(db_path)

        if (debounce := _env_int("AGENTWATCH_DEBOUNCE_MS")) is not None:
            config.debounce_ms = debounce

        if (retention := _env_int("AGENTWATCH_RETENTION_DAYS")) is not None:
            config.retention_days = retention

        if (capacity := _env_int("AGENTWATCH_BROADCAST_CAPACITY")) is not None:
            config.broadcast_capacity = capacity

        if (polling := _env_bool("AGENTWATCH_POLLING")) is not None:
            config.use_polling = polling

        config.validate()
        return config

    def validate(self) -> None:
        """
        Check value ranges.

        Raises:
            ConfigError: If any setting is out of range
        """
        if self.debounce_ms < 0:
            raise ConfigError("debounce_ms must not be negative", {"debounce_ms": self.debounce_ms})
        if self.broadcast_capacity <= 0:
            raise ConfigError(
                "broadcast_capacity must be positive",
                {"broadcast_capacity": self.broadcast_capacity},
            )
        if self.retention_days <= 0:
            raise ConfigError(
                "retention_days must be positive",
                {"retention_days": self.retention_days},
            )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for display."""
        return {
            "events_file": str(self.events_file),
            "todos_dir": str(self.todos_dir),
            "progress_file": str(self.progress_file),
            "database_file": str(self.database_file),
            "debounce_ms": self.debounce_ms,
            "use_polling": self.use_polling,
            "broadcast_capacity": self.broadcast_capacity,
            "retention_days": self.retention_days,
            "max_recent_tasks": self.max_recent_tasks,
            "stale_task_threshold_ms": self.stale_task_threshold_ms,
        }
