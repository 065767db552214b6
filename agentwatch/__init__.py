"""
Agentwatch - live task history for coding agents.

Tails the append-only progress log an agent writes, re-snapshots its todo
lists and download progress, persists task history to SQLite and fans
domain events out to any number of subscribers.
"""

__version__ = "0.2.0"

from agentwatch.exceptions import (
    AgentWatchError,
    ConfigError,
    PluginError,
    StartupError,
    StoreError,
    WatcherError,
)

__all__ = [
    "__version__",
    "AgentWatchError",
    "ConfigError",
    "StartupError",
    "WatcherError",
    "StoreError",
    "PluginError",
]
