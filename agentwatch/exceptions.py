"""
Agentwatch - Exception Hierarchy

All Agentwatch-specific exceptions inherit from AgentWatchError and carry
an optional details dict for structured logging.
"""

from typing import Any


class AgentWatchError(Exception):
    """Base exception for all Agentwatch errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


# Startup and Configuration Errors
class StartupError(AgentWatchError):
    """Raised when the pipeline cannot be started."""

    pass


class ConfigError(AgentWatchError):
    """Raised when configuration is invalid."""

    pass


# Watcher Errors
class WatcherError(AgentWatchError):
    """Base exception for file watching errors."""

    pass


class WatcherIOError(WatcherError):
    """Raised when a watched file or directory cannot be created or accessed."""

    def __init__(self, message: str, path: str | None = None):
        super().__init__(message, {"path": path} if path else None)
        self.path = path


class WatchError(WatcherError):
    """Raised when the OS watch subscription cannot be set up or fails."""

    pass


class EventParseError(AgentWatchError):
    """Raised when a log line or JSON document cannot be parsed.

    Always handled per item by the tailer; never escapes the watch loop.
    """

    def __init__(self, message: str, source: str | None = None, line: str | None = None):
        details: dict[str, Any] = {}
        if source:
            details["source"] = source
        if line is not None:
            details["line"] = line[:200]
        super().__init__(message, details)
        self.source = source
        self.line = line


# Store Errors
class StoreError(AgentWatchError):
    """Base exception for event store errors."""

    pass


class StoreConnectionError(StoreError):
    """Raised when the SQLite database cannot be opened."""

    pass


class StoreSchemaError(StoreError):
    """Raised when the schema cannot be applied."""

    pass


class StoreQueryError(StoreError):
    """Raised when a statement fails."""

    pass


class StoreIOError(StoreError):
    """Raised when the database directory cannot be created."""

    pass


class StoreLockError(StoreError):
    """Raised when the connection gate cannot be acquired in time."""

    def __init__(self, message: str, timeout_seconds: float):
        super().__init__(message, {"timeout_seconds": timeout_seconds})
        self.timeout_seconds = timeout_seconds


# Plugin Errors
class PluginError(AgentWatchError):
    """Base exception for plugin errors."""

    def __init__(self, message: str, plugin_name: str = ""):
        super().__init__(message, {"plugin": plugin_name} if plugin_name else None)
        self.plugin_name = plugin_name


class PluginInitError(PluginError):
    """Raised when a plugin fails to initialize."""

    pass


class PluginEventError(PluginError):
    """Raised when a plugin fails while handling an event."""

    pass


class PluginShutdownError(PluginError):
    """Raised when a plugin fails to shut down cleanly."""

    pass


# State Errors
class StateTransitionError(AgentWatchError):
    """Raised when an invalid pipeline state transition is attempted.

    Includes the current state and the attempted target state for debugging.
    """

    def __init__(self, message: str, from_state: str, to_state: str):
        super().__init__(message, {"from_state": from_state, "to_state": to_state})
        self.from_state = from_state
        self.to_state = to_state
