"""
Agentwatch router package.

Raw watcher events in; persisted history and a domain event feed out.
"""

from agentwatch.router.broadcast import Broadcast, Closed, Lagged, Received, Receiver
from agentwatch.router.events import (
    AppEvent,
    DownloadProgressUpdated,
    SessionStopped,
    TaskCanceled,
    TaskCompleted,
    TaskError,
    TaskStarted,
    TodosUpdated,
    event_to_dict,
)
from agentwatch.router.plugins import ActiveTasksPlugin, Plugin, PluginManager, RouteAuditPlugin
from agentwatch.router.router import EventRouter

__all__ = [
    "ActiveTasksPlugin",
    "AppEvent",
    "Broadcast",
    "Closed",
    "DownloadProgressUpdated",
    "EventRouter",
    "Lagged",
    "Plugin",
    "PluginManager",
    "Received",
    "Receiver",
    "RouteAuditPlugin",
    "SessionStopped",
    "TaskCanceled",
    "TaskCompleted",
    "TaskError",
    "TaskStarted",
    "TodosUpdated",
    "event_to_dict",
]
