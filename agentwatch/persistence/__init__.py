"""
Agentwatch Persistence Layer

SQLite-backed history of agent tasks and sessions.
"""

from agentwatch.persistence.models import (
    StoredSession,
    StoredTask,
    TaskStats,
    TaskStatus,
    TodoStatus,
    now_ms,
)
from agentwatch.persistence.store import EventStore, build_match_query

__all__ = [
    # Enums
    "TaskStatus",
    "TodoStatus",
    # Entities
    "StoredTask",
    "StoredSession",
    "TaskStats",
    # Helpers
    "now_ms",
    "build_match_query",
    # Store
    "EventStore",
]
