"""
Agentwatch Persistence Models

Dataclasses that map to SQLite tables.
Designed for:
- Type safety with enums and Optional types
- Easy serialization to/from database rows
- Millisecond epoch timestamps throughout, as written by the agent
"""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any


# ============================================================================
# ENUMS - Type-safe status values matching SQL schema
# ============================================================================


class TaskStatus(str, Enum):
    """Task lifecycle status."""

    ACTIVE = "active"
    COMPLETED = "completed"
    ERROR = "error"
    CANCELED = "canceled"


class TodoStatus(str, Enum):
    """Todo item status as written in snapshot files."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================


def now_ms() -> int:
    """Current wall clock in milliseconds since the Unix epoch."""
    return int(time.time() * 1000)


# ============================================================================
# CORE ENTITIES
# ============================================================================

TASK_COLUMNS = (
    "id, session_id, tool, description, status, started_at, "
    "ended_at, duration_ms, is_background, subagent_type"
)


@dataclass
class StoredTask:
    """
    One task reported by the agent.

    Maps to: tasks table
    Created on task_started, finalized once by a terminal event.
    """

    id: str
    session_id: str
    tool: str
    started_at: int
    description: str | None = None
    status: TaskStatus = TaskStatus.ACTIVE
    ended_at: int | None = None
    duration_ms: int | None = None
    is_background: bool = False
    subagent_type: str | None = None

    @classmethod
    def from_row(cls, row: tuple) -> StoredTask:
        """Create from database row (column order of TASK_COLUMNS)."""
        return cls(
            id=row[0],
            session_id=row[1],
            tool=row[2],
            description=row[3],
            status=TaskStatus(row[4]),
            started_at=row[5],
            ended_at=row[6],
            duration_ms=row[7],
            is_background=bool(row[8]),
            subagent_type=row[9],
        )

    def to_row(self) -> tuple:
        """Convert to database row for INSERT."""
        return (
            self.id,
            self.session_id,
            self.tool,
            self.description,
            self.status.value,
            self.started_at,
            self.ended_at,
            self.duration_ms,
            1 if self.is_background else 0,
            self.subagent_type,
        )

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data


@dataclass
class StoredSession:
    """
    An agent session.

    Maps to: sessions table
    Auto-created the first time a task references it.
    """

    id: str
    started_at: int
    ended_at: int | None = None
    project_path: str | None = None

    @classmethod
    def from_row(cls, row: tuple) -> StoredSession:
        """Create from database row."""
        return cls(
            id=row[0],
            started_at=row[1],
            ended_at=row[2],
            project_path=row[3],
        )

    def to_row(self) -> tuple:
        """Convert to database row."""
        return (self.id, self.started_at, self.ended_at, self.project_path)


@dataclass
class TaskStats:
    """Aggregate statistics over all stored tasks."""

    total_tasks: int = 0
    active_tasks: int = 0
    completed_tasks: int = 0
    error_tasks: int = 0
    canceled_tasks: int = 0
    avg_duration_ms: float | None = None  # None when no task has a duration

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
