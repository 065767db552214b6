"""
Domain events.

The only artifacts subscribers ever see. Each carries a stable `kind`
string so consumers can switch on it without importing the classes.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, ClassVar, Union

from agentwatch.watcher.events import DownloadProgress, GlobalTodoItem


@dataclass(frozen=True)
class TaskStarted:
    kind: ClassVar[str] = "task_started"

    task_id: str
    tool: str
    session_id: str
    timestamp: int
    description: str | None = None
    background: bool = False
    subagent_type: str | None = None


@dataclass(frozen=True)
class TaskCompleted:
    kind: ClassVar[str] = "task_completed"

    task_id: str
    timestamp: int


@dataclass(frozen=True)
class TaskError:
    kind: ClassVar[str] = "task_error"

    task_id: str
    timestamp: int


@dataclass(frozen=True)
class TaskCanceled:
    kind: ClassVar[str] = "task_canceled"

    task_id: str


@dataclass(frozen=True)
class SessionStopped:
    kind: ClassVar[str] = "session_stopped"

    session_id: str | None = None


@dataclass(frozen=True)
class TodosUpdated:
    """Full replacement of the global todo view."""

    kind: ClassVar[str] = "todos_updated"

    items: tuple[GlobalTodoItem, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class DownloadProgressUpdated:
    kind: ClassVar[str] = "download_progress"

    progress: DownloadProgress


AppEvent = Union[
    TaskStarted,
    TaskCompleted,
    TaskError,
    TaskCanceled,
    SessionStopped,
    TodosUpdated,
    DownloadProgressUpdated,
]


def event_to_dict(event: AppEvent) -> dict[str, Any]:
    """Serialize a domain event as {"kind": ..., **fields}."""
    if isinstance(event, TodosUpdated):
        payload: dict[str, Any] = {"items": [item.to_dict() for item in event.items]}
    elif isinstance(event, DownloadProgressUpdated):
        payload = event.progress.to_dict()
    else:
        payload = asdict(event)
    return {"kind": event.kind, **payload}
