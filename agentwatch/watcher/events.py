"""
Raw watcher events.

Everything the watch loop hands to the router: parsed log lines, todo
snapshots, progress documents and watch failures. None of these types leave
the router; subscribers only see agentwatch.router.events.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from typing import Any, Union

from agentwatch.exceptions import EventParseError
from agentwatch.persistence.models import TodoStatus

# Recognized log line types
TASK_STARTED = "task_started"
TASK_COMPLETE = "task_complete"
TASK_ERROR = "task_error"
TASK_CANCELED = "task_canceled"
SESSION_STOPPED = "session_stopped"

TASK_EVENT_TYPES = frozenset({TASK_STARTED, TASK_COMPLETE, TASK_ERROR, TASK_CANCELED})


def _optional_str(data: dict[str, Any], key: str) -> str | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise EventParseError(f"Field '{key}' must be a string")
    return value


def _required_ms(data: dict[str, Any], key: str) -> int:
    value = data.get(key)
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise EventParseError(f"Field '{key}' must be a number")
    return int(value)


@dataclass
class RawTaskEvent:
    """One parsed line of the event log."""

    type: str
    timestamp: int  # ms since epoch
    task_id: str | None = None
    tool: str | None = None
    description: str | None = None
    session_id: str | None = None
    background: bool | None = None
    subagent_type: str | None = None
    duration_ms: int | None = None

    @classmethod
    def from_dict(cls, data: Any) -> RawTaskEvent:
        """
        Validate and build an event from a decoded JSON object.

        Raises:
            EventParseError: If a required field is missing or mistyped
        """
        if not isinstance(data, dict):
            raise EventParseError("Event line is not a JSON object")

        event_type = data.get("type")
        if not isinstance(event_type, str) or not event_type:
            raise EventParseError("Missing event type")

        task_id = _optional_str(data, "task_id")
        if event_type in TASK_EVENT_TYPES and not task_id:
            raise EventParseError(f"Missing task_id for {event_type}")

        background = data.get("background")
        if background is not None and not isinstance(background, bool):
            raise EventParseError("Field 'background' must be a boolean")

        duration = data.get("duration_ms")
        if duration is not None:
            duration = _required_ms(data, "duration_ms")

        return cls(
            type=event_type,
            timestamp=_required_ms(data, "timestamp"),
            task_id=task_id,
            tool=_optional_str(data, "tool"),
            description=_optional_str(data, "description"),
            session_id=_optional_str(data, "session_id"),
            background=background,
            subagent_type=_optional_str(data, "subagent_type"),
            duration_ms=duration,
        )

    @classmethod
    def from_json_line(cls, line: str) -> RawTaskEvent:
        """Parse one JSONL line."""
        try:
            data = json.loads(line)
        except json.JSONDecodeError as e:
            raise EventParseError(f"Invalid JSON: {e.msg}", line=line) from e
        try:
            return cls.from_dict(data)
        except EventParseError as e:
            raise EventParseError(e.message, line=line) from e


@dataclass
class TodoItem:
    """One element of a per-session todo snapshot file."""

    content: str
    status: TodoStatus
    active_form: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> TodoItem:
        if not isinstance(data, dict):
            raise EventParseError("Todo item is not a JSON object")
        content = data.get("content")
        if not isinstance(content, str):
            raise EventParseError("Todo item has no content")
        try:
            status = TodoStatus(data.get("status"))
        except ValueError as e:
            raise EventParseError(f"Unknown todo status {data.get('status')!r}") from e
        active_form = data.get("activeForm") or ""
        if not isinstance(active_form, str):
            raise EventParseError("Field 'activeForm' must be a string")
        return cls(content=content, status=status, active_form=active_form)


@dataclass
class GlobalTodoItem:
    """A non-completed todo tagged with the session that owns it."""

    content: str
    status: TodoStatus
    active_form: str
    session_id: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "content": self.content,
            "status": self.status.value,
            "activeForm": self.active_form,
            "session_id": self.session_id,
        }


@dataclass
class DownloadProgress:
    """The progress document; last write wins."""

    task_id: str
    percent: float
    timestamp: int
    speed: str | None = None
    eta: str | None = None

    @classmethod
    def from_dict(cls, data: Any) -> DownloadProgress:
        if not isinstance(data, dict):
            raise EventParseError("Progress document is not a JSON object")
        task_id = data.get("task_id")
        if not isinstance(task_id, str):
            raise EventParseError("Progress document has no task_id")
        percent = data.get("percent")
        if isinstance(percent, bool) or not isinstance(percent, (int, float)):
            raise EventParseError("Field 'percent' must be a number")
        return cls(
            task_id=task_id,
            percent=float(percent),
            timestamp=_required_ms(data, "timestamp"),
            speed=_optional_str(data, "speed"),
            eta=_optional_str(data, "eta"),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class TodosChanged:
    """Complete todo snapshot, replacing any prior view."""

    items: list[GlobalTodoItem] = field(default_factory=list)


@dataclass
class ProgressChanged:
    """A freshly read progress document."""

    progress: DownloadProgress


@dataclass
class WatcherFailure:
    """The OS watch subscription stopped working."""

    message: str


WatcherEvent = Union[RawTaskEvent, TodosChanged, ProgressChanged, WatcherFailure]
