"""
Event log tailing and snapshot readers.

LogTailer turns appended bytes of the JSONL event log into RawTaskEvents.
The module-level readers load the per-session todo files and the progress
document. Readers never raise on bad input: failures are logged and skipped.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from agentwatch.exceptions import EventParseError, WatcherIOError
from agentwatch.persistence.models import TodoStatus
from agentwatch.watcher.events import (
    DownloadProgress,
    GlobalTodoItem,
    RawTaskEvent,
    TodoItem,
)

logger = logging.getLogger(__name__)

AGENT_MARKER = "-agent-"


class LogTailer:
    """
    Incremental reader for an append-only JSONL file.

    Only complete lines are consumed; a trailing partial line stays unread
    until its newline arrives. A shrinking file is treated as truncated and
    re-read from the start.
    """

    def __init__(self, path: Path, start_at_end: bool = True):
        self.path = path
        size = self._current_size() if start_at_end else 0
        self.offset = size or 0
        self.last_size = size or 0

    def _current_size(self) -> int | None:
        try:
            return self.path.stat().st_size
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning(f"Cannot stat {self.path}: {e}")
            return None

    def read_new_events(self) -> list[RawTaskEvent]:
        """Return events from lines appended since the last call."""
        current_size = self._current_size()
        if current_size is None:
            return []

        if current_size < self.last_size:
            logger.info(f"{self.path.name} was truncated, reading from the start")
            self.offset = 0

        if current_size <= self.offset:
            self.last_size = current_size
            return []

        try:
            with open(self.path, "rb") as f:
                f.seek(self.offset)
                data = f.read()
        except OSError as e:
            logger.warning(f"Cannot read {self.path}: {e}")
            return []

        end = data.rfind(b"\n")
        if end < 0:
            self.last_size = current_size
            return []

        complete = data[: end + 1]
        self.offset += len(complete)
        self.last_size = max(current_size, self.offset)

        events: list[RawTaskEvent] = []
        for raw_line in complete.split(b"\n"):
            if not raw_line.strip():
                continue
            try:
                line = raw_line.decode("utf-8").strip()
                events.append(RawTaskEvent.from_json_line(line))
            except UnicodeDecodeError as e:
                logger.warning(f"Skipping undecodable line in {self.path.name}: {e}")
            except EventParseError as e:
                logger.warning(f"Skipping bad event line: {e}")
        return events


# =============================================================================
# TODOS
# =============================================================================


def extract_session_id(path: Path) -> str:
    """
    Session id from a todo file name.

    "abc-agent-xyz.json" -> "abc", "abc.json" -> "abc".
    """
    name = path.name
    if AGENT_MARKER in name:
        return name.split(AGENT_MARKER, 1)[0]
    return name[: -len(".json")] if name.endswith(".json") else name


def read_todos_file(path: Path) -> list[TodoItem] | None:
    """Parse one todo file; None if it is unreadable or malformed."""
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError) as e:
        logger.debug(f"Cannot read todo file {path}: {e}")
        return None
    except json.JSONDecodeError as e:
        logger.debug(f"Invalid JSON in todo file {path}: {e.msg}")
        return None

    if not isinstance(data, list):
        logger.debug(f"Todo file {path} is not a JSON array")
        return None

    try:
        return [TodoItem.from_dict(item) for item in data]
    except EventParseError as e:
        logger.debug(f"Skipping todo file {path}: {e.message}")
        return None


def read_all_todos(todos_dir: Path) -> list[GlobalTodoItem]:
    """
    Aggregate non-completed todos across every session file.

    Files are visited in name order; files holding only completed items
    contribute nothing.
    """
    try:
        files = sorted(p for p in todos_dir.iterdir() if p.suffix == ".json" and p.is_file())
    except OSError as e:
        logger.debug(f"Cannot list todos directory {todos_dir}: {e}")
        return []

    result: list[GlobalTodoItem] = []
    for path in files:
        items = read_todos_file(path)
        if not items:
            continue
        pending = [item for item in items if item.status != TodoStatus.COMPLETED]
        if not pending:
            continue
        session_id = extract_session_id(path)
        result.extend(
            GlobalTodoItem(
                content=item.content,
                status=item.status,
                active_form=item.active_form,
                session_id=session_id,
            )
            for item in pending
        )
    return result


# =============================================================================
# PROGRESS / LOG MAINTENANCE
# =============================================================================


def read_download_progress(path: Path) -> DownloadProgress | None:
    """Read the progress document; None if absent or invalid."""
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return DownloadProgress.from_dict(data)
    except FileNotFoundError:
        return None
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.debug(f"Cannot read progress document {path}: {e}")
        return None
    except EventParseError as e:
        logger.debug(f"Invalid progress document {path}: {e.message}")
        return None


def clear_event_log(path: Path) -> None:
    """
    Truncate the event log to empty.

    A running tailer sees the shrink and restarts from offset 0.

    Raises:
        WatcherIOError: If the file cannot be truncated
    """
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8"):
            pass
    except OSError as e:
        raise WatcherIOError(f"Cannot clear event log: {e}", path=str(path)) from e
    logger.info(f"Cleared event log {path}")
