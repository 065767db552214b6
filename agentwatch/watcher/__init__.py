"""
Agentwatch watcher package.

File notifications in, raw watcher events out.
"""

from agentwatch.watcher.debounce import Debouncer
from agentwatch.watcher.events import (
    DownloadProgress,
    GlobalTodoItem,
    ProgressChanged,
    RawTaskEvent,
    TodoItem,
    TodosChanged,
    WatcherEvent,
    WatcherFailure,
)
from agentwatch.watcher.tailer import (
    LogTailer,
    clear_event_log,
    extract_session_id,
    read_all_todos,
    read_download_progress,
    read_todos_file,
)
from agentwatch.watcher.watcher import FileWatcher

__all__ = [
    "Debouncer",
    "DownloadProgress",
    "FileWatcher",
    "GlobalTodoItem",
    "LogTailer",
    "ProgressChanged",
    "RawTaskEvent",
    "TodoItem",
    "TodosChanged",
    "WatcherEvent",
    "WatcherFailure",
    "clear_event_log",
    "extract_session_id",
    "read_all_todos",
    "read_download_progress",
    "read_todos_file",
]
