"""
EventRouter - raw watcher events to persisted state and domain events.

The router is the only component that writes task rows. Each raw event is
applied to the store first, then republished on the broadcast; a store
failure is logged and the domain event still goes out, so live consumers
keep working when history is unavailable.
"""

from __future__ import annotations

import logging

from agentwatch.config import WatchConfig
from agentwatch.exceptions import StoreError
from agentwatch.persistence.models import StoredTask, TaskStats, TaskStatus
from agentwatch.persistence.store import EventStore
from agentwatch.router.broadcast import Broadcast, Receiver
from agentwatch.router.events import (
    AppEvent,
    DownloadProgressUpdated,
    SessionStopped,
    TaskCanceled,
    TaskCompleted,
    TaskError,
    TaskStarted,
    TodosUpdated,
)
from agentwatch.watcher.events import (
    SESSION_STOPPED,
    TASK_CANCELED,
    TASK_COMPLETE,
    TASK_ERROR,
    TASK_STARTED,
    ProgressChanged,
    RawTaskEvent,
    TodosChanged,
    WatcherEvent,
    WatcherFailure,
)

logger = logging.getLogger(__name__)

DEFAULT_SESSION_ID = "unknown"
DEFAULT_TOOL = "Unknown"

_TERMINAL_STATUS = {
    TASK_COMPLETE: TaskStatus.COMPLETED,
    TASK_ERROR: TaskStatus.ERROR,
    TASK_CANCELED: TaskStatus.CANCELED,
}


class EventRouter:
    """
    Routes watcher output into the store and out to subscribers.

    Usage:
        router = EventRouter(store, config)
        feed = router.subscribe()
        watcher.start(router.process_watcher_event)

        result = feed.recv(timeout=1.0)
    """

    def __init__(self, store: EventStore, config: WatchConfig | None = None):
        self.store = store
        self.config = config or WatchConfig()
        self._broadcast: Broadcast[AppEvent] = Broadcast(self.config.broadcast_capacity)

    # =========================================================================
    # FEED
    # =========================================================================

    def subscribe(self) -> Receiver[AppEvent]:
        """New independent cursor on the domain event feed."""
        return self._broadcast.subscribe()

    @property
    def subscriber_count(self) -> int:
        return self._broadcast.receiver_count

    @property
    def closed(self) -> bool:
        return self._broadcast.closed

    def close(self) -> None:
        """Close the feed; subscribers drain their backlog and then see Closed."""
        if not self._broadcast.closed:
            self._broadcast.close()
            logger.debug("Event feed closed")

    def _publish(self, event: AppEvent) -> None:
        try:
            receivers = self._broadcast.send(event)
        except RuntimeError:
            logger.debug(f"Feed closed, dropping {event.kind}")
            return
        logger.debug(f"Published {event.kind} to {receivers} subscribers")

    # =========================================================================
    # DISPATCH
    # =========================================================================

    def process_watcher_event(self, event: WatcherEvent) -> None:
        """Sink for FileWatcher; never raises on bad input."""
        if isinstance(event, RawTaskEvent):
            self.process_task_event(event)
        elif isinstance(event, TodosChanged):
            self._publish(TodosUpdated(tuple(event.items)))
        elif isinstance(event, ProgressChanged):
            self._publish(DownloadProgressUpdated(event.progress))
        elif isinstance(event, WatcherFailure):
            logger.error(f"File watcher failed: {event.message}")
        else:
            logger.warning(f"Ignoring unexpected watcher event {type(event).__name__}")

    def process_task_event(self, event: RawTaskEvent) -> None:
        """Apply one log line to the store and publish its domain event."""
        if event.type == TASK_STARTED:
            self._handle_started(event)
        elif event.type in _TERMINAL_STATUS:
            self._handle_terminal(event, _TERMINAL_STATUS[event.type])
        elif event.type == SESSION_STOPPED:
            self._publish(SessionStopped(event.session_id))
        else:
            logger.warning(f"Unknown event type {event.type!r}")

    def _handle_started(self, event: RawTaskEvent) -> None:
        if not event.task_id:
            logger.warning(f"Dropping {event.type} without task_id")
            return
        task = StoredTask(
            id=event.task_id,
            session_id=event.session_id or DEFAULT_SESSION_ID,
            tool=event.tool or DEFAULT_TOOL,
            description=event.description,
            started_at=event.timestamp,
            is_background=bool(event.background),
            subagent_type=event.subagent_type,
        )
        try:
            self.store.insert_task(task)
        except StoreError as e:
            logger.error(f"Failed to store task {task.id}: {e}")

        self._publish(
            TaskStarted(
                task_id=task.id,
                tool=task.tool,
                session_id=task.session_id,
                timestamp=task.started_at,
                description=task.description,
                background=task.is_background,
                subagent_type=task.subagent_type,
            )
        )

    def _handle_terminal(self, event: RawTaskEvent, status: TaskStatus) -> None:
        if not event.task_id:
            logger.warning(f"Dropping {event.type} without task_id")
            return
        try:
            self.store.update_task_status(event.task_id, status, event.timestamp)
        except StoreError as e:
            logger.error(f"Failed to mark task {event.task_id} {status.value}: {e}")

        if status == TaskStatus.COMPLETED:
            self._publish(TaskCompleted(event.task_id, event.timestamp))
        elif status == TaskStatus.ERROR:
            self._publish(TaskError(event.task_id, event.timestamp))
        else:
            self._publish(TaskCanceled(event.task_id))

    # =========================================================================
    # QUERIES (store errors propagate to the caller)
    # =========================================================================

    def get_task(self, task_id: str) -> StoredTask | None:
        return self.store.get_task(task_id)

    def get_recent_tasks(self, limit: int | None = None) -> list[StoredTask]:
        return self.store.get_recent_tasks(limit or self.config.max_recent_tasks)

    def get_tasks_by_session(self, session_id: str) -> list[StoredTask]:
        return self.store.get_tasks_by_session(session_id)

    def search_tasks(self, query: str, limit: int = 20) -> list[StoredTask]:
        return self.store.search_tasks(query, limit)

    def get_stats(self) -> TaskStats:
        return self.store.get_task_stats()

    def get_active_task_count(self) -> int:
        return self.store.get_active_task_count()

    def cleanup_old_tasks(self, days_to_keep: int | None = None) -> int:
        """Delete finalized tasks older than days_to_keep (default: config retention)."""
        days = days_to_keep if days_to_keep is not None else self.config.retention_days
        return self.store.cleanup_old_tasks(days)
