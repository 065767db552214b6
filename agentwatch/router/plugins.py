"""
Plugin system.

Plugins consume the router's domain feed through a three-phase lifecycle:
on_init once, on_event per event, on_shutdown once. Every failure is
contained to the plugin and the event it happened on.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from collections import deque

from agentwatch.exceptions import (
    PluginError,
    PluginEventError,
    PluginInitError,
    PluginShutdownError,
)
from agentwatch.logging import RouteLogEntry, now_iso, write_route_entry
from agentwatch.persistence.models import now_ms
from agentwatch.router.broadcast import Closed, Lagged, Received, Receiver
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
from agentwatch.router.router import EventRouter

logger = logging.getLogger(__name__)

MAX_RECORDED_ERRORS = 100


class Plugin(ABC):
    """Base class for feed consumers."""

    name: str = "plugin"
    version: str = "0.1.0"

    def on_init(self) -> None:
        """Called once before the first event."""

    @abstractmethod
    def on_event(self, event: AppEvent) -> None:
        """Called for every domain event, in feed order."""

    def on_shutdown(self) -> None:
        """Called once after the feed closes."""


class PluginManager:
    """
    Runs registered plugins against one subscription of the router feed.

    Usage:
        manager = PluginManager(router)
        manager.register(ActiveTasksPlugin())
        manager.start()      # subscribes now, delivers on a daemon thread
        ...
        router.close()       # ends the loop; plugins are shut down
        manager.join()
    """

    def __init__(self, router: EventRouter):
        self.router = router
        self._plugins: list[Plugin] = []
        self._active: list[Plugin] = []
        self._thread: threading.Thread | None = None
        self.errors: deque[PluginError] = deque(maxlen=MAX_RECORDED_ERRORS)
        self.lagged_events = 0

    @property
    def plugins(self) -> list[Plugin]:
        return list(self._plugins)

    @property
    def active_plugins(self) -> list[Plugin]:
        """Plugins that initialized successfully."""
        return list(self._active)

    def register(self, plugin: Plugin) -> None:
        if self._thread is not None:
            raise PluginError("Cannot register after start", plugin.name)
        self._plugins.append(plugin)
        logger.debug(f"Registered plugin {plugin.name} v{plugin.version}")

    def _record(self, error: PluginError) -> None:
        self.errors.append(error)
        logger.error(str(error))

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def init_all(self) -> None:
        """Initialize every plugin; ones that fail are left out of delivery."""
        self._active = []
        for plugin in self._plugins:
            try:
                plugin.on_init()
            except Exception as e:
                self._record(PluginInitError(f"Plugin init failed: {e}", plugin.name))
                continue
            self._active.append(plugin)
        logger.info(f"Initialized {len(self._active)}/{len(self._plugins)} plugins")

    def dispatch(self, event: AppEvent) -> None:
        """Deliver one event to every active plugin."""
        for plugin in self._active:
            try:
                plugin.on_event(event)
            except Exception as e:
                self._record(
                    PluginEventError(f"Plugin failed on {event.kind}: {e}", plugin.name)
                )

    def shutdown_all(self) -> None:
        for plugin in self._active:
            try:
                plugin.on_shutdown()
            except Exception as e:
                self._record(PluginShutdownError(f"Plugin shutdown failed: {e}", plugin.name))
        logger.info("Plugins shut down")

    def run(self, receiver: Receiver[AppEvent]) -> None:
        """Deliver events until the feed closes, then shut plugins down."""
        self.init_all()
        try:
            while True:
                result = receiver.recv()
                if isinstance(result, Received):
                    self.dispatch(result.event)
                elif isinstance(result, Lagged):
                    self.lagged_events += result.count
                    logger.warning(f"Plugin manager lagged, missed {result.count} events")
                elif isinstance(result, Closed):
                    break
        finally:
            self.shutdown_all()

    def start(self) -> None:
        """Subscribe now and run the delivery loop on a daemon thread."""
        if self._thread is not None:
            raise PluginError("Plugin manager already started")
        receiver = self.router.subscribe()
        self._thread = threading.Thread(
            target=self.run, args=(receiver,), name="agentwatch-plugins", daemon=True
        )
        self._thread.start()

    def join(self, timeout: float | None = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)


# =============================================================================
# BUILT-IN PLUGINS
# =============================================================================


class ActiveTasksPlugin(Plugin):
    """
    Tracks tasks that have started but not finished.

    The task map belongs to this plugin; other threads read it only through
    snapshot() and stale().
    """

    name = "active-tasks"

    def __init__(self, stale_threshold_ms: int = 300_000):
        self.stale_threshold_ms = stale_threshold_ms
        self._tasks: dict[str, TaskStarted] = {}
        self._lock = threading.Lock()

    def on_event(self, event: AppEvent) -> None:
        with self._lock:
            if isinstance(event, TaskStarted):
                self._tasks[event.task_id] = event
            elif isinstance(event, (TaskCompleted, TaskError, TaskCanceled)):
                self._tasks.pop(event.task_id, None)
            elif isinstance(event, SessionStopped):
                self._tasks.clear()

    def on_shutdown(self) -> None:
        with self._lock:
            self._tasks.clear()

    def snapshot(self) -> list[TaskStarted]:
        """In-flight tasks, oldest first."""
        with self._lock:
            return sorted(self._tasks.values(), key=lambda t: t.timestamp)

    def stale(self, now: int | None = None, threshold_ms: int | None = None) -> list[TaskStarted]:
        """In-flight tasks started longer than threshold_ms ago."""
        reference = now if now is not None else now_ms()
        threshold = threshold_ms if threshold_ms is not None else self.stale_threshold_ms
        return [t for t in self.snapshot() if reference - t.timestamp > threshold]

    def __len__(self) -> int:
        with self._lock:
            return len(self._tasks)


class RouteAuditPlugin(Plugin):
    """Writes one RouteLogEntry per domain event to routes.jsonl."""

    name = "route-audit"

    def on_event(self, event: AppEvent) -> None:
        write_route_entry(self.build_entry(event))

    @staticmethod
    def build_entry(event: AppEvent) -> RouteLogEntry:
        entry = RouteLogEntry(timestamp=now_iso(), kind=event.kind)
        if isinstance(event, TaskStarted):
            entry.task_id = event.task_id
            entry.session_id = event.session_id
            entry.event_timestamp_ms = event.timestamp
            entry.tool = event.tool
        elif isinstance(event, (TaskCompleted, TaskError)):
            entry.task_id = event.task_id
            entry.event_timestamp_ms = event.timestamp
        elif isinstance(event, TaskCanceled):
            entry.task_id = event.task_id
        elif isinstance(event, SessionStopped):
            entry.session_id = event.session_id
        elif isinstance(event, TodosUpdated):
            entry.item_count = len(event.items)
        elif isinstance(event, DownloadProgressUpdated):
            entry.task_id = event.progress.task_id
            entry.event_timestamp_ms = event.progress.timestamp
            entry.percent = event.progress.percent
        return entry
