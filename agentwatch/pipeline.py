"""
Pipeline - wires store, router, plugins and watcher together.

Start order: store, router, retention cleanup, plugins (subscribed before
the first event), watcher. Stop releases them in reverse on every exit
path, including a failed start.
"""

from __future__ import annotations

import logging

from agentwatch.config import WatchConfig
from agentwatch.exceptions import AgentWatchError, StartupError, StoreError
from agentwatch.persistence.models import StoredTask, TaskStats
from agentwatch.persistence.store import EventStore
from agentwatch.router.broadcast import Receiver
from agentwatch.router.events import AppEvent
from agentwatch.router.plugins import Plugin, PluginManager
from agentwatch.router.router import EventRouter
from agentwatch.state import PipelineState, PipelineStatus
from agentwatch.watcher.events import WatcherEvent, WatcherFailure
from agentwatch.watcher.watcher import FileWatcher

logger = logging.getLogger(__name__)

PLUGIN_JOIN_TIMEOUT_S = 2.0


class Pipeline:
    """
    The running ingestion pipeline.

    Usage:
        with Pipeline(WatchConfig.from_env()) as pipeline:
            feed = pipeline.subscribe()
            ...
    """

    def __init__(self, config: WatchConfig | None = None, plugins: list[Plugin] | None = None):
        self.config = config or WatchConfig()
        self.plugins = list(plugins or [])
        self.status = PipelineStatus()

        self.store: EventStore | None = None
        self.router: EventRouter | None = None
        self.watcher: FileWatcher | None = None
        self.plugin_manager: PluginManager | None = None

    def __enter__(self) -> Pipeline:
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()

    @property
    def is_running(self) -> bool:
        return self.status.is_running

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def start(self) -> None:
        """
        Bring the pipeline up.

        Raises:
            StartupError: If required paths or the watch cannot be set up;
                nothing is left running in that case
        """
        if self.status.state != PipelineState.INITIALIZING:
            raise StartupError(
                "Pipeline can only be started once", {"state": self.status.state.name}
            )

        try:
            self.config.validate()
            self.store = self._open_store()
            router = EventRouter(self.store, self.config)
            self.router = router
            self._run_retention(router)

            self.plugin_manager = PluginManager(router)
            for plugin in self.plugins:
                self.plugin_manager.register(plugin)
            self.plugin_manager.start()

            self.watcher = FileWatcher(self.config)
            self.watcher.start(self._on_watcher_event)
        except AgentWatchError as e:
            self._release()
            self.status.fail(str(e))
            logger.error(f"Pipeline failed to start: {e}")
            raise StartupError(f"Pipeline failed to start: {e.message}", e.details) from e

        self.status.require_transition(PipelineState.RUNNING)
        logger.info("Pipeline running")

    def stop(self) -> None:
        """Stop watching and release every handle. Safe to call twice."""
        state = self.status.state
        if state in (PipelineState.INITIALIZING, PipelineState.STOPPED):
            return

        if state == PipelineState.RUNNING:
            self.status.require_transition(PipelineState.STOPPING)
        try:
            self._release()
        finally:
            if self.status.state == PipelineState.STOPPING:
                self.status.require_transition(PipelineState.STOPPED)
        logger.info("Pipeline stopped")

    def _open_store(self) -> EventStore:
        try:
            return EventStore(self.config.database_file, lock_timeout=self.config.lock_timeout_s)
        except StoreError as e:
            logger.error(f"History unavailable, using in-memory store: {e}")
            self.status.history_available = False
            return EventStore.in_memory(lock_timeout=self.config.lock_timeout_s)

    def _run_retention(self, router: EventRouter) -> None:
        try:
            self.status.cleaned_up_tasks = router.cleanup_old_tasks()
        except StoreError as e:
            logger.error(f"Retention cleanup failed: {e}")

    def _release(self) -> None:
        try:
            if self.watcher is not None:
                self.watcher.stop()
        finally:
            try:
                if self.router is not None:
                    self.router.close()
                if self.plugin_manager is not None:
                    self.plugin_manager.join(PLUGIN_JOIN_TIMEOUT_S)
            finally:
                if self.store is not None:
                    self.store.close()

    def _on_watcher_event(self, event: WatcherEvent) -> None:
        if isinstance(event, WatcherFailure):
            self.status.fail(event.message)
        self._require_router().process_watcher_event(event)

    # =========================================================================
    # UI-FACING SURFACE
    # =========================================================================

    def _require_router(self) -> EventRouter:
        if self.router is None:
            raise StartupError("Pipeline is not started")
        return self.router

    def subscribe(self) -> Receiver[AppEvent]:
        """Independent cursor on the live domain feed."""
        return self._require_router().subscribe()

    def recent_tasks(self, limit: int | None = None) -> list[StoredTask]:
        return self._require_router().get_recent_tasks(limit)

    def search_tasks(self, query: str, limit: int = 20) -> list[StoredTask]:
        return self._require_router().search_tasks(query, limit)

    def task_stats(self) -> TaskStats:
        return self._require_router().get_stats()
