"""
FileWatcher - OS change notifications to raw watcher events.

Watches the event log, the todos directory and the progress document
through watchdog, debounces the notifications, and turns each settled
change into WatcherEvents delivered to a single sink callable.

Thread model:
- watchdog's observer thread only records touched paths in the Debouncer
- one loop thread owns the LogTailer and calls the sink, in order
"""

from __future__ import annotations

import logging
import os
import threading
from collections.abc import Callable
from pathlib import Path

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.polling import PollingObserver

from agentwatch.config import WatchConfig
from agentwatch.exceptions import WatcherIOError, WatchError
from agentwatch.watcher.debounce import Debouncer
from agentwatch.watcher.events import (
    ProgressChanged,
    TodosChanged,
    WatcherEvent,
    WatcherFailure,
)
from agentwatch.watcher.tailer import LogTailer, read_all_todos, read_download_progress

logger = logging.getLogger(__name__)

EventSink = Callable[[WatcherEvent], None]

# How often the loop wakes up to check the observer is still alive
LIVENESS_INTERVAL_S = 1.0
POLLING_INTERVAL_S = 0.25
OBSERVER_STOP_TIMEOUT_S = 2.0

# Notifications that never mean content changed
_IGNORED_EVENT_TYPES = frozenset({"opened", "closed_no_write"})


class _ChangeHandler(FileSystemEventHandler):
    """Forwards interesting paths to the debouncer."""

    def __init__(self, classify: Callable[[Path], Path | None], debouncer: Debouncer):
        super().__init__()
        self._classify = classify
        self._debouncer = debouncer

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.event_type in _IGNORED_EVENT_TYPES:
            return
        for raw in (event.src_path, getattr(event, "dest_path", "")):
            if not raw:
                continue
            key = self._classify(Path(os.fsdecode(raw)))
            if key is not None:
                self._debouncer.touch(key)


class FileWatcher:
    """
    Watches the agent's files and emits WatcherEvents.

    Usage:
        watcher = FileWatcher(config)
        watcher.start(router.process_watcher_event)
        ...
        watcher.stop()
    """

    def __init__(self, config: WatchConfig):
        self.config = config
        self.events_file = config.events_file
        self.todos_dir = config.todos_dir
        self.progress_file = config.progress_path

        self._debouncer = Debouncer(config.debounce_ms)
        self._observer = None
        self._thread: threading.Thread | None = None
        self._tailer: LogTailer | None = None
        self._sink: EventSink | None = None
        self._stop_event = threading.Event()
        self._fatal_error: str | None = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def fatal_error(self) -> str | None:
        """Reason the watch subscription died, if it did."""
        return self._fatal_error

    def __enter__(self) -> FileWatcher:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()

    # =========================================================================
    # SETUP
    # =========================================================================

    def ensure_paths(self) -> None:
        """
        Create the watched directories and the event log if missing.

        Raises:
            WatcherIOError: If a path cannot be created
        """
        for directory in (self.events_file.parent, self.todos_dir, self.progress_file.parent):
            try:
                directory.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise WatcherIOError(f"Cannot create directory: {e}", path=str(directory)) from e

        try:
            self.events_file.touch(exist_ok=True)
        except OSError as e:
            raise WatcherIOError(f"Cannot create event log: {e}", path=str(self.events_file)) from e

        # Match against the paths the OS reports
        self.events_file = self.events_file.resolve()
        self.todos_dir = self.todos_dir.resolve()
        self.progress_file = self.progress_file.resolve()

    def classify(self, path: Path) -> Path | None:
        """Map a notified path to the change key it belongs to, or None."""
        if path == self.events_file:
            return self.events_file
        if path == self.progress_file:
            return self.progress_file
        if path.suffix == ".json" and path.parent == self.todos_dir:
            return self.todos_dir
        return None

    def _watches(self) -> list[tuple[Path, bool]]:
        watches = [
            (self.events_file.parent, False),
            (self.progress_file.parent, False),
            (self.todos_dir, False),
        ]
        unique: list[tuple[Path, bool]] = []
        for watch in watches:
            if watch not in unique:
                unique.append(watch)
        return unique

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def start(self, sink: EventSink) -> None:
        """
        Begin watching and deliver events to sink.

        Emits the current todo snapshot (if any) before returning. Lines
        already in the event log are not replayed.

        Raises:
            WatcherIOError: If watched paths cannot be created
            WatchError: If the OS watch subscription cannot be established
        """
        if self._thread is not None:
            raise WatchError("Watcher already started")

        self.ensure_paths()
        self._sink = sink
        self._tailer = LogTailer(self.events_file)

        observer = PollingObserver(timeout=POLLING_INTERVAL_S) if self.config.use_polling else Observer()
        handler = _ChangeHandler(self.classify, self._debouncer)
        self._observer = observer
        try:
            for path, recursive in self._watches():
                observer.schedule(handler, str(path), recursive=recursive)
            observer.start()
        except OSError as e:
            # Emitters started before the failing one are still running
            self._stop_observer(OBSERVER_STOP_TIMEOUT_S)
            raise WatchError(
                f"Cannot watch agent files: {e}",
                {"events_file": str(self.events_file), "todos_dir": str(self.todos_dir)},
            ) from e

        mode = "polling" if self.config.use_polling else "native"
        logger.info(f"Watching {self.events_file} and {self.todos_dir} ({mode})")

        initial = read_all_todos(self.todos_dir)
        if initial:
            self._deliver(TodosChanged(initial))

        self._thread = threading.Thread(target=self._run, name="agentwatch-watcher", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 2.0) -> None:
        """Stop watching; returns once the loop thread has exited."""
        self._stop_event.set()
        self._debouncer.close()

        self._stop_observer(timeout)

        if self._thread is not None:
            self._thread.join(timeout)
            if self._thread.is_alive():
                logger.warning("Watcher loop did not exit in time")

        logger.debug("File watcher stopped")

    def _stop_observer(self, timeout: float) -> None:
        observer, self._observer = self._observer, None
        if observer is None:
            return
        # Also stops and joins every emitter thread
        observer.stop()
        if observer.is_alive():
            observer.join(timeout)

    # =========================================================================
    # LOOP
    # =========================================================================

    def _run(self) -> None:
        while not self._stop_event.is_set():
            batch = self._debouncer.next_batch(timeout=LIVENESS_INTERVAL_S)
            if batch is None:
                break
            if not batch:
                if self._observer is not None and not self._observer.is_alive():
                    self._fail("File watch observer stopped unexpectedly")
                    break
                continue
            for key in batch:
                self.handle_change(key)

    def handle_change(self, key: Path) -> None:
        """Read whatever changed under key and emit the resulting events."""
        if key == self.events_file:
            if self._tailer is None:
                return
            for event in self._tailer.read_new_events():
                self._deliver(event)
        elif key == self.todos_dir:
            self._deliver(TodosChanged(read_all_todos(self.todos_dir)))
        elif key == self.progress_file:
            progress = read_download_progress(self.progress_file)
            if progress is not None:
                self._deliver(ProgressChanged(progress))

    def _deliver(self, event: WatcherEvent) -> None:
        if self._sink is None:
            return
        try:
            self._sink(event)
        except Exception:
            logger.exception(f"Event sink failed on {type(event).__name__}")

    def _fail(self, message: str) -> None:
        self._fatal_error = message
        logger.error(message)
        self._deliver(WatcherFailure(message))
