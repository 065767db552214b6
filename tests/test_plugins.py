"""Tests for the plugin manager and built-in plugins."""

import json

import pytest

from agentwatch.config import WatchConfig
from agentwatch.exceptions import PluginError, PluginEventError, PluginInitError, PluginShutdownError
from agentwatch.persistence.models import TodoStatus
from agentwatch.router.events import (
    DownloadProgressUpdated,
    SessionStopped,
    TaskCanceled,
    TaskCompleted,
    TaskError,
    TaskStarted,
    TodosUpdated,
)
from agentwatch.router.plugins import (
    ActiveTasksPlugin,
    Plugin,
    PluginManager,
    RouteAuditPlugin,
)
from agentwatch.router.router import EventRouter
from agentwatch.watcher.events import DownloadProgress, GlobalTodoItem, RawTaskEvent


class RecordingPlugin(Plugin):
    name = "recorder"

    def __init__(self):
        self.calls = []
        self.events = []

    def on_init(self):
        self.calls.append("init")

    def on_event(self, event):
        self.events.append(event)

    def on_shutdown(self):
        self.calls.append("shutdown")


class FlakyPlugin(RecordingPlugin):
    """Fails on every TaskError."""

    name = "flaky"

    def on_event(self, event):
        if isinstance(event, TaskError):
            raise ValueError("cannot handle errors")
        super().on_event(event)


class BrokenInitPlugin(RecordingPlugin):
    name = "broken-init"

    def on_init(self):
        raise RuntimeError("no config")


class BrokenShutdownPlugin(RecordingPlugin):
    name = "broken-shutdown"

    def on_shutdown(self):
        raise RuntimeError("stuck")


def started(task_id, timestamp=1000):
    return TaskStarted(task_id=task_id, tool="Bash", session_id="s1", timestamp=timestamp)


def publish(router, *raw_events):
    for event in raw_events:
        router.process_task_event(event)


class TestPluginManager:
    """Lifecycle and isolation."""

    def test_lifecycle_order(self, router):
        plugin = RecordingPlugin()
        manager = PluginManager(router)
        manager.register(plugin)
        receiver = router.subscribe()

        publish(router, RawTaskEvent("task_started", 1000, task_id="t1"))
        router.close()
        manager.run(receiver)

        assert plugin.calls == ["init", "shutdown"]
        assert [e.kind for e in plugin.events] == ["task_started"]

    def test_event_failure_isolated(self, router):
        flaky = FlakyPlugin()
        healthy = RecordingPlugin()
        manager = PluginManager(router)
        manager.register(flaky)
        manager.register(healthy)
        receiver = router.subscribe()

        publish(
            router,
            RawTaskEvent("task_started", 1, task_id="t1"),
            RawTaskEvent("task_error", 2, task_id="t1"),
            RawTaskEvent("task_canceled", 3, task_id="t2"),
        )
        router.close()
        manager.run(receiver)

        assert [e.kind for e in flaky.events] == ["task_started", "task_canceled"]
        assert [e.kind for e in healthy.events] == ["task_started", "task_error", "task_canceled"]
        assert len(manager.errors) == 1
        error = manager.errors[0]
        assert isinstance(error, PluginEventError)
        assert error.plugin_name == "flaky"

    def test_failed_init_excluded(self, router):
        broken = BrokenInitPlugin()
        healthy = RecordingPlugin()
        manager = PluginManager(router)
        manager.register(broken)
        manager.register(healthy)
        receiver = router.subscribe()

        publish(router, RawTaskEvent("task_canceled", 1, task_id="t1"))
        router.close()
        manager.run(receiver)

        assert broken.events == []
        assert "shutdown" not in broken.calls
        assert len(healthy.events) == 1
        assert manager.active_plugins == [healthy]
        assert isinstance(manager.errors[0], PluginInitError)

    def test_shutdown_failure_recorded(self, router):
        broken = BrokenShutdownPlugin()
        other = RecordingPlugin()
        manager = PluginManager(router)
        manager.register(broken)
        manager.register(other)
        receiver = router.subscribe()
        router.close()
        manager.run(receiver)

        assert other.calls == ["init", "shutdown"]
        assert isinstance(manager.errors[0], PluginShutdownError)

    def test_lag_counted(self, store, tmp_path):
        router = EventRouter(store, WatchConfig.in_dir(tmp_path, broadcast_capacity=2))
        plugin = RecordingPlugin()
        manager = PluginManager(router)
        manager.register(plugin)
        receiver = router.subscribe()

        publish(router, *(RawTaskEvent("task_canceled", i, task_id=f"t{i}") for i in range(5)))
        router.close()
        manager.run(receiver)

        assert manager.lagged_events == 3
        assert [e.task_id for e in plugin.events] == ["t3", "t4"]

    def test_threaded_run_ends_on_close(self, router):
        plugin = RecordingPlugin()
        manager = PluginManager(router)
        manager.register(plugin)
        manager.start()

        publish(router, RawTaskEvent("task_canceled", 1, task_id="t1"))
        router.close()
        manager.join(5)

        assert plugin.calls == ["init", "shutdown"]
        assert plugin.events == [TaskCanceled("t1")]

    def test_register_after_start_rejected(self, router):
        manager = PluginManager(router)
        manager.start()
        with pytest.raises(PluginError):
            manager.register(RecordingPlugin())
        with pytest.raises(PluginError):
            manager.start()
        router.close()
        manager.join(5)


class TestActiveTasksPlugin:
    """In-flight task tracking."""

    def test_tracks_start_and_finish(self):
        plugin = ActiveTasksPlugin()
        plugin.on_event(started("a", 100))
        plugin.on_event(started("b", 50))
        plugin.on_event(started("c", 75))
        plugin.on_event(TaskCompleted("a", 200))
        plugin.on_event(TaskError("x", 200))

        assert [t.task_id for t in plugin.snapshot()] == ["b", "c"]
        assert len(plugin) == 2

        plugin.on_event(TaskCanceled("b"))
        assert [t.task_id for t in plugin.snapshot()] == ["c"]

    def test_session_stopped_clears(self):
        plugin = ActiveTasksPlugin()
        plugin.on_event(started("a"))
        plugin.on_event(SessionStopped("s1"))
        assert plugin.snapshot() == []

    def test_stale(self):
        plugin = ActiveTasksPlugin(stale_threshold_ms=1000)
        plugin.on_event(started("old", 0))
        plugin.on_event(started("new", 4500))

        assert [t.task_id for t in plugin.stale(now=5000)] == ["old"]
        assert [t.task_id for t in plugin.stale(now=5000, threshold_ms=100)] == ["old", "new"]

    def test_shutdown_clears(self):
        plugin = ActiveTasksPlugin()
        plugin.on_event(started("a"))
        plugin.on_shutdown()
        assert len(plugin) == 0


class TestRouteAuditPlugin:
    """Audit entries written to routes.jsonl."""

    def test_build_entries(self):
        entry = RouteAuditPlugin.build_entry(started("t1", 1000))
        assert entry.kind == "task_started"
        assert entry.task_id == "t1"
        assert entry.session_id == "s1"
        assert entry.tool == "Bash"
        assert entry.event_timestamp_ms == 1000

        item = GlobalTodoItem("one", TodoStatus.PENDING, "Doing one", "s1")
        assert RouteAuditPlugin.build_entry(TodosUpdated((item, item))).item_count == 2

        progress = DownloadProgress(task_id="d1", percent=12.5, timestamp=3)
        entry = RouteAuditPlugin.build_entry(DownloadProgressUpdated(progress))
        assert entry.task_id == "d1"
        assert entry.percent == 12.5

    def test_writes_jsonl(self, isolated_logs):
        plugin = RouteAuditPlugin()
        plugin.on_event(started("t1"))
        plugin.on_event(TaskCompleted("t1", 2000))

        lines = isolated_logs.route_log_path.read_text().splitlines()
        records = [json.loads(line) for line in lines]
        assert [r["kind"] for r in records] == ["task_started", "task_completed"]
        assert records[1]["event_timestamp_ms"] == 2000
