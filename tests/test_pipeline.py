"""End-to-end tests: file appends in, stored history and live events out."""

import time

import pytest

from agentwatch.exceptions import StartupError, WatchError
from agentwatch.persistence.models import StoredTask, TaskStatus
from agentwatch.persistence.store import DAY_MS, EventStore
from agentwatch.pipeline import Pipeline
from agentwatch.router.broadcast import Closed, Received
from agentwatch.router.events import TaskCompleted, TaskStarted
from agentwatch.router.plugins import ActiveTasksPlugin
from agentwatch.state import PipelineState
from agentwatch.watcher.watcher import FileWatcher
from conftest import append_lines

DEADLINE_S = 10.0


def wait_for_state(pipeline, state, deadline=DEADLINE_S) -> bool:
    end = time.monotonic() + deadline
    while time.monotonic() < end:
        if pipeline.status.state == state:
            return True
        time.sleep(0.05)
    return pipeline.status.state == state


def wait_for(feed, count, deadline=DEADLINE_S) -> list:
    events = []
    end = time.monotonic() + deadline
    while len(events) < count and time.monotonic() < end:
        result = feed.recv(timeout=0.1)
        if isinstance(result, Received):
            events.append(result.event)
        elif isinstance(result, Closed):
            break
    return events


class TestPipelineEndToEnd:
    """The full chain with real file notifications."""

    def test_started_then_completed(self, config):
        tracker = ActiveTasksPlugin()
        with Pipeline(config, plugins=[tracker]) as pipeline:
            feed = pipeline.subscribe()
            append_lines(
                config.events_file,
                {"type": "task_started", "task_id": "t1", "timestamp": 1000},
                {"type": "task_complete", "task_id": "t1", "timestamp": 2500},
            )
            events = wait_for(feed, 2)

            assert isinstance(events[0], TaskStarted)
            assert events[0].task_id == "t1"
            assert events[1] == TaskCompleted(task_id="t1", timestamp=2500)

            task = pipeline.store.get_task("t1")
            assert task.status == TaskStatus.COMPLETED
            assert task.duration_ms == 1500
            assert [t.id for t in pipeline.recent_tasks(5)] == ["t1"]
            assert pipeline.task_stats().completed_tasks == 1

        assert pipeline.status.state == PipelineState.STOPPED
        assert len(tracker) == 0

    def test_search_through_pipeline(self, config):
        with Pipeline(config) as pipeline:
            feed = pipeline.subscribe()
            append_lines(
                config.events_file,
                {
                    "type": "task_started",
                    "task_id": "t1",
                    "tool": "Bash",
                    "description": "npm install",
                    "timestamp": 1000,
                },
            )
            wait_for(feed, 1)
            assert [t.id for t in pipeline.search_tasks("npm", 10)] == ["t1"]

    def test_feed_closes_on_stop(self, config):
        pipeline = Pipeline(config)
        pipeline.start()
        feed = pipeline.subscribe()
        pipeline.stop()
        assert feed.recv(timeout=1) == Closed()


class TestPipelineLifecycle:
    """Start/stop and failure handling."""

    def test_start_twice_rejected(self, config):
        pipeline = Pipeline(config)
        pipeline.start()
        try:
            with pytest.raises(StartupError):
                pipeline.start()
        finally:
            pipeline.stop()
        pipeline.stop()
        assert pipeline.status.state == PipelineState.STOPPED

    def test_setup_failure_reported(self, tmp_path, config):
        blocker = tmp_path / "blocker"
        blocker.write_text("file")
        config.todos_dir = blocker / "todos"

        pipeline = Pipeline(config)
        with pytest.raises(StartupError):
            pipeline.start()
        assert pipeline.status.state == PipelineState.FAILED
        assert pipeline.status.last_error
        assert pipeline.router.closed
        pipeline.stop()

    def test_watch_setup_failure_reported(self, tmp_path, config, monkeypatch):
        watches = FileWatcher._watches
        monkeypatch.setattr(
            FileWatcher,
            "_watches",
            lambda self: watches(self) + [(tmp_path / "missing", False)],
        )

        pipeline = Pipeline(config)
        with pytest.raises(StartupError) as exc_info:
            pipeline.start()
        assert isinstance(exc_info.value.__cause__, WatchError)
        assert pipeline.status.state == PipelineState.FAILED
        assert "Cannot watch agent files" in pipeline.status.last_error
        assert pipeline.router.closed
        assert not pipeline.watcher.is_running

    def test_watch_death_fails_pipeline(self, config):
        pipeline = Pipeline(config)
        pipeline.start()
        try:
            observer = pipeline.watcher._observer
            observer.stop()
            observer.join(2.0)

            assert wait_for_state(pipeline, PipelineState.FAILED)
            assert not pipeline.is_running
            assert pipeline.watcher.fatal_error == pipeline.status.last_error
        finally:
            pipeline.stop()
        assert pipeline.status.state == PipelineState.FAILED
        assert pipeline.router.closed

    def test_unusable_database_falls_back_to_memory(self, tmp_path, config):
        blocker = tmp_path / "dbblocker"
        blocker.write_text("file")
        config.database_file = blocker / "history.db"

        with Pipeline(config) as pipeline:
            assert pipeline.store.is_in_memory
            assert not pipeline.status.history_available

    def test_retention_runs_at_start(self, config):
        with EventStore(config.database_file) as store:
            store.insert_task(StoredTask(id="old", session_id="s", tool="Bash", started_at=1))
            store.update_task_status("old", TaskStatus.COMPLETED, 2)
            store.insert_task(
                StoredTask(id="live", session_id="s", tool="Bash", started_at=DAY_MS)
            )

        with Pipeline(config) as pipeline:
            assert pipeline.status.cleaned_up_tasks == 1
            assert pipeline.store.get_task("live") is not None

    def test_queries_require_start(self, config):
        with pytest.raises(StartupError):
            Pipeline(config).recent_tasks()
