"""Tests for exception hierarchy."""

import pytest

from agentwatch.exceptions import (
    AgentWatchError,
    ConfigError,
    EventParseError,
    PluginError,
    PluginEventError,
    PluginInitError,
    PluginShutdownError,
    StartupError,
    StateTransitionError,
    StoreConnectionError,
    StoreError,
    StoreIOError,
    StoreLockError,
    StoreQueryError,
    StoreSchemaError,
    WatcherError,
    WatcherIOError,
    WatchError,
)


class TestAgentWatchError:
    """Tests for base AgentWatchError."""

    def test_basic_error(self):
        err = AgentWatchError("Something went wrong")
        assert err.message == "Something went wrong"
        assert err.details == {}
        assert str(err) == "Something went wrong"

    def test_error_with_details(self):
        err = AgentWatchError("Error occurred", {"path": "/tmp/x"})
        assert "Error occurred" in str(err)
        assert "/tmp/x" in str(err)

    def test_catchable_as_exception(self):
        with pytest.raises(Exception):
            raise AgentWatchError("boom")


class TestHierarchy:
    """Every error is catchable through its family base."""

    @pytest.mark.parametrize(
        "cls,base",
        [
            (ConfigError, AgentWatchError),
            (StartupError, AgentWatchError),
            (WatchError, WatcherError),
            (StoreConnectionError, StoreError),
            (StoreSchemaError, StoreError),
            (StoreQueryError, StoreError),
            (StoreIOError, StoreError),
            (PluginInitError, PluginError),
            (PluginEventError, PluginError),
            (PluginShutdownError, PluginError),
        ],
    )
    def test_subclass(self, cls, base):
        assert issubclass(cls, base)
        assert issubclass(cls, AgentWatchError)


class TestSpecificErrors:
    """Errors that carry extra fields."""

    def test_watcher_io_error_path(self):
        err = WatcherIOError("Cannot create", path="/nope")
        assert err.path == "/nope"
        assert err.details == {"path": "/nope"}
        assert isinstance(err, WatcherError)

    def test_event_parse_error_truncates_line(self):
        err = EventParseError("bad", line="x" * 500)
        assert len(err.details["line"]) == 200
        assert err.line == "x" * 500

    def test_store_lock_error_timeout(self):
        err = StoreLockError("locked", 2.5)
        assert err.timeout_seconds == 2.5
        assert err.details["timeout_seconds"] == 2.5

    def test_plugin_error_name(self):
        err = PluginEventError("failed", "audit")
        assert err.plugin_name == "audit"
        assert err.details == {"plugin": "audit"}

    def test_state_transition_error(self):
        err = StateTransitionError("nope", from_state="STOPPED", to_state="RUNNING")
        assert err.from_state == "STOPPED"
        assert err.to_state == "RUNNING"
