"""Tests for configuration loading."""

from pathlib import Path

import pytest

from agentwatch.config import (
    DATABASE_FILENAME,
    EVENTS_FILENAME,
    PROGRESS_FILENAME,
    WatchConfig,
)
from agentwatch.exceptions import ConfigError

ENV_VARS = [
    "AGENTWATCH_HOME",
    "AGENTWATCH_EVENTS_FILE",
    "AGENTWATCH_TODOS_DIR",
    "AGENTWATCH_PROGRESS_FILE",
    "AGENTWATCH_DB_PATH",
    "AGENTWATCH_DEBOUNCE_MS",
    "AGENTWATCH_RETENTION_DAYS",
    "AGENTWATCH_BROADCAST_CAPACITY",
    "AGENTWATCH_POLLING",
]


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestDefaults:
    """Tests for WatchConfig defaults."""

    def test_default_paths(self):
        config = WatchConfig()
        home = Path.home() / ".claude"
        assert config.events_file == home / EVENTS_FILENAME
        assert config.todos_dir == home / "todos"
        assert config.database_file == home / DATABASE_FILENAME

    def test_progress_file_next_to_events_file(self, tmp_path):
        config = WatchConfig(events_file=tmp_path / "logs" / "events.jsonl")
        assert config.progress_path == tmp_path / "logs" / PROGRESS_FILENAME

    def test_progress_path_after_reset(self, tmp_path):
        config = WatchConfig(events_file=tmp_path / "events.jsonl", progress_file=tmp_path / "p.json")
        config.progress_file = None
        assert config.progress_path == tmp_path / PROGRESS_FILENAME

    def test_default_tuning(self):
        config = WatchConfig()
        assert config.debounce_ms == 100
        assert config.broadcast_capacity == 256
        assert config.retention_days == 30
        assert config.use_polling is False

    def test_tilde_expanded(self):
        config = WatchConfig(events_file="~/events.jsonl")
        assert config.events_file == Path.home() / "events.jsonl"

    def test_in_dir(self, tmp_path):
        config = WatchConfig.in_dir(tmp_path, debounce_ms=5)
        assert config.events_file == tmp_path / EVENTS_FILENAME
        assert config.todos_dir == tmp_path / "todos"
        assert config.progress_path == tmp_path / PROGRESS_FILENAME
        assert config.debounce_ms == 5


class TestFromEnv:
    """Tests for environment overrides."""

    def test_home_override(self, clean_env, tmp_path):
        clean_env.setenv("AGENTWATCH_HOME", str(tmp_path))
        config = WatchConfig.from_env()
        assert config.events_file == tmp_path / EVENTS_FILENAME
        assert config.database_file == tmp_path / DATABASE_FILENAME

    def test_events_file_moves_progress_file(self, clean_env, tmp_path):
        clean_env.setenv("AGENTWATCH_EVENTS_FILE", str(tmp_path / "x" / "log.jsonl"))
        config = WatchConfig.from_env()
        assert config.events_file == tmp_path / "x" / "log.jsonl"
        assert config.progress_path == tmp_path / "x" / PROGRESS_FILENAME

    def test_explicit_progress_file_wins(self, clean_env, tmp_path):
        clean_env.setenv("AGENTWATCH_EVENTS_FILE", str(tmp_path / "log.jsonl"))
        clean_env.setenv("AGENTWATCH_PROGRESS_FILE", str(tmp_path / "p.json"))
        config = WatchConfig.from_env()
        assert config.progress_path == tmp_path / "p.json"

    def test_numeric_overrides(self, clean_env):
        clean_env.setenv("AGENTWATCH_DEBOUNCE_MS", "250")
        clean_env.setenv("AGENTWATCH_RETENTION_DAYS", "7")
        clean_env.setenv("AGENTWATCH_BROADCAST_CAPACITY", "16")
        config = WatchConfig.from_env()
        assert config.debounce_ms == 250
        assert config.retention_days == 7
        assert config.broadcast_capacity == 16

    def test_polling_flag(self, clean_env):
        clean_env.setenv("AGENTWATCH_POLLING", "yes")
        assert WatchConfig.from_env().use_polling is True

    def test_invalid_integer(self, clean_env):
        clean_env.setenv("AGENTWATCH_DEBOUNCE_MS", "fast")
        with pytest.raises(ConfigError) as exc_info:
            WatchConfig.from_env()
        assert exc_info.value.details["variable"] == "AGENTWATCH_DEBOUNCE_MS"

    def test_out_of_range_rejected(self, clean_env):
        clean_env.setenv("AGENTWATCH_BROADCAST_CAPACITY", "0")
        with pytest.raises(ConfigError):
            WatchConfig.from_env()


class TestValidate:
    """Tests for range checks."""

    def test_valid_config(self):
        WatchConfig().validate()

    @pytest.mark.parametrize(
        "field,value",
        [("debounce_ms", -1), ("broadcast_capacity", 0), ("retention_days", 0)],
    )
    def test_invalid_values(self, field, value):
        config = WatchConfig()
        setattr(config, field, value)
        with pytest.raises(ConfigError):
            config.validate()

    def test_to_dict(self, tmp_path):
        data = WatchConfig.in_dir(tmp_path).to_dict()
        assert data["events_file"] == str(tmp_path / EVENTS_FILENAME)
        assert data["debounce_ms"] == 100
