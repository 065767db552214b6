"""Shared fixtures."""

import json
from pathlib import Path

import pytest

from agentwatch.config import WatchConfig
from agentwatch.logging import LogConfig, reset_loggers, set_config
from agentwatch.persistence.store import EventStore
from agentwatch.router.router import EventRouter


@pytest.fixture(autouse=True)
def isolated_logs(tmp_path):
    """Keep JSONL logs inside the test's tmp dir."""
    config = LogConfig(log_dir=tmp_path / "logs")
    set_config(config)
    reset_loggers()
    yield config
    reset_loggers()


@pytest.fixture
def config(tmp_path) -> WatchConfig:
    return WatchConfig.in_dir(tmp_path / "agent", debounce_ms=20)


@pytest.fixture
def store(tmp_path):
    store = EventStore(tmp_path / "history.db")
    yield store
    store.close()


@pytest.fixture
def router(store, config) -> EventRouter:
    router = EventRouter(store, config)
    yield router
    router.close()


def append_lines(path: Path, *records) -> None:
    """Append JSON records (or raw strings) to a JSONL file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "a", encoding="utf-8") as f:
        for record in records:
            line = record if isinstance(record, str) else json.dumps(record)
            f.write(line + "\n")


def write_json(path: Path, data) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data), encoding="utf-8")
