"""Coalesce bursts of file notifications into one change per path."""

from __future__ import annotations

import threading
import time
from pathlib import Path


class Debouncer:
    """
    Collects touched paths and releases each once it has been quiet for
    the debounce window, measured from its first touch.

    Repeated touches inside the window collapse into one change. Due paths
    come out in first-touch order.
    """

    def __init__(self, window_ms: int):
        self.window = window_ms / 1000.0
        self._cond = threading.Condition()
        self._pending: dict[Path, float] = {}
        self._closed = False

    def touch(self, path: Path) -> None:
        with self._cond:
            if self._closed:
                return
            if path not in self._pending:
                self._pending[path] = time.monotonic() + self.window
                self._cond.notify_all()

    def close(self) -> None:
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    @property
    def closed(self) -> bool:
        return self._closed

    def next_batch(self, timeout: float | None = None) -> list[Path] | None:
        """
        Block until at least one path is due.

        Returns:
            Due paths, [] when timeout expires first, None once closed
        """
        give_up = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            while True:
                if self._closed:
                    return None

                now = time.monotonic()
                due = [p for p, deadline in self._pending.items() if deadline <= now]
                if due:
                    for p in due:
                        del self._pending[p]
                    return due

                waits = [deadline - now for deadline in self._pending.values()]
                if give_up is not None:
                    if now >= give_up:
                        return []
                    waits.append(give_up - now)
                self._cond.wait(min(waits) if waits else None)
