"""
Bounded multi-subscriber broadcast.

One producer, any number of receivers, each with its own cursor into a
shared ring buffer. The producer never waits: when a receiver falls more
than `capacity` events behind, the oldest entries are overwritten and that
receiver's next recv() reports how many it missed.

Every recv() yields exactly one of:
- Received(event)
- Lagged(count)   then reading continues from the oldest retained entry
- Closed()        once the sender closed and the receiver drained its backlog
"""

from __future__ import annotations

import threading
import time
import weakref
from dataclasses import dataclass
from typing import Any, Generic, TypeVar, Union

T = TypeVar("T")


@dataclass(frozen=True)
class Received(Generic[T]):
    event: T


@dataclass(frozen=True)
class Lagged:
    count: int


@dataclass(frozen=True)
class Closed:
    pass


RecvResult = Union[Received, Lagged, Closed]


class Broadcast(Generic[T]):
    """Ring buffer shared by one sender and many receivers."""

    def __init__(self, capacity: int):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._slots: list[Any] = [None] * capacity
        self._head = 0  # sequence number of the next send
        self._closed = False
        self._cond = threading.Condition()
        self._receivers: weakref.WeakSet[Receiver[T]] = weakref.WeakSet()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def receiver_count(self) -> int:
        return len(self._receivers)

    def send(self, event: T) -> int:
        """
        Publish to all current receivers without blocking.

        Returns:
            Number of live receivers (0 means the event reached nobody)

        Raises:
            RuntimeError: If the channel is closed
        """
        with self._cond:
            if self._closed:
                raise RuntimeError("send on closed broadcast")
            self._slots[self._head % self.capacity] = event
            self._head += 1
            self._cond.notify_all()
            return len(self._receivers)

    def close(self) -> None:
        """Close the channel; receivers drain what is buffered, then see Closed."""
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    def subscribe(self) -> Receiver[T]:
        """New receiver that sees events sent from now on."""
        with self._cond:
            receiver = Receiver(self, self._head)
            self._receivers.add(receiver)
            return receiver

    def _recv(self, receiver: Receiver[T], timeout: float | None) -> RecvResult | None:
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            while True:
                oldest = self._head - self.capacity
                if receiver._next < oldest:
                    missed = oldest - receiver._next
                    receiver._next = oldest
                    return Lagged(missed)

                if receiver._next < self._head:
                    event = self._slots[receiver._next % self.capacity]
                    receiver._next += 1
                    return Received(event)

                if self._closed:
                    return Closed()

                if deadline is None:
                    self._cond.wait()
                else:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        return None
                    self._cond.wait(remaining)


class Receiver(Generic[T]):
    """One subscriber's cursor."""

    def __init__(self, channel: Broadcast[T], start: int):
        self._channel = channel
        self._next = start

    def recv(self, timeout: float | None = None) -> RecvResult | None:
        """
        Wait for the next outcome.

        Returns:
            Received, Lagged or Closed; None if timeout expired first
        """
        return self._channel._recv(self, timeout)

    def try_recv(self) -> RecvResult | None:
        """Non-blocking recv; None when nothing is pending."""
        return self._channel._recv(self, 0)

    @property
    def pending(self) -> int:
        """Events buffered for this receiver (capped at capacity)."""
        return min(self._channel._head - self._next, self._channel.capacity)
