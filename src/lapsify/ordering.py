"""Shared state between pipeline workers and the emitting thread.

Workers finish frames in any order; the ordering buffer holds finished frames
until every lower index has been released so the sink sees strictly ascending
frame indices.
"""

import threading
from typing import Generic, Protocol, TypeVar

from lapsify.errors import PipelineCancelled


class Indexed(Protocol):
    index: int


T = TypeVar("T", bound=Indexed)


class OrderingBuffer(Generic[T]):
    """Index-keyed buffer that releases items in ascending index order.

    Memory is bounded by how far the fastest worker runs ahead of the slowest:
    only items above the next expected index are held.

    Args:
        first_index: Index of the first item to release
    """

    def __init__(self, first_index: int = 0):
        self._lock = threading.Lock()
        self._pending: dict[int, T] = {}
        self._next_index = first_index

    @property
    def next_index(self) -> int:
        """Index of the next item to be released."""
        with self._lock:
            return self._next_index

    @property
    def pending(self) -> int:
        """Number of items held waiting for a lower index."""
        with self._lock:
            return len(self._pending)

    def push(self, item: T) -> list[T]:
        """Add a finished item and release every item that is now in order.

        Args:
            item: Item with an ``index`` attribute

        Returns:
            Items ready for emission, in ascending index order (may be empty)

        Raises:
            ValueError: If the index was already pushed or released
        """
        with self._lock:
            index = item.index
            if index < self._next_index or index in self._pending:
                raise ValueError(f"Duplicate frame index {index}")

            self._pending[index] = item
            released = []
            while self._next_index in self._pending:
                released.append(self._pending.pop(self._next_index))
                self._next_index += 1
            return released

    def clear(self) -> None:
        with self._lock:
            self._pending.clear()


class ProgressCounter:
    """Thread-safe counter of finished frames."""

    def __init__(self, total: int = 0):
        self._lock = threading.Lock()
        self._value = 0
        self.total = total

    @property
    def value(self) -> int:
        with self._lock:
            return self._value

    def increment(self) -> int:
        """Add one and return the new value."""
        with self._lock:
            self._value += 1
            return self._value


class CancellationToken:
    """Cooperative cancellation flag shared by the caller and the pipeline.

    A supervisor (GUI, timeout handler, signal handler) calls cancel(); the
    pipeline checks the flag between dispatches and before each job starts.
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, frame_index: int | None = None) -> None:
        """Raise PipelineCancelled if cancel() has been called."""
        if self._event.is_set():
            raise PipelineCancelled(frame_index)
