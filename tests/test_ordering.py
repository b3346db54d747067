"""Unit tests for the ordering buffer and shared pipeline state."""

import random
import threading
from dataclasses import dataclass

import pytest

from lapsify.errors import PipelineCancelled
from lapsify.ordering import CancellationToken, OrderingBuffer, ProgressCounter


@dataclass
class Item:
    index: int


@pytest.mark.unit
class TestOrderingBuffer:
    """Tests for OrderingBuffer."""

    def test_in_order_items_released_immediately(self):
        buffer = OrderingBuffer()
        assert buffer.push(Item(0)) == [Item(0)]
        assert buffer.push(Item(1)) == [Item(1)]
        assert buffer.next_index == 2
        assert buffer.pending == 0

    def test_out_of_order_items_held(self):
        buffer = OrderingBuffer()
        assert buffer.push(Item(2)) == []
        assert buffer.push(Item(1)) == []
        assert buffer.pending == 2
        assert buffer.push(Item(0)) == [Item(0), Item(1), Item(2)]
        assert buffer.pending == 0

    def test_gap_stops_release(self):
        buffer = OrderingBuffer()
        buffer.push(Item(1))
        buffer.push(Item(3))
        assert buffer.push(Item(0)) == [Item(0), Item(1)]
        assert buffer.next_index == 2
        assert buffer.push(Item(2)) == [Item(2), Item(3)]

    def test_first_index(self):
        buffer = OrderingBuffer(first_index=10)
        assert buffer.push(Item(11)) == []
        assert buffer.push(Item(10)) == [Item(10), Item(11)]

    def test_duplicate_pending_index(self):
        buffer = OrderingBuffer()
        buffer.push(Item(3))
        with pytest.raises(ValueError, match="Duplicate frame index 3"):
            buffer.push(Item(3))

    def test_already_released_index(self):
        buffer = OrderingBuffer()
        buffer.push(Item(0))
        with pytest.raises(ValueError, match="Duplicate frame index 0"):
            buffer.push(Item(0))

    def test_clear(self):
        buffer = OrderingBuffer()
        buffer.push(Item(5))
        buffer.clear()
        assert buffer.pending == 0

    def test_shuffled_release_is_sorted(self):
        indices = list(range(200))
        random.Random(7).shuffle(indices)
        buffer = OrderingBuffer()
        released = []
        for i in indices:
            released.extend(item.index for item in buffer.push(Item(i)))
        assert released == list(range(200))

    def test_concurrent_pushes(self):
        buffer = OrderingBuffer()
        released = []
        lock = threading.Lock()

        def push_all(start):
            for i in range(start, 400, 4):
                ready = buffer.push(Item(i))
                with lock:
                    released.extend(item.index for item in ready)

        threads = [threading.Thread(target=push_all, args=(s,)) for s in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(released) == list(range(400))
        assert buffer.next_index == 400


@pytest.mark.unit
class TestProgressCounter:
    """Tests for ProgressCounter."""

    def test_increment(self):
        counter = ProgressCounter(total=3)
        assert counter.increment() == 1
        assert counter.increment() == 2
        assert counter.value == 2
        assert counter.total == 3

    def test_concurrent_increment(self):
        counter = ProgressCounter()
        threads = [threading.Thread(target=lambda: [counter.increment() for _ in range(500)]) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert counter.value == 4000


@pytest.mark.unit
class TestCancellationToken:
    """Tests for CancellationToken."""

    def test_not_cancelled_by_default(self):
        token = CancellationToken()
        assert token.cancelled is False
        token.raise_if_cancelled(3)

    def test_cancel(self):
        token = CancellationToken()
        token.cancel()
        assert token.cancelled is True
        with pytest.raises(PipelineCancelled, match="Pipeline cancelled at frame 3") as exc_info:
            token.raise_if_cancelled(3)
        assert exc_info.value.frame_index == 3
