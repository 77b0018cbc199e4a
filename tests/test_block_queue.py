"""Tests for the bounded block queue."""

import threading
import time

import numpy as np
import pytest

from hc12_module.core.block_queue import BlockQueue, QueueStats
from hc12_module.errors import QueueClosedError


def block(value: int, size: int = 16) -> np.ndarray:
    return np.full(size, value, dtype=np.complex64)


class TestBlockQueue:
    """Test basic queue operations."""

    def test_initialization(self):
        """Test queue initialization."""
        queue = BlockQueue(capacity=4)
        assert queue.capacity == 4
        assert queue.available == 0
        assert not queue.closed

    def test_invalid_capacity(self):
        """Test capacity below 1 is rejected."""
        with pytest.raises(ValueError):
            BlockQueue(capacity=0)

    def test_fifo_order(self):
        """Test blocks come out in the order they went in."""
        queue = BlockQueue(capacity=8)
        for i in range(5):
            assert queue.put(block(i))

        for i in range(5):
            np.testing.assert_array_equal(queue.get(timeout=0), block(i))

    def test_get_timeout_returns_none(self):
        """Test get on an empty queue times out with None."""
        queue = BlockQueue(capacity=2)
        assert queue.get(timeout=0.01) is None

    def test_put_timeout_returns_false(self):
        """Test put on a full queue times out with False."""
        queue = BlockQueue(capacity=2)
        assert queue.put(block(0))
        assert queue.put(block(1))
        assert not queue.put(block(2), timeout=0.01)
        assert queue.available == 2

    def test_stats(self):
        """Test queue statistics."""
        queue = BlockQueue(capacity=4)
        queue.put(block(0, size=10))
        queue.put(block(1, size=20))
        queue.get(timeout=0)

        stats = queue.stats
        assert isinstance(stats, QueueStats)
        assert stats.blocks_in == 2
        assert stats.blocks_out == 1
        assert stats.samples_in == 30
        assert stats.current_fill == 1
        assert stats.fill_ratio == pytest.approx(0.25)

    def test_reset_stats(self):
        """Test statistics reset."""
        queue = BlockQueue(capacity=4)
        queue.put(block(0))
        queue.reset_stats()
        stats = queue.stats
        assert stats.blocks_in == 0
        assert stats.current_fill == 1


class TestBlockQueueClose:
    """Test end-of-stream semantics."""

    def test_put_after_close_raises(self):
        """Test put on a closed queue raises."""
        queue = BlockQueue(capacity=2)
        queue.close()
        with pytest.raises(QueueClosedError):
            queue.put(block(0))

    def test_drain_after_close(self):
        """Test remaining blocks are delivered before end of stream."""
        queue = BlockQueue(capacity=4)
        queue.put(block(1))
        queue.put(block(2))
        queue.close()

        np.testing.assert_array_equal(queue.get(), block(1))
        np.testing.assert_array_equal(queue.get(), block(2))
        with pytest.raises(QueueClosedError):
            queue.get()

    def test_close_wakes_waiting_consumer(self):
        """Test a blocked get is released by close."""
        queue = BlockQueue(capacity=2)
        raised = threading.Event()

        def consumer():
            try:
                queue.get()
            except QueueClosedError:
                raised.set()

        thread = threading.Thread(target=consumer)
        thread.start()
        time.sleep(0.05)
        queue.close()
        thread.join(timeout=1.0)

        assert not thread.is_alive()
        assert raised.is_set()

    def test_close_wakes_waiting_producer(self):
        """Test a put blocked on a full queue is released by close."""
        queue = BlockQueue(capacity=1)
        queue.put(block(0))
        raised = threading.Event()

        def producer():
            try:
                queue.put(block(1))
            except QueueClosedError:
                raised.set()

        thread = threading.Thread(target=producer)
        thread.start()
        time.sleep(0.05)
        queue.close()
        thread.join(timeout=1.0)

        assert not thread.is_alive()
        assert raised.is_set()


class TestBackpressure:
    """Test producer/consumer flow control."""

    def test_put_blocks_until_get(self):
        """Test a producer waits on a full queue until one block is drained."""
        queue = BlockQueue(capacity=2)
        queue.put(block(0))
        queue.put(block(1))
        done = threading.Event()

        def producer():
            queue.put(block(2))
            done.set()

        thread = threading.Thread(target=producer)
        thread.start()

        # Still blocked while the queue is full
        assert not done.wait(0.1)
        assert queue.stats.producer_waits == 1

        queue.get()
        assert done.wait(1.0)
        thread.join(timeout=1.0)
        assert queue.available == 2

    def test_no_blocks_dropped(self):
        """Test every block sent by a fast producer reaches a slow consumer."""
        queue = BlockQueue(capacity=3)
        count = 50
        received = []

        def producer():
            for i in range(count):
                queue.put(block(i, size=4))
            queue.close()

        def consumer():
            while True:
                try:
                    item = queue.get(timeout=1.0)
                except QueueClosedError:
                    return
                if item is not None:
                    received.append(int(item[0].real))
                    time.sleep(0.001)

        threads = [threading.Thread(target=producer), threading.Thread(target=consumer)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5.0)

        assert received == list(range(count))
        assert queue.stats.producer_waits > 0


class TestTimeouts:
    """Test timeouts hold under repeated wakeups."""

    def wake_repeatedly(self, queue, condition, stop):
        while not stop.is_set():
            with queue._lock:
                condition.notify_all()
            time.sleep(0.002)

    def run_with_wakeups(self, queue, condition, call):
        stop = threading.Event()
        waker = threading.Thread(target=self.wake_repeatedly, args=(queue, condition, stop))
        waker.start()
        start = time.monotonic()
        try:
            result = call()
            elapsed = time.monotonic() - start
        finally:
            stop.set()
            waker.join(timeout=1.0)
        return result, elapsed

    def test_get_deadline(self):
        """Test get returns None once its timeout has elapsed despite wakeups."""
        queue = BlockQueue(capacity=2)
        result, elapsed = self.run_with_wakeups(
            queue, queue._not_empty, lambda: queue.get(timeout=0.1)
        )
        assert result is None
        assert 0.09 <= elapsed < 1.0

    def test_put_deadline(self):
        """Test put returns False once its timeout has elapsed despite wakeups."""
        queue = BlockQueue(capacity=1)
        queue.put(block(0))
        result, elapsed = self.run_with_wakeups(
            queue, queue._not_full, lambda: queue.put(block(1), timeout=0.1)
        )
        assert result is False
        assert 0.09 <= elapsed < 1.0
        assert queue.available == 1
