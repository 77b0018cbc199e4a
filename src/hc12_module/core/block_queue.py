"""
Bounded block queue for streaming I/Q data.

Connects the sample producer to the decoding consumer. A full queue
blocks the producer instead of dropping data or growing without bound.
"""

import time
from collections import deque
from dataclasses import dataclass
from threading import Condition, Lock
from typing import Deque, Optional

import numpy as np

from ..errors import QueueClosedError


@dataclass
class QueueStats:
    """Queue statistics."""

    blocks_in: int = 0
    blocks_out: int = 0
    samples_in: int = 0
    current_fill: int = 0
    capacity: int = 0
    producer_waits: int = 0  # put() calls that found the queue full

    @property
    def fill_ratio(self) -> float:
        """Current fill ratio (0.0 to 1.0)."""
        if self.capacity == 0:
            return 0.0
        return self.current_fill / self.capacity


def _time_left(deadline: Optional[float]) -> Optional[float]:
    """Seconds until a monotonic deadline (None = no deadline)."""
    if deadline is None:
        return None
    return deadline - time.monotonic()


class BlockQueue:
    """
    Thread-safe bounded FIFO of sample blocks.

    Designed for the producer-consumer pattern between a sample source
    and a demodulator. ``close()`` marks end of stream: the consumer
    drains what is left and then sees ``QueueClosedError``.
    """

    def __init__(self, capacity: int = 8):
        """
        Initialize block queue.

        Args:
            capacity: Maximum number of blocks held
        """
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")

        self._capacity = capacity
        self._blocks: Deque[np.ndarray] = deque()
        self._closed = False

        # Thread synchronization
        self._lock = Lock()
        self._not_empty = Condition(self._lock)
        self._not_full = Condition(self._lock)

        self._stats = QueueStats(capacity=capacity)

    @property
    def capacity(self) -> int:
        """Queue capacity in blocks."""
        return self._capacity

    @property
    def available(self) -> int:
        """Number of blocks waiting to be read."""
        with self._lock:
            return len(self._blocks)

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._closed

    @property
    def stats(self) -> QueueStats:
        """Get queue statistics."""
        with self._lock:
            return QueueStats(
                blocks_in=self._stats.blocks_in,
                blocks_out=self._stats.blocks_out,
                samples_in=self._stats.samples_in,
                current_fill=len(self._blocks),
                capacity=self._capacity,
                producer_waits=self._stats.producer_waits,
            )

    def put(self, block: np.ndarray, timeout: Optional[float] = None) -> bool:
        """
        Append a block, waiting while the queue is full.

        Args:
            block: Complex samples; ownership passes to the queue
            timeout: Timeout in seconds (None = block indefinitely)

        Returns:
            True if queued, False on timeout

        Raises:
            QueueClosedError: if the queue is (or becomes) closed
        """
        with self._lock:
            if self._closed:
                raise QueueClosedError("Cannot put to a closed queue")

            if len(self._blocks) >= self._capacity:
                self._stats.producer_waits += 1
                deadline = None if timeout is None else time.monotonic() + timeout
                while len(self._blocks) >= self._capacity:
                    remaining = _time_left(deadline)
                    if remaining is not None and remaining <= 0:
                        return False
                    self._not_full.wait(remaining)
                    if self._closed:
                        raise QueueClosedError("Queue closed while waiting to put")

            self._blocks.append(block)
            self._stats.blocks_in += 1
            self._stats.samples_in += len(block)

            # Signal readers
            self._not_empty.notify()
            return True

    def get(self, timeout: Optional[float] = None) -> Optional[np.ndarray]:
        """
        Remove and return the oldest block, waiting while the queue is empty.

        Args:
            timeout: Timeout in seconds (None = block indefinitely)

        Returns:
            Sample block, or None on timeout

        Raises:
            QueueClosedError: if the queue is closed and drained
        """
        with self._lock:
            deadline = None if timeout is None else time.monotonic() + timeout
            while not self._blocks:
                if self._closed:
                    raise QueueClosedError("End of stream")
                remaining = _time_left(deadline)
                if remaining is not None and remaining <= 0:
                    return None
                self._not_empty.wait(remaining)

            block = self._blocks.popleft()
            self._stats.blocks_out += 1

            # Signal writers
            self._not_full.notify()
            return block

    def close(self) -> None:
        """Mark end of stream and wake all waiters."""
        with self._lock:
            self._closed = True
            self._not_empty.notify_all()
            self._not_full.notify_all()

    def reset_stats(self) -> None:
        """Reset queue statistics."""
        with self._lock:
            self._stats = QueueStats(capacity=self._capacity)
