"""
Sample source abstraction layer.

Provides a unified block-reading interface for SDR hardware,
IQ file replay and simulated signals.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from threading import RLock
from typing import Optional

import numpy as np


@dataclass
class DeviceInfo:
    """Sample source information."""

    name: str
    serial: str
    manufacturer: str
    product: str
    index: int = 0


@dataclass
class SourceState:
    """Current sample source state."""

    frequency: float = 0.0  # Center frequency in Hz
    sample_rate: float = 0.0  # Sample rate in Hz
    gain: float = 0.0  # Current gain in dB
    gain_mode: str = "manual"  # "auto" or "manual"
    blocks_read: int = 0
    samples_read: int = 0


class SampleSource(ABC):
    """
    Abstract base class for sample sources.

    A source delivers ordered blocks of complex samples, normalized to
    roughly +/-1, at a declared sample rate. ``read_block()`` returns
    None at end of stream and raises ``SourceError`` on a read failure.
    """

    def __init__(self, sample_rate: float, block_size: int):
        self._info: Optional[DeviceInfo] = None
        self._state = SourceState(sample_rate=sample_rate)
        self._state_lock = RLock()  # Protects _state modifications
        self._block_size = block_size
        self._is_open = False

    @property
    def info(self) -> Optional[DeviceInfo]:
        """Get source information."""
        return self._info

    @property
    def state(self) -> SourceState:
        """Get current source state (thread-safe copy)."""
        with self._state_lock:
            return SourceState(
                frequency=self._state.frequency,
                sample_rate=self._state.sample_rate,
                gain=self._state.gain,
                gain_mode=self._state.gain_mode,
                blocks_read=self._state.blocks_read,
                samples_read=self._state.samples_read,
            )

    @property
    def sample_rate(self) -> float:
        return self._state.sample_rate

    @property
    def block_size(self) -> int:
        """Samples per block."""
        return self._block_size

    @property
    def is_open(self) -> bool:
        """Check if source is open."""
        return self._is_open

    @abstractmethod
    def open(self) -> bool:
        """
        Open the source.

        Returns:
            True if successful, False otherwise
        """
        pass

    @abstractmethod
    def close(self) -> None:
        """Close the source and release resources."""
        pass

    @abstractmethod
    def _read(self) -> Optional[np.ndarray]:
        """Read one raw block; None at end of stream."""
        pass

    def read_block(self) -> Optional[np.ndarray]:
        """
        Read the next block of samples.

        Returns:
            Complex64 samples, or None at end of stream

        Raises:
            SourceError: if the read failed
        """
        block = self._read()
        if block is None:
            return None

        if block.dtype != np.complex64:
            block = block.astype(np.complex64)

        with self._state_lock:
            self._state.blocks_read += 1
            self._state.samples_read += len(block)
        return block

    def __enter__(self):
        """Context manager entry."""
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
        return False

    def __repr__(self) -> str:
        if self._info:
            return f"<{self.__class__.__name__} {self._info.name} @ {self._state.sample_rate/1e6:.3f} MS/s>"
        return f"<{self.__class__.__name__} (not opened)>"
