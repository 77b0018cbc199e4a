"""
Signal demodulators for the HC-12 link.

Two alternative demodulation schemes share the ``Demodulator`` interface
(``process(block) -> output``) so the streaming pipeline can run either:

- GFSK: FM discriminator -> smoothing filter -> bit timing recovery -> bytes
- Chirp: dechirp + FFT symbol extraction (see ``chirp.py``)
"""

import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

import numpy as np

from .filters import MovingAverageFilter, gfsk_signal_bandwidth

logger = logging.getLogger(__name__)

TWO_PI = 2.0 * np.pi


class DecodeMode(Enum):
    """Demodulation schemes."""

    GFSK = "gfsk"
    CHIRP = "chirp"


class Demodulator(ABC):
    """Abstract base class for demodulators."""

    def __init__(self, sample_rate: float):
        self._sample_rate = sample_rate

    @property
    def sample_rate(self) -> float:
        return self._sample_rate

    @abstractmethod
    def process(self, samples: np.ndarray) -> Any:
        """Demodulate one block of IQ samples."""
        pass

    def configure(self, **params: Any) -> None:
        """Apply new parameters. Must not run concurrently with process()."""
        raise NotImplementedError(
            f"{self.__class__.__name__} does not support reconfiguration"
        )

    def reset(self) -> None:
        """Reset demodulator state."""
        pass


def wrap_phase_difference(phase_diff: np.ndarray) -> np.ndarray:
    """
    Wrap phase differences into (-pi, pi].

    Applies repeated +/-2pi corrections rather than a modulo so that +pi is
    kept and -pi maps to +pi.

    Args:
        phase_diff: Raw phase differences in radians

    Returns:
        Wrapped phase differences
    """
    wrapped = np.array(phase_diff, dtype=np.float64)

    while True:
        high = wrapped > np.pi
        if not high.any():
            break
        wrapped[high] -= TWO_PI

    while True:
        low = wrapped <= -np.pi
        if not low.any():
            break
        wrapped[low] += TWO_PI

    return wrapped


class FMDiscriminator:
    """
    Phase-difference frequency discriminator.

    Output is the instantaneous frequency normalized by the nominal
    deviation: +deviation maps to +1, -deviation to -1. The phase of the
    last sample is carried into the next block.
    """

    def __init__(self, sample_rate: float, deviation: float):
        if deviation <= 0:
            raise ValueError(f"deviation must be positive, got {deviation}")
        self._sample_rate = sample_rate
        self._deviation = deviation
        self._prev_phase = 0.0

    @property
    def previous_phase(self) -> float:
        """Phase of the last processed sample (radians)."""
        return self._prev_phase

    @property
    def deviation(self) -> float:
        return self._deviation

    def discriminate(self, samples: np.ndarray) -> np.ndarray:
        """
        Convert IQ samples to normalized instantaneous frequency.

        Args:
            samples: Complex I/Q samples

        Returns:
            Normalized frequency, one value per input sample
        """
        if len(samples) == 0:
            return np.zeros(0, dtype=np.float64)

        phase = np.angle(samples).astype(np.float64)
        previous = np.concatenate([[self._prev_phase], phase[:-1]])
        phase_diff = wrap_phase_difference(phase - previous)

        freq = phase_diff * self._sample_rate / TWO_PI
        self._prev_phase = float(phase[-1])

        return freq / self._deviation

    def reset(self) -> None:
        self._prev_phase = 0.0


class BitSlicer:
    """
    Bit timing recovery with a fractional position counter.

    Samples accumulate until one bit period has elapsed; the decision is
    taken at the midpoint of the accumulated samples with a zero threshold.
    The bit period is subtracted from the counter rather than reset, so a
    non-integral samples-per-bit ratio does not drift over a long stream.
    """

    def __init__(self, samples_per_bit: float):
        if samples_per_bit < 1.0:
            raise ValueError(
                f"samples_per_bit must be >= 1, got {samples_per_bit}"
            )
        self._samples_per_bit = float(samples_per_bit)
        self._bit_position = 0.0
        self._pending = np.zeros(0, dtype=np.float64)

    @property
    def samples_per_bit(self) -> float:
        return self._samples_per_bit

    @property
    def bit_position(self) -> float:
        """Fractional timing phase, always in [0, samples_per_bit)."""
        return self._bit_position

    @property
    def pending_samples(self) -> int:
        """Samples accumulated towards the next bit."""
        return len(self._pending)

    def _samples_to_boundary(self) -> int:
        """Smallest sample count that takes the counter to a bit boundary."""
        needed = max(1, math.ceil(self._samples_per_bit - self._bit_position))
        if needed > 1 and self._bit_position + (needed - 1) >= self._samples_per_bit:
            needed -= 1
        elif self._bit_position + needed < self._samples_per_bit:
            needed += 1
        return needed

    def slice(self, filtered: np.ndarray) -> np.ndarray:
        """
        Recover bits from filtered discriminator output.

        Args:
            filtered: Smoothed, normalized frequency samples

        Returns:
            Boolean array of decided bits
        """
        filtered = np.asarray(filtered, dtype=np.float64)
        bits = []
        idx = 0
        n = len(filtered)

        while idx < n:
            needed = self._samples_to_boundary()
            if idx + needed > n:
                rest = filtered[idx:]
                self._pending = np.concatenate([self._pending, rest])
                self._bit_position += len(rest)
                break

            window = np.concatenate([self._pending, filtered[idx:idx + needed]])
            mid = min(len(window) // 2, len(window) - 1)
            bits.append(window[mid] > 0.0)

            self._pending = np.zeros(0, dtype=np.float64)
            self._bit_position += needed - self._samples_per_bit
            idx += needed

        return np.array(bits, dtype=bool)

    def reset(self) -> None:
        self._bit_position = 0.0
        self._pending = np.zeros(0, dtype=np.float64)


class ByteAssembler:
    """Packs an LSB-first bitstream into bytes, keeping leftover bits."""

    def __init__(self):
        self._bits = np.zeros(0, dtype=np.uint8)

    @property
    def pending_bits(self) -> int:
        """Bits waiting for a complete byte."""
        return len(self._bits)

    def push(self, bits: np.ndarray) -> Optional[bytes]:
        """
        Append bits and drain complete bytes.

        Args:
            bits: Decided bits, first-received first

        Returns:
            Assembled bytes, or None if no complete byte is available
        """
        bits = np.asarray(bits, dtype=np.uint8)
        self._bits = np.concatenate([self._bits, bits])

        n_bytes = len(self._bits) // 8
        if n_bytes == 0:
            return None

        complete = self._bits[: n_bytes * 8]
        self._bits = self._bits[n_bytes * 8:]

        return np.packbits(complete, bitorder="little").tobytes()

    def reset(self) -> None:
        self._bits = np.zeros(0, dtype=np.uint8)


@dataclass
class DemodStats:
    """GFSK demodulator statistics."""

    samples_per_bit: float
    bit_buffer_size: int
    byte_buffer_size: int
    deviation: float
    bitrate: float
    signal_bandwidth: float
    num_taps: int


class GFSKDemodulator(Demodulator):
    """
    GFSK demodulator.

    Chains an FM discriminator, a moving-average smoothing filter and
    bit timing recovery. All stages keep their state across blocks so the
    stream can be fed in arbitrary block sizes.
    """

    def __init__(
        self,
        sample_rate: float,
        bitrate: float = 15000,
        deviation: float = 20e3
    ):
        """
        Initialize GFSK demodulator.

        Args:
            sample_rate: Sample rate in Hz
            bitrate: Bit rate in bits/s
            deviation: Nominal frequency deviation in Hz
        """
        super().__init__(sample_rate)
        self._bitrate = bitrate
        self._deviation = deviation
        self._install(*self._build_stages(sample_rate, bitrate, deviation))

        # Last-call visualization buffers
        self._fm_output = np.zeros(0, dtype=np.float64)
        self._filtered_output = np.zeros(0, dtype=np.float64)
        self._bit_decisions = np.zeros(0, dtype=bool)

    @staticmethod
    def _build_stages(sample_rate: float, bitrate: float, deviation: float):
        """
        Create fresh processing stages for a parameter set.

        Raises:
            ValueError: If a parameter is out of range
        """
        for name, value in (
            ("sample_rate", sample_rate),
            ("bitrate", bitrate),
            ("deviation", deviation),
        ):
            if value <= 0:
                raise ValueError(f"{name} must be positive, got {value}")

        return (
            FMDiscriminator(sample_rate, deviation),
            MovingAverageFilter.for_gfsk(sample_rate, bitrate, deviation),
            BitSlicer(sample_rate / bitrate),
            ByteAssembler(),
        )

    def _install(self, discriminator, smoothing, slicer, assembler) -> None:
        self._discriminator = discriminator
        self._filter = smoothing
        self._slicer = slicer
        self._assembler = assembler

    @property
    def bitrate(self) -> float:
        return self._bitrate

    @property
    def deviation(self) -> float:
        return self._deviation

    @property
    def samples_per_bit(self) -> float:
        return self._slicer.samples_per_bit

    @property
    def bit_position(self) -> float:
        return self._slicer.bit_position

    @property
    def previous_phase(self) -> float:
        return self._discriminator.previous_phase

    @property
    def num_taps(self) -> int:
        return self._filter.num_taps

    @property
    def fm_output(self) -> np.ndarray:
        """Discriminator output of the last processed block."""
        return self._fm_output.copy()

    @property
    def filtered_output(self) -> np.ndarray:
        """Smoothed output of the last processed block."""
        return self._filtered_output.copy()

    @property
    def bit_decisions(self) -> np.ndarray:
        """Bits decided in the last processed block."""
        return self._bit_decisions.copy()

    def process(self, samples: np.ndarray) -> np.ndarray:
        """
        Demodulate IQ samples to bits.

        Args:
            samples: Complex I/Q samples

        Returns:
            Boolean array of recovered bits (may be empty)
        """
        fm = self._discriminator.discriminate(samples)
        filtered = self._filter.filter(fm)
        bits = self._slicer.slice(filtered)

        self._fm_output = fm
        self._filtered_output = filtered
        self._bit_decisions = bits

        return bits

    def decode_bytes(self, bits: np.ndarray) -> Optional[bytes]:
        """
        Pack bits (LSB first) into bytes.

        Leftover bits are kept for the next call.

        Returns:
            Bytes, or None if fewer than 8 bits are buffered
        """
        return self._assembler.push(bits)

    def configure(
        self,
        bitrate: Optional[float] = None,
        deviation: Optional[float] = None,
        sample_rate: Optional[float] = None,
        **params: Any
    ) -> None:
        """
        Change demodulation parameters.

        Filter coefficients are recomputed and every per-stream buffer is
        reset so samples taken under different parameters are never mixed.
        A rejected call leaves the demodulator unchanged.

        Raises:
            TypeError: If an unknown parameter is given
            ValueError: If a parameter is out of range
        """
        if params:
            raise TypeError(f"Unknown GFSK parameters: {', '.join(sorted(params))}")
        bitrate = self._bitrate if bitrate is None else bitrate
        deviation = self._deviation if deviation is None else deviation
        sample_rate = self._sample_rate if sample_rate is None else sample_rate

        stages = self._build_stages(sample_rate, bitrate, deviation)

        self._bitrate = bitrate
        self._deviation = deviation
        self._sample_rate = sample_rate
        self._install(*stages)
        logger.info(
            f"GFSK reconfigured: {self._bitrate} bps, deviation {self._deviation} Hz, "
            f"{self._filter.num_taps} taps"
        )

    def reset(self) -> None:
        """Reset all per-stream state."""
        self._discriminator.reset()
        self._filter.reset()
        self._slicer.reset()
        self._assembler.reset()

    def get_stats(self) -> DemodStats:
        """Get current statistics."""
        return DemodStats(
            samples_per_bit=self._slicer.samples_per_bit,
            bit_buffer_size=self._slicer.pending_samples,
            byte_buffer_size=self._assembler.pending_bits,
            deviation=self._deviation,
            bitrate=self._bitrate,
            signal_bandwidth=gfsk_signal_bandwidth(self._bitrate, self._deviation),
            num_taps=self._filter.num_taps,
        )


def create_demodulator(
    mode: DecodeMode,
    sample_rate: float,
    **kwargs: Any
) -> Demodulator:
    """
    Factory function to create demodulators.

    Args:
        mode: Demodulation scheme
        sample_rate: Sample rate in Hz
        **kwargs: Additional demodulator-specific parameters

    Returns:
        Configured demodulator instance
    """
    if mode == DecodeMode.GFSK:
        return GFSKDemodulator(sample_rate, **kwargs)
    elif mode == DecodeMode.CHIRP:
        from .chirp import ChirpDecoder

        return ChirpDecoder(sample_rate=sample_rate, **kwargs)
    else:
        raise ValueError(f"Unsupported decode mode: {mode}")
