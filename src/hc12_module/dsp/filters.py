"""
Digital filter implementations for the HC-12 demodulators.

Provides:
- Moving-average smoothing filter for the FM discriminator output
- Decimation with anti-aliasing for bringing captures down to chip rate
"""

import numpy as np
from typing import Optional, Tuple

MIN_SMOOTHING_TAPS = 5
MAX_SMOOTHING_TAPS = 64


def gfsk_signal_bandwidth(bitrate: float, deviation: float) -> float:
    """
    Approximate occupied bandwidth of a GFSK signal (Carson's rule).

    Args:
        bitrate: Bit rate in bits/s
        deviation: Frequency deviation in Hz

    Returns:
        Bandwidth in Hz
    """
    return 2.0 * (deviation + bitrate / 2.0)


def smoothing_tap_count(sample_rate: float, bitrate: float, deviation: float) -> int:
    """
    Number of moving-average taps whose passband approximates the signal bandwidth.

    Clamped to [MIN_SMOOTHING_TAPS, MAX_SMOOTHING_TAPS].
    """
    bandwidth = gfsk_signal_bandwidth(bitrate, deviation)
    taps = int(max(sample_rate / bandwidth, float(MIN_SMOOTHING_TAPS)))
    return min(taps, MAX_SMOOTHING_TAPS)


class MovingAverageFilter:
    """
    Direct-form FIR smoothing filter with persistent state.

    The state ring holds the last ``num_taps`` inputs, newest first. For each
    input sample the ring is shifted, the sample inserted at the front, and
    the output is the dot product of the ring with the coefficients.
    """

    def __init__(self, num_taps: int, coefficients: Optional[np.ndarray] = None):
        """
        Initialize filter.

        Args:
            num_taps: Number of taps (ring length)
            coefficients: Optional tap weights; defaults to 1/num_taps each
        """
        if num_taps < 1:
            raise ValueError(f"num_taps must be >= 1, got {num_taps}")

        if coefficients is None:
            coefficients = np.full(num_taps, 1.0 / num_taps)
        coefficients = np.asarray(coefficients, dtype=np.float64)
        if len(coefficients) != num_taps:
            raise ValueError(
                f"Expected {num_taps} coefficients, got {len(coefficients)}"
            )

        self._coeffs = coefficients
        self._state = np.zeros(num_taps, dtype=np.float64)

    @classmethod
    def for_gfsk(
        cls, sample_rate: float, bitrate: float, deviation: float
    ) -> "MovingAverageFilter":
        """Create a smoothing filter sized for a GFSK signal."""
        return cls(smoothing_tap_count(sample_rate, bitrate, deviation))

    @property
    def num_taps(self) -> int:
        """Get number of filter taps."""
        return len(self._coeffs)

    @property
    def coefficients(self) -> np.ndarray:
        """Get filter coefficients."""
        return self._coeffs.copy()

    @property
    def state(self) -> np.ndarray:
        """Get filter state ring (newest sample first)."""
        return self._state.copy()

    def filter(self, samples: np.ndarray) -> np.ndarray:
        """
        Filter a block of samples, carrying state into the next call.

        Args:
            samples: Real input samples

        Returns:
            Filtered samples, one per input
        """
        samples = np.asarray(samples, dtype=np.float64)
        if len(samples) == 0:
            return np.zeros(0, dtype=np.float64)

        n_taps = len(self._coeffs)

        # Oldest-first history; the oldest ring entry is shifted out
        # before it can contribute to the first output
        history = self._state[: n_taps - 1][::-1]
        padded = np.concatenate([history, samples])
        output = np.convolve(padded, self._coeffs, mode="valid")

        combined = np.concatenate([self._state[::-1], samples])
        self._state = combined[-n_taps:][::-1].copy()

        return output

    def reset(self) -> None:
        """Reset filter state."""
        self._state = np.zeros(len(self._coeffs), dtype=np.float64)


def kaiser_lowpass(num_taps: int, cutoff: float, sample_rate: float, beta: float = 8.0) -> np.ndarray:
    """
    Windowed-sinc lowpass with unity DC gain.

    Args:
        num_taps: Filter length (odd for a symmetric, integer-delay filter)
        cutoff: Cutoff frequency in Hz
        sample_rate: Sample rate in Hz
        beta: Kaiser window shape

    Returns:
        Float32 taps
    """
    fc = cutoff / sample_rate
    n = np.arange(num_taps) - (num_taps - 1) / 2
    taps = 2 * fc * np.sinc(2 * fc * n) * np.kaiser(num_taps, beta)
    return (taps / np.sum(taps)).astype(np.float32)


class Decimator:
    """
    Streaming integer-factor decimator.

    Captures are taken well above the chirp bandwidth, so blocks are
    lowpass filtered and downsampled to chip rate before dechirping.
    Filter history and the downsampling phase carry across blocks, so the
    output does not depend on how the input was split.
    """

    def __init__(self, input_rate: float, factor: int, passband: float = 0.8):
        """
        Initialize decimator.

        Args:
            input_rate: Input sample rate in Hz
            factor: Decimation factor (integer >= 1)
            passband: Cutoff as a fraction of the output Nyquist frequency
        """
        if factor < 1:
            raise ValueError(f"Decimation factor must be >= 1, got {factor}")

        self._input_rate = input_rate
        self._factor = int(factor)
        # Odd length, at least 8 taps per output sample
        self._taps = kaiser_lowpass(
            max(31, 8 * self._factor + 1) | 1,
            passband * self.output_rate / 2,
            input_rate,
        )
        self._history: Optional[np.ndarray] = None
        self._skip = 0

    @property
    def input_rate(self) -> float:
        return self._input_rate

    @property
    def output_rate(self) -> float:
        return self._input_rate / self._factor

    @property
    def factor(self) -> int:
        return self._factor

    @property
    def num_taps(self) -> int:
        return len(self._taps)

    def decimate_stream(self, samples: np.ndarray) -> np.ndarray:
        """
        Filter and downsample one block.

        Args:
            samples: Input block (real or complex)

        Returns:
            Every ``factor``-th filtered sample, continuing the previous block
        """
        if self._factor == 1:
            return samples.copy()
        if len(samples) == 0:
            return samples[:0].copy()

        if self._history is None:
            self._history = np.zeros(len(self._taps) - 1, dtype=samples.dtype)

        extended = np.concatenate([self._history, samples])
        self._history = extended[len(samples):]

        filtered = np.convolve(extended, self._taps, mode="valid")
        output = filtered[self._skip::self._factor]
        self._skip = (self._skip - len(filtered)) % self._factor
        return output.astype(samples.dtype, copy=False)

    def get_frequency_response(self, n_points: int = 512) -> Tuple[np.ndarray, np.ndarray]:
        """Return (frequencies_hz, magnitude_db) of the anti-alias filter."""
        freqs = np.fft.rfftfreq(n_points, 1 / self._input_rate)
        gain = np.abs(np.fft.rfft(self._taps, n_points))
        return freqs, 20 * np.log10(gain + 1e-20)

    def reset(self) -> None:
        """Clear filter history and downsampling phase."""
        self._history = None
        self._skip = 0
