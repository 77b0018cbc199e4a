"""
Chirp spread-spectrum symbol decoder.

Each symbol is a cyclically shifted base upchirp of 2^SF chips. Decoding
multiplies every symbol window by the reference downchirp, which turns the
chirp into a single tone, and takes the FFT peak bin as the symbol value.

Symbol synchronization is a pluggable policy. The default, ``energy_sync``,
picks the quarter-symbol offset with the most energy; it is a coarse
heuristic rather than a correlation against a known preamble and will
misfire on strong non-preamble bursts, low SNR or multipath.
"""

import logging
import time
from dataclasses import dataclass, field
from threading import RLock
from typing import Callable, Optional

import numpy as np

from ..errors import EmptyBlockError, UnsupportedSpreadingFactorError
from ..utils.conversions import linear_to_db
from .demodulators import Demodulator
from .filters import Decimator

logger = logging.getLogger(__name__)

SF_MIN = 7
SF_MAX = 12

# Symbol values are returned as uint16
SF_LIMIT = 16

# (samples, window_size) -> offset of the first symbol
SyncStrategy = Callable[[np.ndarray, int], int]


@dataclass
class DecodeResult:
    """Result of decoding one sample block."""

    symbols: np.ndarray
    data: bytes
    snr: float
    spreading_factor: int
    sync_offset: int = 0
    valid: bool = True
    error_message: str = ""
    timestamp: float = field(default_factory=time.time)


def generate_upchirp(spreading_factor: int) -> np.ndarray:
    """
    Base upchirp: frequency sweeps -BW/2 to +BW/2 over 2^SF chips.

    Args:
        spreading_factor: Spreading factor

    Returns:
        Unit-magnitude complex chirp of length 2^SF
    """
    n = 1 << spreading_factor
    i = np.arange(n, dtype=np.float64)
    phase = 2 * np.pi * (i * i / (2 * n) - i / 2)
    return np.exp(1j * phase).astype(np.complex64)


def generate_downchirp(spreading_factor: int) -> np.ndarray:
    """
    Reference downchirp: frequency sweeps +BW/2 to -BW/2 over 2^SF chips.

    This is the conjugate of the base upchirp, used as the dechirping kernel.
    """
    n = 1 << spreading_factor
    t = np.arange(n, dtype=np.float64) / n
    phase = 2 * np.pi * n * (0.5 * t - 0.5 * t * t)
    return np.exp(1j * phase).astype(np.complex64)


def energy_sync(samples: np.ndarray, window_size: int) -> int:
    """
    Locate the maximum-energy symbol window.

    Windows of ``window_size`` samples are evaluated every quarter window,
    at offsets strictly below ``len(samples) - window_size``. The first
    maximum wins; 0 is returned when no window qualifies.

    Args:
        samples: Complex samples
        window_size: Window length (symbol size)

    Returns:
        Start offset of the highest-energy window
    """
    n = len(samples)
    if n <= window_size:
        return 0

    step = max(1, window_size // 4)
    offsets = np.arange(0, n - window_size, step)

    power = np.abs(samples).astype(np.float64) ** 2
    windows = np.lib.stride_tricks.sliding_window_view(power, window_size)
    energies = windows[offsets].sum(axis=1)

    best = int(np.argmax(energies))
    if energies[best] <= 0.0:
        return 0
    return int(offsets[best])


def no_sync(samples: np.ndarray, window_size: int) -> int:
    """Treat the block as already symbol aligned."""
    return 0


SYNC_STRATEGIES = {
    "energy": energy_sync,
    "none": no_sync,
}


def _pack_narrow_symbols(symbols: np.ndarray, bits: int) -> bytes:
    """Pack symbols narrower than a byte, MSB first, zero padding the tail."""
    out = bytearray()
    acc = 0
    count = 0
    mask = (1 << bits) - 1

    for symbol in symbols:
        acc = (acc << bits) | (int(symbol) & mask)
        count += bits
        while count >= 8:
            count -= 8
            out.append((acc >> count) & 0xFF)
        acc &= (1 << count) - 1

    if count > 0:
        out.append((acc << (8 - count)) & 0xFF)

    return bytes(out)


def symbols_to_bytes(symbols: np.ndarray, spreading_factor: int) -> bytes:
    """
    Convert decoded symbols to bytes.

    - SF7: symbols are packed into a continuous bitstream
    - SF8: one byte per symbol
    - SF9-12: the top 8 bits of each symbol

    Raises:
        UnsupportedSpreadingFactorError: for any other spreading factor
    """
    symbols = np.asarray(symbols, dtype=np.int64)

    if spreading_factor == 7:
        return _pack_narrow_symbols(symbols, 7)
    if spreading_factor == 8:
        return (symbols & 0xFF).astype(np.uint8).tobytes()
    if 9 <= spreading_factor <= 12:
        shifted = symbols >> (spreading_factor - 8)
        return (shifted & 0xFF).astype(np.uint8).tobytes()

    raise UnsupportedSpreadingFactorError(spreading_factor)


def estimate_snr(samples: np.ndarray) -> float:
    """
    Rough signal quality indicator in dB.

    Ratio of mean power to the standard deviation of per-sample power.
    This is not a calibrated SNR; it is kept for display parity.
    """
    if len(samples) == 0:
        return 0.0

    power = np.abs(samples).astype(np.float64) ** 2
    mean_power = float(np.mean(power))
    variance = float(np.mean((power - mean_power) ** 2))

    if variance > 0.0:
        return float(linear_to_db(mean_power / np.sqrt(variance)))
    return 0.0


class ChirpDecoder(Demodulator):
    """
    Chirp spread-spectrum symbol decoder.

    ``decode()`` works on chip-rate samples (one sample per chip). When
    constructed with a ``sample_rate`` above the bandwidth, ``process()``
    first decimates each block down to chip rate.

    Reconfiguration and decoding are serialized by a lock, so a decode
    never sees a symbol size that does not match its downchirp.
    """

    def __init__(
        self,
        spreading_factor: int = 7,
        bandwidth: float = 125_000,
        sample_rate: Optional[float] = None,
        sync_strategy: SyncStrategy = energy_sync
    ):
        """
        Initialize chirp decoder.

        Args:
            spreading_factor: Spreading factor (bits per symbol)
            bandwidth: Channel bandwidth in Hz (chip rate)
            sample_rate: Input sample rate in Hz (None = chip rate)
            sync_strategy: Symbol synchronization policy
        """
        if not 1 <= spreading_factor <= SF_LIMIT:
            raise ValueError(
                f"spreading_factor must be in 1..{SF_LIMIT}, got {spreading_factor}"
            )
        super().__init__(sample_rate if sample_rate is not None else bandwidth)
        self._lock = RLock()
        self._spreading_factor = spreading_factor
        self._bandwidth = bandwidth
        self._sync = sync_strategy
        self._symbol_size = 1 << spreading_factor
        self._downchirp = generate_downchirp(spreading_factor)
        self._decimator = self._make_decimator(bandwidth)

    def _make_decimator(self, bandwidth: float) -> Optional[Decimator]:
        """Create the chip-rate decimator for a bandwidth, or None at chip rate."""
        if bandwidth <= 0:
            raise ValueError(f"bandwidth must be positive, got {bandwidth}")
        ratio = self._sample_rate / bandwidth
        if ratio < 1.0:
            raise ValueError(
                f"sample_rate {self._sample_rate} is below bandwidth {bandwidth}"
            )
        factor = int(round(ratio))
        if abs(ratio - factor) > 1e-6:
            logger.warning(
                f"Sample rate {self._sample_rate} is not a multiple of bandwidth "
                f"{bandwidth}; decimating by {factor}"
            )
        return Decimator(self._sample_rate, factor) if factor > 1 else None

    @property
    def spreading_factor(self) -> int:
        return self._spreading_factor

    @property
    def bandwidth(self) -> float:
        return self._bandwidth

    @property
    def symbol_size(self) -> int:
        """Chips per symbol (2^SF)."""
        return self._symbol_size

    @property
    def symbol_duration(self) -> float:
        """Symbol duration in seconds."""
        return self._symbol_size / self._bandwidth

    @property
    def decimation_factor(self) -> int:
        return self._decimator.factor if self._decimator else 1

    @property
    def downchirp(self) -> np.ndarray:
        return self._downchirp.copy()

    def set_spreading_factor(self, sf: int) -> None:
        """Set spreading factor (clamped to 7..12) and regenerate the downchirp."""
        with self._lock:
            self._spreading_factor = max(SF_MIN, min(SF_MAX, int(sf)))
            self._symbol_size = 1 << self._spreading_factor
            self._downchirp = generate_downchirp(self._spreading_factor)
        logger.debug(f"Spreading factor set to {self._spreading_factor}")

    def set_bandwidth(self, bandwidth: float) -> None:
        """Set channel bandwidth."""
        with self._lock:
            self._decimator = self._make_decimator(bandwidth)
            self._bandwidth = bandwidth

    def set_sync_strategy(self, strategy: SyncStrategy) -> None:
        """Replace the symbol synchronization policy."""
        with self._lock:
            self._sync = strategy

    def configure(
        self,
        spreading_factor: Optional[int] = None,
        bandwidth: Optional[float] = None,
        **params
    ) -> None:
        """Apply new chirp parameters between blocks."""
        if params:
            raise TypeError(f"Unknown chirp parameters: {', '.join(sorted(params))}")
        if spreading_factor is not None:
            spreading_factor = int(spreading_factor)
        with self._lock:
            if bandwidth is not None:
                self.set_bandwidth(bandwidth)
            if spreading_factor is not None:
                self.set_spreading_factor(spreading_factor)

    def detect_preamble(self, samples: np.ndarray) -> int:
        """Find the symbol-aligned start offset using the sync policy."""
        with self._lock:
            return self._sync(samples, self._symbol_size)

    def extract_symbols(self, samples: np.ndarray, offset: int) -> np.ndarray:
        """
        Dechirp consecutive symbol windows and find their FFT peaks.

        Args:
            samples: Chip-rate complex samples
            offset: Start of the first symbol

        Returns:
            Symbol values (uint16), one per complete window
        """
        with self._lock:
            size = self._symbol_size
            n_symbols = max(0, (len(samples) - offset) // size)
            if n_symbols == 0:
                return np.zeros(0, dtype=np.uint16)

            windows = samples[offset:offset + n_symbols * size].reshape(n_symbols, size)
            dechirped = windows * self._downchirp

            spectrum = np.fft.fft(dechirped, n=size, axis=1)
            peaks = np.argmax(np.abs(spectrum) ** 2, axis=1)

            mask = (1 << self._spreading_factor) - 1
            return (peaks & mask).astype(np.uint16)

    def decode(self, samples: np.ndarray) -> DecodeResult:
        """
        Decode one block of chip-rate samples.

        Args:
            samples: Complex samples at chip rate

        Returns:
            DecodeResult; ``valid`` is False if symbols could not be packed

        Raises:
            EmptyBlockError: if no samples were provided
        """
        if len(samples) == 0:
            raise EmptyBlockError("No samples provided")

        with self._lock:
            sf = self._spreading_factor
            offset = self.detect_preamble(samples)
            symbols = self.extract_symbols(samples, offset)
            snr = estimate_snr(samples)

            try:
                data = symbols_to_bytes(symbols, sf)
            except UnsupportedSpreadingFactorError as e:
                logger.error(str(e))
                return DecodeResult(
                    symbols=symbols,
                    data=b"",
                    snr=snr,
                    spreading_factor=sf,
                    sync_offset=offset,
                    valid=False,
                    error_message=str(e),
                )

        logger.debug(f"Decoded {len(symbols)} symbols, {len(data)} bytes, SNR {snr:.1f} dB")
        return DecodeResult(
            symbols=symbols,
            data=data,
            snr=snr,
            spreading_factor=sf,
            sync_offset=offset,
        )

    def process(self, samples: np.ndarray) -> DecodeResult:
        """Decimate to chip rate if needed, then decode."""
        with self._lock:
            if self._decimator is not None and len(samples) > 0:
                samples = self._decimator.decimate_stream(samples)
            return self.decode(samples)

    def reset(self) -> None:
        """Reset decimator history."""
        with self._lock:
            if self._decimator is not None:
                self._decimator.reset()
