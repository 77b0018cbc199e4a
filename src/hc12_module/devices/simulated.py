"""
Simulated sample source.

Generates a continuous stream of repeated HC-12 style frames, either
GFSK or chirp modulated, with optional additive white noise. Used when
no hardware is available and for end-to-end tests.
"""

import logging
from typing import Optional

import numpy as np

from ..dsp.modulation import add_noise, bytes_to_symbols, chirp_modulate, gfsk_modulate
from ..errors import SourceError
from .base import DeviceInfo, SampleSource

logger = logging.getLogger(__name__)

DEFAULT_PAYLOAD = b"HC-12 test frame\r\n"


class SimulatedSource(SampleSource):
    """
    Sample source producing synthesized frames.

    In chirp mode samples are produced at chip rate, so the source
    sample rate equals the chirp bandwidth.
    """

    def __init__(
        self,
        mode: str = "gfsk",
        payload: bytes = DEFAULT_PAYLOAD,
        sample_rate: float = 2.048e6,
        block_size: int = 128 * 1024,
        bitrate: float = 15000,
        deviation: float = 20e3,
        spreading_factor: int = 7,
        bandwidth: float = 125_000,
        snr_db: Optional[float] = None,
        num_blocks: Optional[int] = None,
        seed: Optional[int] = None
    ):
        """
        Initialize simulated source.

        Args:
            mode: "gfsk" or "chirp"
            payload: Frame payload bytes
            sample_rate: Output sample rate (GFSK only)
            block_size: Samples per block
            bitrate: GFSK bit rate
            deviation: GFSK frequency deviation in Hz
            spreading_factor: Chirp spreading factor
            bandwidth: Chirp bandwidth in Hz
            snr_db: Additive noise SNR in dB (None = noiseless)
            num_blocks: Blocks to produce before end of stream (None = endless)
            seed: Noise RNG seed
        """
        if mode not in ("gfsk", "chirp"):
            raise ValueError(f"Unsupported mode: {mode}")
        if mode == "chirp":
            sample_rate = bandwidth
        super().__init__(sample_rate, block_size)

        self._mode = mode
        self._payload = bytes(payload)
        self._bitrate = bitrate
        self._deviation = deviation
        self._spreading_factor = spreading_factor
        self._snr_db = snr_db
        self._num_blocks = num_blocks
        self._seed = seed
        self._rng = np.random.default_rng(seed)
        self._frame = np.zeros(0, dtype=np.complex64)
        self._position = 0
        self._produced = 0

    @property
    def mode(self) -> str:
        return self._mode

    @property
    def frame(self) -> np.ndarray:
        """One modulated frame (noiseless)."""
        return self._frame.copy()

    def _build_frame(self) -> np.ndarray:
        if self._mode == "gfsk":
            return gfsk_modulate(
                self._payload, self.sample_rate, self._bitrate, self._deviation
            )
        symbols = bytes_to_symbols(self._payload, self._spreading_factor)
        return chirp_modulate(symbols, self._spreading_factor)

    def open(self) -> bool:
        """Synthesize the frame and start the stream."""
        self._frame = self._build_frame()
        if len(self._frame) == 0:
            logger.error("Simulated payload is empty")
            return False

        self._rng = np.random.default_rng(self._seed)
        self._position = 0
        self._produced = 0
        self._info = DeviceInfo(
            name=f"Simulated {self._mode.upper()}",
            serial="simulated",
            manufacturer="hc12_module",
            product="simulator",
        )
        self._is_open = True
        logger.info(
            f"Simulating {self._mode} frames of {len(self._payload)} bytes "
            f"({len(self._frame)} samples)"
        )
        return True

    def close(self) -> None:
        self._is_open = False

    def _read(self) -> Optional[np.ndarray]:
        if not self._is_open:
            raise SourceError("Simulated source is not open")
        if self._num_blocks is not None and self._produced >= self._num_blocks:
            return None

        # Frames repeat back to back
        indices = (self._position + np.arange(self._block_size)) % len(self._frame)
        block = self._frame[indices]
        self._position = (self._position + self._block_size) % len(self._frame)
        self._produced += 1

        if self._snr_db is not None:
            block = add_noise(block, self._snr_db, seed=int(self._rng.integers(2**32)))
        return block
