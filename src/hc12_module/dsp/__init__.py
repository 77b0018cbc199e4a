"""
DSP module - Signal processing components.
"""

from .chirp import (
    SYNC_STRATEGIES,
    ChirpDecoder,
    DecodeResult,
    energy_sync,
    estimate_snr,
    generate_downchirp,
    generate_upchirp,
    no_sync,
    symbols_to_bytes,
)
from .demodulators import (
    BitSlicer,
    ByteAssembler,
    DecodeMode,
    Demodulator,
    DemodStats,
    FMDiscriminator,
    GFSKDemodulator,
    create_demodulator,
)
from .filters import Decimator, MovingAverageFilter
from .modulation import add_noise, bytes_to_symbols, chirp_modulate, gfsk_modulate

__all__ = [
    "Demodulator",
    "DecodeMode",
    "FMDiscriminator",
    "BitSlicer",
    "ByteAssembler",
    "DemodStats",
    "GFSKDemodulator",
    "create_demodulator",
    "ChirpDecoder",
    "DecodeResult",
    "generate_upchirp",
    "generate_downchirp",
    "energy_sync",
    "no_sync",
    "SYNC_STRATEGIES",
    "symbols_to_bytes",
    "estimate_snr",
    "MovingAverageFilter",
    "Decimator",
    "gfsk_modulate",
    "chirp_modulate",
    "bytes_to_symbols",
    "add_noise",
]
