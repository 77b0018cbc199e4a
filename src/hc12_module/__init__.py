"""
HC-12 SDR Decoder

Receives and decodes HC-12 433 MHz transceiver traffic with an RTL-SDR.

Decode paths:
    - GFSK: FM discriminator, smoothing filter, bit timing recovery and
      LSB-first byte assembly (HC-12 FU1-FU4 modes)
    - Chirp: energy-based symbol sync, dechirp + FFT symbol extraction,
      SF 7-12 symbol packing and a signal quality estimate

Both paths run behind a producer/consumer pipeline with a bounded block
queue, fed by an RTL-SDR, an IQ capture file or the built-in simulator.
"""

__version__ = "0.1.0"
__author__ = "HC-12 SDR Team"

from .core.block_queue import BlockQueue
from .core.config import DecoderConfig
from .core.pipeline import PipelineStats, StreamPipeline, create_pipeline
from .dsp.chirp import ChirpDecoder, DecodeResult
from .dsp.demodulators import DecodeMode, GFSKDemodulator, create_demodulator

__all__ = [
    # Core
    "BlockQueue",
    "DecoderConfig",
    "StreamPipeline",
    "PipelineStats",
    "create_pipeline",
    # Decoders
    "DecodeMode",
    "GFSKDemodulator",
    "ChirpDecoder",
    "DecodeResult",
    "create_demodulator",
    # Version
    "__version__",
]
