"""
Core module - Configuration and sample streaming.
"""

from .block_queue import BlockQueue, QueueStats
from .config import (
    ChirpConfig,
    DecoderConfig,
    DeviceConfig,
    GFSKConfig,
    StreamConfig,
    get_preset,
    list_presets,
)
from .pipeline import (
    PipelineStats,
    StreamPipeline,
    create_decoder,
    create_pipeline,
    create_source,
)

__all__ = [
    "BlockQueue",
    "QueueStats",
    # Configuration
    "DecoderConfig",
    "DeviceConfig",
    "GFSKConfig",
    "ChirpConfig",
    "StreamConfig",
    "get_preset",
    "list_presets",
    # Pipeline
    "StreamPipeline",
    "PipelineStats",
    "create_source",
    "create_decoder",
    "create_pipeline",
]
