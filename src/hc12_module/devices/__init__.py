"""
Sample sources - RTL-SDR hardware, IQ file replay and simulation.
"""

from .base import DeviceInfo, SampleSource, SourceState
from .file_source import FileSource
from .rtlsdr import RTLSDRSource
from .simulated import SimulatedSource

__all__ = [
    "SampleSource",
    "DeviceInfo",
    "SourceState",
    "RTLSDRSource",
    "FileSource",
    "SimulatedSource",
]
