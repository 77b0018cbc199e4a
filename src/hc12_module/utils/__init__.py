"""
Utility functions and helpers.
"""

from .conversions import bits_to_str, bytes_to_hex, bytes_to_text, freq_to_str, str_to_freq
from .iq import load_iq_file, save_iq_file

__all__ = [
    "bytes_to_hex",
    "bytes_to_text",
    "bits_to_str",
    "freq_to_str",
    "str_to_freq",
    "load_iq_file",
    "save_iq_file",
]
