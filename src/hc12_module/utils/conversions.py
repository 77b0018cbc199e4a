"""
Unit and display conversion utilities.
"""

import string
from typing import Optional, Sequence, Union

import numpy as np

# Type alias for numeric types
Numeric = Union[float, int, np.ndarray]

_TEXT_CHARS = frozenset(
    string.ascii_letters + string.digits + string.punctuation + string.whitespace
)


def linear_to_db(linear: Numeric) -> Numeric:
    """
    Convert linear (power ratio) to decibels.

    Args:
        linear: Linear value

    Returns:
        Value in dB
    """
    return 10 * np.log10(linear + 1e-20)


def freq_to_str(freq_hz: float) -> str:
    """
    Convert frequency to human-readable string.

    Args:
        freq_hz: Frequency in Hz

    Returns:
        Formatted string (e.g., "433.400000 MHz")
    """
    if freq_hz >= 1e9:
        return f"{freq_hz / 1e9:.6f} GHz"
    elif freq_hz >= 1e6:
        return f"{freq_hz / 1e6:.6f} MHz"
    elif freq_hz >= 1e3:
        return f"{freq_hz / 1e3:.3f} kHz"
    else:
        return f"{freq_hz:.1f} Hz"


def str_to_freq(freq_str: str) -> float:
    """
    Parse frequency string to Hz.

    Args:
        freq_str: Frequency string (e.g., "433.4MHz", "125 kHz", "433.4e6")

    Returns:
        Frequency in Hz
    """
    freq_str = freq_str.strip().upper()

    multipliers = {
        "GHZ": 1e9,
        "MHZ": 1e6,
        "KHZ": 1e3,
        "HZ": 1,
        "G": 1e9,
        "M": 1e6,
        "K": 1e3,
    }

    for suffix, mult in multipliers.items():
        if freq_str.endswith(suffix):
            value = freq_str[:-len(suffix)].strip()
            return float(value) * mult

    # No suffix, assume Hz
    return float(freq_str)


def sample_rate_to_str(rate_hz: float) -> str:
    """Convert sample rate to human-readable string (e.g., "2.05 MS/s")."""
    if rate_hz >= 1e6:
        return f"{rate_hz / 1e6:.2f} MS/s"
    elif rate_hz >= 1e3:
        return f"{rate_hz / 1e3:.2f} kS/s"
    else:
        return f"{rate_hz:.0f} S/s"


def bytes_to_hex(data: bytes, separator: str = " ") -> str:
    """
    Format bytes as uppercase hex pairs.

    Args:
        data: Bytes to format
        separator: String placed between pairs

    Returns:
        Hex string (e.g., "48 43 31 32")
    """
    return separator.join(f"{b:02X}" for b in data)


def bytes_to_text(data: bytes) -> Optional[str]:
    """
    Interpret bytes as printable ASCII text.

    Returns:
        The decoded text, or None if empty or any byte is not printable
        ASCII or whitespace
    """
    if not data:
        return None
    try:
        text = bytes(data).decode("ascii")
    except UnicodeDecodeError:
        return None
    if all(c in _TEXT_CHARS for c in text):
        return text
    return None


def bits_to_str(bits: Sequence[bool], limit: Optional[int] = None) -> str:
    """Render bits as a string of 0/1 characters, optionally truncated."""
    bits = np.asarray(bits, dtype=bool)
    if limit is not None and len(bits) > limit:
        return "".join("1" if b else "0" for b in bits[:limit]) + "..."
    return "".join("1" if b else "0" for b in bits)
