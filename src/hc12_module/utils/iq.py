"""
I/Q capture file utilities.

Converts between raw interleaved capture formats and normalized
complex samples:

    cu8   - unsigned 8-bit (rtl_sdr native), (x - 127.5) / 127.5
    cs8   - signed 8-bit, x / 127
    cs16  - signed 16-bit, x / 32767
    cf32  - complex float32, stored as is
"""

from pathlib import Path
from typing import Iterator, Optional, Union

import numpy as np

# format -> (element dtype, bytes per complex sample)
IQ_FORMATS = {
    "cu8": (np.uint8, 2),
    "cs8": (np.int8, 2),
    "cs16": (np.int16, 4),
    "cf32": (np.float32, 8),
}


def _format_info(format: str):
    format = format.lower()
    if format not in IQ_FORMATS:
        raise ValueError(f"Unsupported format: {format}")
    return format, IQ_FORMATS[format]


def interleaved_to_complex(
    data: np.ndarray,
    dtype: np.dtype = np.uint8
) -> np.ndarray:
    """
    Convert interleaved I/Q data to complex.

    A trailing unpaired value is dropped.

    Args:
        data: Interleaved [I0, Q0, I1, Q1, ...] data
        dtype: Original data type (uint8, int8, int16, float32)

    Returns:
        Complex64 array normalized to roughly [-1, 1]
    """
    data = np.asarray(data).astype(np.float32)
    if len(data) % 2:
        data = data[:-1]

    if dtype == np.uint8:
        data = (data - 127.5) / 127.5
    elif dtype == np.int8:
        data = data / 127.0
    elif dtype == np.int16:
        data = data / 32767.0

    iq = data.reshape(-1, 2)
    return (iq[:, 0] + 1j * iq[:, 1]).astype(np.complex64)


def complex_to_interleaved(
    samples: np.ndarray,
    dtype: np.dtype = np.uint8
) -> np.ndarray:
    """
    Convert complex samples to interleaved I/Q data.

    Args:
        samples: Complex samples (assumed normalized to [-1, 1])
        dtype: Target data type

    Returns:
        Interleaved [I0, Q0, I1, Q1, ...] data
    """
    i_data = np.clip(samples.real, -1, 1)
    q_data = np.clip(samples.imag, -1, 1)

    if dtype == np.uint8:
        i_data = np.round(i_data * 127.5 + 127.5)
        q_data = np.round(q_data * 127.5 + 127.5)
    elif dtype == np.int8:
        i_data = np.round(i_data * 127)
        q_data = np.round(q_data * 127)
    elif dtype == np.int16:
        i_data = np.round(i_data * 32767)
        q_data = np.round(q_data * 32767)

    result = np.empty(len(samples) * 2, dtype=dtype)
    result[0::2] = i_data
    result[1::2] = q_data
    return result


def load_iq_file(
    filepath: Union[str, Path],
    format: str = "cu8",
    num_samples: Optional[int] = None,
    offset_samples: int = 0
) -> np.ndarray:
    """
    Load I/Q samples from file.

    Args:
        filepath: Path to I/Q file
        format: File format (cu8, cs8, cs16, cf32)
        num_samples: Number of samples to read (None = all)
        offset_samples: Number of samples to skip

    Returns:
        Complex64 array
    """
    format, (dtype, bytes_per_sample) = _format_info(format)

    with open(filepath, "rb") as f:
        f.seek(offset_samples * bytes_per_sample)
        count = -1 if num_samples is None else num_samples * 2
        data = np.fromfile(f, dtype=dtype, count=count)

    if format == "cf32":
        if len(data) % 2:
            data = data[:-1]
        return data.view(np.complex64).copy()
    return interleaved_to_complex(data, dtype)


def iter_iq_blocks(
    filepath: Union[str, Path],
    block_size: int,
    format: str = "cu8"
) -> Iterator[np.ndarray]:
    """
    Read an I/Q file block by block.

    The last block may be shorter than ``block_size``.

    Args:
        filepath: Path to I/Q file
        block_size: Samples per block
        format: File format (cu8, cs8, cs16, cf32)

    Yields:
        Complex64 sample blocks
    """
    format, (dtype, _) = _format_info(format)

    with open(filepath, "rb") as f:
        while True:
            data = np.fromfile(f, dtype=dtype, count=block_size * 2)
            if len(data) < 2:
                return
            if format == "cf32":
                if len(data) % 2:
                    data = data[:-1]
                yield data.view(np.complex64).copy()
            else:
                yield interleaved_to_complex(data, dtype)


def save_iq_file(
    samples: np.ndarray,
    filepath: Union[str, Path],
    format: str = "cf32"
) -> None:
    """
    Save I/Q samples to file.

    Args:
        samples: Complex samples
        filepath: Output file path
        format: File format (cu8, cs8, cs16, cf32)
    """
    format, (dtype, _) = _format_info(format)

    if format == "cf32":
        data = np.asarray(samples).astype(np.complex64)
    else:
        data = complex_to_interleaved(np.asarray(samples), dtype)

    data.tofile(str(filepath))
