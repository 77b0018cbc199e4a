"""
Test signal synthesis.

Generates GFSK and chirp-modulated IQ frames for simulation mode,
capture files and tests.
"""

import numpy as np
from typing import Optional, Sequence

from .chirp import generate_upchirp


def bytes_to_bits(data: bytes) -> np.ndarray:
    """Expand bytes to bits, least significant bit first."""
    return np.unpackbits(np.frombuffer(bytes(data), dtype=np.uint8), bitorder="little")


def gaussian_pulse(bt: float, samples_per_bit: float, span: int = 3) -> np.ndarray:
    """
    Gaussian frequency-shaping pulse.

    Args:
        bt: Bandwidth-time product
        samples_per_bit: Samples per bit period
        span: Pulse length in bit periods

    Returns:
        Pulse taps normalized to unit sum
    """
    sigma = np.sqrt(np.log(2)) / (2 * np.pi * bt) * samples_per_bit
    half = int(np.ceil(span * samples_per_bit / 2))
    t = np.arange(-half, half + 1, dtype=np.float64)
    pulse = np.exp(-0.5 * (t / sigma) ** 2)
    return pulse / np.sum(pulse)


def gfsk_modulate(
    data: bytes,
    sample_rate: float,
    bitrate: float,
    deviation: float,
    bt: float = 0.5,
    amplitude: float = 1.0
) -> np.ndarray:
    """
    Modulate bytes as continuous-phase GFSK.

    Bits are sent LSB first; a 1 bit shifts the carrier by +deviation.

    Args:
        data: Payload bytes
        sample_rate: Sample rate in Hz
        bitrate: Bit rate in bits/s
        deviation: Frequency deviation in Hz
        bt: Gaussian filter bandwidth-time product (0 = plain FSK)
        amplitude: Output amplitude

    Returns:
        Complex64 I/Q samples
    """
    bits = bytes_to_bits(data)
    if len(bits) == 0:
        return np.zeros(0, dtype=np.complex64)

    samples_per_bit = sample_rate / bitrate
    n_samples = int(np.ceil(len(bits) * samples_per_bit))

    # Bit k covers samples [k * spb, (k + 1) * spb)
    bit_index = np.minimum(
        (np.arange(n_samples) / samples_per_bit).astype(np.int64), len(bits) - 1
    )
    nrz = np.where(bits[bit_index] > 0, 1.0, -1.0)

    if bt > 0:
        pulse = gaussian_pulse(bt, samples_per_bit)
        half = len(pulse) // 2
        padded = np.pad(nrz, half, mode="edge")
        nrz = np.convolve(padded, pulse, mode="valid")

    phase = 2 * np.pi * deviation / sample_rate * np.cumsum(nrz)
    return (amplitude * np.exp(1j * phase)).astype(np.complex64)


def bytes_to_symbols(data: bytes, spreading_factor: int) -> np.ndarray:
    """
    Map payload bytes to chirp symbols so that the decoder's packer
    recovers them.

    - SF7: the bitstream (MSB first) is cut into 7-bit symbols, zero padded
    - SF8: one symbol per byte
    - SF9-12: each byte in the top 8 bits of a symbol
    """
    raw = np.frombuffer(bytes(data), dtype=np.uint8).astype(np.uint16)
    if spreading_factor == 7:
        bits = np.unpackbits(raw.astype(np.uint8))
        pad = (-len(bits)) % 7
        bits = np.concatenate([bits, np.zeros(pad, dtype=np.uint8)])
        weights = 1 << np.arange(6, -1, -1)
        return (bits.reshape(-1, 7) * weights).sum(axis=1).astype(np.uint16)
    if spreading_factor == 8:
        return raw
    if 9 <= spreading_factor <= 12:
        return (raw << (spreading_factor - 8)).astype(np.uint16)
    raise ValueError(f"Unsupported spreading factor: {spreading_factor}")


def chirp_modulate(
    symbols: Sequence[int],
    spreading_factor: int,
    amplitude: float = 1.0
) -> np.ndarray:
    """
    Modulate symbols as cyclically shifted upchirps at chip rate.

    Args:
        symbols: Symbol values (< 2^SF)
        spreading_factor: Spreading factor
        amplitude: Output amplitude

    Returns:
        Complex64 I/Q samples, 2^SF per symbol
    """
    base = generate_upchirp(spreading_factor)
    mask = (1 << spreading_factor) - 1
    if len(symbols) == 0:
        return np.zeros(0, dtype=np.complex64)

    chirps = [np.roll(base, -(int(s) & mask)) for s in symbols]
    return (amplitude * np.concatenate(chirps)).astype(np.complex64)


def add_noise(
    samples: np.ndarray,
    snr_db: float,
    seed: Optional[int] = None
) -> np.ndarray:
    """
    Add complex white Gaussian noise at a given SNR.

    Args:
        samples: Complex samples
        snr_db: Signal-to-noise ratio in dB
        seed: Optional RNG seed

    Returns:
        Noisy complex64 samples
    """
    if len(samples) == 0:
        return samples.astype(np.complex64)

    rng = np.random.default_rng(seed)
    signal_power = np.mean(np.abs(samples) ** 2)
    noise_power = signal_power / (10 ** (snr_db / 10))
    noise = np.sqrt(noise_power / 2) * (
        rng.standard_normal(len(samples)) + 1j * rng.standard_normal(len(samples))
    )
    return (samples + noise).astype(np.complex64)
