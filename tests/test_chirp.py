"""Tests for the chirp symbol decoder."""

import numpy as np
import pytest

from hc12_module.dsp.chirp import (
    ChirpDecoder,
    energy_sync,
    estimate_snr,
    generate_downchirp,
    generate_upchirp,
    no_sync,
    symbols_to_bytes,
)
from hc12_module.dsp.modulation import chirp_modulate
from hc12_module.errors import (
    DecodeError,
    EmptyBlockError,
    UnsupportedSpreadingFactorError,
)


class TestChirpGeneration:
    """Tests for reference chirps."""

    def test_lengths(self):
        """Test chirps are 2^SF samples long."""
        for sf in range(7, 13):
            assert len(generate_upchirp(sf)) == 1 << sf
            assert len(generate_downchirp(sf)) == 1 << sf

    def test_unit_magnitude(self):
        """Test reference chirps have unit magnitude."""
        np.testing.assert_allclose(np.abs(generate_downchirp(9)), 1.0, atol=1e-6)

    def test_downchirp_is_conjugate(self):
        """Test the downchirp is the conjugate of the base upchirp."""
        np.testing.assert_allclose(
            generate_downchirp(8), np.conj(generate_upchirp(8)), atol=1e-4
        )

    def test_dechirped_base_is_dc(self):
        """Test the base upchirp dechirps to bin 0."""
        product = generate_upchirp(7) * generate_downchirp(7)
        assert int(np.argmax(np.abs(np.fft.fft(product)))) == 0


class TestSymbolPacking:
    """Tests for symbols_to_bytes."""

    def test_sf8(self):
        """Test SF8 emits one byte per symbol."""
        assert symbols_to_bytes(np.array([0x41, 0x42, 0x43]), 8) == b"\x41\x42\x43"

    def test_sf12(self):
        """Test SF12 keeps the top 8 bits."""
        assert symbols_to_bytes(np.array([0x410, 0x420, 0x430]), 12) == b"\x41\x42\x43"

    def test_sf9_and_sf10(self):
        """Test intermediate spreading factors shift by SF - 8."""
        assert symbols_to_bytes(np.array([0x1FF, 0x082]), 9) == b"\xff\x41"
        assert symbols_to_bytes(np.array([0x104]), 10) == b"\x41"

    def test_sf7_eight_symbols(self):
        """Test eight 7-bit symbols pack into exactly 7 bytes."""
        data = symbols_to_bytes(np.full(8, 0x7F), 7)
        assert data == b"\xff" * 7

    def test_sf7_bit_order(self):
        """Test SF7 packs MSB first across symbol boundaries."""
        # 1000000 0000001 -> 10000000 000001(00)
        assert symbols_to_bytes(np.array([0x40, 0x01]), 7) == b"\x80\x04"

    def test_sf7_partial_padding(self):
        """Test a trailing partial group is zero padded into a byte."""
        assert symbols_to_bytes(np.array([0x7F]), 7) == b"\xfe"

    def test_empty_symbols(self):
        """Test no symbols gives no bytes."""
        assert symbols_to_bytes(np.array([], dtype=np.uint16), 8) == b""

    @pytest.mark.parametrize("sf", [6, 13])
    def test_unsupported_spreading_factor(self, sf):
        """Test unsupported spreading factors raise a decode error."""
        with pytest.raises(UnsupportedSpreadingFactorError) as exc_info:
            symbols_to_bytes(np.array([1, 2, 3]), sf)
        assert exc_info.value.spreading_factor == sf
        assert isinstance(exc_info.value, DecodeError)


class TestEnergySync:
    """Tests for the energy-based preamble locator."""

    def test_single_burst(self):
        """Test the offset of a single high-energy window is found."""
        samples = np.full(1024, 1e-3, dtype=np.complex64)
        samples[256:384] = 1.0
        assert energy_sync(samples, 128) == 256

    def test_block_too_short(self):
        """Test a block no longer than the window gives offset 0."""
        assert energy_sync(np.ones(128, dtype=np.complex64), 128) == 0

    def test_all_zero(self):
        """Test an all-zero block gives offset 0."""
        assert energy_sync(np.zeros(1024, dtype=np.complex64), 128) == 0

    def test_quarter_symbol_steps(self):
        """Test only quarter-symbol offsets are reported."""
        samples = np.zeros(2048, dtype=np.complex64)
        samples[1000:1128] = 1.0
        offset = energy_sync(samples, 128)
        assert offset % 32 == 0
        assert abs(offset - 1000) < 32

    def test_no_sync(self):
        """Test the pass-through strategy always returns 0."""
        samples = np.zeros(1024, dtype=np.complex64)
        samples[512:640] = 1.0
        assert no_sync(samples, 128) == 0


class TestEstimateSNR:
    """Tests for the signal quality indicator."""

    def test_empty(self):
        """Test empty input gives 0 dB."""
        assert estimate_snr(np.array([], dtype=np.complex64)) == 0.0

    def test_constant_power(self):
        """Test zero power variance gives 0 dB."""
        assert estimate_snr(np.ones(100, dtype=np.complex64)) == 0.0

    def test_known_value(self):
        """Test mean power 2 with unit power deviation gives 3 dB."""
        samples = np.tile([1.0, np.sqrt(3.0)], 50).astype(np.complex128)
        assert estimate_snr(samples) == pytest.approx(10 * np.log10(2.0), abs=1e-6)

    def test_not_a_calibrated_snr(self):
        """Test pure noise reads about 0 dB whatever its power.

        The indicator is mean power over power deviation, not signal over
        noise, so it cannot tell a weak noise floor from a strong one.
        """
        rng = np.random.default_rng(5)
        noise = rng.standard_normal(20000) + 1j * rng.standard_normal(20000)

        quiet = estimate_snr(0.01 * noise)
        loud = estimate_snr(100.0 * noise)

        assert quiet == pytest.approx(0.0, abs=0.3)
        assert loud == pytest.approx(quiet, abs=1e-6)


class TestChirpDecoder:
    """Tests for ChirpDecoder."""

    def test_defaults(self):
        """Test default parameters."""
        decoder = ChirpDecoder()
        assert decoder.spreading_factor == 7
        assert decoder.bandwidth == 125_000
        assert decoder.symbol_size == 128
        assert decoder.decimation_factor == 1
        assert decoder.symbol_duration == pytest.approx(128 / 125_000)

    @pytest.mark.parametrize("sf", [7, 8, 10, 12])
    def test_symbol_round_trip(self, sf):
        """Test modulated symbols are recovered at chip rate."""
        rng = np.random.default_rng(sf)
        symbols = rng.integers(0, 1 << sf, size=6)

        decoder = ChirpDecoder(spreading_factor=sf, sync_strategy=no_sync)
        result = decoder.decode(chirp_modulate(symbols, sf))

        assert result.valid
        np.testing.assert_array_equal(result.symbols, symbols)
        assert result.spreading_factor == sf

    def test_sf8_bytes(self):
        """Test SF8 symbols decode straight to bytes."""
        payload = b"HC-12"
        decoder = ChirpDecoder(spreading_factor=8, sync_strategy=no_sync)
        result = decoder.decode(chirp_modulate(list(payload), 8))
        assert result.data == payload

    def test_noisy_round_trip(self):
        """Test symbols survive moderate noise."""
        rng = np.random.default_rng(11)
        symbols = rng.integers(0, 512, size=8)
        samples = chirp_modulate(symbols, 9)
        noise = 0.5 * (rng.standard_normal(len(samples)) + 1j * rng.standard_normal(len(samples)))

        decoder = ChirpDecoder(spreading_factor=9, sync_strategy=no_sync)
        result = decoder.decode((samples + noise).astype(np.complex64))

        np.testing.assert_array_equal(result.symbols, symbols)

    def test_energy_sync_finds_symbol(self):
        """Test the default locator aligns on an isolated symbol."""
        samples = np.zeros(640, dtype=np.complex64)
        samples[256:384] = chirp_modulate([42], 7)

        result = ChirpDecoder().decode(samples)

        assert result.sync_offset == 256
        assert result.symbols[0] == 42

    def test_partial_symbol_ignored(self):
        """Test samples short of a full symbol are not decoded."""
        samples = chirp_modulate([5, 6], 7)[:200]
        result = ChirpDecoder(sync_strategy=no_sync).decode(samples)
        np.testing.assert_array_equal(result.symbols, [5])

    def test_empty_block_raises(self):
        """Test an empty block is rejected without changing state."""
        decoder = ChirpDecoder()
        with pytest.raises(EmptyBlockError):
            decoder.decode(np.array([], dtype=np.complex64))
        with pytest.raises(EmptyBlockError):
            decoder.process(np.array([], dtype=np.complex64))
        assert decoder.spreading_factor == 7

    def test_unsupported_spreading_factor_result(self):
        """Test SF13 yields an invalid result with no bytes."""
        decoder = ChirpDecoder(spreading_factor=13, sync_strategy=no_sync)
        result = decoder.decode(np.ones(1 << 13, dtype=np.complex64))

        assert not result.valid
        assert result.data == b""
        assert "13" in result.error_message
        assert len(result.symbols) == 1

    def test_set_spreading_factor_clamps(self):
        """Test the setter clamps to 7..12 and regenerates the downchirp."""
        decoder = ChirpDecoder()

        decoder.set_spreading_factor(20)
        assert decoder.spreading_factor == 12
        assert len(decoder.downchirp) == 4096

        decoder.set_spreading_factor(3)
        assert decoder.spreading_factor == 7
        assert decoder.symbol_size == 128
        np.testing.assert_allclose(decoder.downchirp, generate_downchirp(7))

    def test_configure(self):
        """Test configure applies spreading factor and bandwidth."""
        decoder = ChirpDecoder(sample_rate=2.0e6)
        decoder.configure(spreading_factor=9, bandwidth=250_000)
        assert decoder.spreading_factor == 9
        assert decoder.bandwidth == 250_000
        assert decoder.decimation_factor == 8

    def test_configure_rejected_keeps_state(self):
        """Test a bandwidth above the sample rate leaves the decoder unchanged."""
        decoder = ChirpDecoder()
        with pytest.raises(ValueError):
            decoder.configure(spreading_factor=9, bandwidth=250_000)
        assert decoder.spreading_factor == 7
        assert decoder.bandwidth == 125_000

    @pytest.mark.parametrize("bandwidth", [0, -125_000])
    def test_configure_non_positive_bandwidth(self, bandwidth):
        """Test a non-positive bandwidth raises ValueError and changes nothing."""
        decoder = ChirpDecoder(sample_rate=250_000)
        with pytest.raises(ValueError):
            decoder.configure(spreading_factor=9, bandwidth=bandwidth)
        assert decoder.spreading_factor == 7
        assert decoder.bandwidth == 125_000
        assert decoder.decimation_factor == 2

    def test_configure_bad_spreading_factor_keeps_bandwidth(self):
        """Test a non-numeric spreading factor is rejected before any change."""
        decoder = ChirpDecoder(sample_rate=250_000)
        with pytest.raises(ValueError):
            decoder.configure(spreading_factor="nine", bandwidth=250_000)
        assert decoder.bandwidth == 125_000
        assert decoder.decimation_factor == 2

    @pytest.mark.parametrize("sf", [-1, 0, 17, 20])
    def test_spreading_factor_out_of_range(self, sf):
        """Test spreading factors outside 1..16 are rejected at construction."""
        with pytest.raises(ValueError):
            ChirpDecoder(spreading_factor=sf)

    def test_zero_bandwidth(self):
        """Test a zero bandwidth is rejected at construction."""
        with pytest.raises(ValueError):
            ChirpDecoder(bandwidth=0)

    def test_configure_unknown_parameter(self):
        """Test unknown parameters are rejected."""
        with pytest.raises(TypeError):
            ChirpDecoder().configure(bitrate=5000)

    def test_sample_rate_below_bandwidth(self):
        """Test a sample rate below the bandwidth is rejected."""
        with pytest.raises(ValueError):
            ChirpDecoder(bandwidth=125_000, sample_rate=100_000)

    def test_process_decimates(self):
        """Test process() decimates to chip rate before decoding."""
        decoder = ChirpDecoder(sample_rate=250_000, sync_strategy=no_sync)
        assert decoder.decimation_factor == 2

        result = decoder.process(np.ones(2 * 128 * 4, dtype=np.complex64))
        assert len(result.symbols) == 4

    def test_set_sync_strategy(self):
        """Test the synchronization policy can be replaced."""
        samples = np.zeros(640, dtype=np.complex64)
        samples[256:384] = chirp_modulate([42], 7)

        decoder = ChirpDecoder()
        decoder.set_sync_strategy(lambda block, size: 0)
        assert decoder.decode(samples).sync_offset == 0
