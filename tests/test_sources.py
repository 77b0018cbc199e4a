"""Tests for sample sources."""

import os
import sys
import tempfile
from unittest import mock

import numpy as np
import pytest

from hc12_module.devices.file_source import FileSource
from hc12_module.devices.rtlsdr import SAMPLE_RATE_MAX, RTLSDRSource
from hc12_module.devices.simulated import DEFAULT_PAYLOAD, SimulatedSource
from hc12_module.dsp.modulation import gfsk_modulate
from hc12_module.errors import SourceError
from hc12_module.utils.iq import save_iq_file


class TestFileSource:
    """Tests for IQ file replay."""

    def setup_method(self):
        fd, self.path = tempfile.mkstemp(suffix=".cf32")
        os.close(fd)
        self.samples = np.arange(25, dtype=np.float32).astype(np.complex64)
        save_iq_file(self.samples, self.path, format="cf32")

    def teardown_method(self):
        os.remove(self.path)

    def test_replay(self):
        """Test blocks replay the file in order, then end."""
        source = FileSource(self.path, file_format="cf32", block_size=10)
        assert source.open()

        blocks = []
        while True:
            block = source.read_block()
            if block is None:
                break
            blocks.append(block)
        source.close()

        assert [len(b) for b in blocks] == [10, 10, 5]
        np.testing.assert_array_equal(np.concatenate(blocks), self.samples)
        assert source.state.blocks_read == 3
        assert source.state.samples_read == 25

    def test_loop(self):
        """Test looping restarts at the beginning of the file."""
        with FileSource(self.path, file_format="cf32", block_size=20, loop=True) as source:
            lengths = [len(source.read_block()) for _ in range(4)]
            assert lengths == [20, 5, 20, 5]

    def test_missing_file(self):
        """Test opening a missing file fails."""
        source = FileSource(self.path + ".missing")
        assert not source.open()
        assert not source.is_open

    def test_read_before_open(self):
        """Test reading an unopened source raises SourceError."""
        with pytest.raises(SourceError):
            FileSource(self.path).read_block()

    def test_unknown_format(self):
        """Test unknown formats are rejected."""
        with pytest.raises(ValueError):
            FileSource(self.path, file_format="wav")

    def test_info(self):
        """Test source information after open."""
        with FileSource(self.path, file_format="cf32") as source:
            assert source.info.name == os.path.basename(self.path)
            assert source.info.product == "cf32"


class TestSimulatedSource:
    """Tests for the simulated source."""

    def test_gfsk_frame(self):
        """Test the GFSK frame matches the modulator output."""
        source = SimulatedSource(mode="gfsk", payload=b"AB", sample_rate=240e3)
        assert source.open()
        np.testing.assert_array_equal(source.frame, gfsk_modulate(b"AB", 240e3, 15000, 20e3))

    def test_frames_repeat_across_blocks(self):
        """Test consecutive blocks continue the repeated frame."""
        source = SimulatedSource(mode="gfsk", payload=b"A", sample_rate=240e3, block_size=100)
        source.open()
        frame = source.frame

        stream = np.concatenate([source.read_block() for _ in range(5)])

        np.testing.assert_array_equal(stream, np.tile(frame, 4)[:500])

    def test_chirp_runs_at_chip_rate(self):
        """Test chirp mode uses the bandwidth as sample rate."""
        source = SimulatedSource(mode="chirp", bandwidth=250_000, sample_rate=2.048e6)
        assert source.sample_rate == 250_000
        source.open()
        assert len(source.frame) % 128 == 0

    def test_num_blocks(self):
        """Test the stream ends after num_blocks."""
        with SimulatedSource(block_size=64, num_blocks=3) as source:
            blocks = [source.read_block() for _ in range(4)]
        assert [b is None for b in blocks] == [False, False, False, True]

    def test_noise_seeded(self):
        """Test seeded noise is reproducible across reopen."""
        source = SimulatedSource(block_size=256, snr_db=10.0, seed=7)
        source.open()
        first = source.read_block()
        source.close()
        source.open()
        np.testing.assert_array_equal(source.read_block(), first)
        assert not np.array_equal(first, source.frame[:256])

    def test_empty_payload(self):
        """Test an empty payload cannot be opened."""
        assert not SimulatedSource(payload=b"").open()

    def test_read_before_open(self):
        """Test reading an unopened source raises SourceError."""
        with pytest.raises(SourceError):
            SimulatedSource().read_block()

    def test_invalid_mode(self):
        """Test unknown modes are rejected."""
        with pytest.raises(ValueError):
            SimulatedSource(mode="ook")

    def test_default_payload(self):
        """Test the default payload is a printable test frame."""
        assert DEFAULT_PAYLOAD.startswith(b"HC-12")


class TestRTLSDRSource:
    """Tests for the RTL-SDR source with the driver mocked."""

    def make_module(self):
        module = mock.MagicMock()
        device = module.RtlSdr.return_value
        device.read_samples.return_value = np.ones(1024, dtype=np.complex128)
        return module, device

    def test_sample_rate_clamped(self):
        """Test sample rates are limited to the RTL2832U range."""
        assert RTLSDRSource(sample_rate=10e6).sample_rate == SAMPLE_RATE_MAX
        assert RTLSDRSource(sample_rate=1000).sample_rate == 225001

    def test_gain_modes(self):
        """Test auto and manual gain settings."""
        assert RTLSDRSource(gain="auto").state.gain_mode == "auto"
        state = RTLSDRSource(gain=29.7).state
        assert state.gain_mode == "manual"
        assert state.gain == 29.7

    def test_open_configures_device(self):
        """Test open() applies frequency, rate and gain."""
        module, device = self.make_module()
        with mock.patch.dict(sys.modules, {"rtlsdr": module}):
            source = RTLSDRSource(device_index=1, frequency=433.4e6, gain=20.0)
            assert source.open()

        module.RtlSdr.assert_called_once_with(device_index=1)
        assert device.center_freq == 433.4e6
        assert device.sample_rate == 2.048e6
        assert device.gain == 20.0
        assert source.info.index == 1

    def test_read_block(self):
        """Test blocks are read with the configured size as complex64."""
        module, device = self.make_module()
        with mock.patch.dict(sys.modules, {"rtlsdr": module}):
            source = RTLSDRSource(block_size=1024)
            source.open()

        block = source.read_block()

        device.read_samples.assert_called_once_with(1024)
        assert block.dtype == np.complex64
        assert len(block) == 1024

    def test_read_failure(self):
        """Test driver errors become SourceError."""
        module, device = self.make_module()
        device.read_samples.side_effect = IOError("usb transfer failed")
        with mock.patch.dict(sys.modules, {"rtlsdr": module}):
            source = RTLSDRSource()
            source.open()

        with pytest.raises(SourceError):
            source.read_block()

    def test_open_failure(self):
        """Test a driver error while opening returns False."""
        module, _ = self.make_module()
        module.RtlSdr.side_effect = IOError("no device")
        with mock.patch.dict(sys.modules, {"rtlsdr": module}):
            source = RTLSDRSource()
            assert not source.open()
        assert not source.is_open

    def test_library_missing(self):
        """Test open() fails cleanly without pyrtlsdr."""
        with mock.patch.dict(sys.modules, {"rtlsdr": None}):
            assert not RTLSDRSource().open()
            assert RTLSDRSource.list_devices() == []

    def test_close(self):
        """Test close() releases the device."""
        module, device = self.make_module()
        with mock.patch.dict(sys.modules, {"rtlsdr": module}):
            source = RTLSDRSource()
            source.open()
        source.close()

        device.close.assert_called_once()
        assert not source.is_open
        with pytest.raises(SourceError):
            source.read_block()

    def test_list_devices(self):
        """Test device enumeration."""
        module, _ = self.make_module()
        module.RtlSdr.get_device_count.return_value = 2
        module.RtlSdr.get_device_serial.side_effect = ["00000001", None]
        with mock.patch.dict(sys.modules, {"rtlsdr": module}):
            devices = RTLSDRSource.list_devices()

        assert [d.serial for d in devices] == ["00000001", "rtlsdr_1"]
        assert devices[1].index == 1

    def test_retune(self):
        """Test frequency and gain changes reach the device and the state."""
        module, device = self.make_module()
        source = RTLSDRSource()
        assert not source.set_frequency(434e6)

        with mock.patch.dict(sys.modules, {"rtlsdr": module}):
            source.open()

        assert source.set_frequency(434e6)
        assert source.set_gain(40.2)
        assert device.center_freq == 434e6
        assert device.gain == 40.2
        state = source.state
        assert state.frequency == 434e6
        assert state.gain_mode == "manual"
