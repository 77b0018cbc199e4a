"""
RTL-SDR sample source.

Provides block capture from RTL-SDR Blog V3/V4 and compatible devices
through the pyrtlsdr library.
Specifications:
    - Frequency: 24 - 1766 MHz (covers the 433-473 MHz HC-12 band)
    - Sample Rate: 2.56 MS/s max (2.048 MS/s default)
    - ADC: 8-bit (RTL2832U)
"""

import logging
from typing import List, Optional, Union

import numpy as np

from ..errors import SourceError
from .base import DeviceInfo, SampleSource

logger = logging.getLogger(__name__)

SAMPLE_RATE_MIN = 225001
SAMPLE_RATE_MAX = 2.56e6


class RTLSDRSource(SampleSource):
    """
    RTL-SDR sample source.

    Wraps ``rtlsdr.RtlSdr`` and reads fixed-size blocks with
    ``read_samples``.
    """

    def __init__(
        self,
        device_index: int = 0,
        frequency: float = 433.4e6,
        sample_rate: float = 2.048e6,
        gain: Union[float, str] = "auto",
        block_size: int = 128 * 1024
    ):
        """
        Initialize RTL-SDR source.

        Args:
            device_index: Device index if multiple devices present
            frequency: Center frequency in Hz
            sample_rate: Sample rate in Hz
            gain: Tuner gain in dB, or "auto"
            block_size: Samples per block
        """
        sample_rate = max(SAMPLE_RATE_MIN, min(sample_rate, SAMPLE_RATE_MAX))
        super().__init__(sample_rate, block_size)
        self._device = None
        self._device_index = device_index
        self._state.frequency = frequency
        if gain == "auto":
            self._state.gain_mode = "auto"
        else:
            self._state.gain = float(gain)
            self._state.gain_mode = "manual"

    @staticmethod
    def list_devices() -> List[DeviceInfo]:
        """List all available RTL-SDR devices."""
        devices = []
        try:
            from rtlsdr import RtlSdr

            count = RtlSdr.get_device_count()
            for i in range(count):
                serial = RtlSdr.get_device_serial(i) or f"rtlsdr_{i}"
                devices.append(
                    DeviceInfo(
                        name=f"RTL-SDR #{i}",
                        serial=serial,
                        manufacturer="RTL-SDR Blog",
                        product="RTL2832U",
                        index=i,
                    )
                )
        except ImportError:
            logger.warning("rtlsdr library not installed")
        except Exception as e:
            logger.error(f"Error listing devices: {e}")
        return devices

    def open(self) -> bool:
        """Open and configure the RTL-SDR device."""
        if self._is_open:
            logger.warning("Device already open")
            return True

        try:
            from rtlsdr import RtlSdr

            self._device = RtlSdr(device_index=self._device_index)
            self._device.sample_rate = self._state.sample_rate
            self._device.center_freq = self._state.frequency
            if self._state.gain_mode == "auto":
                self._device.gain = "auto"
            else:
                self._device.gain = self._state.gain

            self._info = DeviceInfo(
                name=f"RTL-SDR #{self._device_index}",
                serial=f"rtlsdr_{self._device_index}",
                manufacturer="RTL-SDR Blog",
                product="RTL2832U",
                index=self._device_index,
            )
            self._is_open = True
            logger.info(
                f"Opened RTL-SDR #{self._device_index} at "
                f"{self._state.frequency/1e6:.3f} MHz, {self._state.sample_rate/1e6:.3f} MS/s"
            )
            return True

        except ImportError:
            logger.error(
                "rtlsdr library not installed. Install with: pip install pyrtlsdr"
            )
            return False
        except Exception as e:
            logger.error(f"Failed to open RTL-SDR: {e}")
            self._device = None
            return False

    def close(self) -> None:
        """Close RTL-SDR device."""
        if self._device is not None:
            try:
                self._device.close()
            except Exception as e:
                logger.error(f"Error closing device: {e}")
            finally:
                self._device = None
                self._is_open = False
                logger.info("RTL-SDR device closed")

    def set_frequency(self, freq_hz: float) -> bool:
        """Set center frequency."""
        if not self._is_open or self._device is None:
            return False

        try:
            self._device.center_freq = freq_hz
            with self._state_lock:
                self._state.frequency = freq_hz
            logger.debug(f"Set frequency to {freq_hz/1e6:.3f} MHz")
            return True
        except Exception as e:
            logger.error(f"Failed to set frequency: {e}")
            return False

    def set_gain(self, gain_db: float) -> bool:
        """Set manual tuner gain."""
        if not self._is_open or self._device is None:
            return False

        try:
            self._device.gain = gain_db
            with self._state_lock:
                self._state.gain = gain_db
                self._state.gain_mode = "manual"
            logger.debug(f"Set gain to {gain_db} dB")
            return True
        except Exception as e:
            logger.error(f"Failed to set gain: {e}")
            return False

    def _read(self) -> Optional[np.ndarray]:
        """Read one block from the device."""
        if not self._is_open or self._device is None:
            raise SourceError("RTL-SDR device is not open")

        try:
            return np.asarray(self._device.read_samples(self._block_size))
        except Exception as e:
            raise SourceError(f"RTL-SDR read failed: {e}") from e
