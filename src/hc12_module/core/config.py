"""
Configuration management for the HC-12 decoder.

Handles sample source settings, demodulator parameters, streaming
settings and persistence.
"""

import copy
import json
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from ..errors import ConfigValidationError

logger = logging.getLogger(__name__)

# HC-12 over-the-air bit rates (FU1..FU4 modes)
SUPPORTED_BITRATES = (5000, 15000, 58000, 236000)

# Chirp channel bandwidths
SUPPORTED_BANDWIDTHS = (125_000, 250_000, 500_000)

SF_MIN = 7
SF_MAX = 12

DECODE_MODES = ("gfsk", "chirp")
DEVICE_TYPES = ("rtlsdr", "file", "simulated")
IQ_FILE_FORMATS = ("cu8", "cs8", "cs16", "cf32")

# RTL-SDR tuner range (R820T/R828D)
TUNER_MIN_HZ = 24e6
TUNER_MAX_HZ = 1766e6
MAX_CAPTURE_RATE = 20e6


@dataclass
class DeviceConfig:
    """Configuration for the sample source."""

    device_type: str = "rtlsdr"  # "rtlsdr", "file", or "simulated"
    device_index: int = 0
    frequency: float = 433.4e6  # HC-12 channel 1
    sample_rate: float = 2.048e6
    gain: float = 30.0
    gain_mode: str = "manual"  # "auto" or "manual"
    # File replay
    file_path: str = ""
    file_format: str = "cu8"  # "cu8", "cs8", "cs16", "cf32"
    loop: bool = False

    def __post_init__(self) -> None:
        """Validate configuration values after initialization."""
        self._validate()

    def _validate(self) -> None:
        """Validate all configuration fields."""
        if self.device_type not in DEVICE_TYPES:
            raise ConfigValidationError(
                f"device_type must be one of {DEVICE_TYPES}, got {self.device_type!r}"
            )
        if self.device_index < 0:
            raise ConfigValidationError(
                f"device_index must be non-negative, got {self.device_index}"
            )
        if not (TUNER_MIN_HZ <= self.frequency <= TUNER_MAX_HZ):
            raise ConfigValidationError(
                f"frequency {self.frequency} Hz is outside the RTL-SDR tuning range "
                f"({TUNER_MIN_HZ / 1e6:.0f}-{TUNER_MAX_HZ / 1e6:.0f} MHz)"
            )
        if not (0 < self.sample_rate <= MAX_CAPTURE_RATE):
            raise ConfigValidationError(
                f"sample_rate must be positive and at most {MAX_CAPTURE_RATE / 1e6:.0f} MS/s, "
                f"got {self.sample_rate}"
            )
        if not (0 <= self.gain <= 50):
            raise ConfigValidationError(f"gain must be 0-50 dB, got {self.gain}")
        if self.gain_mode not in ("auto", "manual"):
            raise ConfigValidationError(
                f"gain_mode must be 'auto' or 'manual', got {self.gain_mode!r}"
            )
        if self.file_format not in IQ_FILE_FORMATS:
            raise ConfigValidationError(
                f"file_format must be one of {IQ_FILE_FORMATS}, got {self.file_format!r}"
            )
        if self.device_type == "file" and not self.file_path:
            raise ConfigValidationError("file_path is required when replaying a capture")


@dataclass
class GFSKConfig:
    """Configuration for the GFSK demodulation path."""

    bitrate: int = 15000
    deviation: float = 20e3  # Nominal frequency deviation in Hz

    def __post_init__(self) -> None:
        """Validate configuration values after initialization."""
        if self.bitrate not in SUPPORTED_BITRATES:
            raise ConfigValidationError(
                f"bitrate must be one of {SUPPORTED_BITRATES}, got {self.bitrate}"
            )
        if self.deviation <= 0:
            raise ConfigValidationError(
                f"deviation must be positive, got {self.deviation}"
            )


@dataclass
class ChirpConfig:
    """Configuration for the chirp decoding path."""

    spreading_factor: int = 7
    bandwidth: int = 125_000

    def __post_init__(self) -> None:
        """Validate configuration values after initialization."""
        if not (SF_MIN <= self.spreading_factor <= SF_MAX):
            raise ConfigValidationError(
                f"spreading_factor must be between {SF_MIN} and {SF_MAX}, "
                f"got {self.spreading_factor}"
            )
        if self.bandwidth not in SUPPORTED_BANDWIDTHS:
            raise ConfigValidationError(
                f"bandwidth must be one of {SUPPORTED_BANDWIDTHS}, got {self.bandwidth}"
            )

    @property
    def symbol_size(self) -> int:
        """Samples per symbol (2^SF)."""
        return 1 << self.spreading_factor


@dataclass
class StreamConfig:
    """Configuration for the producer/consumer substrate."""

    block_size: int = 128 * 1024  # Samples per block
    queue_size: int = 8  # Blocks in flight before the producer stalls
    retry_delay: float = 0.01  # Seconds between read retries
    max_retries: int = 5  # Consecutive read failures before reopening

    def __post_init__(self) -> None:
        """Validate configuration values after initialization."""
        if self.block_size <= 0:
            raise ConfigValidationError(
                f"block_size must be positive, got {self.block_size}"
            )
        if not (1 <= self.queue_size <= 64):
            raise ConfigValidationError(
                f"queue_size must be between 1 and 64, got {self.queue_size}"
            )
        if self.retry_delay < 0:
            raise ConfigValidationError(
                f"retry_delay must be non-negative, got {self.retry_delay}"
            )
        if self.max_retries < 0:
            raise ConfigValidationError(
                f"max_retries must be non-negative, got {self.max_retries}"
            )


@dataclass
class DecoderConfig:
    """Main configuration container."""

    mode: str = "gfsk"  # "gfsk" or "chirp"
    device: DeviceConfig = field(default_factory=DeviceConfig)
    gfsk: GFSKConfig = field(default_factory=GFSKConfig)
    chirp: ChirpConfig = field(default_factory=ChirpConfig)
    stream: StreamConfig = field(default_factory=StreamConfig)

    def __post_init__(self) -> None:
        """Validate the decode mode."""
        if self.mode not in DECODE_MODES:
            raise ConfigValidationError(
                f"mode must be one of {DECODE_MODES}, got {self.mode}"
            )

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DecoderConfig":
        """Create configuration from dictionary."""
        config = cls(mode=data.get("mode", "gfsk"))

        if "device" in data:
            config.device = DeviceConfig(**data["device"])

        if "gfsk" in data:
            config.gfsk = GFSKConfig(**data["gfsk"])

        if "chirp" in data:
            config.chirp = ChirpConfig(**data["chirp"])

        if "stream" in data:
            config.stream = StreamConfig(**data["stream"])

        return config

    def save(self, path: str) -> bool:
        """Save configuration to JSON file.

        Args:
            path: File path to save configuration to

        Returns:
            True if saved successfully, False otherwise
        """
        try:
            with open(path, "w") as f:
                json.dump(self.to_dict(), f, indent=2)
            logger.info(f"Configuration saved to {path}")
            return True
        except OSError as e:
            logger.error(f"Failed to save configuration to {path}: {e}")
            return False
        except (TypeError, ValueError) as e:
            logger.error(f"Failed to serialize configuration: {e}")
            return False

    @classmethod
    def load(cls, path: str) -> Optional["DecoderConfig"]:
        """Load configuration from JSON file.

        Args:
            path: File path to load configuration from

        Returns:
            DecoderConfig instance or None if loading failed
        """
        try:
            with open(path, "r") as f:
                data = json.load(f)
            config = cls.from_dict(data)
            logger.info(f"Configuration loaded from {path}")
            return config
        except FileNotFoundError:
            logger.warning(f"Configuration file not found: {path}")
            return None
        except OSError as e:
            logger.error(f"Failed to read configuration from {path}: {e}")
            return None
        except json.JSONDecodeError as e:
            logger.error(f"Invalid JSON in configuration file {path}: {e}")
            return None
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"Invalid configuration format in {path}: {e}")
            return None


def create_preset_fu3() -> DecoderConfig:
    """Preset for HC-12 FU3 (GFSK, 15 kbps)."""
    config = DecoderConfig(mode="gfsk")
    config.gfsk = GFSKConfig(bitrate=15000, deviation=20e3)
    return config


def create_preset_fu4() -> DecoderConfig:
    """Preset for HC-12 FU4 long range (GFSK, 5 kbps)."""
    config = DecoderConfig(mode="gfsk")
    config.gfsk = GFSKConfig(bitrate=5000, deviation=10e3)
    return config


def create_preset_chirp_sf7() -> DecoderConfig:
    """Preset for chirp decoding, SF7 / 125 kHz."""
    config = DecoderConfig(mode="chirp")
    config.chirp = ChirpConfig(spreading_factor=7, bandwidth=125_000)
    config.device.sample_rate = 2.0e6  # 16 x bandwidth
    return config


def create_preset_chirp_sf12() -> DecoderConfig:
    """Preset for chirp decoding, SF12 / 125 kHz."""
    config = DecoderConfig(mode="chirp")
    config.chirp = ChirpConfig(spreading_factor=12, bandwidth=125_000)
    config.device.sample_rate = 2.0e6
    config.stream.block_size = 256 * 1024
    return config


# Preset configurations for common use cases
PRESETS: Dict[str, DecoderConfig] = {
    "hc12_fu3": create_preset_fu3(),
    "hc12_fu4": create_preset_fu4(),
    "chirp_sf7": create_preset_chirp_sf7(),
    "chirp_sf12": create_preset_chirp_sf12(),
}


def get_preset(name: str) -> Optional[DecoderConfig]:
    """Get a copy of a preset configuration by name."""
    preset = PRESETS.get(name)
    return copy.deepcopy(preset) if preset is not None else None


def list_presets() -> List[str]:
    """List available preset names."""
    return list(PRESETS.keys())
