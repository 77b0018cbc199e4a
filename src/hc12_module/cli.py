#!/usr/bin/env python3
"""
HC-12 SDR Decoder - Command Line Interface

Main entry point for decoding HC-12 transmissions from an RTL-SDR,
a recorded IQ file or the built-in signal simulator.
"""

import argparse
import logging
import sys
from dataclasses import replace
from threading import Event
from typing import Any, Optional

from . import __version__
from .core.config import (
    DECODE_MODES,
    SUPPORTED_BANDWIDTHS,
    SUPPORTED_BITRATES,
    DecoderConfig,
    get_preset,
    list_presets,
)
from .dsp.chirp import SYNC_STRATEGIES, DecodeResult
from .errors import HC12Error
from .utils.conversions import (
    bits_to_str,
    bytes_to_hex,
    bytes_to_text,
    freq_to_str,
    sample_rate_to_str,
    str_to_freq,
)

logger = logging.getLogger(__name__)


def setup_logging(verbosity: int, log_file: Optional[str] = None) -> None:
    """Setup logging based on verbosity level."""
    levels = [logging.WARNING, logging.INFO, logging.DEBUG, logging.DEBUG]
    level = levels[min(verbosity, len(levels) - 1)]

    format_str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    if log_file:
        logging.basicConfig(
            level=level, format=format_str, filename=log_file, filemode="w"
        )
    else:
        logging.basicConfig(level=level, format=format_str)

    # Set third-party loggers to WARNING
    logging.getLogger("rtlsdr").setLevel(logging.WARNING)


def cmd_info(args: argparse.Namespace) -> int:
    """Display module information."""
    print(f"HC-12 SDR Decoder v{__version__}")
    print()
    print("Supported Hardware:")
    print("  - RTL-SDR (RX only): 24 MHz - 1.7 GHz")
    print()
    print("Decode modes:")
    print("  - gfsk:  FM discriminator, bit timing recovery, LSB-first bytes")
    print(f"           bitrates {', '.join(str(b) for b in SUPPORTED_BITRATES)} bps")
    print("  - chirp: dechirp + FFT symbol extraction, SF 7-12")
    print(f"           bandwidths {', '.join(f'{b // 1000} kHz' for b in SUPPORTED_BANDWIDTHS)}")
    print()
    print(f"Presets: {', '.join(list_presets())}")
    return 0


def cmd_devices(args: argparse.Namespace) -> int:
    """List available RTL-SDR devices."""
    from .devices.rtlsdr import RTLSDRSource

    print("Scanning for RTL-SDR devices...")
    print()

    devices = RTLSDRSource.list_devices()
    if not devices:
        print("No RTL-SDR devices found.")
        print("Use --source simulated or --source file to decode without hardware.")
        return 0

    print(f"Found {len(devices)} device(s):")
    for dev in devices:
        print(f"  [{dev.index}] {dev.name} ({dev.serial})")
    return 0


def build_config(args: argparse.Namespace) -> DecoderConfig:
    """
    Build the decoder configuration from preset, file and options.

    Explicit command line options override the preset or config file.

    Raises:
        HC12Error: if the preset or config file cannot be used, or an
            option value is invalid
    """
    if args.preset:
        config = get_preset(args.preset)
        if config is None:
            raise HC12Error(f"Unknown preset: {args.preset}")
    elif args.config:
        config = DecoderConfig.load(args.config)
        if config is None:
            raise HC12Error(f"Could not load configuration from {args.config}")
    else:
        config = DecoderConfig()

    device_changes: dict = {}
    if args.source:
        device_changes["device_type"] = args.source
    if args.file:
        device_changes["file_path"] = args.file
        if not args.source:
            device_changes["device_type"] = "file"
    if args.format:
        device_changes["file_format"] = args.format
    if args.frequency:
        device_changes["frequency"] = str_to_freq(args.frequency)
    if args.sample_rate:
        device_changes["sample_rate"] = str_to_freq(args.sample_rate)
    if args.gain is not None:
        if args.gain == "auto":
            device_changes["gain_mode"] = "auto"
        else:
            device_changes["gain"] = float(args.gain)
            device_changes["gain_mode"] = "manual"
    if args.loop:
        device_changes["loop"] = True

    gfsk_changes: dict = {}
    if args.bitrate is not None:
        gfsk_changes["bitrate"] = args.bitrate
    if args.deviation is not None:
        gfsk_changes["deviation"] = args.deviation

    chirp_changes: dict = {}
    if args.sf is not None:
        chirp_changes["spreading_factor"] = args.sf
    if args.bandwidth is not None:
        chirp_changes["bandwidth"] = args.bandwidth

    return replace(
        config,
        mode=args.mode or config.mode,
        device=replace(config.device, **device_changes),
        gfsk=replace(config.gfsk, **gfsk_changes),
        chirp=replace(config.chirp, **chirp_changes),
    )


class ResultPrinter:
    """Prints decoded output from the consumer thread."""

    def __init__(self, max_blocks: Optional[int] = None, show_bits: bool = False):
        self.demodulator: Any = None
        self._max_blocks = max_blocks
        self._show_bits = show_bits
        self.blocks = 0
        self.done = Event()

    def _print_bytes(self, data: bytes) -> None:
        if not data:
            return
        print(f"  hex:  {bytes_to_hex(data)}")
        text = bytes_to_text(data)
        if text is not None:
            print(f"  text: {text!r}")

    def __call__(self, result: Any) -> None:
        self.blocks += 1
        if isinstance(result, DecodeResult):
            status = "" if result.valid else f" ({result.error_message})"
            print(
                f"[{self.blocks}] {len(result.symbols)} symbols, "
                f"{len(result.data)} bytes, SNR {result.snr:.1f} dB{status}"
            )
            self._print_bytes(result.data)
        else:
            data = self.demodulator.decode_bytes(result)
            print(f"[{self.blocks}] {len(result)} bits, {len(data) if data else 0} bytes")
            if self._show_bits:
                print(f"  bits: {bits_to_str(result, limit=64)}")
            if data:
                self._print_bytes(data)

        if self._max_blocks is not None and self.blocks >= self._max_blocks:
            self.done.set()


def cmd_decode(args: argparse.Namespace) -> int:
    """Run the decode pipeline."""
    from .core.pipeline import create_pipeline, create_source

    try:
        config = build_config(args)
    except (HC12Error, ValueError) as e:
        print(f"Error: {e}")
        return 1

    if args.save_config and not config.save(args.save_config):
        print(f"Error: could not write {args.save_config}")
        return 1

    options = {}
    if config.device.device_type == "simulated":
        options["payload"] = args.payload.encode("ascii", errors="replace")
        options["snr_db"] = args.snr
        options["num_blocks"] = args.blocks

    printer = ResultPrinter(args.blocks, args.bits)
    try:
        source = create_source(config, **options)
        pipeline = create_pipeline(config, source=source, on_output=printer)
    except ValueError as e:
        print(f"Error: {e}")
        return 1
    demod = pipeline.demodulator
    printer.demodulator = demod
    if config.mode == "chirp":
        demod.set_sync_strategy(SYNC_STRATEGIES[args.sync])
        detail = (
            f"SF{demod.spreading_factor}, {demod.bandwidth / 1e3:.0f} kHz, "
            f"decimation x{demod.decimation_factor}, sync {args.sync}"
        )
    else:
        demod_stats = demod.get_stats()
        detail = (
            f"{demod_stats.bitrate:.0f} bps, {demod_stats.samples_per_bit:.2f} samples/bit, "
            f"{demod_stats.num_taps} smoothing taps"
        )

    print(
        f"Decoding {config.mode.upper()} from {config.device.device_type} "
        f"at {freq_to_str(config.device.frequency)}, "
        f"{sample_rate_to_str(source.sample_rate)}"
    )
    print(f"  {detail}")
    print("Press Ctrl+C to stop")
    print()

    if not pipeline.start():
        print("Error: failed to start the sample source")
        return 1

    try:
        while pipeline.is_running and not printer.done.wait(0.1):
            pass
    except KeyboardInterrupt:
        print()
    finally:
        pipeline.stop()

    stats = pipeline.stats
    print()
    print(
        f"Blocks: {stats.blocks_decoded} decoded, {stats.decode_errors} decode errors, "
        f"{stats.source_errors} source errors"
    )
    return 0 if stats.source_errors == 0 or stats.blocks_decoded > 0 else 1


def cmd_simulate(args: argparse.Namespace) -> int:
    """Write a synthesized HC-12 capture to an IQ file."""
    import numpy as np

    from .dsp.modulation import add_noise, bytes_to_symbols, chirp_modulate, gfsk_modulate
    from .utils.iq import save_iq_file

    payload = args.payload.encode("ascii", errors="replace")

    try:
        if args.mode == "chirp":
            symbols = bytes_to_symbols(payload, args.sf)
            frame = chirp_modulate(symbols, args.sf)
            sample_rate = float(args.bandwidth)
        else:
            sample_rate = str_to_freq(args.sample_rate)
            frame = gfsk_modulate(payload, sample_rate, args.bitrate, args.deviation)
    except ValueError as e:
        print(f"Error: {e}")
        return 1

    samples = np.tile(frame, args.repeat)
    if args.snr is not None:
        samples = add_noise(samples, args.snr, seed=args.seed)
    else:
        # Leave headroom for integer formats
        samples = samples * 0.9

    try:
        save_iq_file(samples, args.output, args.format)
    except (OSError, ValueError) as e:
        print(f"Error: {e}")
        return 1

    print(
        f"Wrote {len(samples)} {args.mode.upper()} samples "
        f"({sample_rate_to_str(sample_rate)}, {args.format}) to {args.output}"
    )
    return 0


def _add_signal_options(parser: argparse.ArgumentParser, defaults: bool) -> None:
    """Options shared by decode and simulate."""
    parser.add_argument(
        "--bitrate",
        type=int,
        choices=SUPPORTED_BITRATES,
        default=15000 if defaults else None,
        help="GFSK bit rate in bps",
    )
    parser.add_argument(
        "--deviation",
        type=float,
        default=20e3 if defaults else None,
        help="GFSK frequency deviation in Hz",
    )
    parser.add_argument(
        "--sf",
        type=int,
        default=7 if defaults else None,
        help="Chirp spreading factor (7-12)",
    )
    parser.add_argument(
        "--bandwidth",
        type=int,
        choices=SUPPORTED_BANDWIDTHS,
        default=125000 if defaults else None,
        help="Chirp bandwidth in Hz",
    )
    parser.add_argument(
        "--payload",
        type=str,
        default="HC-12 test frame\r\n",
        help="Payload text for simulated frames",
    )
    parser.add_argument(
        "--snr", type=float, default=None, help="Simulated noise SNR in dB"
    )


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser."""
    parser = argparse.ArgumentParser(
        prog="hc12-decode",
        description="HC-12 SDR Decoder - GFSK and chirp decoding with RTL-SDR",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v info, -vv debug)",
    )
    parser.add_argument("--log-file", type=str, help="Write log output to a file")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Info command
    info_parser = subparsers.add_parser("info", help="Display module information")
    info_parser.set_defaults(func=cmd_info)

    # Devices command
    devices_parser = subparsers.add_parser("devices", help="List available RTL-SDR devices")
    devices_parser.set_defaults(func=cmd_devices)

    # Decode command
    decode_parser = subparsers.add_parser("decode", help="Decode HC-12 transmissions")
    decode_parser.add_argument(
        "--source",
        choices=["rtlsdr", "file", "simulated"],
        help="Sample source (default: rtlsdr)",
    )
    decode_parser.add_argument("--mode", choices=DECODE_MODES, help="Decode mode")
    decode_parser.add_argument(
        "--frequency", "-f", type=str, help="Center frequency, e.g. 433.4M"
    )
    decode_parser.add_argument(
        "--sample-rate", type=str, help="Sample rate, e.g. 2.048M"
    )
    decode_parser.add_argument(
        "--gain", "-g", type=str, help="Tuner gain in dB, or 'auto'"
    )
    decode_parser.add_argument("--file", type=str, help="IQ capture file to decode")
    decode_parser.add_argument(
        "--format", choices=["cu8", "cs8", "cs16", "cf32"], help="IQ file format"
    )
    decode_parser.add_argument(
        "--loop", action="store_true", help="Loop the IQ file"
    )
    decode_parser.add_argument("--config", type=str, help="JSON configuration file")
    decode_parser.add_argument(
        "--save-config", type=str, help="Write the effective configuration to a JSON file"
    )
    decode_parser.add_argument("--preset", choices=list_presets(), help="Named preset")
    decode_parser.add_argument(
        "--blocks", type=int, default=None, help="Stop after this many blocks"
    )
    decode_parser.add_argument(
        "--sync",
        choices=["energy", "none"],
        default="energy",
        help="Chirp symbol synchronization (default: energy)",
    )
    decode_parser.add_argument(
        "--bits", action="store_true", help="Show recovered GFSK bits"
    )
    _add_signal_options(decode_parser, defaults=False)
    decode_parser.set_defaults(func=cmd_decode)

    # Simulate command
    simulate_parser = subparsers.add_parser(
        "simulate", help="Write a synthesized capture file"
    )
    simulate_parser.add_argument("output", type=str, help="Output IQ file")
    simulate_parser.add_argument(
        "--mode", choices=DECODE_MODES, default="gfsk", help="Modulation (default: gfsk)"
    )
    simulate_parser.add_argument(
        "--format",
        choices=["cu8", "cs8", "cs16", "cf32"],
        default="cu8",
        help="IQ file format (default: cu8)",
    )
    simulate_parser.add_argument(
        "--sample-rate", type=str, default="2.048M", help="GFSK sample rate"
    )
    simulate_parser.add_argument(
        "--repeat", type=int, default=4, help="Frames to write (default: 4)"
    )
    simulate_parser.add_argument("--seed", type=int, default=None, help="Noise seed")
    _add_signal_options(simulate_parser, defaults=True)
    simulate_parser.set_defaults(func=cmd_simulate)

    return parser


def main(argv: Optional[list] = None) -> int:
    """
    Main entry point.

    Args:
        argv: Command line arguments (uses sys.argv if None)

    Returns:
        Exit code (0 for success)
    """
    parser = create_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose, args.log_file)

    if args.command is None:
        # No command specified - show info
        return cmd_info(args)

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
