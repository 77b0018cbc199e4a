"""
Streaming decode pipeline.

A producer thread reads blocks from a sample source into a bounded
BlockQueue; a consumer thread takes them in order and runs the
demodulator. The queue applies backpressure, so a slow decoder stalls
capture instead of losing samples.

Usage:
    source = SimulatedSource(mode="gfsk", num_blocks=10)
    demod = GFSKDemodulator(source.sample_rate)
    pipeline = StreamPipeline(source, demod, on_output=print)
    pipeline.run()
"""

import logging
import queue
from dataclasses import dataclass
from threading import Event, Lock, Thread
from typing import Any, Callable, Dict, Optional

import numpy as np

from ..devices.base import SampleSource
from ..dsp.demodulators import DecodeMode, Demodulator, create_demodulator
from ..errors import (
    DecodeError,
    QueueClosedError,
    SourceError,
    SourceOpenError,
    UnsupportedSpreadingFactorError,
)
from .block_queue import BlockQueue
from .config import DecoderConfig

logger = logging.getLogger(__name__)

# Queue waits are short so a stop request is observed promptly
POLL_INTERVAL = 0.1


@dataclass
class PipelineStats:
    """Pipeline statistics."""

    blocks_produced: int = 0
    blocks_decoded: int = 0
    decode_errors: int = 0
    source_errors: int = 0
    reconfigurations: int = 0


class StreamPipeline:
    """
    Producer/consumer pipeline from a sample source to a demodulator.

    The producer thread owns the source and the consumer thread owns the
    demodulator. Parameter changes requested with ``reconfigure()`` are
    applied on the consumer thread between blocks.
    """

    def __init__(
        self,
        source: SampleSource,
        demodulator: Demodulator,
        queue_size: int = 8,
        on_output: Optional[Callable[[Any], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
        retry_delay: float = 0.01,
        max_retries: int = 5
    ):
        """
        Initialize pipeline.

        Args:
            source: Sample source (opened by start())
            demodulator: GFSK demodulator or chirp decoder
            queue_size: Maximum blocks in flight
            on_output: Called on the consumer thread with each result
            on_error: Called with every decode, source or configuration error
            retry_delay: Seconds to wait after a failed read
            max_retries: Consecutive read failures before reopening the source
        """
        self._source = source
        self._demodulator = demodulator
        self._queue_size = queue_size
        self._queue = BlockQueue(queue_size)
        self._on_output = on_output
        self._on_error = on_error
        self._retry_delay = retry_delay
        self._max_retries = max_retries

        self._requests: "queue.Queue[Dict[str, Any]]" = queue.Queue()
        self._stop_event = Event()
        self._producer: Optional[Thread] = None
        self._consumer: Optional[Thread] = None

        self._stats = PipelineStats()
        self._stats_lock = Lock()

    @property
    def source(self) -> SampleSource:
        return self._source

    @property
    def demodulator(self) -> Demodulator:
        return self._demodulator

    @property
    def queue(self) -> BlockQueue:
        return self._queue

    @property
    def stats(self) -> PipelineStats:
        """Get pipeline statistics (copy)."""
        with self._stats_lock:
            return PipelineStats(**vars(self._stats))

    @property
    def is_running(self) -> bool:
        """True while either thread is alive."""
        return any(
            t is not None and t.is_alive() for t in (self._producer, self._consumer)
        )

    def _count(self, name: str) -> None:
        with self._stats_lock:
            setattr(self._stats, name, getattr(self._stats, name) + 1)

    def _report_error(self, error: Exception) -> None:
        if self._on_error is not None:
            self._on_error(error)

    def start(self) -> bool:
        """
        Open the source and start both threads.

        Returns:
            True if started, False if already running or the source failed to open
        """
        if self.is_running:
            logger.warning("Pipeline already running")
            return False

        if not self._source.is_open and not self._source.open():
            logger.error(f"Failed to open source {self._source!r}")
            return False

        # The previous run closed its queue at end of stream
        if self._queue.closed:
            self._queue = BlockQueue(self._queue_size)

        self._stop_event.clear()
        self._producer = Thread(target=self._produce, name="hc12-producer", daemon=True)
        self._consumer = Thread(target=self._consume, name="hc12-consumer", daemon=True)
        self._producer.start()
        self._consumer.start()
        logger.info("Pipeline started")
        return True

    def stop(self, timeout: float = 2.0) -> None:
        """Request cancellation and join both threads."""
        self._stop_event.set()
        self.join(timeout)
        logger.info("Pipeline stopped")

    def join(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for both threads to finish.

        Returns:
            True if both threads have exited
        """
        for thread in (self._producer, self._consumer):
            if thread is not None:
                thread.join(timeout)
        return not self.is_running

    def run(self) -> PipelineStats:
        """Run until the source ends or the caller interrupts."""
        if not self.start():
            return self.stats
        try:
            while not self.join(POLL_INTERVAL):
                pass
        except KeyboardInterrupt:
            logger.info("Interrupted")
        finally:
            self.stop()
        return self.stats

    def reconfigure(self, **params: Any) -> None:
        """
        Request a demodulator parameter change.

        The change is applied by the consumer thread before the next block.
        """
        self._requests.put(params)

    # Producer side

    def _reopen_source(self) -> bool:
        logger.warning(f"Reopening source after {self._max_retries} failed reads")
        self._source.close()
        if self._source.open():
            return True

        error = SourceOpenError(f"Failed to reopen source {self._source!r}")
        logger.error(str(error))
        self._report_error(error)
        return False

    def _read_next(self) -> Optional[np.ndarray]:
        """Read one block, retrying on failure; None ends the stream."""
        failures = 0
        reopened = False

        while not self._stop_event.is_set():
            try:
                return self._source.read_block()
            except SourceError as e:
                failures += 1
                self._count("source_errors")
                self._report_error(e)
                logger.warning(f"Source read failed ({failures}/{self._max_retries}): {e}")

            if failures >= self._max_retries:
                if reopened or not self._reopen_source():
                    logger.error("Giving up on sample source")
                    return None
                reopened = True
                failures = 0
            self._stop_event.wait(self._retry_delay)

        return None

    def _enqueue(self, block: np.ndarray) -> bool:
        while not self._stop_event.is_set():
            if self._queue.put(block, timeout=POLL_INTERVAL):
                return True
        return False

    def _produce(self) -> None:
        try:
            while not self._stop_event.is_set():
                block = self._read_next()
                if block is None:
                    break
                if not self._enqueue(block):
                    break
                self._count("blocks_produced")
        except QueueClosedError:
            pass
        except Exception as e:
            logger.error(f"Producer thread error: {e}")
            self._report_error(e)
        finally:
            self._queue.close()
            self._source.close()
            logger.debug("Producer finished")

    # Consumer side

    def _apply_requests(self) -> None:
        while True:
            try:
                params = self._requests.get_nowait()
            except queue.Empty:
                return

            try:
                self._demodulator.configure(**params)
                self._count("reconfigurations")
            except (TypeError, ValueError, NotImplementedError) as e:
                logger.error(f"Rejected reconfiguration {params}: {e}")
                self._report_error(e)

    def _consume(self) -> None:
        try:
            while not self._stop_event.is_set():
                self._apply_requests()
                try:
                    block = self._queue.get(timeout=POLL_INTERVAL)
                except QueueClosedError:
                    break
                if block is None:
                    continue

                self._apply_requests()
                try:
                    result = self._demodulator.process(block)
                except DecodeError as e:
                    self._count("decode_errors")
                    logger.warning(f"Decode failed: {e}")
                    self._report_error(e)
                    continue

                if getattr(result, "valid", True):
                    self._count("blocks_decoded")
                else:
                    self._count("decode_errors")
                    error = UnsupportedSpreadingFactorError(result.spreading_factor)
                    logger.warning(f"Decode failed: {error}")
                    self._report_error(error)

                if self._on_output is not None:
                    self._on_output(result)
        except Exception as e:
            logger.error(f"Consumer thread error: {e}")
            self._report_error(e)
            self._stop_event.set()
        finally:
            logger.debug("Consumer finished")


def create_source(config: DecoderConfig, **options: Any) -> SampleSource:
    """
    Create the sample source described by a configuration.

    Args:
        config: Decoder configuration
        **options: Extra SimulatedSource arguments (payload, snr_db, ...)

    Returns:
        Unopened sample source
    """
    device = config.device
    block_size = config.stream.block_size

    if device.device_type == "rtlsdr":
        from ..devices.rtlsdr import RTLSDRSource

        return RTLSDRSource(
            device_index=device.device_index,
            frequency=device.frequency,
            sample_rate=device.sample_rate,
            gain="auto" if device.gain_mode == "auto" else device.gain,
            block_size=block_size,
        )
    elif device.device_type == "file":
        from ..devices.file_source import FileSource

        return FileSource(
            device.file_path,
            sample_rate=device.sample_rate,
            file_format=device.file_format,
            block_size=block_size,
            loop=device.loop,
        )
    elif device.device_type == "simulated":
        from ..devices.simulated import SimulatedSource

        return SimulatedSource(
            mode=config.mode,
            sample_rate=device.sample_rate,
            block_size=block_size,
            bitrate=config.gfsk.bitrate,
            deviation=config.gfsk.deviation,
            spreading_factor=config.chirp.spreading_factor,
            bandwidth=config.chirp.bandwidth,
            **options,
        )
    else:
        raise ValueError(f"Unsupported device type: {device.device_type}")


def create_decoder(config: DecoderConfig, sample_rate: float) -> Demodulator:
    """Create the GFSK demodulator or chirp decoder for a configuration."""
    if config.mode == "chirp":
        return create_demodulator(
            DecodeMode.CHIRP,
            sample_rate,
            spreading_factor=config.chirp.spreading_factor,
            bandwidth=config.chirp.bandwidth,
        )
    return create_demodulator(
        DecodeMode.GFSK,
        sample_rate,
        bitrate=config.gfsk.bitrate,
        deviation=config.gfsk.deviation,
    )


def create_pipeline(
    config: DecoderConfig,
    source: Optional[SampleSource] = None,
    on_output: Optional[Callable[[Any], None]] = None,
    on_error: Optional[Callable[[Exception], None]] = None
) -> StreamPipeline:
    """
    Build a pipeline from a configuration.

    Args:
        config: Decoder configuration
        source: Source to use instead of the configured one
        on_output: Result callback
        on_error: Error callback

    Returns:
        Pipeline ready to start
    """
    if source is None:
        source = create_source(config)
    demodulator = create_decoder(config, source.sample_rate)

    return StreamPipeline(
        source,
        demodulator,
        queue_size=config.stream.queue_size,
        on_output=on_output,
        on_error=on_error,
        retry_delay=config.stream.retry_delay,
        max_retries=config.stream.max_retries,
    )
