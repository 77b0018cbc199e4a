"""
IQ capture file sample source.

Replays cu8/cs8/cs16/cf32 recordings block by block, optionally looping.
"""

import logging
from pathlib import Path
from typing import Iterator, Optional, Union

import numpy as np

from ..errors import SourceError
from ..utils.iq import IQ_FORMATS, iter_iq_blocks
from .base import DeviceInfo, SampleSource

logger = logging.getLogger(__name__)


class FileSource(SampleSource):
    """
    Sample source backed by an IQ capture file.

    With ``loop=False`` the source ends (``read_block()`` returns None)
    once the file is exhausted.
    """

    def __init__(
        self,
        file_path: Union[str, Path],
        sample_rate: float = 2.048e6,
        file_format: str = "cu8",
        block_size: int = 128 * 1024,
        loop: bool = False
    ):
        """
        Initialize file source.

        Args:
            file_path: Path to the capture file
            sample_rate: Sample rate the file was recorded at
            file_format: cu8, cs8, cs16 or cf32
            block_size: Samples per block
            loop: Restart from the beginning at end of file
        """
        super().__init__(sample_rate, block_size)
        if file_format.lower() not in IQ_FORMATS:
            raise ValueError(f"Unsupported format: {file_format}")
        self._path = Path(file_path)
        self._format = file_format.lower()
        self._loop = loop
        self._blocks: Optional[Iterator[np.ndarray]] = None

    @property
    def file_path(self) -> Path:
        return self._path

    def open(self) -> bool:
        """Open the capture file."""
        if not self._path.is_file():
            logger.error(f"IQ file not found: {self._path}")
            return False

        self._blocks = iter_iq_blocks(self._path, self._block_size, self._format)
        self._info = DeviceInfo(
            name=self._path.name,
            serial=str(self._path),
            manufacturer="file",
            product=self._format,
        )
        self._is_open = True
        logger.info(f"Opened {self._path} ({self._format})")
        return True

    def close(self) -> None:
        """Close the capture file."""
        if self._blocks is not None:
            self._blocks.close()
            self._blocks = None
        self._is_open = False

    def _read(self) -> Optional[np.ndarray]:
        if self._blocks is None:
            raise SourceError(f"File source {self._path} is not open")

        try:
            block = next(self._blocks, None)
            if block is None and self._loop:
                self._blocks = iter_iq_blocks(self._path, self._block_size, self._format)
                block = next(self._blocks, None)
        except OSError as e:
            raise SourceError(f"Error reading {self._path}: {e}") from e

        if block is None:
            logger.info(f"End of file: {self._path}")
        return block
