"""
Exception hierarchy for the HC-12 decoder.

Failures are scoped to the call that raised them; none of these leave
demodulator or decoder state half-updated.
"""


class HC12Error(Exception):
    """Base class for all decoder errors."""

    pass


class ConfigValidationError(HC12Error, ValueError):
    """Raised when configuration values are invalid."""

    pass


class DecodeError(HC12Error):
    """A single decode call was rejected."""

    pass


class EmptyBlockError(DecodeError):
    """An empty sample block was passed to a decoder."""

    pass


class UnsupportedSpreadingFactorError(DecodeError, ValueError):
    """Symbols cannot be packed at the active spreading factor."""

    def __init__(self, spreading_factor: int):
        super().__init__(f"Unsupported spreading factor: {spreading_factor}")
        self.spreading_factor = spreading_factor


class SourceError(HC12Error):
    """A sample source failed to deliver a block."""

    pass


class SourceOpenError(SourceError):
    """A sample source could not be opened (or reopened)."""

    pass


class QueueClosedError(HC12Error):
    """The block queue has been closed (end of stream)."""

    pass
