"""Custom exceptions for the PTF codec."""

from __future__ import annotations

class PTFError(Exception):
    """Base class for PTF errors."""

class SourceUnavailableError(PTFError):
    """Raised when a capture cannot be opened or converted."""

class CaptureFormatError(SourceUnavailableError):
    """Raised when a capture document is malformed."""

class ConfigurationError(PTFError):
    """Raised when conversion options are invalid."""

class EncoderStateError(PTFError):
    """Raised when an encoder is used more than once."""

class HeaderValidationError(PTFError):
    """Raised when the PTF header is invalid or has an unknown version."""

class BoundsError(HeaderValidationError):
    """Raised when declared lengths or offsets exceed the stream."""

class RecordDecodingError(PTFError):
    """Raised when a table record cannot be decoded."""

class MemoryMapError(PTFError):
    """Raised when memory mapping of the PTF file fails."""

class ReaderClosedError(PTFError):
    """Raised when operations are performed on a closed reader."""
