"""Profiler trace format: encode sampled traces into indexed tables and back."""

from .errors import (
    PTFError,
    SourceUnavailableError,
    CaptureFormatError,
    ConfigurationError,
    EncoderStateError,
    HeaderValidationError,
    BoundsError,
    RecordDecodingError,
    MemoryMapError,
    ReaderClosedError,
)
from .interning import InterningTable
from .records import (
    VERSION,
    HEADER_SIZE,
    TableKind,
    TableExtent,
    ProfileHeader,
    SampleRecord,
    StackFrameRecord,
    FunctionRecord,
    ModuleRecord,
    ThreadRecord,
)
from .resolution import FunctionResolver, SymbolicMethod, JitMethod, INVALID_FUNCTION
from .options import ConversionOptions, find_target_process
from .capture import CaptureSource, CaptureTrace
from .encoder import ProfileEncoder, translate_capture
from .decoder import ProfileTables, read_profile, decode_profile
from .memory_map import ProfileMap
from .iterator import TableIterator
from .reader import ProfileReader

__all__ = [
    "PTFError",
    "SourceUnavailableError",
    "CaptureFormatError",
    "ConfigurationError",
    "EncoderStateError",
    "HeaderValidationError",
    "BoundsError",
    "RecordDecodingError",
    "MemoryMapError",
    "ReaderClosedError",
    "InterningTable",
    "VERSION",
    "HEADER_SIZE",
    "TableKind",
    "TableExtent",
    "ProfileHeader",
    "SampleRecord",
    "StackFrameRecord",
    "FunctionRecord",
    "ModuleRecord",
    "ThreadRecord",
    "FunctionResolver",
    "SymbolicMethod",
    "JitMethod",
    "INVALID_FUNCTION",
    "ConversionOptions",
    "find_target_process",
    "CaptureSource",
    "CaptureTrace",
    "ProfileEncoder",
    "translate_capture",
    "ProfileTables",
    "read_profile",
    "decode_profile",
    "ProfileMap",
    "TableIterator",
    "ProfileReader",
]
