"""Fixed-size record layouts of the PTF artifact.

Every record is packed little-endian with ``struct`` and carries explicit
padding so that each record size is a multiple of eight bytes.

Text fields are fixed-capacity strings: a ``uint16`` byte-length prefix
followed by a zero-filled UTF-8 payload. Text longer than the payload
capacity is truncated at the last code point boundary that fits.
"""

from __future__ import annotations

import struct
import uuid
from dataclasses import dataclass
from enum import IntEnum
from typing import ClassVar, Dict, NamedTuple, Sequence, Tuple, Type

from .errors import HeaderValidationError, RecordDecodingError

VERSION = 1

FUNCTION_NAME_SIZE = 512
MODULE_PATH_SIZE = 512
PDB_NAME_SIZE = 128
THREAD_NAME_SIZE = 64
_LENGTH_PREFIX_SIZE = 2


class TableKind(IntEnum):
    """Tables of the artifact, in the order they are written."""

    SAMPLES = 0
    STACK_FRAMES = 1
    FUNCTIONS = 2
    MODULES = 3
    THREADS = 4


# ----------------------------------------------------------------------
# Scalar helpers
# ----------------------------------------------------------------------

def to_int64(value: int) -> int:
    """Reinterpret an unsigned 64-bit address as the stored signed value."""
    value &= 0xFFFFFFFFFFFFFFFF
    return value - (1 << 64) if value & (1 << 63) else value


def to_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - (1 << 32) if value & (1 << 31) else value


def fixed_string_capacity(size: int) -> int:
    """Number of UTF-8 payload bytes available in a fixed string of ``size`` bytes."""
    return size - _LENGTH_PREFIX_SIZE


def encode_fixed_string(text: str, size: int) -> Tuple[int, bytes]:
    """Return the ``(length, payload)`` pair stored for ``text``."""
    data = text.encode("utf-8")
    capacity = fixed_string_capacity(size)
    if len(data) > capacity:
        cut = capacity
        # Back off over continuation bytes so no code point is split.
        while cut > 0 and (data[cut] & 0xC0) == 0x80:
            cut -= 1
        data = data[:cut]
    return len(data), data


def decode_fixed_string(length: int, payload: bytes) -> str:
    if length > len(payload):
        raise RecordDecodingError(
            f"Fixed string length {length} exceeds capacity {len(payload)}"
        )
    return payload[:length].decode("utf-8", errors="replace")


def fit_fixed_string(text: str, size: int) -> str:
    """Return ``text`` as it reads back after a round trip through a fixed string."""
    _, data = encode_fixed_string(text, size)
    return data.decode("utf-8")


# ----------------------------------------------------------------------
# Header
# ----------------------------------------------------------------------

HEADER_STRUCT = struct.Struct("<i4x" + "qi4x" * len(TableKind) + "q")
HEADER_SIZE = HEADER_STRUCT.size


class TableExtent(NamedTuple):
    offset: int
    count: int


@dataclass(frozen=True)
class ProfileHeader:
    """Per-table offsets (relative to the header start) and record counts."""

    version: int
    total_length: int
    extents: Tuple[TableExtent, ...]

    def extent(self, kind: TableKind) -> TableExtent:
        return self.extents[kind]

    @property
    def num_samples(self) -> int:
        return self.extents[TableKind.SAMPLES].count

    @property
    def num_stack_frames(self) -> int:
        return self.extents[TableKind.STACK_FRAMES].count

    @property
    def num_functions(self) -> int:
        return self.extents[TableKind.FUNCTIONS].count

    @property
    def num_modules(self) -> int:
        return self.extents[TableKind.MODULES].count

    @property
    def num_threads(self) -> int:
        return self.extents[TableKind.THREADS].count

    def pack(self) -> bytes:
        values = [self.version]
        for extent in self.extents:
            values.extend((extent.offset, extent.count))
        values.append(self.total_length)
        return HEADER_STRUCT.pack(*values)

    @classmethod
    def from_bytes(cls, payload: bytes) -> "ProfileHeader":
        try:
            values = HEADER_STRUCT.unpack(payload)
        except struct.error as exc:
            raise HeaderValidationError("PTF header is malformed") from exc
        version = values[0]
        pairs = values[1:-1]
        extents = tuple(
            TableExtent(pairs[i], pairs[i + 1]) for i in range(0, len(pairs), 2)
        )
        return cls(version=version, total_length=values[-1], extents=extents)

    def to_dict(self) -> Dict[str, object]:
        return {
            "version": self.version,
            "total_length": self.total_length,
            "tables": {
                kind.name.lower(): {
                    "offset": self.extents[kind].offset,
                    "count": self.extents[kind].count,
                }
                for kind in TableKind
            },
        }


# ----------------------------------------------------------------------
# Table records
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class SampleRecord:
    STRUCT: ClassVar[struct.Struct] = struct.Struct("<qi4xdii")

    address: int
    thread_index: int
    timestamp: float
    stack_trace: int
    function: int

    def pack(self) -> bytes:
        return self.STRUCT.pack(
            self.address, self.thread_index, self.timestamp, self.stack_trace, self.function
        )

    @classmethod
    def from_fields(cls, fields: Sequence) -> "SampleRecord":
        return cls(*fields)


@dataclass(frozen=True)
class StackFrameRecord:
    STRUCT: ClassVar[struct.Struct] = struct.Struct("<qiii4x")

    address: int
    depth: int
    caller_stack_frame: int
    function: int

    def pack(self) -> bytes:
        return self.STRUCT.pack(self.address, self.depth, self.caller_stack_frame, self.function)

    @classmethod
    def from_fields(cls, fields: Sequence) -> "StackFrameRecord":
        return cls(*fields)


@dataclass(frozen=True)
class FunctionRecord:
    STRUCT: ClassVar[struct.Struct] = struct.Struct(
        f"<qqiH{fixed_string_capacity(FUNCTION_NAME_SIZE)}s4x"
    )

    base_address: int
    length: int
    module: int
    name: str

    def pack(self) -> bytes:
        name_length, name = encode_fixed_string(self.name, FUNCTION_NAME_SIZE)
        return self.STRUCT.pack(self.base_address, self.length, self.module, name_length, name)

    @classmethod
    def from_fields(cls, fields: Sequence) -> "FunctionRecord":
        base_address, length, module, name_length, name = fields
        return cls(base_address, length, module, decode_fixed_string(name_length, name))


@dataclass(frozen=True)
class ModuleRecord:
    """A native image with debug information, or a managed (Mono) module.

    Managed modules only carry ``file_path``; their remaining fields are zero.
    """

    STRUCT: ClassVar[struct.Struct] = struct.Struct(
        f"<?3xii16sH{fixed_string_capacity(MODULE_PATH_SIZE)}s"
        f"H{fixed_string_capacity(PDB_NAME_SIZE)}s4x"
    )

    is_mono: bool
    file_path: str
    checksum: int = 0
    pdb_age: int = 0
    pdb_guid: bytes = bytes(16)
    pdb_name: str = ""

    @classmethod
    def managed(cls, file_path: str) -> "ModuleRecord":
        return cls(is_mono=True, file_path=file_path)

    @property
    def pdb_uuid(self) -> uuid.UUID:
        return uuid.UUID(bytes_le=self.pdb_guid)

    def pack(self) -> bytes:
        path_length, path = encode_fixed_string(self.file_path, MODULE_PATH_SIZE)
        pdb_length, pdb = encode_fixed_string(self.pdb_name, PDB_NAME_SIZE)
        return self.STRUCT.pack(
            self.is_mono,
            self.checksum,
            self.pdb_age,
            self.pdb_guid,
            path_length,
            path,
            pdb_length,
            pdb,
        )

    @classmethod
    def from_fields(cls, fields: Sequence) -> "ModuleRecord":
        is_mono, checksum, pdb_age, pdb_guid, path_length, path, pdb_length, pdb = fields
        return cls(
            is_mono=is_mono,
            file_path=decode_fixed_string(path_length, path),
            checksum=checksum,
            pdb_age=pdb_age,
            pdb_guid=pdb_guid,
            pdb_name=decode_fixed_string(pdb_length, pdb),
        )


@dataclass(frozen=True)
class ThreadRecord:
    STRUCT: ClassVar[struct.Struct] = struct.Struct(
        f"<H{fixed_string_capacity(THREAD_NAME_SIZE)}s"
    )

    name: str

    def pack(self) -> bytes:
        return self.STRUCT.pack(*encode_fixed_string(self.name, THREAD_NAME_SIZE))

    @classmethod
    def from_fields(cls, fields: Sequence) -> "ThreadRecord":
        return cls(decode_fixed_string(*fields))


RECORD_TYPES: Dict[TableKind, Type] = {
    TableKind.SAMPLES: SampleRecord,
    TableKind.STACK_FRAMES: StackFrameRecord,
    TableKind.FUNCTIONS: FunctionRecord,
    TableKind.MODULES: ModuleRecord,
    TableKind.THREADS: ThreadRecord,
}

RECORD_SIZES: Dict[TableKind, int] = {
    kind: record_type.STRUCT.size for kind, record_type in RECORD_TYPES.items()
}


def unpack_table(kind: TableKind, payload: bytes) -> list:
    """Decode a contiguous run of ``kind`` records."""
    record_type = RECORD_TYPES[kind]
    record_struct = record_type.STRUCT
    if len(payload) % record_struct.size:
        raise RecordDecodingError(
            f"{kind.name} payload of {len(payload)} bytes is not a whole number of records"
        )
    try:
        return [record_type.from_fields(fields) for fields in record_struct.iter_unpack(payload)]
    except struct.error as exc:  # pragma: no cover - guarded by the size check
        raise RecordDecodingError(f"Malformed {kind.name} record") from exc


__all__ = [
    "VERSION",
    "FUNCTION_NAME_SIZE",
    "MODULE_PATH_SIZE",
    "PDB_NAME_SIZE",
    "THREAD_NAME_SIZE",
    "TableKind",
    "TableExtent",
    "ProfileHeader",
    "HEADER_STRUCT",
    "HEADER_SIZE",
    "SampleRecord",
    "StackFrameRecord",
    "FunctionRecord",
    "ModuleRecord",
    "ThreadRecord",
    "RECORD_TYPES",
    "RECORD_SIZES",
    "to_int64",
    "to_int32",
    "fixed_string_capacity",
    "encode_fixed_string",
    "decode_fixed_string",
    "fit_fixed_string",
    "unpack_table",
]
