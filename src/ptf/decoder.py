"""Bulk loading of PTF artifacts from byte streams."""

from __future__ import annotations

import io
import os
from dataclasses import dataclass
from typing import BinaryIO, Dict, List

from .errors import BoundsError, HeaderValidationError
from .records import (
    HEADER_SIZE,
    RECORD_SIZES,
    VERSION,
    FunctionRecord,
    ModuleRecord,
    ProfileHeader,
    SampleRecord,
    StackFrameRecord,
    TableKind,
    ThreadRecord,
    unpack_table,
)


@dataclass(frozen=True)
class ProfileTables:
    """The five decoded tables of an artifact."""

    header: ProfileHeader
    samples: List[SampleRecord]
    stack_frames: List[StackFrameRecord]
    functions: List[FunctionRecord]
    modules: List[ModuleRecord]
    threads: List[ThreadRecord]

    def table(self, kind: TableKind) -> list:
        return {
            TableKind.SAMPLES: self.samples,
            TableKind.STACK_FRAMES: self.stack_frames,
            TableKind.FUNCTIONS: self.functions,
            TableKind.MODULES: self.modules,
            TableKind.THREADS: self.threads,
        }[kind]

    def to_dict(self) -> Dict[str, object]:
        """Return a JSON-serialisable dictionary representation."""
        return {
            "header": self.header.to_dict(),
            "samples": [_record_dict(record) for record in self.samples],
            "stack_frames": [_record_dict(record) for record in self.stack_frames],
            "functions": [_record_dict(record) for record in self.functions],
            "modules": [_record_dict(record) for record in self.modules],
            "threads": [_record_dict(record) for record in self.threads],
        }


def _record_dict(record: object) -> Dict[str, object]:
    values = dict(vars(record))
    if isinstance(record, ModuleRecord):
        values["pdb_guid"] = str(record.pdb_uuid)
    return values


def validate_header(header: ProfileHeader, header_start: int, stream_length: int) -> None:
    """Check the header against the stream it was read from.

    Raises ``HeaderValidationError`` for unknown versions or negative
    counts and ``BoundsError`` when any table reaches past ``total_length``
    or the artifact reaches past the end of the stream.
    """
    if header.version != VERSION:
        raise HeaderValidationError(
            f"Unsupported PTF version {header.version}, expected {VERSION}"
        )
    if header.total_length < HEADER_SIZE:
        raise HeaderValidationError(f"Total length {header.total_length} is smaller than the header")
    if header_start + header.total_length > stream_length:
        raise BoundsError(
            f"Artifact declares {header.total_length} bytes but only "
            f"{stream_length - header_start} are available"
        )
    for kind in TableKind:
        extent = header.extent(kind)
        if extent.count < 0 or extent.offset < 0:
            raise HeaderValidationError(f"{kind.name} table has a negative offset or count")
        end = extent.offset + extent.count * RECORD_SIZES[kind]
        if extent.offset < HEADER_SIZE and extent.count:
            raise BoundsError(f"{kind.name} table overlaps the header")
        if end > header.total_length:
            raise BoundsError(f"{kind.name} table extends beyond the artifact")


def read_header(stream: BinaryIO) -> ProfileHeader:
    payload = stream.read(HEADER_SIZE)
    if len(payload) != HEADER_SIZE:
        raise BoundsError("Stream is too short to hold a PTF header")
    return ProfileHeader.from_bytes(payload)


def read_profile(stream: BinaryIO) -> ProfileTables:
    """Decode the artifact starting at the stream's current position."""
    header_start = stream.tell()
    stream_length = stream.seek(0, os.SEEK_END)
    stream.seek(header_start)

    header = read_header(stream)
    validate_header(header, header_start, stream_length)

    tables = {}
    for kind in TableKind:
        extent = header.extent(kind)
        size = extent.count * RECORD_SIZES[kind]
        stream.seek(header_start + extent.offset)
        payload = stream.read(size)
        if len(payload) != size:
            raise BoundsError(f"{kind.name} table is truncated")
        tables[kind] = unpack_table(kind, payload)

    stream.seek(header_start + header.total_length)
    return ProfileTables(
        header=header,
        samples=tables[TableKind.SAMPLES],
        stack_frames=tables[TableKind.STACK_FRAMES],
        functions=tables[TableKind.FUNCTIONS],
        modules=tables[TableKind.MODULES],
        threads=tables[TableKind.THREADS],
    )


def decode_profile(payload: bytes) -> ProfileTables:
    return read_profile(io.BytesIO(payload))


__all__ = [
    "ProfileTables",
    "validate_header",
    "read_header",
    "read_profile",
    "decode_profile",
]
