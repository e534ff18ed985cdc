"""Lazy iteration over the records of one PTF table."""

from __future__ import annotations

import struct
from typing import Any, Iterator

from .errors import RecordDecodingError
from .memory_map import ProfileMap
from .records import RECORD_TYPES, TableKind

class TableIterator(Iterator[Any]):
    """Iterator decoding one record at a time from a mapped table."""

    __slots__ = (
        "_profile_map",
        "_kind",
        "_count",
        "_position",
    )

    def __init__(self, profile_map: ProfileMap, kind: TableKind, *, start: int = 0) -> None:
        self._profile_map = profile_map
        self._kind = kind
        self._count = profile_map.header.extent(kind).count
        self._position = min(max(start, 0), self._count)

    def __iter__(self) -> "TableIterator":
        return self

    def __len__(self) -> int:
        return self._count - self._position

    def __next__(self) -> Any:
        if self._position >= self._count:
            raise StopIteration
        record = read_record_at(self._profile_map, self._kind, self._position)
        self._position += 1
        return record


def read_record_at(profile_map: ProfileMap, kind: TableKind, index: int) -> Any:
    """Decode record ``index`` of table ``kind``."""
    record_type = RECORD_TYPES[kind]
    raw = profile_map.record_bytes(kind, index)
    try:
        fields = record_type.STRUCT.unpack(raw)
    except struct.error as exc:
        raise RecordDecodingError(f"Malformed {kind.name} record {index}") from exc
    return record_type.from_fields(fields)


__all__ = ["TableIterator", "read_record_at"]
