"""Read-only memory mapping of one PTF artifact."""

from __future__ import annotations

import mmap
from pathlib import Path
from typing import Optional

from .decoder import validate_header
from .errors import BoundsError, MemoryMapError, ReaderClosedError
from .records import HEADER_SIZE, RECORD_SIZES, ProfileHeader, TableKind


class ProfileMap:
    """Maps an artifact and hands out the raw bytes of its tables.

    The header is parsed and validated when the file is opened, so every
    table slice handed out afterwards lies inside the mapping.
    """

    __slots__ = ("_mmap", "_header", "path")

    def __init__(self) -> None:
        self._mmap: Optional[mmap.mmap] = None
        self._header: Optional[ProfileHeader] = None
        self.path: Optional[Path] = None

    def open(self, path: Path) -> None:
        """Map ``path`` and validate the header at its start."""
        self.close()
        try:
            with path.open("rb") as file_handle:
                mm = mmap.mmap(file_handle.fileno(), 0, access=mmap.ACCESS_READ)
        except ValueError as exc:
            raise MemoryMapError(f"PTF file {path} is empty") from exc
        except OSError as exc:
            raise MemoryMapError(f"Unable to map PTF file {path}: {exc}") from exc

        try:
            if len(mm) < HEADER_SIZE:
                raise BoundsError(f"PTF file {path} is too short to hold a header")
            header = ProfileHeader.from_bytes(mm[:HEADER_SIZE])
            validate_header(header, 0, len(mm))
        except Exception:
            mm.close()
            raise

        self._mmap = mm
        self._header = header
        self.path = path

    def close(self) -> None:
        if self._mmap is not None:
            self._mmap.close()
            self._mmap = None
        self._header = None
        self.path = None

    def _ensure_open(self) -> mmap.mmap:
        if self._mmap is None:
            raise ReaderClosedError("PTF file is not open")
        return self._mmap

    @property
    def header(self) -> ProfileHeader:
        self._ensure_open()
        return self._header

    def table_bytes(self, kind: TableKind) -> bytes:
        """Return every record of table ``kind`` as one contiguous block."""
        mm = self._ensure_open()
        extent = self._header.extent(kind)
        return mm[extent.offset:extent.offset + extent.count * RECORD_SIZES[kind]]

    def record_bytes(self, kind: TableKind, index: int) -> bytes:
        mm = self._ensure_open()
        extent = self._header.extent(kind)
        if not 0 <= index < extent.count:
            raise IndexError(f"{kind.name} index {index} out of range (count {extent.count})")
        size = RECORD_SIZES[kind]
        start = extent.offset + index * size
        return mm[start:start + size]


__all__ = ["ProfileMap"]
