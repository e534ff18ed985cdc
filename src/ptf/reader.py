"""Random-access PTF reader backed by memory mapping."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional

from .decoder import ProfileTables
from .errors import ReaderClosedError
from .iterator import TableIterator, read_record_at
from .memory_map import ProfileMap
from .records import ProfileHeader, TableKind, unpack_table


class ProfileReader:
    """Read-only PTF reader that loads each table only when asked for it."""

    __slots__ = ("_profile_map",)

    def __init__(self) -> None:
        self._profile_map = ProfileMap()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self, path: Path) -> None:
        """Open the requested PTF file and validate its header."""
        self._profile_map.open(path)

    def close(self) -> None:
        """Close the underlying file and release resources."""
        self._profile_map.close()

    def __enter__(self) -> "ProfileReader":
        if self._profile_map.path is None:
            raise ReaderClosedError("PTF reader is not open")
        return self

    def __exit__(self, *_) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def header(self) -> ProfileHeader:
        return self._profile_map.header

    @property
    def path(self) -> Optional[Path]:
        return self._profile_map.path

    def count(self, kind: TableKind) -> int:
        return self.header.extent(kind).count

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------

    def load_table(self, kind: TableKind) -> List[Any]:
        """Decode every record of one table without touching the others."""
        return unpack_table(kind, self._profile_map.table_bytes(kind))

    def iter_table(self, kind: TableKind, start: int = 0) -> TableIterator:
        return TableIterator(self._profile_map, kind, start=start)

    def read_record(self, kind: TableKind, index: int) -> Any:
        """Decode a single record by index."""
        return read_record_at(self._profile_map, kind, index)

    def read_all(self) -> ProfileTables:
        return ProfileTables(
            header=self.header,
            samples=self.load_table(TableKind.SAMPLES),
            stack_frames=self.load_table(TableKind.STACK_FRAMES),
            functions=self.load_table(TableKind.FUNCTIONS),
            modules=self.load_table(TableKind.MODULES),
            threads=self.load_table(TableKind.THREADS),
        )

    def get_metadata(self) -> Dict[str, object]:
        metadata = self.header.to_dict()
        metadata["path"] = str(self.path)
        return metadata


__all__ = ["ProfileReader"]
