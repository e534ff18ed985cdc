"""Deduplicating registry that hands out dense indices in first-seen order."""

from __future__ import annotations

from typing import Dict, Generic, Hashable, Iterator, List, TypeVar

from interfaces import INVALID_INDEX

T = TypeVar("T", bound=Hashable)


class InterningTable(Generic[T]):
    """Append-only mapping from keys to sequential indices.

    ``invalid`` is the sentinel key of the table: it is never stored and
    always maps to ``-1``. Tables may grow while a caller walks them by
    index, so loops over a table must re-read ``len(table)`` every step.
    """

    __slots__ = ("invalid", "_entries", "_indices")

    def __init__(self, invalid: T) -> None:
        self.invalid = invalid
        self._entries: List[T] = []
        self._indices: Dict[T, int] = {}

    def add_or_lookup(self, key: T) -> int:
        index = self._indices.get(key)
        if index is not None:
            return index
        if key == self.invalid:
            return INVALID_INDEX
        index = len(self._entries)
        self._indices[key] = index
        self._entries.append(key)
        return index

    def index_of(self, key: T) -> int:
        """Return the index of ``key`` without interning it."""
        return self._indices.get(key, INVALID_INDEX)

    @property
    def count(self) -> int:
        return len(self._entries)

    def entries(self) -> List[T]:
        """Return a snapshot of the keys in first-seen order."""
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __getitem__(self, index: int) -> T:
        return self._entries[index]

    def __iter__(self) -> Iterator[T]:
        # Index-based so keys appended during iteration are still visited.
        index = 0
        while index < len(self._entries):
            yield self._entries[index]
            index += 1

    def __contains__(self, key: object) -> bool:
        return key in self._indices

    def __repr__(self) -> str:
        return f"InterningTable(count={len(self._entries)})"


__all__ = ["InterningTable"]
