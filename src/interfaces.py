"""Shapes exchanged between the PTF codec and its trace collaborators."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional, Protocol, Sequence, Tuple

INVALID_INDEX = -1


@dataclass(frozen=True)
class TraceProcess:
    """A process seen in the capture together with the modules it loaded."""

    process_index: int
    process_id: int
    name: str
    command_line: str = ""
    loaded_modules: Tuple[int, ...] = ()


@dataclass(frozen=True)
class TraceEvent:
    """Any event of the capture that is not a CPU sample."""

    process_id: int
    timestamp_ms: float
    name: str = ""


@dataclass(frozen=True)
class SampleEvent(TraceEvent):
    """A sampled instruction pointer with its call stack and thread."""

    instruction_pointer: int = 0
    call_stack: int = INVALID_INDEX
    thread: int = INVALID_INDEX


@dataclass(frozen=True)
class CallStack:
    call_stack_index: int
    address: int
    depth: int
    caller: int = INVALID_INDEX


@dataclass(frozen=True)
class TraceMethod:
    """A method resolved from debug symbols of an on-disk image."""

    method_index: int
    full_name: str
    rva: int
    module_file: int = INVALID_INDEX


@dataclass(frozen=True)
class ModuleFile:
    module_file_index: int
    file_path: str
    image_checksum: int = 0
    pdb_age: int = 0
    pdb_signature: uuid.UUID = field(default_factory=lambda: uuid.UUID(int=0))
    pdb_name: str = ""


@dataclass(frozen=True)
class TraceThread:
    thread_index: int
    thread_id: int
    name: Optional[str] = None


@dataclass(frozen=True)
class ManagedType:
    namespace: str
    name: str


@dataclass(frozen=True)
class ManagedModule:
    """A module loaded by the managed runtime, identified by its assembly."""

    name: str
    assembly_location: str


@dataclass(frozen=True)
class ManagedMethod:
    name: str
    module: ManagedModule
    declaring_type: Optional[ManagedType] = None


@dataclass(frozen=True)
class JitInfo:
    """Compiled code bounds of a managed method."""

    code_start: int
    code_size: int
    method: Optional[ManagedMethod] = None


@dataclass(frozen=True)
class SymbolOptions:
    """Symbol inclusion policy handed to the event source."""

    symbol_modules: Tuple[str, ...] = ()
    additional_symbol_path: Optional[Path] = None

    def should_resolve_symbols(self, path: str) -> bool:
        lowered = path.lower()
        return any(lowered.endswith(suffix.lower()) for suffix in self.symbol_modules)


class TraceLog(Protocol):
    """Converted, queryable view of a raw capture."""

    processes: Sequence[TraceProcess]

    def events(self) -> Iterable[TraceEvent]:
        """Yield events in capture order."""

    def call_stack(self, index: int) -> CallStack:
        """Return the call stack stored at ``index``."""

    def method(self, index: int) -> TraceMethod:
        """Return the symbolic method stored at ``index``."""

    def method_at(self, address: int) -> Optional[TraceMethod]:
        """Return the symbolic method covering ``address`` if symbols were resolved."""

    def module_file(self, index: int) -> ModuleFile:
        """Return the module file stored at ``index``."""

    def thread(self, index: int) -> TraceThread:
        """Return the thread stored at ``index``."""

    def close(self) -> None:
        """Release resources held by the trace."""


class JitLookup(Protocol):
    def get_jit_info(self, address: int) -> Optional[JitInfo]:
        """Return JIT information for the compiled method containing ``address``."""


class EventSource(Protocol):
    def open_or_convert(self, path: Path, options: SymbolOptions) -> TraceLog:
        """Open ``path`` as a trace, converting it first when needed."""


__all__ = [
    "INVALID_INDEX",
    "TraceProcess",
    "TraceEvent",
    "SampleEvent",
    "CallStack",
    "TraceMethod",
    "ModuleFile",
    "TraceThread",
    "ManagedType",
    "ManagedModule",
    "ManagedMethod",
    "JitInfo",
    "SymbolOptions",
    "TraceLog",
    "JitLookup",
    "EventSource",
]
