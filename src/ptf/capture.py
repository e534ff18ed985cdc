"""JSON capture event source.

A capture document describes one recorded trace::

    {
        "processes": [{"process_id": 4, "name": "Unity", "command_line": "...",
                       "loaded_modules": [0]}],
        "modules": [{"file_path": "C:/Unity/unity.exe", "image_base": 5368709120,
                     "image_size": 4096, "image_checksum": 1, "pdb_age": 2,
                     "pdb_guid": "...", "pdb_name": "unity.pdb",
                     "methods": [{"name": "main", "rva": 16, "size": 32}]}],
        "threads": [{"thread_id": 100, "name": "Main Thread"}],
        "call_stacks": [{"address": 5368709136, "caller": -1}],
        "events": [{"type": "sample", "process_id": 4, "timestamp_ms": 0.5,
                    "address": 5368709136, "call_stack": 0, "thread": 0}],
        "jit": [{"code_start": 8192, "code_size": 64,
                 "method": {"name": "Update", "namespace": "Game", "type": "Player",
                            "module": {"name": "Assembly-CSharp",
                                       "assembly_location": "Library/Assembly-CSharp.dll"}}}]
    }

Integers may also be written as strings (``"0x140001000"``). Modules
without inline ``methods`` are symbolized from ``<pdb_name>.syms.json``
found next to the capture or in the additional symbol path. Only modules
allowed by the symbol inclusion policy are symbolized at all.
"""

from __future__ import annotations

import bisect
import uuid
from pathlib import Path, PureWindowsPath
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from interfaces import (
    INVALID_INDEX,
    CallStack,
    JitInfo,
    ManagedMethod,
    ManagedModule,
    ManagedType,
    ModuleFile,
    SampleEvent,
    SymbolOptions,
    TraceEvent,
    TraceMethod,
    TraceProcess,
    TraceThread,
)
from . import jsonio
from .errors import CaptureFormatError, SourceUnavailableError
from .logging import get_logger

SYMBOL_FILE_SUFFIX = ".syms.json"


def _int(value: Any, what: str) -> int:
    if isinstance(value, bool):
        raise CaptureFormatError(f"{what} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value, 0)
        except ValueError as exc:
            raise CaptureFormatError(f"{what} must be an integer, got {value!r}") from exc
    raise CaptureFormatError(f"{what} must be an integer")


def _list(document: Dict[str, Any], key: str) -> List[Any]:
    value = document.get(key) or []
    if not isinstance(value, list):
        raise CaptureFormatError(f"Capture {key} must be a list")
    return value


def _object(value: Any, what: str) -> Dict[str, Any]:
    if not isinstance(value, dict):
        raise CaptureFormatError(f"{what} must be an object")
    return value


class _AddressIndex:
    """Sorted, non-overlapping ``[start, end)`` ranges mapped to payloads."""

    __slots__ = ("_starts", "_ranges")

    def __init__(self, ranges: Sequence[Tuple[int, int, Any]]) -> None:
        self._ranges = sorted(ranges, key=lambda item: item[0])
        self._starts = [start for start, _, _ in self._ranges]

    def find(self, address: int) -> Optional[Any]:
        position = bisect.bisect_right(self._starts, address) - 1
        if position < 0:
            return None
        start, end, payload = self._ranges[position]
        if start <= address < end:
            return payload
        return None


class CaptureJitLookup:
    """Answers JIT queries from the ``jit`` section of a capture."""

    def __init__(self, entries: Sequence[JitInfo]) -> None:
        self._index = _AddressIndex(
            [(info.code_start, info.code_start + info.code_size, info) for info in entries]
        )

    def get_jit_info(self, address: int) -> Optional[JitInfo]:
        return self._index.find(address)


class CaptureTrace:
    """In-memory trace loaded from a capture document."""

    def __init__(
        self,
        *,
        processes: List[TraceProcess],
        events: List[TraceEvent],
        call_stacks: List[CallStack],
        methods: List[TraceMethod],
        method_ranges: Sequence[Tuple[int, int, int]],
        modules: List[ModuleFile],
        threads: List[TraceThread],
        jit_lookup: CaptureJitLookup,
    ) -> None:
        self.processes = processes
        self._events = events
        self._call_stacks = call_stacks
        self._methods = methods
        self._method_index = _AddressIndex(method_ranges)
        self._modules = modules
        self._threads = threads
        self.jit_lookup = jit_lookup

    def events(self) -> Iterator[TraceEvent]:
        return iter(self._events)

    def call_stack(self, index: int) -> CallStack:
        return self._call_stacks[index]

    def method(self, index: int) -> TraceMethod:
        return self._methods[index]

    def method_at(self, address: int) -> Optional[TraceMethod]:
        method_index = self._method_index.find(address)
        if method_index is None:
            return None
        return self._methods[method_index]

    def module_file(self, index: int) -> ModuleFile:
        return self._modules[index]

    def thread(self, index: int) -> TraceThread:
        return self._threads[index]

    def close(self) -> None:
        self._events = []

    def __enter__(self) -> "CaptureTrace":
        return self

    def __exit__(self, *_) -> None:
        self.close()


class _CaptureLoader:
    """Builds a ``CaptureTrace`` from a parsed capture document."""

    def __init__(self, document: Any, options: SymbolOptions, base_dir: Path, log: Any) -> None:
        self._document = _object(document, "Capture")
        self._options = options
        self._search_dirs = [base_dir]
        if options.additional_symbol_path is not None:
            self._search_dirs.append(options.additional_symbol_path)
        self._log = log

    def load(self) -> CaptureTrace:
        modules, methods, method_ranges = self._load_modules()
        threads = self._load_threads()
        call_stacks = self._load_call_stacks()
        processes = self._load_processes(len(modules))
        events = self._load_events(len(call_stacks), len(threads))
        jit_entries = self._load_jit()
        self._log.info(
            "Loaded capture: {} processes, {} events, {} modules ({} methods resolved), "
            "{} call stacks, {} threads, {} JIT entries",
            len(processes),
            len(events),
            len(modules),
            len(methods),
            len(call_stacks),
            len(threads),
            len(jit_entries),
        )
        return CaptureTrace(
            processes=processes,
            events=events,
            call_stacks=call_stacks,
            methods=methods,
            method_ranges=method_ranges,
            modules=modules,
            threads=threads,
            jit_lookup=CaptureJitLookup(jit_entries),
        )

    # ------------------------------------------------------------------
    # Modules and symbols
    # ------------------------------------------------------------------

    def _load_modules(self) -> Tuple[List[ModuleFile], List[TraceMethod], List[Tuple[int, int, int]]]:
        modules: List[ModuleFile] = []
        methods: List[TraceMethod] = []
        method_ranges: List[Tuple[int, int, int]] = []
        for index, raw in enumerate(_list(self._document, "modules")):
            entry = _object(raw, f"Module {index}")
            file_path = str(entry.get("file_path", ""))
            pdb_guid = entry.get("pdb_guid")
            try:
                signature = uuid.UUID(pdb_guid) if pdb_guid else uuid.UUID(int=0)
            except (TypeError, ValueError) as exc:
                raise CaptureFormatError(f"Module {index} has an invalid pdb_guid") from exc
            module = ModuleFile(
                module_file_index=index,
                file_path=file_path,
                image_checksum=_int(entry.get("image_checksum", 0), "image_checksum"),
                pdb_age=_int(entry.get("pdb_age", 0), "pdb_age"),
                pdb_signature=signature,
                pdb_name=str(entry.get("pdb_name", "")),
            )
            modules.append(module)

            if not self._options.should_resolve_symbols(file_path):
                self._log.debug("Skipping symbols for {}", file_path)
                continue
            symbols = entry.get("methods")
            if symbols is None:
                symbols = self._read_symbol_file(module)
                if symbols is None:
                    self._log.warning("No symbols found for {}", file_path)
                    continue
            if not isinstance(symbols, list):
                raise CaptureFormatError(f"Module {index} methods must be a list")

            image_base = _int(entry.get("image_base", 0), "image_base")
            image_size = _int(entry.get("image_size", 0), "image_size")
            resolved = self._module_methods(module, symbols, image_size)
            for rva, end, name in resolved:
                method_index = len(methods)
                methods.append(TraceMethod(method_index, name, rva, index))
                method_ranges.append((image_base + rva, image_base + end, method_index))
            self._log.debug("Resolved {} symbols for {}", len(resolved), file_path)
        return modules, methods, method_ranges

    def _module_methods(
        self, module: ModuleFile, symbols: List[Any], image_size: int
    ) -> List[Tuple[int, int, str]]:
        parsed = []
        for position, raw in enumerate(symbols):
            entry = _object(raw, f"Method {position} of {module.file_path}")
            size = entry.get("size")
            parsed.append((
                _int(entry.get("rva", 0), "rva"),
                None if size is None else _int(size, "size"),
                str(entry.get("name", "")),
            ))
        parsed.sort(key=lambda item: item[0])

        resolved = []
        for position, (rva, size, name) in enumerate(parsed):
            if size is not None:
                end = rva + size
            elif position + 1 < len(parsed):
                end = parsed[position + 1][0]
            else:
                end = max(image_size, rva + 1)
            resolved.append((rva, end, name))
        return resolved

    def _read_symbol_file(self, module: ModuleFile) -> Optional[List[Any]]:
        stem = module.pdb_name or PureWindowsPath(module.file_path).name
        if not stem:
            return None
        file_name = stem + SYMBOL_FILE_SUFFIX
        for directory in self._search_dirs:
            candidate = directory / file_name
            if not candidate.is_file():
                continue
            self._log.debug("Reading symbols from {}", candidate)
            try:
                payload = candidate.read_bytes()
            except OSError as exc:
                raise SourceUnavailableError(f"Unable to read symbol file {candidate}: {exc}") from exc
            document = jsonio.loads(payload, CaptureFormatError, f"symbol file {candidate.name}")
            if isinstance(document, dict):
                document = document.get("methods")
            if not isinstance(document, list):
                raise CaptureFormatError(f"Symbol file {candidate} does not list methods")
            return document
        return None

    # ------------------------------------------------------------------
    # Threads, stacks, processes and events
    # ------------------------------------------------------------------

    def _load_threads(self) -> List[TraceThread]:
        threads = []
        for index, raw in enumerate(_list(self._document, "threads")):
            entry = _object(raw, f"Thread {index}")
            name = entry.get("name")
            threads.append(TraceThread(
                thread_index=index,
                thread_id=_int(entry.get("thread_id", 0), "thread_id"),
                name=None if name is None else str(name),
            ))
        return threads

    def _load_call_stacks(self) -> List[CallStack]:
        raw_stacks = _list(self._document, "call_stacks")
        frames: List[Tuple[int, int]] = []
        for index, raw in enumerate(raw_stacks):
            entry = _object(raw, f"Call stack {index}")
            caller = _int(entry.get("caller", INVALID_INDEX), "caller")
            if caller != INVALID_INDEX and not 0 <= caller < len(raw_stacks):
                raise CaptureFormatError(f"Call stack {index} has unknown caller {caller}")
            frames.append((_int(entry.get("address", 0), "address"), caller))

        depths: List[Optional[int]] = [None] * len(frames)
        for index in range(len(frames)):
            chain = []
            current = index
            while current != INVALID_INDEX and depths[current] is None:
                if current in chain:
                    raise CaptureFormatError(f"Call stack {index} has a cyclic caller chain")
                chain.append(current)
                current = frames[current][1]
            depth = -1 if current == INVALID_INDEX else depths[current]
            for link in reversed(chain):
                depth += 1
                depths[link] = depth

        return [
            CallStack(index, address, depths[index], caller)
            for index, (address, caller) in enumerate(frames)
        ]

    def _load_processes(self, module_count: int) -> List[TraceProcess]:
        processes = []
        for index, raw in enumerate(_list(self._document, "processes")):
            entry = _object(raw, f"Process {index}")
            loaded = tuple(_int(value, "loaded_modules") for value in entry.get("loaded_modules") or [])
            for module_index in loaded:
                if not 0 <= module_index < module_count:
                    raise CaptureFormatError(f"Process {index} loads unknown module {module_index}")
            processes.append(TraceProcess(
                process_index=index,
                process_id=_int(entry.get("process_id", 0), "process_id"),
                name=str(entry.get("name", "")),
                command_line=str(entry.get("command_line", "")),
                loaded_modules=loaded,
            ))
        return processes

    def _load_events(self, stack_count: int, thread_count: int) -> List[TraceEvent]:
        events: List[TraceEvent] = []
        for index, raw in enumerate(_list(self._document, "events")):
            entry = _object(raw, f"Event {index}")
            kind = str(entry.get("type", ""))
            process_id = _int(entry.get("process_id", 0), "process_id")
            try:
                timestamp = float(entry.get("timestamp_ms", 0.0))
            except (TypeError, ValueError) as exc:
                raise CaptureFormatError(f"Event {index} has an invalid timestamp") from exc
            if kind == "sample":
                call_stack = _int(entry.get("call_stack", INVALID_INDEX), "call_stack")
                if call_stack != INVALID_INDEX and not 0 <= call_stack < stack_count:
                    raise CaptureFormatError(f"Event {index} has unknown call stack {call_stack}")
                thread = _int(entry.get("thread", INVALID_INDEX), "thread")
                if thread != INVALID_INDEX and not 0 <= thread < thread_count:
                    raise CaptureFormatError(f"Event {index} has unknown thread {thread}")
                events.append(SampleEvent(
                    process_id=process_id,
                    timestamp_ms=timestamp,
                    name=kind,
                    instruction_pointer=_int(entry.get("address", 0), "address"),
                    call_stack=call_stack,
                    thread=thread,
                ))
            else:
                events.append(TraceEvent(process_id=process_id, timestamp_ms=timestamp, name=kind))
        return events

    def _load_jit(self) -> List[JitInfo]:
        entries = []
        for index, raw in enumerate(_list(self._document, "jit")):
            entry = _object(raw, f"JIT entry {index}")
            method = None
            raw_method = entry.get("method")
            if raw_method is not None:
                method_entry = _object(raw_method, f"JIT entry {index} method")
                module_entry = _object(method_entry.get("module") or {}, f"JIT entry {index} module")
                declaring_type = None
                if method_entry.get("type") is not None:
                    declaring_type = ManagedType(
                        namespace=str(method_entry.get("namespace") or ""),
                        name=str(method_entry["type"]),
                    )
                method = ManagedMethod(
                    name=str(method_entry.get("name", "")),
                    module=ManagedModule(
                        name=str(module_entry.get("name", "")),
                        assembly_location=str(module_entry.get("assembly_location", "")),
                    ),
                    declaring_type=declaring_type,
                )
            entries.append(JitInfo(
                code_start=_int(entry.get("code_start", 0), "code_start"),
                code_size=_int(entry.get("code_size", 0), "code_size"),
                method=method,
            ))
        return entries


class CaptureSource:
    """Event source that opens JSON capture documents."""

    def __init__(self, log: Optional[Any] = None) -> None:
        self._log = log if log is not None else get_logger(__name__)

    def open_or_convert(self, path: Path, options: SymbolOptions) -> CaptureTrace:
        self._log.info("Opening capture {}", path)
        try:
            payload = path.read_bytes()
        except OSError as exc:
            raise SourceUnavailableError(f"Unable to open capture {path}: {exc}") from exc
        if not payload:
            raise CaptureFormatError(f"Capture {path} is empty")
        document = jsonio.loads(payload, CaptureFormatError, "capture")
        return _CaptureLoader(document, options, path.parent, self._log).load()


__all__ = ["CaptureSource", "CaptureTrace", "CaptureJitLookup", "SYMBOL_FILE_SUFFIX"]
