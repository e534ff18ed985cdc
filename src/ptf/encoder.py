"""Translation of a trace into a PTF artifact."""

from __future__ import annotations

from pathlib import Path
from typing import Any, BinaryIO, Optional

from interfaces import (
    INVALID_INDEX,
    EventSource,
    JitLookup,
    SampleEvent,
    TraceLog,
)
from .capture import CaptureSource
from .errors import EncoderStateError
from .interning import InterningTable
from .logging import conversion_log, get_logger
from .options import ConversionOptions, find_target_process
from .records import (
    HEADER_SIZE,
    VERSION,
    ProfileHeader,
    SampleRecord,
    StackFrameRecord,
    TableExtent,
    TableKind,
    ThreadRecord,
    to_int64,
)
from .resolution import (
    INVALID_FUNCTION,
    INVALID_MODULE,
    FunctionKey,
    FunctionResolver,
    ModuleKey,
    NativeModule,
)


class ProfileEncoder:
    """Writes the five tables of one trace, discovering entities as it goes.

    The encoder owns its interning tables; create one encoder per artifact.
    Samples are streamed straight to the output while the stack frames,
    functions, modules and threads they reference are interned, and those
    tables are written afterwards in first-seen order.
    """

    __slots__ = (
        "_trace",
        "_process_index",
        "_log",
        "_used",
        "stack_frames",
        "functions",
        "modules",
        "threads",
        "resolver",
    )

    def __init__(
        self,
        trace: TraceLog,
        jit_lookup: JitLookup,
        process_index: int,
        *,
        log: Optional[Any] = None,
    ) -> None:
        self._trace = trace
        self._process_index = process_index
        self._log = log if log is not None else get_logger(__name__)
        self._used = False
        self.stack_frames: InterningTable[int] = InterningTable(INVALID_INDEX)
        self.functions: InterningTable[FunctionKey] = InterningTable(INVALID_FUNCTION)
        self.modules: InterningTable[ModuleKey] = InterningTable(INVALID_MODULE)
        self.threads: InterningTable[int] = InterningTable(INVALID_INDEX)
        self.resolver = FunctionResolver(trace, jit_lookup, self.functions, self.modules)

    # ------------------------------------------------------------------

    def encode(self, stream: BinaryIO) -> ProfileHeader:
        """Write the artifact at the stream's current position and return its header."""
        if self._used:
            raise EncoderStateError("ProfileEncoder instances encode a single trace")
        self._used = True

        header_pos = stream.tell()
        stream.write(b"\x00" * HEADER_SIZE)
        extents = []

        for kind, write_table in (
            (TableKind.SAMPLES, self._write_samples),
            (TableKind.STACK_FRAMES, self._write_stack_frames),
            (TableKind.FUNCTIONS, self._write_functions),
            (TableKind.MODULES, self._write_modules),
            (TableKind.THREADS, self._write_threads),
        ):
            offset = stream.tell() - header_pos
            count = write_table(stream)
            extents.append(TableExtent(offset, count))
            self._log.debug("Wrote {} {} records at offset {}", count, kind.name, offset)
        stream.flush()

        end_pos = stream.tell()
        header = ProfileHeader(
            version=VERSION,
            total_length=end_pos - header_pos,
            extents=tuple(extents),
        )
        stream.seek(header_pos)
        stream.write(header.pack())
        stream.seek(end_pos)
        stream.flush()

        self._log.info(
            "Encoded {} samples, {} stack frames, {} functions, {} modules, {} threads ({} bytes)",
            header.num_samples,
            header.num_stack_frames,
            header.num_functions,
            header.num_modules,
            header.num_threads,
            header.total_length,
        )
        return header

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------

    def _target_process_id(self) -> Optional[int]:
        if self._process_index == INVALID_INDEX:
            return None
        return self._trace.processes[self._process_index].process_id

    def _write_samples(self, stream: BinaryIO) -> int:
        process_id = self._target_process_id()
        if process_id is None:
            self._log.warning("Target process not found in trace, no samples will be written")
            return 0

        count = 0
        for event in self._trace.events():
            if not isinstance(event, SampleEvent) or event.process_id != process_id:
                continue
            record = SampleRecord(
                address=to_int64(event.instruction_pointer),
                thread_index=self.threads.add_or_lookup(event.thread),
                timestamp=event.timestamp_ms,
                stack_trace=self.stack_frames.add_or_lookup(event.call_stack),
                function=self.resolver.resolve(event.instruction_pointer),
            )
            stream.write(record.pack())
            count += 1
        return count

    def _write_stack_frames(self, stream: BinaryIO) -> int:
        # Interning a caller appends to the table being drained, so the
        # bound is re-read every step until every ancestor is written.
        index = 0
        while index < len(self.stack_frames):
            stack = self._trace.call_stack(self.stack_frames[index])
            record = StackFrameRecord(
                address=to_int64(stack.address),
                depth=stack.depth,
                caller_stack_frame=self.stack_frames.add_or_lookup(stack.caller),
                function=self.resolver.resolve(stack.address),
            )
            stream.write(record.pack())
            index += 1
        return len(self.stack_frames)

    def _write_functions(self, stream: BinaryIO) -> int:
        for key in self.functions.entries():
            stream.write(self.resolver.normalize(key).pack())
        return len(self.functions)

    def _write_modules(self, stream: BinaryIO) -> int:
        if self._process_index != INVALID_INDEX:
            process = self._trace.processes[self._process_index]
            for module_file_index in process.loaded_modules:
                self.resolver.module_index(NativeModule(module_file_index))
        for key in self.modules.entries():
            stream.write(self.resolver.module_record(key).pack())
        return len(self.modules)

    def _write_threads(self, stream: BinaryIO) -> int:
        for thread_index in self.threads.entries():
            thread = self._trace.thread(thread_index)
            stream.write(ThreadRecord(thread.name or "").pack())
        return len(self.threads)


def translate_capture(
    capture_path: Path,
    stream: BinaryIO,
    options: Optional[ConversionOptions] = None,
    *,
    source: Optional[EventSource] = None,
    jit_lookup: Optional[JitLookup] = None,
) -> ProfileHeader:
    """Convert the capture at ``capture_path`` and write the artifact to ``stream``.

    ``source`` defaults to the JSON capture source; ``jit_lookup`` defaults
    to the lookup the opened trace carries, if any.
    """
    options = options or ConversionOptions()
    with conversion_log(options.conversion_log) as log:
        event_source = source if source is not None else CaptureSource(log=log)
        trace = None
        try:
            trace = event_source.open_or_convert(capture_path, options.symbol_options())
            lookup = jit_lookup if jit_lookup is not None else getattr(trace, "jit_lookup", None)
            if lookup is None:
                lookup = _NoJitLookup()
            process_index = find_target_process(trace.processes, options)
            if process_index == INVALID_INDEX:
                log.warning(
                    "No process named {!r} found in {}", options.process_name, capture_path
                )
            return ProfileEncoder(trace, lookup, process_index, log=log).encode(stream)
        except Exception:
            log.exception("Conversion of {} failed", capture_path)
            raise
        finally:
            if trace is not None:
                trace.close()


class _NoJitLookup:
    def get_jit_info(self, address: int) -> None:
        return None


__all__ = ["ProfileEncoder", "translate_capture"]
