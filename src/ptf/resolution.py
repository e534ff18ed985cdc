"""Classification of code addresses into function and module identities.

A code address resolves either to a method known from the trace's symbol
tables (``SymbolicMethod``) or to a method compiled at runtime
(``JitMethod``). Both are normalized into the same ``FunctionRecord`` so
consumers never need to know which path produced an entry.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from interfaces import (
    INVALID_INDEX,
    JitInfo,
    JitLookup,
    ManagedMethod,
    ManagedModule,
    TraceLog,
)
from .interning import InterningTable
from .records import FunctionRecord, ModuleRecord, to_int32, to_int64

UNKNOWN_FUNCTION_NAME = "???"


@dataclass(frozen=True)
class SymbolicMethod:
    method_index: int


@dataclass(frozen=True)
class JitMethod:
    jit_info: JitInfo


@dataclass(frozen=True)
class InvalidFunction:
    pass


@dataclass(frozen=True)
class NativeModule:
    module_file_index: int


@dataclass(frozen=True)
class ManagedModuleKey:
    module: ManagedModule


@dataclass(frozen=True)
class InvalidModule:
    pass


FunctionKey = Union[SymbolicMethod, JitMethod, InvalidFunction]
ModuleKey = Union[NativeModule, ManagedModuleKey, InvalidModule]

INVALID_FUNCTION = InvalidFunction()
INVALID_MODULE = InvalidModule()


def managed_function_name(method: ManagedMethod) -> str:
    """Build ``Namespace.Type.Method`` for a JIT-compiled method."""
    declaring_type = method.declaring_type
    if declaring_type is None:
        return UNKNOWN_FUNCTION_NAME
    return f"{declaring_type.namespace}.{declaring_type.name}.{method.name}"


class FunctionResolver:
    """Interns functions and their owning modules for one encoding session."""

    __slots__ = ("_trace", "_jit_lookup", "functions", "modules")

    def __init__(
        self,
        trace: TraceLog,
        jit_lookup: JitLookup,
        functions: InterningTable[FunctionKey],
        modules: InterningTable[ModuleKey],
    ) -> None:
        self._trace = trace
        self._jit_lookup = jit_lookup
        self.functions = functions
        self.modules = modules

    def resolve(self, address: int) -> int:
        """Return the function index for ``address`` or -1 when nothing knows it."""
        method = self._trace.method_at(address)
        if method is not None:
            return self.functions.add_or_lookup(SymbolicMethod(method.method_index))
        jit_info = self._jit_lookup.get_jit_info(address)
        if jit_info is None or jit_info.method is None:
            return INVALID_INDEX
        return self.functions.add_or_lookup(JitMethod(jit_info))

    def module_index(self, key: ModuleKey) -> int:
        if isinstance(key, NativeModule) and key.module_file_index == INVALID_INDEX:
            key = INVALID_MODULE
        return self.modules.add_or_lookup(key)

    def normalize(self, key: FunctionKey) -> FunctionRecord:
        """Turn an interned function identity into its table record."""
        if isinstance(key, SymbolicMethod):
            method = self._trace.method(key.method_index)
            return FunctionRecord(
                base_address=to_int64(method.rva),
                length=-1,
                module=self.module_index(NativeModule(method.module_file)),
                name=method.full_name,
            )
        if isinstance(key, JitMethod):
            jit_info = key.jit_info
            method = jit_info.method
            if method is None:
                module = INVALID_INDEX
                name = UNKNOWN_FUNCTION_NAME
            else:
                module = self.module_index(ManagedModuleKey(method.module))
                name = managed_function_name(method)
            return FunctionRecord(
                base_address=to_int64(jit_info.code_start),
                length=jit_info.code_size,
                module=module,
                name=name,
            )
        raise TypeError(f"Cannot normalize function key {key!r}")

    def module_record(self, key: ModuleKey) -> ModuleRecord:
        """Turn an interned module identity into its table record."""
        if isinstance(key, ManagedModuleKey):
            return ModuleRecord.managed(key.module.assembly_location)
        if isinstance(key, NativeModule):
            module = self._trace.module_file(key.module_file_index)
            return ModuleRecord(
                is_mono=False,
                file_path=module.file_path,
                checksum=to_int32(module.image_checksum),
                pdb_age=to_int32(module.pdb_age),
                pdb_guid=module.pdb_signature.bytes_le,
                pdb_name=module.pdb_name,
            )
        raise TypeError(f"Cannot build a module record for {key!r}")


__all__ = [
    "UNKNOWN_FUNCTION_NAME",
    "SymbolicMethod",
    "JitMethod",
    "InvalidFunction",
    "NativeModule",
    "ManagedModuleKey",
    "InvalidModule",
    "FunctionKey",
    "ModuleKey",
    "INVALID_FUNCTION",
    "INVALID_MODULE",
    "managed_function_name",
    "FunctionResolver",
]
