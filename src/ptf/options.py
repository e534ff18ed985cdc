"""Conversion options and target process selection."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Tuple

from interfaces import INVALID_INDEX, SymbolOptions, TraceProcess
from . import jsonio
from .errors import ConfigurationError

DEFAULT_SYMBOL_MODULES: Tuple[str, ...] = (
    "user32.dll",
    "kernelbase.dll",
    "wow64cpu.dll",
    "ntdll.dll",
    "unity.exe",
    "mono-2.0-bdwgc.dll",
    "d3d11.dll",
    "msvcrt.dll",
    "wow64.dll",
    "kernel32.dll",
    "ntoskrnl.exe",
)


@dataclass(frozen=True)
class ConversionOptions:
    """Settings for translating one capture into a PTF artifact."""

    process_name: str = "Unity"
    excluded_command_line: Optional[str] = "worker"
    symbol_modules: Tuple[str, ...] = DEFAULT_SYMBOL_MODULES
    additional_symbol_path: Optional[Path] = None
    conversion_log: Path = field(default_factory=lambda: Path("conversion.log"))

    def should_resolve_symbols(self, path: str) -> bool:
        return self.symbol_options().should_resolve_symbols(path)

    def symbol_options(self) -> SymbolOptions:
        return SymbolOptions(
            symbol_modules=self.symbol_modules,
            additional_symbol_path=self.additional_symbol_path,
        )

    @classmethod
    def from_dict(cls, values: Dict[str, Any]) -> "ConversionOptions":
        if not isinstance(values, dict):
            raise ConfigurationError("Conversion options must be an object")
        unknown = set(values) - {
            "process_name",
            "excluded_command_line",
            "symbol_modules",
            "additional_symbol_path",
            "conversion_log",
        }
        if unknown:
            raise ConfigurationError(f"Unknown conversion options: {sorted(unknown)}")

        kwargs: Dict[str, Any] = {}
        if "process_name" in values:
            process_name = values["process_name"]
            if not isinstance(process_name, str) or not process_name:
                raise ConfigurationError("process_name must be a non-empty string")
            kwargs["process_name"] = process_name
        if "excluded_command_line" in values:
            excluded = values["excluded_command_line"]
            if excluded is not None and not isinstance(excluded, str):
                raise ConfigurationError("excluded_command_line must be a string or null")
            kwargs["excluded_command_line"] = excluded or None
        if "symbol_modules" in values:
            modules = values["symbol_modules"]
            if not isinstance(modules, list) or not all(isinstance(m, str) for m in modules):
                raise ConfigurationError("symbol_modules must be a list of strings")
            kwargs["symbol_modules"] = tuple(modules)
        if values.get("additional_symbol_path") is not None:
            kwargs["additional_symbol_path"] = Path(values["additional_symbol_path"])
        if values.get("conversion_log") is not None:
            kwargs["conversion_log"] = Path(values["conversion_log"])
        return cls(**kwargs)

    @classmethod
    def from_file(cls, path: Path) -> "ConversionOptions":
        try:
            payload = path.read_bytes()
        except OSError as exc:
            raise ConfigurationError(f"Unable to read conversion options: {exc}") from exc
        return cls.from_dict(jsonio.loads(payload, ConfigurationError, "conversion options"))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "process_name": self.process_name,
            "excluded_command_line": self.excluded_command_line,
            "symbol_modules": list(self.symbol_modules),
            "additional_symbol_path": (
                str(self.additional_symbol_path) if self.additional_symbol_path else None
            ),
            "conversion_log": str(self.conversion_log),
        }


def find_target_process(processes: Iterable[TraceProcess], options: ConversionOptions) -> int:
    """Return the index of the profiled process, or -1 when the capture lacks it."""
    for process in processes:
        if process.name != options.process_name:
            continue
        if options.excluded_command_line and options.excluded_command_line in process.command_line:
            continue
        return process.process_index
    return INVALID_INDEX


__all__ = ["DEFAULT_SYMBOL_MODULES", "ConversionOptions", "find_target_process"]
