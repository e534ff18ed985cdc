"""Command-line interface for converting and inspecting PTF artifacts.

Usage:
    ptf convert <capture.json> <output.ptf> [--process-name Unity]
    ptf dump <output.ptf> [--table samples] [--limit N] [--json]
"""

from __future__ import annotations

import argparse
import sys
from dataclasses import replace
from pathlib import Path
from typing import List, Optional, Sequence

from . import jsonio
from .encoder import translate_capture
from .errors import PTFError
from .logging import setup_logging
from .options import ConversionOptions
from .reader import ProfileReader
from .records import TableKind

_TABLE_NAMES = {kind.name.lower(): kind for kind in TableKind}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ptf", description="Profiler trace format tools")
    parser.add_argument("--log-level", default="WARNING", help="Console log level (default: WARNING)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    convert = subparsers.add_parser("convert", help="Convert a capture into a PTF artifact")
    convert.add_argument("capture", type=Path, help="Path to the capture document")
    convert.add_argument("output", type=Path, help="Path of the artifact to write")
    convert.add_argument("--config", type=Path, help="JSON file with conversion options")
    convert.add_argument("--process-name", help="Name of the profiled process")
    convert.add_argument(
        "--exclude-command-line",
        help="Skip processes whose command line contains this fragment",
    )
    convert.add_argument(
        "--symbol-module",
        action="append",
        dest="symbol_modules",
        metavar="SUFFIX",
        help="Module path suffix to symbolize (repeatable, replaces the defaults)",
    )
    convert.add_argument("--symbol-path", type=Path, help="Additional symbol search directory")
    convert.add_argument("--conversion-log", type=Path, help="Path of the conversion log")

    dump = subparsers.add_parser("dump", help="Print the tables of a PTF artifact")
    dump.add_argument("profile", type=Path, help="Path to the artifact")
    dump.add_argument("--table", choices=sorted(_TABLE_NAMES), help="Only print this table")
    dump.add_argument("--limit", "-n", type=int, default=20, help="Maximum rows per table (default: 20)")
    dump.add_argument("--json", action="store_true", help="Print the tables as JSON")
    return parser


def _options_from_args(args: argparse.Namespace) -> ConversionOptions:
    options = ConversionOptions.from_file(args.config) if args.config else ConversionOptions()
    overrides = {}
    if args.process_name is not None:
        overrides["process_name"] = args.process_name
    if args.exclude_command_line is not None:
        overrides["excluded_command_line"] = args.exclude_command_line or None
    if args.symbol_modules:
        overrides["symbol_modules"] = tuple(args.symbol_modules)
    if args.symbol_path is not None:
        overrides["additional_symbol_path"] = args.symbol_path
    if args.conversion_log is not None:
        overrides["conversion_log"] = args.conversion_log
    return replace(options, **overrides)


def _convert(args: argparse.Namespace) -> int:
    options = _options_from_args(args)
    args.output.parent.mkdir(parents=True, exist_ok=True)
    with args.output.open("wb") as stream:
        header = translate_capture(args.capture, stream, options)
    print(f"Wrote {args.output} ({header.total_length} bytes)")
    for kind in TableKind:
        print(f"  {kind.name.lower():<13} {header.extent(kind).count:>8}")
    return 0


def _dump(args: argparse.Namespace) -> int:
    kinds: List[TableKind] = [_TABLE_NAMES[args.table]] if args.table else list(TableKind)
    reader = ProfileReader()
    reader.open(args.profile)
    try:
        if args.json:
            document = {"header": reader.header.to_dict()}
            tables = reader.read_all().to_dict()
            for kind in kinds:
                name = kind.name.lower()
                document[name] = tables[name][: max(args.limit, 0)]
            sys.stdout.write(jsonio.dumps(document).decode("utf-8") + "\n")
            return 0

        header = reader.header
        print(f"Profile: {args.profile}")
        print(f"Version: {header.version}  Length: {header.total_length} bytes")
        for kind in kinds:
            count = header.extent(kind).count
            print()
            print(f"{kind.name.lower()} ({count})")
            print("-" * 60)
            for index, record in enumerate(reader.iter_table(kind)):
                if index >= args.limit:
                    print(f"... (limited to {args.limit} rows)")
                    break
                print(f"{index:<6} {_format_record(record)}")
        return 0
    finally:
        reader.close()


def _format_record(record: object) -> str:
    parts = []
    for name, value in vars(record).items():
        if name in ("address", "base_address") and isinstance(value, int):
            parts.append(f"{name}=0x{value & 0xFFFFFFFFFFFFFFFF:x}")
        elif isinstance(value, bytes):
            parts.append(f"{name}={value.hex()}")
        else:
            parts.append(f"{name}={value!r}")
    return " ".join(parts)


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(level=args.log_level.upper())
    try:
        if args.command == "convert":
            return _convert(args)
        return _dump(args)
    except PTFError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
