"""JSON helpers shared by the option and capture parsers."""

from __future__ import annotations

from typing import Any, Type

try:  # Prefer orjson for performance when available
    import orjson
except ModuleNotFoundError:  # pragma: no cover - fallback path
    orjson = None  # type: ignore

import json

from .errors import PTFError


def loads(payload: bytes, error: Type[PTFError], what: str) -> Any:
    """Parse ``payload`` and raise ``error`` when it is not valid JSON."""
    if orjson is not None:  # pragma: no cover - exercised when orjson available
        try:
            return orjson.loads(payload)
        except orjson.JSONDecodeError as exc:  # type: ignore[attr-defined]
            raise error(f"Failed to parse {what} JSON: {exc}") from exc
    try:
        return json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise error(f"Failed to parse {what} JSON: {exc}") from exc


def dumps(value: Any) -> bytes:
    if orjson is not None:  # pragma: no cover - exercised when orjson available
        return orjson.dumps(value, option=orjson.OPT_INDENT_2)
    return json.dumps(value, indent=2).encode("utf-8")


__all__ = ["loads", "dumps"]
