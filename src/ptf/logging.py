"""Logging configuration for PTF.

Console logging goes through loguru. Each conversion additionally writes a
human-readable conversion log that only receives the records of its own
session.
"""

from __future__ import annotations

import sys
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional

from loguru import logger

_CONVERSION_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {message}"


def setup_logging(
    level: str = "INFO",
    log_file: Optional[Path] = None,
    json_output: bool = False,
) -> None:
    """Configure console (and optionally file) logging.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file path for log output
        json_output: If True, output logs in JSON format
    """
    logger.remove()

    if json_output:
        logger.add(sys.stderr, format="{message}", level=level, serialize=True)
    else:
        logger.add(
            sys.stderr,
            format=(
                "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
                "<level>{level: <8}</level> | "
                "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
                "<level>{message}</level>"
            ),
            level=level,
            colorize=True,
        )

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_file,
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
            level=level,
        )


def get_logger(name: str) -> Any:
    """Get a logger bound to ``name`` (typically ``__name__``)."""
    return logger.bind(name=name)


@contextmanager
def conversion_log(path: Path, level: str = "DEBUG") -> Iterator[Any]:
    """Open the conversion log of one encode session.

    Yields a logger whose records land in ``path``. The file is truncated
    when the session starts and closed when it ends, whether or not the
    conversion succeeded.
    """
    session = uuid.uuid4().hex
    path.parent.mkdir(parents=True, exist_ok=True)
    handler_id = logger.add(
        path,
        format=_CONVERSION_FORMAT,
        level=level,
        mode="w",
        filter=lambda record: record["extra"].get("conversion_session") == session,
    )
    try:
        yield logger.bind(conversion_session=session)
    finally:
        logger.remove(handler_id)


__all__ = ["setup_logging", "get_logger", "conversion_log"]
