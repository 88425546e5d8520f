# src/logging/handlers.py — v2
"""Size-based rotating file handler for the cache log."""

from __future__ import annotations

import re
from logging.handlers import RotatingFileHandler
from pathlib import Path

_SIZE_PATTERN = re.compile(r"^(\d+(?:\.\d+)?)\s*([KMG]?B)$", re.IGNORECASE)
_UNIT_SHIFT = {"B": 0, "KB": 10, "MB": 20, "GB": 30}


def parse_size(size_str: str) -> int:
    """Parse '10MB', '512kb' or '1.5GB' into a byte count (binary units)."""
    match = _SIZE_PATTERN.match(size_str.strip())
    if not match:
        raise ValueError(f"Invalid size format: {size_str!r}. Use e.g. '10MB'.")
    amount, unit = match.groups()
    size = int(float(amount) * (1 << _UNIT_SHIFT[unit.upper()]))
    if size <= 0:
        raise ValueError(f"Invalid size format: {size_str!r}. Size must be positive.")
    return size


def create_rotating_handler(
    log_file: str | Path,
    rotation: str = "10MB",
    retention: int = 30,
) -> RotatingFileHandler:
    """Open ``log_file`` for appending, creating its directory.

    Args:
        log_file: Path to log file (``~`` is expanded).
        rotation: Max file size before rotation.
        retention: Number of backup files to keep (0 truncates in place).
    """
    if retention < 0:
        raise ValueError(f"retention must be >= 0, got {retention}")
    path = Path(log_file).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    return RotatingFileHandler(
        filename=path,
        maxBytes=parse_size(rotation),
        backupCount=retention,
        encoding="utf-8",
    )
