# src/logging/context.py — v1
"""Contextual logging support — attach combined_hash and operation to log records."""

from __future__ import annotations

import contextvars
from dataclasses import dataclass
from typing import Any

# Context variables for structured logging, set per resolution call.
_combined_hash: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "combined_hash", default=None
)
_artwork: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "artwork", default=None
)
_operation: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "operation", default=None
)


@dataclass
class LogContext:
    """Immutable snapshot of current logging context."""

    combined_hash: str | None = None
    artwork: str | None = None
    operation: str | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict for JSON log injection."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


def get_context() -> LogContext:
    """Snapshot current context variables."""
    return LogContext(
        combined_hash=_combined_hash.get(),
        artwork=_artwork.get(),
        operation=_operation.get(),
    )


def set_artwork_context(combined_hash: str, artwork: str | None = None) -> None:
    """Set artwork-level context (called once per resolution)."""
    _combined_hash.set(combined_hash)
    _artwork.set(artwork)


def set_operation_context(operation: str) -> None:
    """Set the name of the cache operation in progress."""
    _operation.set(operation)


def clear_context() -> None:
    """Reset all context variables."""
    _combined_hash.set(None)
    _artwork.set(None)
    _operation.set(None)
