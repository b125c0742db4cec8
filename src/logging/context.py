# src/logging/context.py — v1
"""Contextual logging support: attach identifier, cache_key, generation to records.

The orchestrator sets the request context before each state-machine pass and
the fetch coordinator sets the key context inside each fetch task, so log
lines from concurrent fetches stay attributable.
"""

from __future__ import annotations

import contextvars
from dataclasses import dataclass
from typing import Any

_identifier: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "identifier", default=None
)
_cache_key: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "cache_key", default=None
)
_generation: contextvars.ContextVar[int | None] = contextvars.ContextVar(
    "generation", default=None
)


@dataclass
class LogContext:
    """Immutable snapshot of current logging context."""

    identifier: str | None = None
    cache_key: str | None = None
    generation: int | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict for JSON log injection."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


def get_context() -> LogContext:
    """Snapshot current context variables."""
    return LogContext(
        identifier=_identifier.get(),
        cache_key=_cache_key.get(),
        generation=_generation.get(),
    )


def set_request_context(identifier: str | None, generation: int) -> None:
    """Set request-level context (called per orchestrator load)."""
    _identifier.set(identifier)
    _generation.set(generation)


def set_key_context(cache_key: str) -> None:
    """Set key-level context (called per fetch task)."""
    _cache_key.set(cache_key)


def clear_context() -> None:
    """Reset all context variables."""
    _identifier.set(None)
    _cache_key.set(None)
    _generation.set(None)
