# src/cache/progress.py — v1
"""Per-fetch progress channel with drop-latest semantics.

Only the most recent percentage is retained. Subscribers are plain callables
invoked synchronously on publish; pollers read ``latest``; async consumers
iterate ``updates()``, which skips intermediate values they were too slow for.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import AsyncIterator, Callable

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]


def to_percent(bytes_written: int, bytes_expected: int) -> int:
    """round(written / expected * 100) clamped to [0, 100]; 0 if unknown."""
    if bytes_expected <= 0:
        return 0
    value = math.floor(bytes_written / bytes_expected * 100 + 0.5)
    return max(0, min(100, value))


class ProgressChannel:
    """Latest-value progress holder for one in-flight fetch."""

    def __init__(self) -> None:
        self._latest = 0
        self._closed = False
        self._changed = asyncio.Event()
        self._subscribers: list[ProgressCallback] = []

    @property
    def latest(self) -> int:
        return self._latest

    @property
    def closed(self) -> bool:
        return self._closed

    def publish(self, percent: int) -> None:
        if self._closed or percent == self._latest:
            return
        self._latest = percent
        self._changed.set()
        for callback in list(self._subscribers):
            try:
                callback(percent)
            except Exception:
                logger.warning("Progress subscriber failed", exc_info=True)

    def subscribe(self, callback: ProgressCallback) -> Callable[[], None]:
        """Register callback; returns a function that unregisters it.

        The current value is delivered immediately so late joiners of a
        shared fetch start from the real position rather than zero.
        """
        self._subscribers.append(callback)
        if self._latest:
            callback(self._latest)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def close(self) -> None:
        self._closed = True
        self._subscribers.clear()
        self._changed.set()

    async def updates(self) -> AsyncIterator[int]:
        """Yield the latest value each time it changes, until closed."""
        last_seen: int | None = None
        while True:
            if self._latest != last_seen:
                last_seen = self._latest
                yield last_seen
                continue
            if self._closed:
                return
            self._changed.clear()
            await self._changed.wait()
