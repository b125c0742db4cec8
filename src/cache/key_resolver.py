# src/cache/key_resolver.py — v2
"""Derive cache keys (filenames) and local paths from remote identifiers.

A key is the last path segment of the identifier with query and fragment
removed, percent-encoded down to filesystem-safe characters. Identifiers
whose last segment has no extension cannot be keyed deterministically; they
go through TimestampFallbackStrategy, which mints a fresh time-based name on
every call. Requests for such identifiers therefore never hit the cache
across calls. ResolvedKey.synthetic flags this case.
"""

from __future__ import annotations

import logging
import os
import time
from collections.abc import Callable
from dataclasses import dataclass
from urllib.parse import quote

logger = logging.getLogger(__name__)

# Kept verbatim in keys; everything else is percent-encoded, so distinct
# segments never share a key.
_SAFE_CHARS = "._-"


@dataclass(frozen=True)
class ResolvedKey:
    """A cache key plus whether it came from the non-deterministic fallback."""

    key: str
    synthetic: bool = False


class TimestampFallbackStrategy:
    """Mint ``<prefix><epoch-ms><suffix>`` names for extensionless identifiers."""

    def __init__(
        self,
        prefix: str = "video_",
        suffix: str = ".mp4",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.prefix = prefix
        self.suffix = suffix
        self._clock = clock

    def generate(self, identifier: str) -> str:
        millis = int(self._clock() * 1000)
        return f"{self.prefix}{millis}{self.suffix}"


def _last_segment(identifier: str) -> str:
    segment = identifier.split("/")[-1]
    segment = segment.split("?", 1)[0]
    return segment.split("#", 1)[0]


class KeyResolver:
    """Map remote identifiers to keys inside one cache directory."""

    def __init__(
        self,
        cache_dir: str,
        fallback: TimestampFallbackStrategy | None = None,
    ) -> None:
        self._cache_dir = cache_dir.rstrip("/") or "/"
        self._fallback = fallback or TimestampFallbackStrategy()

    @property
    def cache_dir(self) -> str:
        return self._cache_dir

    def resolve_detailed(self, identifier: str) -> ResolvedKey:
        segment = _last_segment(identifier)
        if "." not in segment.strip("."):
            key = self._fallback.generate(identifier)
            logger.debug("No extension in %s, using synthetic key %s", identifier, key)
            return ResolvedKey(key=key, synthetic=True)
        return ResolvedKey(key=quote(segment, safe=_SAFE_CHARS))

    def resolve(self, identifier: str) -> str:
        """Return the cache key for identifier."""
        return self.resolve_detailed(identifier).key

    def path_for(self, key: str) -> str:
        """Full local path of a key."""
        return os.path.join(self._cache_dir, key)

    def local_path(self, identifier: str) -> str:
        return self.path_for(self.resolve(identifier))
