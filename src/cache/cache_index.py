# src/cache/cache_index.py — v2
"""Presence checks and entry enumeration over the cache directory.

The index keeps no state of its own: every answer is a fresh query against
the storage gateway, so files written or evicted by concurrent fetches are
always reflected.
"""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator

from vidcache.cache.key_resolver import KeyResolver
from vidcache.cache.models import CacheEntry, CacheStats
from vidcache.core.errors import StorageError
from vidcache.storage.base_storage_gateway import BaseStorageGateway
from vidcache.storage.models import PART_SUFFIX

logger = logging.getLogger(__name__)


class CacheIndex:
    """Read-side view of the cache directory."""

    def __init__(self, gateway: BaseStorageGateway, resolver: KeyResolver) -> None:
        self._gateway = gateway
        self._resolver = resolver

    @property
    def directory(self) -> str:
        return self._resolver.cache_dir

    async def exists(self, key: str) -> bool:
        """True if key has a file in the cache.

        Storage faults count as "not present": the caller falls back to the
        network instead of failing.
        """
        path = self._resolver.path_for(key)
        try:
            info = await self._gateway.stat(path)
        except Exception as exc:
            logger.warning("Error checking cache for %s: %s", key, exc)
            return False
        return info.exists and not info.is_directory

    async def list_entries(self, directory: str | None = None) -> AsyncIterator[CacheEntry]:
        """Yield one CacheEntry per directory member.

        The sequence is lazy and single-use; iterate again to re-query
        storage. A missing directory yields nothing. Members that vanish or
        fail to stat between listing and stat are skipped, as are partial
        downloads (PART_SUFFIX), which are resume data and never entries.

        Raises:
            StorageError: If the directory itself cannot be listed.
        """
        directory = directory or self.directory
        info = await self._gateway.stat(directory)
        if not info.exists:
            return

        for name in await self._gateway.list_dir(directory):
            if name.endswith(PART_SUFFIX):
                continue
            path = os.path.join(directory, name)
            try:
                member = await self._gateway.stat(path)
            except StorageError as exc:
                logger.warning("Skipping unreadable cache entry %s: %s", path, exc)
                continue
            if not member.exists:
                continue
            yield CacheEntry(
                name=name,
                path=path,
                size=member.size or 0,
                mtime=member.mtime,
                is_directory=member.is_directory,
            )

    async def stats(self, max_bytes: int | None = None) -> CacheStats:
        """Count regular files and their total size."""
        stats = CacheStats(directory=self.directory, max_bytes=max_bytes)
        try:
            async for entry in self.list_entries():
                if entry.is_directory:
                    continue
                stats.entry_count += 1
                stats.total_bytes += entry.size
        except StorageError as exc:
            logger.warning("Could not compute cache stats: %s", exc)
        return stats
