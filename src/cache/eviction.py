# src/cache/eviction.py — v2
"""LRU eviction by modification time.

When the regular files in the cache directory add up to more than the
ceiling, the oldest (by mtime) are deleted until usage is at or below the
low-water mark (80% of the ceiling), so the next write does not immediately
trigger another pass. Reads are not tracked; a file's age is its last write.

Runs without a lock. Files written by concurrent fetches during a pass are
not in the snapshot, so a pass can under- or over-evict slightly.
"""

from __future__ import annotations

import logging

from vidcache.cache.cache_index import CacheIndex
from vidcache.cache.models import CacheEntry, EvictionReport
from vidcache.core.sizes import format_size
from vidcache.storage.base_storage_gateway import BaseStorageGateway

logger = logging.getLogger(__name__)

LOW_WATER_RATIO = 0.8


class EvictionManager:
    """Keep a cache directory under its size ceiling."""

    def __init__(
        self,
        gateway: BaseStorageGateway,
        index: CacheIndex,
        low_water_ratio: float = LOW_WATER_RATIO,
    ) -> None:
        self._gateway = gateway
        self._index = index
        self._low_water_ratio = low_water_ratio

    async def enforce_limit(
        self, directory_path: str, max_size_bytes: int
    ) -> EvictionReport:
        """Delete oldest files until usage <= low-water mark.

        Never raises: listing faults abort the pass with a warning, deletion
        faults skip that file and the pass continues with the next one.
        """
        target = int(max_size_bytes * self._low_water_ratio)
        report = EvictionReport(target_bytes=target)

        try:
            files = [
                entry
                async for entry in self._index.list_entries(directory_path)
                if not entry.is_directory
            ]
        except Exception as exc:
            logger.warning("Error managing cache size: %s", exc)
            return report

        total = sum(entry.size for entry in files)
        report.total_before = report.total_after = total
        if total <= max_size_bytes:
            return report

        report.triggered = True
        logger.info(
            "Cache at %s exceeds %s, evicting down to %s",
            format_size(total), format_size(max_size_bytes), format_size(target),
        )

        for entry in self._candidates(files):
            if total <= target:
                break
            try:
                await self._gateway.delete(entry.path)
            except Exception as exc:
                logger.warning("Could not evict %s: %s", entry.path, exc)
                report.failed.append(entry.path)
                continue
            total -= entry.size
            report.deleted.append(entry.path)
            logger.debug("Evicted %s (%s)", entry.name, format_size(entry.size))

        report.total_after = total
        if total > target:
            logger.warning(
                "Eviction stopped at %s, above target %s",
                format_size(total), format_size(target),
            )
        return report

    @staticmethod
    def _candidates(files: list[CacheEntry]) -> list[CacheEntry]:
        """Oldest first. Files without an mtime are never evicted."""
        dated = [entry for entry in files if entry.mtime is not None]
        return sorted(dated, key=lambda entry: entry.mtime or 0.0)
