# src/cache/fetch_coordinator.py — v1
"""Single-flight fetches into the cache directory.

Each key has at most one transfer in flight. A second fetch() for a key that
is already downloading attaches to the running task and its progress channel
instead of starting another transfer; different keys download concurrently.

A fetch task runs to completion once started: callers await it through
asyncio.shield, so cancelling a caller does not cancel the transfer.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from vidcache.cache.cache_index import CacheIndex
from vidcache.cache.eviction import EvictionManager
from vidcache.cache.key_resolver import KeyResolver
from vidcache.cache.progress import ProgressCallback, ProgressChannel, to_percent
from vidcache.core.errors import DownloadError
from vidcache.logging.context import set_key_context
from vidcache.storage.base_storage_gateway import BaseStorageGateway

logger = logging.getLogger(__name__)


@dataclass
class _InFlightFetch:
    identifier: str
    channel: ProgressChannel = field(default_factory=ProgressChannel)
    task: asyncio.Task[str] | None = None


class FetchCoordinator:
    """Download remote identifiers into the cache, one transfer per key.

    Args:
        gateway: Storage gateway used for directory creation and download.
        resolver: Key resolver bound to the cache directory.
        index: Cache index used for the pre-download hit check.
        eviction: Eviction manager run before each download.
        max_cache_size_bytes: Ceiling handed to the eviction pass.
    """

    def __init__(
        self,
        gateway: BaseStorageGateway,
        resolver: KeyResolver,
        index: CacheIndex,
        eviction: EvictionManager,
        max_cache_size_bytes: int,
    ) -> None:
        self._gateway = gateway
        self._resolver = resolver
        self._index = index
        self._eviction = eviction
        self._max_cache_size_bytes = max_cache_size_bytes
        self._in_flight: dict[str, _InFlightFetch] = {}

    @property
    def in_flight(self) -> frozenset[str]:
        """Keys with a transfer currently running."""
        return frozenset(self._in_flight)

    def progress(self, key: str) -> ProgressChannel | None:
        """Polling handle for an in-flight fetch, None if nothing is running."""
        fetch = self._in_flight.get(key)
        return fetch.channel if fetch else None

    async def fetch(
        self,
        key: str,
        identifier: str,
        on_progress: ProgressCallback | None = None,
    ) -> str:
        """Ensure key is cached and return its local path.

        Raises:
            DownloadError: If directory setup or the download fails.
        """
        fetch = self._in_flight.get(key)
        if fetch is None:
            fetch = _InFlightFetch(identifier=identifier)
            fetch.task = asyncio.create_task(self._run(key, identifier, fetch.channel))
            fetch.task.add_done_callback(lambda task: self._finish(key, fetch, task))
            self._in_flight[key] = fetch
        else:
            logger.debug("Joining in-flight fetch for %s", key)

        unsubscribe = fetch.channel.subscribe(on_progress) if on_progress else None
        try:
            return await asyncio.shield(fetch.task)  # type: ignore[arg-type]
        finally:
            if unsubscribe is not None:
                unsubscribe()

    def _finish(self, key: str, fetch: _InFlightFetch, task: asyncio.Task[str]) -> None:
        if self._in_flight.get(key) is fetch:
            del self._in_flight[key]
        fetch.channel.close()
        # Mark the outcome retrieved even when every waiter was cancelled
        if not task.cancelled():
            task.exception()

    async def _run(self, key: str, identifier: str, channel: ProgressChannel) -> str:
        set_key_context(key)
        cache_dir = self._resolver.cache_dir
        path = self._resolver.path_for(key)
        try:
            await self._ensure_directory(cache_dir)
            await self._eviction.enforce_limit(cache_dir, self._max_cache_size_bytes)

            # Checked again here: another request may have finished this key
            if await self._index.exists(key):
                logger.info("Cache hit for %s, skipping download", key)
                channel.publish(100)
                return path

            logger.info("Downloading %s -> %s", identifier, path)
            result = await self._gateway.download_resumable(
                identifier,
                path,
                lambda written, expected: channel.publish(to_percent(written, expected)),
            )
        except DownloadError as exc:
            logger.error("Error downloading %s: %s", identifier, exc)
            raise
        except Exception as exc:
            logger.error("Error downloading %s: %s", identifier, exc)
            raise DownloadError(str(exc) or "Download failed", identifier) from exc

        channel.publish(100)
        logger.info("Cached %s (%d bytes)", key, result.bytes_written)
        return result.result_path

    async def _ensure_directory(self, cache_dir: str) -> None:
        info = await self._gateway.stat(cache_dir)
        if not info.exists:
            await self._gateway.make_dir(cache_dir, recursive=True)
