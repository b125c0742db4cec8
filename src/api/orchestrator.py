# src/api/orchestrator.py — v1
"""Cache orchestrator: decide what to play now, fetch for next time.

State machine per request:
  Idle               no identifier; served_path is "".
  CachingDisabled    caching off globally or for this request; serve remote.
  CheckingCache      is_loading while the existence check runs.
  ServingCached      hit; serve the local path.
  ServingRemote      miss; serve the remote identifier at once and, with
                     preload enabled, fetch in the background. The served
                     path of this request is not swapped when the fetch
                     completes; the next request for it is a hit.
  Error              the check raised; error_message is set and the remote
                     identifier is served.

Every load() bumps a generation counter. Check results and background-fetch
updates tagged with an older generation are dropped, so a slow answer for a
superseded identifier never overwrites the state of the current one.
Background transfers themselves are never cancelled.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable
from typing import Any

from vidcache.api.models import FetchState, VideoRequest
from vidcache.cache.cache_index import CacheIndex
from vidcache.cache.eviction import EvictionManager
from vidcache.cache.fetch_coordinator import FetchCoordinator
from vidcache.cache.key_resolver import KeyResolver
from vidcache.cache.models import CacheStats, EvictionReport
from vidcache.config.settings import CacheConfiguration
from vidcache.core.errors import DownloadError
from vidcache.logging.context import set_request_context
from vidcache.storage.base_storage_gateway import BaseStorageGateway

logger = logging.getLogger(__name__)

StateListener = Callable[[FetchState], None]


class CacheOrchestrator:
    """Top-level entry point for a player: one instance per playback surface.

    Args:
        request: Initial request, processed by the first load().
        config: Caching policy; immutable for this instance.
        gateway: Storage gateway for filesystem and transport.
        base_dir: Directory under which config.cache_directory_name lives.
        resolver: Optional key resolver (e.g. with a pinned fallback clock).
    """

    def __init__(
        self,
        request: VideoRequest | None = None,
        config: CacheConfiguration | None = None,
        *,
        gateway: BaseStorageGateway,
        base_dir: str,
        resolver: KeyResolver | None = None,
    ) -> None:
        self._request = request or VideoRequest()
        self._config = config or CacheConfiguration()
        self._gateway = gateway
        self._cache_dir = os.path.join(base_dir, self._config.cache_directory_name)
        self._resolver = resolver or KeyResolver(self._cache_dir)
        self._index = CacheIndex(gateway, self._resolver)
        self._eviction = EvictionManager(gateway, self._index)
        self._coordinator = FetchCoordinator(
            gateway,
            self._resolver,
            self._index,
            self._eviction,
            self._config.max_cache_size_bytes,
        )
        self._state = FetchState()
        self._generation = 0
        self._tasks: set[asyncio.Task[Any]] = set()
        self._listeners: list[StateListener] = []

    # --- Observation ---

    @property
    def state(self) -> FetchState:
        """Snapshot of the current state."""
        return self._state.model_copy()

    @property
    def config(self) -> CacheConfiguration:
        return self._config

    @property
    def cache_dir(self) -> str:
        return self._cache_dir

    @property
    def coordinator(self) -> FetchCoordinator:
        return self._coordinator

    @property
    def index(self) -> CacheIndex:
        return self._index

    @property
    def resolver(self) -> KeyResolver:
        return self._resolver

    def add_listener(self, listener: StateListener) -> Callable[[], None]:
        """Call listener with a snapshot after every state change."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _update(self, **changes: Any) -> None:
        self._state = self._state.model_copy(update=changes)
        for listener in list(self._listeners):
            try:
                listener(self.state)
            except Exception:
                logger.warning("State listener failed", exc_info=True)

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    def _caching_enabled(self, request: VideoRequest) -> bool:
        return self._config.enable_caching and request.use_caching is not False

    # --- Main state machine ---

    async def load(self, request: VideoRequest | None = None) -> FetchState:
        """Process request (or the current one) and return the resulting state.

        Never blocks on a download: a miss returns the remote identifier.
        """
        if request is not None:
            self._request = request
        self._generation += 1
        generation = self._generation
        identifier = self._request.identifier
        set_request_context(identifier, generation)

        if not identifier:
            self._update(served_path="", is_loading=False, is_fetching=False)
            return self.state

        if not self._caching_enabled(self._request):
            logger.debug("Caching disabled, serving %s directly", identifier)
            self._update(
                served_path=identifier, is_loading=False, is_fetching=False, is_cached=False
            )
            return self.state

        self._update(is_loading=True, is_fetching=False, error_message=None)
        try:
            key = self._resolver.resolve(identifier)
            cached = await self._index.exists(key)
            if not self._is_current(generation):
                logger.debug("Discarding stale cache check for %s", identifier)
                return self.state

            if cached:
                logger.info("Serving %s from cache", key)
                self._update(served_path=self._resolver.path_for(key), is_cached=True)
            else:
                self._update(served_path=identifier, is_cached=False)
                if self._config.enable_preload:
                    self._spawn_fetch(key, identifier, generation)
        except Exception as exc:
            logger.error("Error resolving video source %s: %s", identifier, exc)
            if self._is_current(generation):
                self._update(
                    served_path=identifier,
                    error_message=str(exc) or "Unknown error",
                )
        finally:
            if self._is_current(generation):
                self._update(is_loading=False)

        return self.state

    def _spawn_fetch(self, key: str, identifier: str, generation: int) -> None:
        task = asyncio.create_task(self._background_fetch(key, identifier, generation))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _background_fetch(self, key: str, identifier: str, generation: int) -> str | None:
        def on_progress(percent: int) -> None:
            if self._is_current(generation):
                self._update(progress_percent=percent)

        if self._is_current(generation):
            self._update(is_fetching=True, progress_percent=0)
        try:
            return await self._coordinator.fetch(key, identifier, on_progress)
        except DownloadError as exc:
            if self._is_current(generation):
                self._update(error_message=str(exc))
            return None
        finally:
            if self._is_current(generation):
                self._update(is_fetching=False)

    # --- Operations ---

    async def preload_video(self, identifier: str) -> str | None:
        """Fetch identifier into the cache without touching served_path.

        Returns:
            Local path, or None if caching is disabled or the fetch failed.
        """
        if not self._config.enable_caching:
            return None

        key = self._resolver.resolve(identifier)
        self._update(is_fetching=True, progress_percent=0, error_message=None)
        try:
            path = await self._coordinator.fetch(
                key, identifier, lambda percent: self._update(progress_percent=percent)
            )
        except DownloadError as exc:
            self._update(error_message=str(exc))
            return None
        finally:
            self._update(is_fetching=False)

        current = self._request.identifier
        if current and self._resolver.local_path(current) == path:
            self._update(is_cached=True)
        return path

    async def clear_cache(self) -> None:
        """Delete the whole cache directory. Failures set error_message."""
        try:
            info = await self._gateway.stat(self._cache_dir)
            if info.exists:
                await self._gateway.delete(self._cache_dir)
            logger.info("Cleared cache directory %s", self._cache_dir)
            self._update(is_cached=False, progress_percent=0)
        except Exception as exc:
            logger.error("Error clearing cache: %s", exc)
            self._update(error_message="Failed to clear cache")

    async def stats(self) -> CacheStats:
        return await self._index.stats(max_bytes=self._config.max_cache_size_bytes)

    async def evict(self) -> EvictionReport:
        """Run an eviction pass now, outside the per-fetch pre-flight."""
        return await self._eviction.enforce_limit(
            self._cache_dir, self._config.max_cache_size_bytes
        )

    async def wait_idle(self) -> None:
        """Wait for every background fetch spawned so far."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        await self.wait_idle()
        await self._gateway.aclose()
