# tests/conftest.py — v2
"""Shared test fixtures for unit and integration tests.

Provides an in-memory storage gateway and orchestrator wiring.
No network and no real disk I/O unless a test opts into tmp_path.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import os
from dataclasses import dataclass

import pytest

from vidcache.api.orchestrator import CacheOrchestrator
from vidcache.cache.cache_index import CacheIndex
from vidcache.cache.eviction import EvictionManager
from vidcache.cache.fetch_coordinator import FetchCoordinator
from vidcache.cache.key_resolver import KeyResolver
from vidcache.config.settings import CacheConfiguration
from vidcache.core.errors import DownloadError, StorageError
from vidcache.core.sizes import MIB
from vidcache.storage.base_storage_gateway import BaseStorageGateway
from vidcache.storage.models import ByteProgressCallback, DownloadResult, FileInfo

BASE_DIR = "/data"
CACHE_DIR = "/data/videos"


@dataclass
class FakeFile:
    size: int
    mtime: float


class MemoryStorageGateway(BaseStorageGateway):
    """In-memory filesystem plus a scripted remote.

    remote maps URL -> payload size. A URL missing from remote, or listed in
    download_errors, fails the download. When gate is set, downloads wait on
    it before writing, which lets tests hold a transfer open.
    """

    def __init__(self, remote: dict[str, int] | None = None) -> None:
        self.files: dict[str, FakeFile] = {}
        self.dirs: set[str] = {"/"}
        self.remote: dict[str, int] = dict(remote or {})
        self.download_errors: dict[str, Exception] = {}
        self.download_calls: list[str] = []
        self.fail_stat: set[str] = set()
        self.fail_delete: set[str] = set()
        self.fail_list = False
        self.gate: asyncio.Event | None = None
        self.closed = False
        self._clock = itertools.count(1000)

    # --- test helpers ---

    def add_file(self, path: str, size: int, mtime: float | None = None) -> None:
        self._add_dirs(os.path.dirname(path))
        self.files[path] = FakeFile(size=size, mtime=mtime if mtime is not None else next(self._clock))

    def _add_dirs(self, path: str) -> None:
        while path and path not in self.dirs:
            self.dirs.add(path)
            path = os.path.dirname(path)

    def total_size(self, directory: str = CACHE_DIR) -> int:
        return sum(f.size for p, f in self.files.items() if os.path.dirname(p) == directory)

    # --- gateway ---

    async def stat(self, path: str) -> FileInfo:
        await asyncio.sleep(0)
        if path in self.fail_stat:
            raise StorageError(f"stat failed for {path}", path)
        if path in self.files:
            f = self.files[path]
            return FileInfo(exists=True, size=f.size, mtime=f.mtime)
        if path in self.dirs:
            return FileInfo(exists=True, is_directory=True, size=0, mtime=0.0)
        return FileInfo(exists=False)

    async def list_dir(self, path: str) -> list[str]:
        if self.fail_list:
            raise StorageError(f"list failed for {path}", path)
        children = {
            os.path.basename(p)
            for p in itertools.chain(self.files, self.dirs)
            if p != path and os.path.dirname(p) == path
        }
        return sorted(children)

    async def make_dir(self, path: str, recursive: bool = True) -> None:
        self._add_dirs(path)

    async def delete(self, path: str) -> None:
        if path in self.fail_delete:
            raise StorageError(f"delete failed for {path}", path)
        if path in self.files:
            del self.files[path]
        elif path in self.dirs:
            prefix = path.rstrip("/") + "/"
            self.files = {p: f for p, f in self.files.items() if not p.startswith(prefix)}
            self.dirs = {d for d in self.dirs if d != path and not d.startswith(prefix)}
        else:
            raise StorageError(f"no such path {path}", path)

    async def download_resumable(
        self,
        url: str,
        dest_path: str,
        on_progress: ByteProgressCallback | None = None,
    ) -> DownloadResult:
        self.download_calls.append(url)
        if self.gate is not None:
            await self.gate.wait()
        if url in self.download_errors:
            raise self.download_errors[url]
        if url not in self.remote:
            raise DownloadError("Download failed: HTTP 404", url)
        size = self.remote[url]
        for written in (size // 4, size // 2, size):
            if on_progress is not None:
                on_progress(written, size)
            await asyncio.sleep(0)
        self.add_file(dest_path, size)
        return DownloadResult(result_path=dest_path, bytes_written=size)

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def gateway() -> MemoryStorageGateway:
    return MemoryStorageGateway(
        remote={
            "https://cdn.example/a/video.mp4": 10 * MIB,
            "https://cdn.example/b/clip.webm": 4 * MIB,
        }
    )


@pytest.fixture
def cache_dir() -> str:
    return CACHE_DIR


@pytest.fixture
def resolver() -> KeyResolver:
    return KeyResolver(CACHE_DIR)


@pytest.fixture
def index(gateway: MemoryStorageGateway, resolver: KeyResolver) -> CacheIndex:
    return CacheIndex(gateway, resolver)


@pytest.fixture
def eviction(gateway: MemoryStorageGateway, index: CacheIndex) -> EvictionManager:
    return EvictionManager(gateway, index)


@pytest.fixture
def coordinator(
    gateway: MemoryStorageGateway,
    resolver: KeyResolver,
    index: CacheIndex,
    eviction: EvictionManager,
) -> FetchCoordinator:
    return FetchCoordinator(gateway, resolver, index, eviction, 500 * MIB)


@pytest.fixture
def make_orchestrator(gateway: MemoryStorageGateway):
    """Factory: orchestrator over the memory gateway rooted at BASE_DIR."""

    def _make(config: CacheConfiguration | None = None, **kwargs) -> CacheOrchestrator:
        return CacheOrchestrator(
            config=config or CacheConfiguration(),
            gateway=gateway,
            base_dir=BASE_DIR,
            **kwargs,
        )

    return _make


@pytest.fixture(autouse=True)
def _reset_vidcache_logger():
    """Undo setup_logging() so handlers never outlive a captured stream."""
    yield
    root = logging.getLogger("vidcache")
    for handler in root.handlers:
        handler.close()
    root.handlers.clear()
    root.setLevel(logging.NOTSET)
