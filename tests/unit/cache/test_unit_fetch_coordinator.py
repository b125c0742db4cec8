# tests/unit/cache/test_unit_fetch_coordinator.py — v1
"""Tests for cache/fetch_coordinator.py — single-flight downloads."""

from __future__ import annotations

import asyncio

import pytest

from vidcache.cache.eviction import EvictionManager
from vidcache.cache.fetch_coordinator import FetchCoordinator
from vidcache.core.errors import DownloadError, StorageError
from vidcache.core.sizes import MIB

VIDEO = "https://cdn.example/a/video.mp4"
CLIP = "https://cdn.example/b/clip.webm"


class TestFetch:
    @pytest.mark.asyncio
    async def test_downloads_and_returns_path(self, coordinator, gateway, index, cache_dir):
        path = await coordinator.fetch("video.mp4", VIDEO)
        assert path == f"{cache_dir}/video.mp4"
        assert gateway.download_calls == [VIDEO]
        assert await index.exists("video.mp4") is True

    @pytest.mark.asyncio
    async def test_creates_cache_directory(self, coordinator, gateway, cache_dir):
        assert cache_dir not in gateway.dirs
        await coordinator.fetch("video.mp4", VIDEO)
        assert cache_dir in gateway.dirs

    @pytest.mark.asyncio
    async def test_cache_hit_skips_download(self, coordinator, gateway, cache_dir):
        gateway.add_file(f"{cache_dir}/video.mp4", 10)
        seen: list[int] = []
        path = await coordinator.fetch("video.mp4", VIDEO, seen.append)
        assert path == f"{cache_dir}/video.mp4"
        assert gateway.download_calls == []
        assert seen == [100]

    @pytest.mark.asyncio
    async def test_progress_relayed(self, coordinator):
        seen: list[int] = []
        await coordinator.fetch("video.mp4", VIDEO, seen.append)
        assert seen == [25, 50, 100]

    @pytest.mark.asyncio
    async def test_download_error_propagates(self, coordinator, gateway, index):
        gateway.download_errors[VIDEO] = DownloadError("connection reset", VIDEO)
        with pytest.raises(DownloadError, match="connection reset"):
            await coordinator.fetch("video.mp4", VIDEO)
        assert await index.exists("video.mp4") is False
        assert coordinator.in_flight == frozenset()

    @pytest.mark.asyncio
    async def test_other_errors_translated(self, coordinator, gateway):
        gateway.download_errors[VIDEO] = OSError("disk full")
        with pytest.raises(DownloadError, match="disk full") as exc_info:
            await coordinator.fetch("video.mp4", VIDEO)
        assert exc_info.value.identifier == VIDEO

    @pytest.mark.asyncio
    async def test_directory_failure_translated(self, coordinator, gateway, cache_dir):
        gateway.fail_stat.add(cache_dir)
        with pytest.raises(DownloadError):
            await coordinator.fetch("video.mp4", VIDEO)
        assert gateway.download_calls == []

    @pytest.mark.asyncio
    async def test_eviction_runs_before_download(self, gateway, resolver, index, cache_dir):
        coordinator = FetchCoordinator(
            gateway, resolver, index, EvictionManager(gateway, index), 100 * MIB
        )
        for i in range(5):
            gateway.add_file(f"{cache_dir}/old{i}.mp4", 30 * MIB, mtime=float(i))
        await coordinator.fetch("video.mp4", VIDEO)
        assert f"{cache_dir}/old0.mp4" not in gateway.files
        assert f"{cache_dir}/video.mp4" in gateway.files


class TestSingleFlight:
    @pytest.mark.asyncio
    async def test_concurrent_same_key_downloads_once(self, coordinator, gateway):
        gateway.gate = asyncio.Event()
        first = asyncio.create_task(coordinator.fetch("video.mp4", VIDEO))
        second = asyncio.create_task(coordinator.fetch("video.mp4", VIDEO))
        await asyncio.sleep(0.01)
        assert coordinator.in_flight == frozenset({"video.mp4"})
        gateway.gate.set()
        results = await asyncio.gather(first, second)
        assert results[0] == results[1]
        assert gateway.download_calls == [VIDEO]
        assert coordinator.in_flight == frozenset()

    @pytest.mark.asyncio
    async def test_joiner_sees_same_failure(self, coordinator, gateway):
        gateway.gate = asyncio.Event()
        gateway.download_errors[VIDEO] = DownloadError("boom", VIDEO)
        first = asyncio.create_task(coordinator.fetch("video.mp4", VIDEO))
        second = asyncio.create_task(coordinator.fetch("video.mp4", VIDEO))
        await asyncio.sleep(0.01)
        gateway.gate.set()
        results = await asyncio.gather(first, second, return_exceptions=True)
        assert all(isinstance(r, DownloadError) for r in results)
        assert gateway.download_calls == [VIDEO]

    @pytest.mark.asyncio
    async def test_different_keys_run_concurrently(self, coordinator, gateway):
        gateway.gate = asyncio.Event()
        a = asyncio.create_task(coordinator.fetch("video.mp4", VIDEO))
        b = asyncio.create_task(coordinator.fetch("clip.webm", CLIP))
        await asyncio.sleep(0.01)
        assert coordinator.in_flight == frozenset({"video.mp4", "clip.webm"})
        assert sorted(gateway.download_calls) == sorted([VIDEO, CLIP])
        gateway.gate.set()
        await asyncio.gather(a, b)

    @pytest.mark.asyncio
    async def test_joiner_receives_progress(self, coordinator, gateway):
        gateway.gate = asyncio.Event()
        first_seen: list[int] = []
        second_seen: list[int] = []
        first = asyncio.create_task(coordinator.fetch("video.mp4", VIDEO, first_seen.append))
        second = asyncio.create_task(coordinator.fetch("video.mp4", VIDEO, second_seen.append))
        await asyncio.sleep(0.01)
        gateway.gate.set()
        await asyncio.gather(first, second)
        assert first_seen[-1] == 100
        assert second_seen[-1] == 100

    @pytest.mark.asyncio
    async def test_progress_handle_polling(self, coordinator, gateway):
        gateway.gate = asyncio.Event()
        assert coordinator.progress("video.mp4") is None
        task = asyncio.create_task(coordinator.fetch("video.mp4", VIDEO))
        await asyncio.sleep(0.01)
        channel = coordinator.progress("video.mp4")
        assert channel is not None
        assert channel.latest == 0
        gateway.gate.set()
        await task
        assert channel.latest == 100
        assert channel.closed is True

    @pytest.mark.asyncio
    async def test_cancelled_caller_does_not_cancel_transfer(self, coordinator, gateway, index):
        gateway.gate = asyncio.Event()
        caller = asyncio.create_task(coordinator.fetch("video.mp4", VIDEO))
        await asyncio.sleep(0.01)
        caller.cancel()
        with pytest.raises(asyncio.CancelledError):
            await caller
        gateway.gate.set()
        for _ in range(20):
            await asyncio.sleep(0)
            if not coordinator.in_flight:
                break
        assert await index.exists("video.mp4") is True

    @pytest.mark.asyncio
    async def test_sequential_fetch_after_completion_is_hit(self, coordinator, gateway):
        await coordinator.fetch("video.mp4", VIDEO)
        await coordinator.fetch("video.mp4", VIDEO)
        assert gateway.download_calls == [VIDEO]


def test_storage_error_is_not_download_error():
    assert not issubclass(StorageError, DownloadError)
