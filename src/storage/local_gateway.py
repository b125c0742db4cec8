# src/storage/local_gateway.py — v2
"""Local filesystem gateway with an httpx-backed resumable downloader.

Downloads stream into "<dest>.part" and are renamed into place only once the
body is complete, so a cache key never points at a truncated file. A leftover
part file is resumed with an HTTP Range request on the next attempt.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
from pathlib import Path

import aiofiles
import aiofiles.os
import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from vidcache.core.errors import DownloadError, StorageError
from vidcache.storage.base_storage_gateway import BaseStorageGateway
from vidcache.storage.models import (
    PART_SUFFIX,
    ByteProgressCallback,
    DownloadResult,
    FileInfo,
)

logger = logging.getLogger(__name__)

_MAX_ATTEMPTS = 3


def _stat_sync(path: str) -> FileInfo:
    p = Path(path)
    try:
        st = p.stat()
    except FileNotFoundError:
        return FileInfo(exists=False)
    return FileInfo(
        exists=True,
        is_directory=p.is_dir(),
        size=st.st_size,
        mtime=st.st_mtime,
    )


def _delete_sync(path: str) -> None:
    p = Path(path)
    if p.is_dir() and not p.is_symlink():
        shutil.rmtree(p)
    else:
        p.unlink()


class LocalStorageGateway(BaseStorageGateway):
    """Filesystem primitives on the local disk, downloads over HTTP."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
        chunk_size: int = 64 * 1024,
    ) -> None:
        """Initialize the gateway.

        Args:
            client: Shared HTTP client. If None, one is created and owned here.
            timeout: Per-request timeout (seconds) for an owned client.
            chunk_size: Read size when streaming response bodies.
        """
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            follow_redirects=True,
        )
        self._chunk_size = chunk_size

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # --- Filesystem ---

    async def stat(self, path: str) -> FileInfo:
        try:
            return await asyncio.to_thread(_stat_sync, path)
        except OSError as exc:
            raise StorageError(f"stat failed for {path}: {exc}", path) from exc

    async def list_dir(self, path: str) -> list[str]:
        try:
            return sorted(await asyncio.to_thread(os.listdir, path))
        except OSError as exc:
            raise StorageError(f"list failed for {path}: {exc}", path) from exc

    async def make_dir(self, path: str, recursive: bool = True) -> None:
        p = Path(path)
        try:
            await asyncio.to_thread(p.mkdir, parents=recursive, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"mkdir failed for {path}: {exc}", path) from exc

    async def delete(self, path: str) -> None:
        try:
            await asyncio.to_thread(_delete_sync, path)
        except OSError as exc:
            raise StorageError(f"delete failed for {path}: {exc}", path) from exc

    # --- Transport ---

    async def download_resumable(
        self,
        url: str,
        dest_path: str,
        on_progress: ByteProgressCallback | None = None,
    ) -> DownloadResult:
        part_path = dest_path + PART_SUFFIX
        try:
            written, resumed_from = await self._download_to_part(
                url, part_path, on_progress
            )
            await aiofiles.os.replace(part_path, dest_path)
        except httpx.HTTPStatusError as exc:
            raise DownloadError(
                f"Download failed: HTTP {exc.response.status_code}", url
            ) from exc
        except httpx.HTTPError as exc:
            raise DownloadError(f"Download failed: {exc}", url) from exc
        except OSError as exc:
            raise DownloadError(f"Could not write {dest_path}: {exc}", url) from exc

        logger.debug(
            "Downloaded %s -> %s (%d bytes, resumed from %d)",
            url, dest_path, written, resumed_from,
        )
        return DownloadResult(
            result_path=dest_path, bytes_written=written, resumed_from=resumed_from
        )

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(_MAX_ATTEMPTS),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        reraise=True,
    )
    async def _download_to_part(
        self,
        url: str,
        part_path: str,
        on_progress: ByteProgressCallback | None,
    ) -> tuple[int, int]:
        """Stream url into part_path, appending to any bytes already there.

        Returns:
            (total bytes in the part file, offset the transfer resumed from).
        """
        offset = 0
        if await aiofiles.os.path.exists(part_path):
            offset = await aiofiles.os.path.getsize(part_path)
        headers = {"Range": f"bytes={offset}-"} if offset else {}

        async with self._client.stream("GET", url, headers=headers) as response:
            if offset and response.status_code == 416:
                # Part file no longer matches the remote; start over
                logger.info("Range rejected for %s, restarting download", url)
                await aiofiles.os.remove(part_path)
                return await self._download_to_part(url, part_path, on_progress)

            response.raise_for_status()
            if offset and response.status_code != 206:
                logger.info("Server ignored range for %s, restarting", url)
                offset = 0

            length = int(response.headers.get("Content-Length") or 0)
            expected = offset + length if length else 0
            written = offset
            mode = "ab" if offset else "wb"
            async with aiofiles.open(part_path, mode) as fh:
                async for chunk in response.aiter_bytes(self._chunk_size):
                    await fh.write(chunk)
                    written += len(chunk)
                    if on_progress is not None:
                        on_progress(written, expected)

        return written, offset
