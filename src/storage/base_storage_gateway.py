# src/storage/base_storage_gateway.py — v1
"""Abstract storage gateway interface.

Everything the cache engine needs from the filesystem and the transport:
stat, list, create directory, delete, and a resumable download that reports
byte progress.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from vidcache.storage.models import ByteProgressCallback, DownloadResult, FileInfo


class BaseStorageGateway(ABC):
    """Unified interface for cache storage backends."""

    @abstractmethod
    async def stat(self, path: str) -> FileInfo:
        """Return existence, type, size and mtime for a path."""

    @abstractmethod
    async def list_dir(self, path: str) -> list[str]:
        """List entry names of a directory."""

    @abstractmethod
    async def make_dir(self, path: str, recursive: bool = True) -> None:
        """Create a directory (idempotent when it already exists)."""

    @abstractmethod
    async def delete(self, path: str) -> None:
        """Delete a file or a whole directory tree."""

    @abstractmethod
    async def download_resumable(
        self,
        url: str,
        dest_path: str,
        on_progress: ByteProgressCallback | None = None,
    ) -> DownloadResult:
        """Download url into dest_path, reporting byte progress.

        Raises:
            DownloadError: On any transport fault.
        """

    async def aclose(self) -> None:
        """Release transport resources. Default: nothing to release."""
