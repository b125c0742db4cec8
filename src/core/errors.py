# src/core/errors.py — v1
"""Error taxonomy for the video cache.

StorageError covers stat/list/mkdir/delete faults and is always recoverable:
callers log it and take the conservative branch. DownloadError covers
transport faults during a fetch and is surfaced to the orchestrator state.
"""

from __future__ import annotations


class VidCacheError(Exception):
    """Base class for all vidcache errors."""


class StorageError(VidCacheError):
    """A filesystem primitive (stat, list, mkdir, delete) failed."""

    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__(message)
        self.path = path


class DownloadError(VidCacheError):
    """Fetching a remote resource into the cache failed."""

    def __init__(self, message: str = "Download failed", identifier: str | None = None) -> None:
        super().__init__(message)
        self.identifier = identifier
