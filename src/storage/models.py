# src/storage/models.py — v2
"""Storage gateway data models: FileInfo, DownloadResult."""

from __future__ import annotations

from collections.abc import Callable

from pydantic import BaseModel

# Suffix of in-progress downloads; such files are resume data, not entries.
PART_SUFFIX = ".part"

# (bytes_written, bytes_expected); bytes_expected is 0 when unknown.
ByteProgressCallback = Callable[[int, int], None]


class FileInfo(BaseModel):
    """Result of a stat call. size/mtime are None for missing paths."""

    exists: bool
    is_directory: bool = False
    size: int | None = None
    mtime: float | None = None


class DownloadResult(BaseModel):
    """Outcome of a completed resumable download."""

    result_path: str
    bytes_written: int = 0
    resumed_from: int = 0
