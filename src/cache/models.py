# src/cache/models.py — v2
"""Cache domain models: CacheEntry, CacheStats, EvictionReport."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class CacheEntry(BaseModel):
    """One file (or stray directory) under the cache directory."""

    model_config = ConfigDict(frozen=True)

    name: str
    path: str
    size: int = 0
    mtime: float | None = None
    is_directory: bool = False


class CacheStats(BaseModel):
    """Snapshot of cache usage."""

    directory: str
    entry_count: int = 0
    total_bytes: int = 0
    max_bytes: int | None = None

    @property
    def usage_ratio(self) -> float | None:
        if not self.max_bytes:
            return None
        return self.total_bytes / self.max_bytes


class EvictionReport(BaseModel):
    """What one enforce_limit pass saw and did."""

    triggered: bool = False
    total_before: int = 0
    total_after: int = 0
    target_bytes: int = 0
    deleted: list[str] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)

    @property
    def bytes_freed(self) -> int:
        return self.total_before - self.total_after
