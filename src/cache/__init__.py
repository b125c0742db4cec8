"""Cache engine: key resolution, index, eviction and single-flight fetches."""

from vidcache.cache.cache_index import CacheIndex
from vidcache.cache.eviction import LOW_WATER_RATIO, EvictionManager
from vidcache.cache.fetch_coordinator import FetchCoordinator
from vidcache.cache.key_resolver import KeyResolver, ResolvedKey, TimestampFallbackStrategy
from vidcache.cache.models import CacheEntry, CacheStats, EvictionReport
from vidcache.cache.progress import ProgressChannel

__all__ = [
    "CacheIndex",
    "CacheEntry",
    "CacheStats",
    "EvictionManager",
    "EvictionReport",
    "FetchCoordinator",
    "KeyResolver",
    "LOW_WATER_RATIO",
    "ProgressChannel",
    "ResolvedKey",
    "TimestampFallbackStrategy",
]
