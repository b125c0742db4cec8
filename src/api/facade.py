# src/api/facade.py — v2
"""Public API facade: build a ready-to-use orchestrator from settings.

Usage:
    from vidcache.api.facade import create_orchestrator
    orchestrator = create_orchestrator(VideoRequest(identifier=url))
    state = await orchestrator.load()
    ...
    await orchestrator.aclose()
"""

from __future__ import annotations

import logging

from vidcache.api.models import VideoRequest
from vidcache.api.orchestrator import CacheOrchestrator
from vidcache.config.settings import CacheConfiguration, Settings
from vidcache.storage.base_storage_gateway import BaseStorageGateway
from vidcache.storage.local_gateway import LocalStorageGateway

logger = logging.getLogger(__name__)


def create_gateway(settings: Settings) -> BaseStorageGateway:
    """Local disk + HTTP gateway tuned by settings."""
    return LocalStorageGateway(
        timeout=settings.download_timeout,
        chunk_size=settings.download_chunk_size,
    )


def create_orchestrator(
    request: VideoRequest | None = None,
    settings: Settings | None = None,
    gateway: BaseStorageGateway | None = None,
    config: CacheConfiguration | None = None,
) -> CacheOrchestrator:
    """Wire an orchestrator with its index, eviction and fetch coordinator.

    Args:
        request: Initial playback request.
        settings: Global settings. Loaded from the environment if None.
        gateway: Storage gateway. A LocalStorageGateway if None.
        config: Caching policy. Derived from settings if None.

    Returns:
        CacheOrchestrator rooted at settings.cache_root.
    """
    settings = settings or Settings()
    config = config or settings.cache_configuration()
    gateway = gateway or create_gateway(settings)

    logger.debug(
        "Creating orchestrator: root=%s, dir=%s, max=%d bytes, preload=%s",
        settings.cache_root, config.cache_directory_name,
        config.max_cache_size_bytes, config.enable_preload,
    )
    return CacheOrchestrator(
        request,
        config,
        gateway=gateway,
        base_dir=str(settings.cache_root),
    )
