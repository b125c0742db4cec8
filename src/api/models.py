# src/api/models.py — v2
"""Orchestrator-facing models: VideoRequest, FetchState."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class VideoRequest(BaseModel):
    """A playback request: what to play and whether it may be cached.

    use_caching=None follows the orchestrator configuration; False opts
    this request out regardless of configuration.
    """

    model_config = ConfigDict(frozen=True)

    identifier: str | None = None
    use_caching: bool | None = None


class FetchState(BaseModel):
    """Observable state of one orchestrator, reflecting its latest request.

    served_path is always playable: the local cache path, the remote
    identifier, or "" when no identifier was supplied.
    """

    served_path: str = ""
    is_loading: bool = False
    is_fetching: bool = False
    error_message: str | None = None
    progress_percent: int = Field(default=0, ge=0, le=100)
    is_cached: bool = False
