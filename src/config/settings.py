# src/config/settings.py — v1
"""Typed configuration loaded from environment / .env via pydantic-settings.

Settings is the deployment-level source of truth (paths, logging, transport
tuning). CacheConfiguration is the immutable per-orchestrator policy derived
from it, or built directly by embedding code.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from vidcache.core.sizes import MIB

DEFAULT_MAX_CACHE_SIZE_MB = 500


class ConfigurationError(Exception):
    """Raised when configuration is internally inconsistent."""


def _check_directory_name(name: str) -> str | None:
    """Return an error message if name is not a single safe path segment."""
    if not name.strip():
        return "cache_directory_name must not be empty"
    if name in {".", ".."}:
        return f"cache_directory_name must not be {name!r}"
    if "/" in name or "\\" in name:
        return "cache_directory_name must be a single path segment"
    return None


class CacheConfiguration(BaseModel):
    """Caching policy for one orchestrator instance. Immutable."""

    model_config = ConfigDict(frozen=True)

    enable_caching: bool = True
    cache_directory_name: str = "videos"
    max_cache_size_bytes: int = Field(default=DEFAULT_MAX_CACHE_SIZE_MB * MIB, gt=0)
    enable_preload: bool = False

    @model_validator(mode="after")
    def validate_directory_name(self) -> CacheConfiguration:
        error = _check_directory_name(self.cache_directory_name)
        if error:
            raise ConfigurationError(error)
        return self


class Settings(BaseSettings):
    """Application settings loaded from VIDCACHE_* variables and .env."""

    model_config = SettingsConfigDict(
        env_prefix="VIDCACHE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === Cache ===
    cache_enabled: bool = True
    cache_directory_name: str = "videos"
    cache_base_dir: Path = Path("~/.vidcache")
    max_cache_size_mb: int = DEFAULT_MAX_CACHE_SIZE_MB
    enable_preload: bool = False

    # === Download transport ===
    download_timeout: float = 30.0
    download_chunk_size: int = 64 * 1024

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "text"
    log_file: Path | None = None
    log_rotation: str = "10MB"
    log_retention: int = 5

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Collect every inconsistency and report them together."""
        errors: list[str] = []

        directory_error = _check_directory_name(self.cache_directory_name)
        if directory_error:
            errors.append(directory_error)

        if self.max_cache_size_mb <= 0:
            errors.append("max_cache_size_mb must be > 0")

        if self.download_chunk_size <= 0:
            errors.append("download_chunk_size must be > 0")

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self

    # --- Helpers ---

    @property
    def cache_root(self) -> Path:
        """Expanded base directory under which cache directories live."""
        return self.cache_base_dir.expanduser()

    def cache_configuration(self) -> CacheConfiguration:
        """Build the immutable per-orchestrator policy from these settings."""
        return CacheConfiguration(
            enable_caching=self.cache_enabled,
            cache_directory_name=self.cache_directory_name,
            max_cache_size_bytes=self.max_cache_size_mb * MIB,
            enable_preload=self.enable_preload,
        )


def load_settings(**overrides: object) -> Settings:
    """Load settings from the environment with optional overrides.

    Args:
        **overrides: Field-level overrides (for testing or CLI flags).

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]
