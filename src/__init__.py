"""vidcache: local disk cache for remote video files."""

from vidcache.version import __version__

__all__ = ["__version__"]
