# src/main.py — v2
"""CLI entry point — resolve, fetch, play, stats, evict, clear commands.

Usage:
    vidcache resolve <url>
    vidcache fetch <url>
    vidcache play <url> [--no-cache] [--preload]
    vidcache stats
    vidcache evict
    vidcache clear
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import TYPE_CHECKING, Any

from vidcache.version import __version__

if TYPE_CHECKING:
    from vidcache.api.models import FetchState
    from vidcache.api.orchestrator import CacheOrchestrator
    from vidcache.config.settings import Settings

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    try:
        from vidcache.config.settings import load_settings

        settings = load_settings()
        _setup_logging(settings, args.verbose)
        return asyncio.run(args.func(args, settings))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except Exception as exc:
        logger.error("Fatal error: %s", exc, exc_info=args.verbose)
        return 1


def _build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="vidcache",
        description=f"vidcache v{__version__} - local disk cache for remote videos",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command")

    p_resolve = subparsers.add_parser(
        "resolve", help="Show the cache key and local path for a URL",
    )
    p_resolve.add_argument("url", help="Remote video URL")
    p_resolve.set_defaults(func=_cmd_resolve)

    p_fetch = subparsers.add_parser(
        "fetch", help="Download a URL into the cache",
    )
    p_fetch.add_argument("url", help="Remote video URL")
    p_fetch.set_defaults(func=_cmd_fetch)

    p_play = subparsers.add_parser(
        "play", help="Print the path a player should open for a URL",
    )
    p_play.add_argument("url", help="Remote video URL")
    p_play.add_argument(
        "--no-cache", action="store_true",
        help="Bypass the cache for this request",
    )
    p_play.add_argument(
        "--preload", action="store_true",
        help="Fetch into the cache in the background on a miss",
    )
    p_play.set_defaults(func=_cmd_play)

    p_stats = subparsers.add_parser("stats", help="Show cache usage")
    p_stats.set_defaults(func=_cmd_stats)

    p_evict = subparsers.add_parser(
        "evict", help="Run an eviction pass against the size ceiling",
    )
    p_evict.set_defaults(func=_cmd_evict)

    p_clear = subparsers.add_parser("clear", help="Delete the whole cache directory")
    p_clear.set_defaults(func=_cmd_clear)

    return parser


def _orchestrator(settings: Settings, **config_overrides: Any) -> CacheOrchestrator:
    from vidcache.api.facade import create_orchestrator

    config = settings.cache_configuration()
    if config_overrides:
        config = config.model_copy(update=config_overrides)
    return create_orchestrator(settings=settings, config=config)


async def _cmd_resolve(args: argparse.Namespace, settings: Settings) -> int:
    """Print key, path and whether the key is reproducible."""
    orchestrator = _orchestrator(settings)
    try:
        resolver = orchestrator.resolver
        resolved = resolver.resolve_detailed(args.url)
        cached = await orchestrator.index.exists(resolved.key)
        print(f"  Key:      {resolved.key}")
        print(f"  Path:     {resolver.path_for(resolved.key)}")
        print(f"  Cached:   {cached}")
        if resolved.synthetic:
            print("  Note:     URL has no extension; key is time-based and will not repeat")
    finally:
        await orchestrator.aclose()
    return 0


async def _cmd_fetch(args: argparse.Namespace, settings: Settings) -> int:
    """Download into the cache, logging progress in 10% steps."""
    orchestrator = _orchestrator(settings)
    last_logged = -10

    def report(state: FetchState) -> None:
        nonlocal last_logged
        if state.progress_percent >= last_logged + 10:
            last_logged = state.progress_percent
            logger.info("Progress: %d%%", state.progress_percent)

    orchestrator.add_listener(report)
    try:
        path = await orchestrator.preload_video(args.url)
    finally:
        await orchestrator.aclose()

    if path is None:
        error = orchestrator.state.error_message or "caching is disabled"
        logger.error("Fetch failed: %s", error)
        return 1
    print(path)
    return 0


async def _cmd_play(args: argparse.Namespace, settings: Settings) -> int:
    """Run the cache decision for a URL and print the served path."""
    from vidcache.api.models import VideoRequest

    overrides = {"enable_preload": True} if args.preload else {}
    orchestrator = _orchestrator(settings, **overrides)
    try:
        state = await orchestrator.load(
            VideoRequest(identifier=args.url, use_caching=False if args.no_cache else None)
        )
        print(state.served_path)
        if state.error_message:
            logger.warning("Serving remote after error: %s", state.error_message)
        # Let a background fetch finish before the process exits
        await orchestrator.wait_idle()
    finally:
        await orchestrator.aclose()
    return 0


async def _cmd_stats(args: argparse.Namespace, settings: Settings) -> int:
    """Display cache usage."""
    from vidcache.core.sizes import format_size

    orchestrator = _orchestrator(settings)
    try:
        stats = await orchestrator.stats()
    finally:
        await orchestrator.aclose()

    print(f"\nCache {stats.directory}:")
    print(f"  Files:  {stats.entry_count}")
    print(f"  Size:   {format_size(stats.total_bytes)}")
    if stats.max_bytes:
        print(f"  Limit:  {format_size(stats.max_bytes)} ({stats.usage_ratio:.0%} used)")
    return 0


async def _cmd_evict(args: argparse.Namespace, settings: Settings) -> int:
    """Run one eviction pass now."""
    from vidcache.core.sizes import format_size

    orchestrator = _orchestrator(settings)
    try:
        report = await orchestrator.evict()
    finally:
        await orchestrator.aclose()

    if not report.triggered:
        print(f"Cache within limit ({format_size(report.total_before)})")
        return 0
    print(f"Evicted {len(report.deleted)} files, freed {format_size(report.bytes_freed)}")
    if report.failed:
        print(f"  Could not delete {len(report.failed)} files")
        return 1
    return 0


async def _cmd_clear(args: argparse.Namespace, settings: Settings) -> int:
    """Delete the cache directory."""
    orchestrator = _orchestrator(settings)
    try:
        await orchestrator.clear_cache()
    finally:
        await orchestrator.aclose()

    if orchestrator.state.error_message:
        logger.error(orchestrator.state.error_message)
        return 1
    print(f"Cleared {orchestrator.cache_dir}")
    return 0


def _setup_logging(settings: Settings, verbose: bool) -> None:
    """Configure logging for CLI usage."""
    from vidcache.logging.logger import setup_logging

    setup_logging(
        level="DEBUG" if verbose else settings.log_level,
        log_format=settings.log_format,
        log_file=settings.log_file,
        rotation=settings.log_rotation,
        retention=settings.log_retention,
    )
    # Quiet noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


if __name__ == "__main__":
    sys.exit(main())
