# src/main.py — v2
"""CLI entry point — resolve, artist, clear-local commands.

Usage:
    artcache resolve --title T --artist A [--narration N --confidence C]
    artcache artist <name> [--introduction TEXT]
    artcache clear-local
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import TYPE_CHECKING

from artcache.version import __version__

if TYPE_CHECKING:
    from artcache.config.settings import Settings

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    from pydantic import ValidationError

    from artcache.config.settings import ConfigurationError, Settings

    try:
        settings = Settings()
    except (ConfigurationError, ValidationError) as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2

    _setup_logging(settings, args.verbose)

    try:
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
        prog="artcache",
        description=f"artcache v{__version__}: shared artwork knowledge cache",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging (text format)",
    )

    subparsers = parser.add_subparsers(dest="command")

    # --- resolve ---
    p_resolve = subparsers.add_parser(
        "resolve", help="Resolve cached narration for an artwork",
    )
    p_resolve.add_argument("--title", required=True, help="Artwork title")
    p_resolve.add_argument("--artist", required=True, help="Artist name")
    p_resolve.add_argument("--year", default=None, help="Year (display only)")
    p_resolve.add_argument(
        "--narration", default=None,
        help="Freshly generated narration to offer on a miss",
    )
    p_resolve.add_argument(
        "--confidence", type=float, default=None,
        help="Recognition confidence of the narration (0-1); without it the narration is never saved",
    )
    p_resolve.add_argument(
        "--summary", default="", help="Short summary of the narration",
    )
    p_resolve.add_argument(
        "--artist-intro", default=None,
        help="Candidate artist introduction",
    )
    p_resolve.set_defaults(func=_cmd_resolve)

    # --- artist ---
    p_artist = subparsers.add_parser(
        "artist", help="Resolve an artist introduction",
    )
    p_artist.add_argument("name", help="Artist name")
    p_artist.add_argument(
        "--introduction", default=None,
        help="Candidate introduction, backfilled when the store has none",
    )
    p_artist.set_defaults(func=_cmd_artist)

    # --- clear-local ---
    p_clear = subparsers.add_parser(
        "clear-local", help="Delete the device-local cache",
    )
    p_clear.set_defaults(func=_cmd_clear_local)

    return parser


async def _cmd_resolve(args: argparse.Namespace, settings: Settings) -> int:
    """Resolve one artwork and print it as JSON."""
    from artcache.api.facade import build_service
    from artcache.core.models import NarrationCandidate

    candidate = None
    if args.narration:
        candidate = NarrationCandidate(
            title=args.title,
            artist=args.artist,
            year=args.year,
            narration=args.narration,
            summary=args.summary,
            confidence=args.confidence,
            artist_introduction=args.artist_intro,
        )

    async with build_service(settings) as service:
        resolved = await service.resolve_with_artist_introduction(
            args.title, args.artist, args.year, candidate, args.artist_intro,
        )

    if resolved is None:
        print(json.dumps({"found": False}))
        return 3
    print(resolved.model_dump_json(indent=2))
    return 0


async def _cmd_artist(args: argparse.Namespace, settings: Settings) -> int:
    """Resolve one artist introduction and print it as JSON."""
    from artcache.api.facade import build_service

    async with build_service(settings) as service:
        introduction = await service.resolve_artist_introduction(
            args.name, args.introduction,
        )

    print(json.dumps(
        {"artist": args.name, "introduction": introduction},
        ensure_ascii=False, indent=2,
    ))
    return 0 if introduction is not None else 3


async def _cmd_clear_local(args: argparse.Namespace, settings: Settings) -> int:
    """Delete the persisted local cache."""
    from artcache.api.facade import build_service

    async with build_service(settings) as service:
        service.clear_local_cache()
    print("Local cache cleared")
    return 0


def _setup_logging(settings: Settings, verbose: bool) -> None:
    """Configure logging for CLI usage."""
    from artcache.logging.logger import setup_logging

    setup_logging(
        level="DEBUG" if verbose else settings.log_level,
        log_format="text" if verbose else settings.log_format,
        log_file=str(settings.log_file) if settings.log_file else None,
        rotation=settings.log_rotation,
        retention=settings.log_retention,
    )


if __name__ == "__main__":
    sys.exit(main())
