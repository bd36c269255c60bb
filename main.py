"""Rustizarr CLI entry point."""
from __future__ import annotations

import argparse
import asyncio
import sys
from typing import Iterable, List, Optional, Sequence

import requests
import uvicorn

from api.app import create_app
from core.config import AppConfig, load_config
from core.errors import ConfigError, RustizarrError
from core.models import PROCESSED_LABEL, MediaItem, Movie, Outcome
from services.container import AppServices, build_services
from services.plex_service import extract_tmdb_id
from services.poster_workflow import ItemResult, summarize
from utils.logger import get_logger, intercept_stdlib, setup_logger

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="rustizarr", description="Plex poster overlays (movies, shows, seasons)")
    parser.add_argument("--config", default=None, help="Path to config file (default: config.yaml)")
    sub = parser.add_subparsers(dest="command", required=True)

    def scan_flags(p: argparse.ArgumentParser) -> None:
        p.add_argument("-l", "--library", help="Plex library section id")
        p.add_argument("-f", "--force", action="store_true", help="Reprocess items already labelled")
        p.add_argument("-p", "--parallel", type=int, default=1, help="Items processed at once (1-10)")

    def list_flags(p: argparse.ArgumentParser) -> None:
        p.add_argument("-l", "--library", help="Plex library section id")
        p.add_argument("--unprocessed", action="store_true", help="Only show items without the label")

    scan_flags(sub.add_parser("scan", help="Process the whole movie library"))

    process = sub.add_parser("process", help="Process one movie, or every movie")
    target = process.add_mutually_exclusive_group(required=True)
    target.add_argument("-i", "--id", help="Plex rating key")
    target.add_argument("-a", "--all", action="store_true", help="Process the whole movie library")
    process.add_argument("-f", "--force", action="store_true")

    info = sub.add_parser("info", help="Show what Plex knows about a movie")
    info.add_argument("-i", "--id", required=True)

    list_flags(sub.add_parser("list", help="List the movie library"))

    scan_flags(sub.add_parser("scan-shows", help="Process the whole show library"))

    process_show = sub.add_parser("process-show", help="Process one show")
    process_show.add_argument("-i", "--id", required=True)
    process_show.add_argument("-f", "--force", action="store_true")

    list_flags(sub.add_parser("list-shows", help="List the show library"))

    scan_seasons = sub.add_parser("scan-seasons", help="Process every season of a show")
    scan_seasons.add_argument("-i", "--id", required=True, help="Plex rating key of the show")
    scan_seasons.add_argument("-f", "--force", action="store_true")
    scan_seasons.add_argument("-p", "--parallel", type=int, default=1)

    process_season = sub.add_parser("process-season", help="Process a single season of a show")
    process_season.add_argument("-i", "--id", required=True, help="Plex rating key of the show")
    process_season.add_argument("-n", "--season", type=int, required=True, help="Season number")
    process_season.add_argument("-f", "--force", action="store_true")

    serve = sub.add_parser("serve", help="Run the HTTP server (webhook + frontend API)")
    serve.add_argument("--port", type=int, default=None)

    return parser.parse_args(argv)


def print_results(results: Iterable[ItemResult]) -> bool:
    """Print one line per item and the summary. True when nothing failed."""
    results = list(results)
    for title, outcome in results:
        print(f"{title}: {outcome}")
    success, skipped, errors = summarize(results)
    print("\n📊 Summary:")
    print(f"   ✅ Success : {success}")
    print(f"   ⏭️  Skipped : {skipped}")
    print(f"   ❌ Errors  : {errors}")
    return errors == 0


def print_catalog(items: List[MediaItem], unprocessed: bool) -> None:
    shown = [item for item in items if not (unprocessed and item.is_processed)]
    for item in shown:
        mark = "✅" if item.is_processed else "⬜"
        year = f" ({item.year})" if item.year else ""
        print(f"{mark} [{item.rating_key}] {item.title}{year}")
    processed = sum(1 for item in items if item.is_processed)
    print(f"\n📚 {len(items)} items, {processed} processed")


def print_info(item: MediaItem) -> None:
    print(f"🎬 {item.title} ({item.year or '?'})")
    print(f"   Rating key : {item.rating_key}")
    print(f"   TMDB id    : {extract_tmdb_id(item) or '-'}")
    print(f"   Audience   : {item.audience_rating if item.audience_rating is not None else '-'}")
    days = item.days_since_added()
    print(f"   Added      : {f'{days} day(s) ago' if days is not None else '-'}")
    print(f"   Labels     : {', '.join(item.label_tags()) or '-'}")
    print(f"   Processed  : {'yes' if item.has_label(PROCESSED_LABEL) else 'no'}")
    if isinstance(item, Movie) and item.primary_media:
        media = item.primary_media
        print(f"   Video      : {media.video_resolution or '-'}")
        print(f"   Audio      : {media.audio_codec or '-'}")


async def run_scan(services: AppServices, library_id: str, kind: str, force: bool, parallel: int) -> bool:
    logger.info(f"🔍 Scanning library {library_id} ({kind}s, x{parallel})")
    items = await services.plex.list_with_labels(library_id, kind)
    logger.info(f"📚 {len(items)} {kind}s found")
    results = await services.workflow.process_items(items, concurrency=parallel, force=force)
    return print_results(results)


async def run_single(services: AppServices, item: MediaItem, force: bool) -> bool:
    if force:
        logger.info("🔥 Force mode enabled")
    outcome: Outcome = await services.workflow.process_item(item, force=force)
    return print_results([(item.title, outcome)])


async def run_seasons(
    services: AppServices,
    show_key: str,
    force: bool,
    parallel: int = 1,
    season_number: Optional[int] = None,
) -> bool:
    show = await services.plex.get_show(show_key)
    seasons = await services.plex.get_seasons(show_key)
    if season_number is not None:
        seasons = [s for s in seasons if s.season_number == season_number]
        if not seasons:
            print(f"❌ {show.title} has no season {season_number}")
            return False
    logger.info(f"📺 {show.title}: {len(seasons)} season(s)")
    results = await services.workflow.process_seasons(show, seasons, force=force, concurrency=parallel)
    return print_results(results)


async def dispatch(args: argparse.Namespace, config: AppConfig) -> bool:
    services = build_services(config)
    try:
        command = args.command
        if command == "scan":
            return await run_scan(services, args.library or config.library_id, "movie", args.force, args.parallel)
        if command == "scan-shows":
            return await run_scan(
                services, args.library or config.shows_library_id, "show", args.force, args.parallel
            )
        if command == "process":
            if args.all:
                return await run_scan(services, config.library_id, "movie", args.force, 1)
            return await run_single(services, await services.plex.get_movie(args.id), args.force)
        if command == "process-show":
            return await run_single(services, await services.plex.get_show(args.id), args.force)
        if command == "info":
            print_info(await services.plex.get_movie(args.id))
            return True
        if command == "list":
            items = await services.plex.list_with_labels(args.library or config.library_id, "movie")
            print_catalog(items, args.unprocessed)
            return True
        if command == "list-shows":
            items = await services.plex.list_with_labels(args.library or config.shows_library_id, "show")
            print_catalog(items, args.unprocessed)
            return True
        if command == "scan-seasons":
            return await run_seasons(services, args.id, args.force, args.parallel)
        if command == "process-season":
            return await run_seasons(services, args.id, args.force, season_number=args.season)
        raise ValueError(f"Unknown command {command}")
    finally:
        await services.aclose()


def serve(config: AppConfig) -> None:
    intercept_stdlib(config.log_level)
    uvicorn.run(create_app(config), host="0.0.0.0", port=config.port, log_config=None)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    try:
        config = load_config(args.config)
    except ConfigError as exc:
        print(f"❌ {exc}", file=sys.stderr)
        return EXIT_USAGE

    setup_logger(config.log_level, config.log_dir)

    if args.command == "serve":
        serve(config.with_overrides(port=args.port))
        return EXIT_OK

    try:
        ok = asyncio.run(dispatch(args, config))
    except (RustizarrError, requests.RequestException) as exc:
        logger.error(f"❌ {exc}")
        return EXIT_FAILURE
    return EXIT_OK if ok else EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
