"""Poster workflow orchestration across selection, download, compositing and upload."""
from __future__ import annotations

import asyncio
import time
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

import httpx
import requests

from core.catalog_cache import CatalogCache
from core.config import clamp_concurrency
from core.errors import PlexError
from core.models import PROCESSED_LABEL, MediaItem, Outcome, OutcomeStatus, Season, Show
from services.orchestrator_service import PosterOrchestratorService
from services.overlay_rules import plan_layers
from services.overlay_service import OverlayService
from services.plex_service import PlexService
from utils.http import download_bytes
from utils.logger import get_logger

logger = get_logger(__name__)

ItemResult = Tuple[str, Outcome]


class PosterWorkflow:
    """Coordinates poster selection, download, compositing, upload and labelling."""

    def __init__(
        self,
        orchestrator: PosterOrchestratorService,
        plex: PlexService,
        overlay: OverlayService,
        cache: Optional[CatalogCache] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.orchestrator = orchestrator
        self.plex = plex
        self.overlay = overlay
        self.cache = cache
        self.http_client = http_client
        self.clock = clock

    async def process_item(
        self,
        item: MediaItem,
        force: bool = False,
        tmdb_id: Optional[str] = None,
        show_status: Optional[str] = None,
    ) -> Outcome:
        """
        Run the whole pipeline for one movie, show or season.

        Soft misses (no TMDB id, no poster) and download/render/upload failures come back as
        outcomes; TMDB transport errors propagate to the caller.
        """
        if not force and item.has_label(PROCESSED_LABEL):
            logger.info(f"⏭️ {item.title}: already processed")
            return Outcome.already_processed()

        logger.info(f"⚙️ Processing {item.media_type}: {item.title} ({item.rating_key})")
        task = await self.orchestrator.create_task(item, tmdb_id=tmdb_id, show_status=show_status)
        if task.status != "selected" or not task.chosen_url:
            message = "no TMDB id" if not task.tmdb_id else "no image found on TMDB"
            return Outcome.no_image(message)

        try:
            data = await download_bytes(task.chosen_url, self.http_client)
        except httpx.HTTPError as exc:
            logger.error(f"❌ Download failed for {item.title}: {exc}")
            return Outcome.failed(f"download failed: {exc}")

        layers = plan_layers(item, task.title_text, task.show_status, now=self.clock())
        try:
            jpeg = await asyncio.to_thread(self.overlay.render, data, layers)
        except (OSError, ValueError) as exc:
            logger.error(f"❌ Rendering failed for {item.title}: {exc}")
            return Outcome.failed(f"render failed: {exc}")
        task.status = "rendered"

        try:
            await self.plex.upload_poster(item.rating_key, jpeg)
        except PlexError as exc:
            logger.error(f"❌ Plex upload failed for {item.title}: {exc}")
            return Outcome.failed(f"upload failed: {exc}")
        task.status = "uploaded"

        try:
            await self.plex.add_label(item.rating_key, PROCESSED_LABEL)
        except PlexError as exc:
            logger.warning(f"⚠️ Poster uploaded but label could not be set on {item.title}: {exc}")

        if self.cache is not None:
            await self.cache.ainvalidate()

        message = f"✅ SUCCESS: '{item.title}'"
        logger.info(message)
        return Outcome(OutcomeStatus.SUCCESS, message)

    async def _guarded(self, item: MediaItem, force: bool, **context) -> ItemResult:
        try:
            return item.title, await self.process_item(item, force=force, **context)
        except Exception as exc:  # noqa: BLE001
            logger.exception(f"Unhandled error processing {item.title}: {exc}")
            return item.title, Outcome.failed(str(exc))

    async def process_items(
        self,
        items: Iterable[MediaItem],
        concurrency: int = 1,
        force: bool = False,
        **context,
    ) -> List[ItemResult]:
        """
        Process items with at most ``concurrency`` pipelines in flight (clamped to [1, 10]).
        Results come back in completion order; one item failing never cancels the others.
        """
        limit = clamp_concurrency(concurrency)
        semaphore = asyncio.Semaphore(limit)
        items = list(items)
        logger.info(f"🚀 Processing {len(items)} items, {limit} at a time")

        async def run(item: MediaItem) -> ItemResult:
            async with semaphore:
                return await self._guarded(item, force, **context)

        results: List[ItemResult] = []
        for finished in asyncio.as_completed([run(item) for item in items]):
            results.append(await finished)
        return results

    async def process_seasons(
        self,
        show: Show,
        seasons: Sequence[Season],
        force: bool = False,
        concurrency: int = 1,
    ) -> List[ItemResult]:
        """Seasons inherit the show's TMDB id; the show status is looked up once for all of them."""
        tmdb_id = self.orchestrator.resolve_tmdb_id(show)
        if not tmdb_id:
            logger.warning(f"⚠️ No TMDB id for show {show.title}; seasons skipped")
            return [(s.display_title, Outcome.no_image("no TMDB id for parent show")) for s in seasons]

        try:
            show_status = await self.orchestrator.tmdb.get_show_status(tmdb_id)
        except requests.exceptions.RequestException as exc:
            logger.warning(f"⚠️ Could not read TMDB status for {show.title}: {exc}")
            show_status = None
        return await self.process_items(
            seasons, concurrency=concurrency, force=force, tmdb_id=tmdb_id, show_status=show_status
        )


def summarize(results: Iterable[ItemResult]) -> Tuple[int, int, int]:
    """Count (successes, skips, errors); a soft "no image" miss counts as an error."""
    success = skipped = errors = 0
    for _, outcome in results:
        if outcome.status is OutcomeStatus.SUCCESS:
            success += 1
        elif outcome.status is OutcomeStatus.SKIPPED:
            skipped += 1
        else:
            errors += 1
    return success, skipped, errors
