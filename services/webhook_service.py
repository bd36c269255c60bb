"""Plex webhook handling: new library items get their poster processed in the background."""
from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Set

from core.catalog_cache import CatalogCache
from core.models import Movie, Show
from services.plex_service import PlexService
from services.poster_workflow import PosterWorkflow
from utils.logger import get_logger

logger = get_logger(__name__)

NEW_ITEM_EVENT = "library.new"
SUPPORTED_TYPES = {"movie": Movie, "show": Show}
DEFAULT_DELAY = 10.0


@dataclass
class WebhookEvent:
    event: str
    rating_key: Optional[str] = None
    media_type: Optional[str] = None

    @classmethod
    def parse(cls, payload: str) -> Optional["WebhookEvent"]:
        """Parse the multipart ``payload`` field; anything unreadable yields None."""
        try:
            data = json.loads(payload)
        except (TypeError, ValueError):
            logger.debug("Ignoring webhook with non-JSON payload")
            return None
        if not isinstance(data, dict) or not isinstance(data.get("event"), str):
            return None
        metadata = data.get("Metadata") or {}
        if not isinstance(metadata, dict):
            metadata = {}
        rating_key = metadata.get("ratingKey")
        return cls(
            event=data["event"],
            rating_key=str(rating_key) if rating_key is not None else None,
            media_type=metadata.get("type"),
        )

    @property
    def is_actionable(self) -> bool:
        return self.event == NEW_ITEM_EVENT and self.media_type in SUPPORTED_TYPES and bool(self.rating_key)


class WebhookDispatcher:
    """
    Fire-and-forget processing of ``library.new`` events.

    Each accepted event sleeps ``delay`` seconds (Plex is still analysing the file), fetches the
    item, runs the pipeline and, on success, invalidates the catalog cache. Tasks log their own
    failures; :meth:`shutdown` waits for the ones still in flight.
    """

    def __init__(
        self,
        plex: PlexService,
        workflow: PosterWorkflow,
        cache: CatalogCache,
        delay: float = DEFAULT_DELAY,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.plex = plex
        self.workflow = workflow
        self.cache = cache
        self.delay = delay
        self._sleep = sleep
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def handle_payload(self, payload: str) -> Optional[asyncio.Task]:
        event = WebhookEvent.parse(payload)
        if event is None or not event.is_actionable:
            return None
        logger.info(f"🔔 Webhook: new {event.media_type} detected (ID: {event.rating_key})")
        return self.spawn(event.rating_key, event.media_type)

    def spawn(self, rating_key: str, media_type: str) -> asyncio.Task:
        task = asyncio.create_task(self.process(rating_key, media_type), name=f"webhook-{rating_key}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def process(self, rating_key: str, media_type: str) -> bool:
        """Returns True when a poster was uploaded."""
        try:
            logger.info(f"⏳ Waiting {self.delay:g}s for Plex to finish analysing {rating_key}...")
            await self._sleep(self.delay)

            item = await self.plex.get_item(rating_key, default=SUPPORTED_TYPES[media_type])
            outcome = await self.workflow.process_item(item)
            logger.info(f"🔔 Webhook {rating_key} → {outcome}")
            if not outcome.success:
                return False

            logger.info("🔄 Invalidating the catalog cache after webhook processing")
            await self.cache.ainvalidate()
            return True
        except asyncio.CancelledError:
            logger.warning(f"Webhook task for {rating_key} cancelled")
            raise
        except Exception as exc:  # noqa: BLE001
            logger.exception(f"❌ Webhook processing failed for {rating_key}: {exc}")
            return False

    async def shutdown(self, timeout: Optional[float] = None) -> None:
        """Wait for in-flight webhook tasks; cancel whatever is left after ``timeout``."""
        if not self._tasks:
            return
        logger.info(f"Waiting for {len(self._tasks)} webhook task(s) to finish...")
        tasks = list(self._tasks)
        done, still_running = await asyncio.wait(tasks, timeout=timeout)
        for task in still_running:
            task.cancel()
        if still_running:
            await asyncio.gather(*still_running, return_exceptions=True)
