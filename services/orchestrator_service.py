from __future__ import annotations

from typing import Dict, Optional

import requests

from core.models import MediaItem, Movie, PosterTask, Season, Show
from services.plex_service import extract_tmdb_id
from services.tmdb_service import PosterResult, TmdbService
from utils.logger import get_logger

logger = get_logger()

# Plex matches these titles to the wrong TMDB entry; keyed by lowercased title.
FORCED_TMDB_IDS: Dict[str, str] = {
    "abyss": "1025527",
    "kingsman : le cercle d'or": "343668",
    "kingsman the golden circle": "343668",
}


def forced_tmdb_id(title: str) -> Optional[str]:
    return FORCED_TMDB_IDS.get(title.lower())


class PosterOrchestratorService:
    """
    Decides which TMDB poster to use for an item: textless first, then the standard poster.
    Does NOT download the image; it only chooses the best URL & source type.
    """

    def __init__(self, tmdb_service: TmdbService):
        self.tmdb = tmdb_service

    def resolve_tmdb_id(self, item: MediaItem) -> Optional[str]:
        if isinstance(item, Movie):
            forced = forced_tmdb_id(item.title)
            if forced:
                logger.info(f"🔧 Manual override for '{item.title}': TMDB id {forced}")
                return forced
        return extract_tmdb_id(item)

    async def get_best_poster(self, item: MediaItem, tmdb_id: str) -> Optional[PosterResult]:
        if isinstance(item, Season):
            return await self.tmdb.get_season_poster(tmdb_id, item.season_number)

        if isinstance(item, Show):
            textless, standard = self.tmdb.get_show_textless_poster, self.tmdb.get_show_standard_poster
        else:
            textless, standard = self.tmdb.get_movie_textless_poster, self.tmdb.get_movie_standard_poster

        result = await textless(tmdb_id)
        if result:
            return result
        logger.info(f"⚠️ No textless poster for {item.title}, trying the standard poster...")
        return await standard(tmdb_id)

    async def create_task(
        self,
        item: MediaItem,
        tmdb_id: Optional[str] = None,
        show_status: Optional[str] = None,
    ) -> PosterTask:
        """
        Build a PosterTask with chosen poster URL & type.

        Seasons must be given the parent show's ``tmdb_id`` (and optionally its status);
        shows look their status up here.
        """
        task = PosterTask(item=item, title_text=item.title)
        if isinstance(item, Season):
            task.title_text = item.display_title

        task.tmdb_id = tmdb_id or (None if isinstance(item, Season) else self.resolve_tmdb_id(item))
        if not task.tmdb_id:
            logger.warning(f"⚠️ No TMDB id for {item.title}")
            task.status = "not_found"
            return task

        poster = await self.get_best_poster(item, task.tmdb_id)
        if not poster:
            logger.warning(f"❌ No poster found for {item.title} ({task.tmdb_id}) on TMDB")
            task.status = "not_found"
            return task

        task.chosen_url = poster.url
        task.source_type = poster.type
        task.status = "selected"

        if isinstance(item, Show):
            try:
                task.show_status = await self.tmdb.get_show_status(task.tmdb_id)
            except requests.exceptions.RequestException as exc:
                logger.warning(f"⚠️ Could not read TMDB status for {item.title}: {exc}")
        elif isinstance(item, Season):
            task.show_status = show_status
        return task
