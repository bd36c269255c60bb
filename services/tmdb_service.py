from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import requests
import tmdbsimple as tmdb

from utils.logger import get_logger

logger = get_logger(__name__)

IMAGE_BASE = "https://image.tmdb.org/t/p"
TEXTLESS_LANGUAGES = {"xx", "null"}
FALLBACK_LANGUAGE = "fr"


@dataclass
class PosterResult:
    url: str
    type: str   # "textless", "fr", "standard"


def _is_textless(poster: Dict[str, Any]) -> bool:
    lang = poster.get("iso_639_1")
    return lang is None or lang in TEXTLESS_LANGUAGES


def _resolution(poster: Dict[str, Any]) -> int:
    return int(poster.get("width") or 0) * int(poster.get("height") or 0)


def select_poster(posters: List[Dict[str, Any]], image_base: str = IMAGE_BASE) -> Optional[PosterResult]:
    """
    Pick the best poster from a TMDB ``/images`` ``posters`` list.

    Textless candidates (language "xx", "null" or absent) win, largest first, ties broken by
    vote average. Otherwise the largest French poster. Otherwise nothing.
    """
    posters = [p for p in posters if p.get("file_path")]

    textless = [p for p in posters if _is_textless(p)]
    if textless:
        best = max(textless, key=lambda p: (_resolution(p), float(p.get("vote_average") or 0.0)))
        logger.debug(
            f"✨ Best textless poster: {best.get('width')}x{best.get('height')} (vote {best.get('vote_average')})"
        )
        return PosterResult(f"{image_base}/original{best['file_path']}", "textless")

    french = [p for p in posters if p.get("iso_639_1") == FALLBACK_LANGUAGE]
    if french:
        best = max(french, key=_resolution)
        logger.debug(f"⚠️ No textless poster, using best '{FALLBACK_LANGUAGE}': {best.get('width')}x{best.get('height')}")
        return PosterResult(f"{image_base}/original{best['file_path']}", FALLBACK_LANGUAGE)

    return None


class TmdbService:
    """
    Service for interacting with TMDB API.

    tmdbsimple is synchronous; every call runs in a worker thread so the event loop keeps going.
    A non-2xx answer is a soft miss (``None``); connection errors propagate.
    """

    def __init__(self, api_key: str, timeout: float = 30.0, image_base: str = IMAGE_BASE):
        if not api_key:
            raise ValueError("TMDB API key cannot be empty.")

        tmdb.API_KEY = api_key
        tmdb.REQUESTS_TIMEOUT = timeout
        self.image_base = image_base

        logger.debug("TMDB service initialized using tmdbsimple")

    @classmethod
    def from_config(cls, config) -> "TmdbService":
        return cls(api_key=config.tmdb_key)

    async def _call(self, fn: Callable[[], Dict[str, Any]], what: str) -> Optional[Dict[str, Any]]:
        try:
            return await asyncio.to_thread(fn)
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else "?"
            logger.debug(f"TMDB HTTP {status} for {what}")
            return None

    def _url(self, file_path: str) -> str:
        return f"{self.image_base}/original{file_path}"

    async def _best_from_images(self, fn: Callable[[], Dict[str, Any]], what: str) -> Optional[PosterResult]:
        data = await self._call(fn, what)
        if not data:
            return None
        return select_poster(data.get("posters") or [], self.image_base)

    async def _poster_path(self, fn: Callable[[], Dict[str, Any]], what: str) -> Optional[PosterResult]:
        data = await self._call(fn, what)
        if not data or not data.get("poster_path"):
            return None
        return PosterResult(self._url(data["poster_path"]), "standard")

    # ---- movies ---------------------------------------------------------

    async def get_movie_textless_poster(self, tmdb_id: str) -> Optional[PosterResult]:
        return await self._best_from_images(lambda: tmdb.Movies(tmdb_id).images(), f"movie {tmdb_id} images")

    async def get_movie_standard_poster(self, tmdb_id: str) -> Optional[PosterResult]:
        return await self._poster_path(lambda: tmdb.Movies(tmdb_id).info(), f"movie {tmdb_id}")

    # ---- shows ----------------------------------------------------------

    async def get_show_textless_poster(self, tmdb_id: str) -> Optional[PosterResult]:
        return await self._best_from_images(lambda: tmdb.TV(tmdb_id).images(), f"show {tmdb_id} images")

    async def get_show_standard_poster(self, tmdb_id: str) -> Optional[PosterResult]:
        return await self._poster_path(lambda: tmdb.TV(tmdb_id).info(), f"show {tmdb_id}")

    async def get_show_status(self, tmdb_id: str) -> Optional[str]:
        """TMDB lifecycle status such as 'Returning Series' or 'Ended'; None when unknown."""
        data = await self._call(lambda: tmdb.TV(tmdb_id).info(), f"show {tmdb_id}")
        if not data:
            return None
        return data.get("status") or None

    # ---- seasons --------------------------------------------------------

    async def get_season_poster(self, show_tmdb_id: str, season_number: int) -> Optional[PosterResult]:
        what = f"show {show_tmdb_id} season {season_number}"
        result = await self._best_from_images(
            lambda: tmdb.TV_Seasons(show_tmdb_id, season_number).images(), f"{what} images"
        )
        if result:
            return result
        return await self._poster_path(lambda: tmdb.TV_Seasons(show_tmdb_id, season_number).info(), what)
