from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, Type, Union

from core.errors import ItemNotFoundError, PlexError
from core.models import MediaItem, Movie, Season, Show
from services.plex_client import PlexClient
from utils.logger import get_logger

logger = get_logger()

MOVIE_LIBRARY_TYPE = 1
SHOW_LIBRARY_TYPE = 2

_TYPE_BY_KIND: Dict[str, int] = {"movie": MOVIE_LIBRARY_TYPE, "show": SHOW_LIBRARY_TYPE}
_MODEL_BY_TYPE: Dict[str, Type[MediaItem]] = {"movie": Movie, "show": Show, "season": Season}

ProgressCallback = Callable[[int, int], None]


def parse_item(data: Dict[str, Any], default: Type[MediaItem] = Movie) -> MediaItem:
    model = _MODEL_BY_TYPE.get(data.get("type", ""), default)
    return model.from_plex(data)


def _metadata(payload: Dict[str, Any]) -> List[Dict[str, Any]]:
    container = payload.get("MediaContainer") or {}
    metadata = container.get("Metadata") or []
    if isinstance(metadata, dict):
        metadata = [metadata]
    return [entry for entry in metadata if isinstance(entry, dict)]


def extract_tmdb_id(item: MediaItem) -> Optional[str]:
    """
    Movies: ``tmdb://<id>`` from the Guid list, else the legacy ``themoviedb://<id>?...`` agent guid.
    Shows (and anything else): Guid list only.
    """
    for guid in item.guids:
        if guid.startswith("tmdb://"):
            return guid[len("tmdb://"):]

    guid_str = item.guid_str if isinstance(item, Movie) else None
    if guid_str and "themoviedb://" in guid_str:
        tail = guid_str.split("themoviedb://", 1)[1]
        return tail.split("?", 1)[0] or None
    return None


class PlexService:
    """Catalog listing, item details, label mutation and poster upload against one Plex server."""

    def __init__(self, client: PlexClient):
        self._client = client

    @classmethod
    def from_config(cls, config, **client_kwargs) -> "PlexService":
        return cls(PlexClient(config.plex_url, config.plex_token, **client_kwargs))

    async def aclose(self) -> None:
        await self._client.aclose()

    @property
    def client(self) -> PlexClient:
        return self._client

    # ---- listings -------------------------------------------------------

    async def list_items(self, library_id: str, kind: str = "movie") -> List[MediaItem]:
        """Summaries of a library section. ``kind`` is "movie" (type 1) or "show" (type 2)."""
        if kind not in _TYPE_BY_KIND:
            raise ValueError(f"Unsupported library kind: {kind}")
        payload = await self._client.get_json(
            f"/library/sections/{library_id}/all",
            params={"type": _TYPE_BY_KIND[kind], "includeGuids": 1},
        )
        model = _MODEL_BY_TYPE[kind]
        items: List[MediaItem] = []
        for entry in _metadata(payload):
            try:
                items.append(model.from_plex(entry))
            except (KeyError, TypeError, ValueError) as exc:
                logger.debug(f"Skipping malformed Plex entry in section {library_id}: {exc}")
        logger.info(f"📚 {len(items)} {kind}s listed from library {library_id}")
        return items

    async def list_with_labels(
        self,
        library_id: str,
        kind: str = "movie",
        progress: Optional[ProgressCallback] = None,
    ) -> List[MediaItem]:
        """
        List a library then hydrate every entry with its full detail (labels, media streams).
        Entries whose detail request fails are kept in their summary form.
        """
        summaries = await self.list_items(library_id, kind)
        total = len(summaries)
        logger.info(f"📚 Loading labels for {total} {kind}s...")

        detailed: List[MediaItem] = []
        for index, summary in enumerate(summaries, start=1):
            try:
                detailed.append(await self.get_item(summary.rating_key, default=type(summary)))
            except PlexError as exc:
                logger.warning(f"⚠️ Detail fetch failed for {summary.title}: {exc}")
                detailed.append(summary)
            if progress is not None:
                progress(index, total)
            elif index % 20 == 0:
                logger.info(f"⏳ Progress: {index}/{total}")

        logger.info(f"✅ Labels loaded for {len(detailed)} {kind}s")
        return detailed

    async def get_seasons(self, show_rating_key: str) -> List[Season]:
        payload = await self._client.get_json(f"/library/metadata/{show_rating_key}/children")
        seasons: List[Season] = []
        for entry in _metadata(payload):
            try:
                seasons.append(Season.from_plex(entry))
            except (KeyError, TypeError, ValueError) as exc:
                logger.debug(f"Skipping malformed season under {show_rating_key}: {exc}")
        return seasons

    # ---- single items ---------------------------------------------------

    async def get_item(self, rating_key: str, default: Type[MediaItem] = Movie) -> MediaItem:
        payload = await self._client.get_json(f"/library/metadata/{rating_key}")
        entries = _metadata(payload)
        if not entries:
            raise ItemNotFoundError(rating_key)
        try:
            return parse_item(entries[0], default=default)
        except (KeyError, TypeError, ValueError) as exc:
            raise PlexError(f"Malformed metadata for item {rating_key}: {exc}") from exc

    async def get_movie(self, rating_key: str) -> Movie:
        item = await self.get_item(rating_key, default=Movie)
        if not isinstance(item, Movie):
            raise PlexError(f"Item {rating_key} is a {item.media_type}, not a movie")
        return item

    async def get_show(self, rating_key: str) -> Show:
        item = await self.get_item(rating_key, default=Show)
        if not isinstance(item, Show):
            raise PlexError(f"Item {rating_key} is a {item.media_type}, not a show")
        return item

    async def get_labels(self, rating_key: str) -> List[str]:
        item = await self.get_item(rating_key)
        return item.label_tags()

    # ---- mutations ------------------------------------------------------

    async def upload_poster(self, rating_key: Union[str, int], image_data: bytes) -> None:
        """Raw JPEG body POST; raises :class:`PlexError` on failure."""
        await self._client.request(
            "POST",
            f"/library/metadata/{rating_key}/posters",
            content=image_data,
            headers={"Content-Type": "image/jpeg"},
        )
        logger.info(f"📤 Poster uploaded to Plex item {rating_key}")

    async def add_label(self, rating_key: Union[str, int], label: str) -> None:
        await self._client.request(
            "PUT",
            f"/library/metadata/{rating_key}",
            params={"label[0].tag.tag": label},
        )
        logger.debug(f"🏷️ Label '{label}' set on {rating_key}")
