"""
Test configuration and fixtures
"""
import io
import re
from typing import Any, Dict, List, Optional, Tuple

import httpx
import pytest
from PIL import Image, ImageFont, features

from core.catalog_cache import CatalogCache
from core.config import AppConfig
from services.orchestrator_service import PosterOrchestratorService
from services.overlay_service import OverlayService
from services.plex_client import PlexClient
from services.plex_service import PlexService
from services.poster_workflow import PosterWorkflow
from services.tmdb_service import PosterResult
from utils import assets
from utils.assets import OverlayAssets

NOW = 1_700_000_000.0
DAY = 86400

PLEX_URL = "http://plex.test"
POSTER_URL = "https://image.tmdb.org/t/p/original/dune.jpg"

SETTINGS_ENV = (
    "PLEX_URL",
    "PLEX_TOKEN",
    "TMDB_KEY",
    "LIBRARY_ID",
    "SHOWS_LIBRARY_ID",
    "OVERLAYS_PATH",
    "PORT",
    "LOG_LEVEL",
    "LOG_DIR",
    "WEBHOOK_DELAY",
)


@pytest.fixture(autouse=True)
def isolated_settings_env(monkeypatch):
    """Keep the developer's own Rustizarr environment out of every test."""
    for name in SETTINGS_ENV:
        monkeypatch.delenv(name, raising=False)


def _png(path, size, color=(255, 255, 255, 128)):
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.new("RGBA", size, color).save(path, "PNG")


def make_jpeg(size=(500, 750), color=(20, 40, 200)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, "JPEG")
    return buffer.getvalue()


def movie_metadata(
    rating_key="M1",
    title="Dune",
    added_days_ago=2,
    labels=None,
    guids=("tmdb://438631",),
    audience=8.5,
) -> Dict[str, Any]:
    """Plex detail payload for the "Dune" 4k DV/HDR/TrueHD Atmos movie."""
    data: Dict[str, Any] = {
        "ratingKey": rating_key,
        "title": title,
        "type": "movie",
        "year": 2021,
        "addedAt": int(NOW - added_days_ago * DAY),
        "Guid": [{"id": g} for g in guids],
        "Media": [
            {
                "videoResolution": "4k",
                "audioCodec": "truehd",
                "Part": [
                    {
                        "Stream": [
                            {"streamType": 2, "codec": "truehd", "title": "Atmos 7.1"},
                            {"streamType": 1, "displayTitle": "Dolby Vision · HDR10"},
                        ]
                    }
                ],
            }
        ],
    }
    if audience is not None:
        data["audienceRating"] = audience
    if labels is not None:
        data["Label"] = labels
    return data


def show_metadata(rating_key="S1", title="Severance", added_days_ago=400, labels=None) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "ratingKey": rating_key,
        "title": title,
        "type": "show",
        "addedAt": int(NOW - added_days_ago * DAY),
        "Guid": [{"id": "tmdb://95396"}],
    }
    if labels is not None:
        data["Label"] = labels
    return data


def season_metadata(index, show_key="S1", show_title="Severance") -> Dict[str, Any]:
    return {
        "ratingKey": f"{show_key}-{index}",
        "title": f"Season {index}",
        "type": "season",
        "index": index,
        "parentRatingKey": show_key,
        "parentTitle": show_title,
        "addedAt": int(NOW - 200 * DAY),
    }


class FakePlexServer:
    """In-memory Plex server driven through httpx.MockTransport."""

    def __init__(self) -> None:
        self.items: Dict[str, Dict[str, Any]] = {}
        self.sections: Dict[str, List[str]] = {}
        self.children: Dict[str, List[str]] = {}
        self.uploads: List[Tuple[str, bytes]] = []
        self.label_puts: List[Tuple[str, str]] = []
        self.requests: List[httpx.Request] = []
        self.fail_upload = False
        self.fail_label = False
        self.fail_listing = False
        self.thumbs: Dict[str, bytes] = {}

    def add(self, data: Dict[str, Any], section: Optional[str] = None) -> None:
        self.items[data["ratingKey"]] = data
        if section is not None:
            self.sections.setdefault(section, []).append(data["ratingKey"])

    def count(self, method: str, path: str) -> int:
        return sum(1 for r in self.requests if r.method == method and r.url.path == path)

    @staticmethod
    def _container(entries: List[Dict[str, Any]]) -> httpx.Response:
        return httpx.Response(200, json={"MediaContainer": {"size": len(entries), "Metadata": entries}})

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        assert request.headers.get("X-Plex-Token") == "token"

        match = re.fullmatch(r"/library/sections/([^/]+)/all", path)
        if match:
            if self.fail_listing:
                return httpx.Response(503)
            keys = self.sections.get(match.group(1), [])
            summaries = [{k: v for k, v in self.items[key].items() if k not in ("Label", "Media")} for key in keys]
            return self._container(summaries)

        match = re.fullmatch(r"/library/metadata/([^/]+)/children", path)
        if match:
            return self._container([self.items[key] for key in self.children.get(match.group(1), [])])

        match = re.fullmatch(r"/library/metadata/([^/]+)/posters", path)
        if match and request.method == "POST":
            if self.fail_upload:
                return httpx.Response(500)
            self.uploads.append((match.group(1), request.content))
            return httpx.Response(200)

        match = re.fullmatch(r"/library/metadata/([^/]+)/thumb", path)
        if match:
            key = match.group(1)
            if key == "redirected":
                return httpx.Response(302, headers={"location": "/photo/real-thumb"})
            if key not in self.thumbs:
                return httpx.Response(404)
            return httpx.Response(200, content=self.thumbs[key], headers={"content-type": "image/jpeg"})

        if path == "/photo/real-thumb":
            return httpx.Response(200, content=b"redirected-bytes", headers={"content-type": "image/png"})

        match = re.fullmatch(r"/library/metadata/([^/]+)", path)
        if match:
            key = match.group(1)
            if request.method == "PUT":
                if self.fail_label:
                    return httpx.Response(500)
                label = request.url.params["label[0].tag.tag"]
                self.label_puts.append((key, label))
                item = self.items[key]
                existing = item.get("Label")
                tags = existing if isinstance(existing, list) else ([existing] if existing else [])
                if not any(t.get("tag") == label for t in tags):
                    tags.append({"tag": label})
                item["Label"] = tags
                return httpx.Response(200)
            if key not in self.items:
                return self._container([])
            return self._container([self.items[key]])

        return httpx.Response(404)


class FakeTmdb:
    """Stands in for TmdbService with canned answers."""

    def __init__(self) -> None:
        self.textless: Dict[str, Optional[PosterResult]] = {}
        self.standard: Dict[str, Optional[PosterResult]] = {}
        self.statuses: Dict[str, Optional[str]] = {}
        self.season_posters: Dict[Tuple[str, int], Optional[PosterResult]] = {}
        self.calls: List[Tuple[str, Any]] = []

    async def get_movie_textless_poster(self, tmdb_id):
        self.calls.append(("movie_textless", tmdb_id))
        return self.textless.get(tmdb_id)

    async def get_movie_standard_poster(self, tmdb_id):
        self.calls.append(("movie_standard", tmdb_id))
        return self.standard.get(tmdb_id)

    async def get_show_textless_poster(self, tmdb_id):
        self.calls.append(("show_textless", tmdb_id))
        return self.textless.get(tmdb_id)

    async def get_show_standard_poster(self, tmdb_id):
        self.calls.append(("show_standard", tmdb_id))
        return self.standard.get(tmdb_id)

    async def get_show_status(self, tmdb_id):
        self.calls.append(("show_status", tmdb_id))
        return self.statuses.get(tmdb_id)

    async def get_season_poster(self, tmdb_id, season_number):
        self.calls.append(("season", (tmdb_id, season_number)))
        return self.season_posters.get((tmdb_id, season_number))


@pytest.fixture
def overlays_root(tmp_path):
    """Minimal overlay library generated on the fly (no fonts: text stages are skipped unless overlay_fonts is used)."""
    root = tmp_path / "overlays"
    _png(root / assets.GRADIENT_TOP, (1000, 300), (0, 0, 0, 160))
    _png(root / assets.GRADIENT_BOTTOM, (1000, 400), (0, 0, 0, 200))
    _png(root / assets.INNER_GLOW, (200, 300), (255, 255, 255, 40))
    _png(root / assets.RECENTLY_ADDED, (200, 300), (255, 0, 0, 80))
    for name in ("ended_border.png", "returning_border.png", "airing_border.png", "cancelled_full.png"):
        _png(root / assets.STATUS_DIR / name, (200, 300), (0, 255, 0, 80))
    _png(root / assets.RESOLUTION_DIR / "Ultra-HD.png", (400, 200))
    _png(root / assets.CODEC_DIR / "DV-HDR-TrueHD-Atmos.png", (600, 150))
    _png(root / assets.AUDIENCE_DIR / "audience_score_high.png", (300, 300), (255, 215, 0, 255))
    return root


@pytest.fixture
def overlay_fonts(overlays_root):
    """Install Pillow's bundled FreeType font under both font names the compositor loads."""
    if not features.check("freetype2"):
        pytest.skip("Pillow built without FreeType")
    bundled = ImageFont.load_default(size=40)
    for relative in (assets.TITLE_FONT, assets.SCORE_FONT):
        path = overlays_root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(bundled.font_bytes)
    return overlays_root


@pytest.fixture
def overlay_service(overlays_root):
    return OverlayService(OverlayAssets(overlays_root))


@pytest.fixture
def config(overlays_root):
    return AppConfig(
        plex_url=PLEX_URL,
        plex_token="token",
        tmdb_key="test_tmdb_key",
        overlays_path=str(overlays_root),
        webhook_delay=10.0,
    )


@pytest.fixture
def plex_server():
    return FakePlexServer()


@pytest.fixture
async def plex_service(plex_server):
    service = PlexService(PlexClient(PLEX_URL, "token", transport=httpx.MockTransport(plex_server.handle)))
    yield service
    await service.aclose()


@pytest.fixture
def fake_tmdb():
    tmdb = FakeTmdb()
    tmdb.textless["438631"] = PosterResult(POSTER_URL, "textless")
    tmdb.textless["95396"] = PosterResult("https://image.tmdb.org/t/p/original/severance.jpg", "textless")
    tmdb.statuses["95396"] = "Ended"
    return tmdb


@pytest.fixture
async def image_client():
    """Serves a JPEG for every TMDB image URL; anything ending in /missing.jpg is a 404."""
    downloads: List[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        downloads.append(str(request.url))
        if request.url.path.endswith("/missing.jpg"):
            return httpx.Response(404)
        return httpx.Response(200, content=make_jpeg(), headers={"content-type": "image/jpeg"})

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    client.downloads = downloads
    yield client
    await client.aclose()


@pytest.fixture
def catalog_cache():
    return CatalogCache()


@pytest.fixture
def workflow(fake_tmdb, plex_service, overlay_service, catalog_cache, image_client):
    return PosterWorkflow(
        orchestrator=PosterOrchestratorService(fake_tmdb),
        plex=plex_service,
        overlay=overlay_service,
        cache=catalog_cache,
        http_client=image_client,
        clock=lambda: NOW,
    )


@pytest.fixture
def now():
    return NOW
