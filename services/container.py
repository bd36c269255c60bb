"""Wires configuration into the service graph shared by the CLI and the HTTP server."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import httpx

from core.catalog_cache import CatalogCache
from core.config import AppConfig
from services.orchestrator_service import PosterOrchestratorService
from services.overlay_service import OverlayService
from services.plex_service import PlexService
from services.poster_workflow import PosterWorkflow
from services.tmdb_service import TmdbService
from services.webhook_service import WebhookDispatcher
from utils.http import DOWNLOAD_TIMEOUT
from utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class AppServices:
    config: AppConfig
    plex: PlexService
    tmdb: TmdbService
    orchestrator: PosterOrchestratorService
    overlay: OverlayService
    workflow: PosterWorkflow
    cache: CatalogCache
    dispatcher: WebhookDispatcher
    http_client: httpx.AsyncClient

    async def aclose(self) -> None:
        await self.dispatcher.shutdown()
        await self.http_client.aclose()
        await self.plex.aclose()


def build_services(config: AppConfig, cache: Optional[CatalogCache] = None) -> AppServices:
    cache = cache or CatalogCache()
    plex = PlexService.from_config(config)
    tmdb_service = TmdbService.from_config(config)
    orchestrator = PosterOrchestratorService(tmdb_service)
    overlay = OverlayService.from_path(config.overlays_path)
    logger.info(f"📂 Overlays: {overlay.assets.root}")

    http_client = httpx.AsyncClient(timeout=DOWNLOAD_TIMEOUT, follow_redirects=True)
    workflow = PosterWorkflow(
        orchestrator=orchestrator,
        plex=plex,
        overlay=overlay,
        cache=cache,
        http_client=http_client,
    )
    dispatcher = WebhookDispatcher(plex, workflow, cache, delay=config.webhook_delay)
    return AppServices(
        config=config,
        plex=plex,
        tmdb=tmdb_service,
        orchestrator=orchestrator,
        overlay=overlay,
        workflow=workflow,
        cache=cache,
        dispatcher=dispatcher,
        http_client=http_client,
    )
