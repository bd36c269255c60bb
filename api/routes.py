"""HTTP endpoints: liveness, scans, the Plex webhook, the frontend JSON API and the image proxy."""
from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Request
from starlette.datastructures import UploadFile
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from core.errors import PlexError
from core.models import MediaItem
from services.container import AppServices
from services.poster_workflow import ItemResult, summarize
from utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()

IMAGE_CACHE_CONTROL = "public, max-age=31536000"


def get_services(request: Request) -> AppServices:
    return request.app.state.services


def _report(results: List[ItemResult]) -> str:
    lines = [f"{title}: {outcome}" for title, outcome in results]
    success, skipped, errors = summarize(results)
    lines.append(f"📊 {success} succeeded, {skipped} skipped, {errors} failed")
    return "\n".join(lines) + "\n"


async def _scan(services: AppServices, library_id: str, kind: str, force: bool, parallel: int) -> str:
    items = await services.plex.list_with_labels(library_id, kind)
    results = await services.workflow.process_items(items, concurrency=parallel, force=force)
    logger.info("🔄 Scan finished, invalidating the catalog cache")
    await services.cache.ainvalidate()
    return _report(results)


async def _load_catalog(services: AppServices, library_id: str, kind: str) -> List[MediaItem]:
    cached = await services.cache.aget(library_id)
    if cached is not None:
        processed = sum(1 for item in cached if item.is_processed)
        logger.debug(f"💾 Cache HIT: {len(cached)} {kind}s ({processed} processed)")
        return cached

    logger.info(f"🔄 Cache MISS: reloading library {library_id}")
    items = await services.plex.list_with_labels(library_id, kind)
    await services.cache.aupdate(library_id, items)
    return items


async def _refresh(services: AppServices, library_id: str, kind: str) -> JSONResponse:
    await services.cache.ainvalidate(library_id)
    try:
        items = await _load_catalog(services, library_id, kind)
    except PlexError as exc:
        logger.error(f"❌ Refresh of library {library_id} failed: {exc}")
        return JSONResponse({"success": False, "error": str(exc)})
    processed = sum(1 for item in items if item.is_processed)
    return JSONResponse(
        {"success": True, "total": len(items), "processed": processed, "message": "Cache refreshed"}
    )


@router.get("/", response_class=PlainTextResponse)
async def root() -> str:
    return "Rustizarr backend running 🚀"


@router.get("/scan", response_class=PlainTextResponse)
async def scan_movies(
    library: Optional[str] = None,
    force: bool = False,
    parallel: int = 1,
    services: AppServices = Depends(get_services),
) -> str:
    try:
        return await _scan(services, library or services.config.library_id, "movie", force, parallel)
    except PlexError as exc:
        return f"Plex error: {exc}\n"


@router.get("/scan-shows", response_class=PlainTextResponse)
async def scan_shows(
    library: Optional[str] = None,
    force: bool = False,
    parallel: int = 1,
    services: AppServices = Depends(get_services),
) -> str:
    try:
        return await _scan(services, library or services.config.shows_library_id, "show", force, parallel)
    except PlexError as exc:
        return f"Plex error: {exc}\n"


@router.post("/webhook")
async def plex_webhook(request: Request, services: AppServices = Depends(get_services)) -> Response:
    form = await request.form()
    payload = form.get("payload")
    if isinstance(payload, UploadFile):
        payload = (await payload.read()).decode("utf-8", errors="replace")
    if isinstance(payload, str):
        services.dispatcher.handle_payload(payload)
    return Response(status_code=200)


@router.get("/api/library")
async def library_json(library: Optional[str] = None, services: AppServices = Depends(get_services)):
    try:
        items = await _load_catalog(services, library or services.config.library_id, "movie")
    except PlexError as exc:
        logger.error(f"❌ Could not load library: {exc}")
        items = []
    return [item.to_plex() for item in items]


@router.get("/api/shows")
async def shows_json(library: Optional[str] = None, services: AppServices = Depends(get_services)):
    try:
        items = await _load_catalog(services, library or services.config.shows_library_id, "show")
    except PlexError as exc:
        logger.error(f"❌ Could not load shows: {exc}")
        items = []
    return [item.to_plex() for item in items]


@router.post("/api/library/refresh")
async def refresh_library(library: Optional[str] = None, services: AppServices = Depends(get_services)):
    return await _refresh(services, library or services.config.library_id, "movie")


@router.post("/api/shows/refresh")
async def refresh_shows(library: Optional[str] = None, services: AppServices = Depends(get_services)):
    return await _refresh(services, library or services.config.shows_library_id, "show")


@router.get("/api/image/{rating_key}")
async def plex_image(rating_key: str, services: AppServices = Depends(get_services)) -> Response:
    try:
        status, body, content_type = await services.plex.client.fetch_thumbnail(rating_key)
    except PlexError as exc:
        logger.warning(f"Image proxy failed for {rating_key}: {exc}")
        return PlainTextResponse("Plex unreachable", status_code=404)

    if status >= 300:
        return PlainTextResponse("Image not found", status_code=404 if status < 500 else status)
    return Response(content=body, media_type=content_type, headers={"Cache-Control": IMAGE_CACHE_CONTROL})
