"""
FastAPI application factory.
Creates and configures the server-mode app around a shared :class:`AppServices`.
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.routes import router
from core.config import AppConfig
from services.container import AppServices, build_services
from utils.logger import get_logger

logger = get_logger(__name__)


def create_app(config: AppConfig, services: Optional[AppServices] = None) -> FastAPI:
    """Create the app. ``services`` is built lazily at startup unless supplied."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "services", None) is None:
            app.state.services = build_services(config)
        logger.info(f"🚀 Rustizarr listening, webhook endpoint: http://<host>:{config.port}/webhook")

        yield

        logger.info("Shutting down, waiting for in-flight poster uploads...")
        await app.state.services.aclose()

    app = FastAPI(title="Rustizarr", version="1.0.0", lifespan=lifespan)
    app.state.services = services

    # The web frontend is served from a different origin.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router)
    return app
