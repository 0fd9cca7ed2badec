"""FastAPI app entry point."""

from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from shook.core.config import settings
from shook.routers import admin, channels, summaries, users, videos
from shook.services.monitor import start_channel_monitor, stop_channel_monitor


def configure_logging() -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def create_app() -> FastAPI:
    """Build FastAPI application."""

    configure_logging()
    app = FastAPI(title="Shook", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.dashboard_cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(users.router)
    app.include_router(channels.router)
    app.include_router(videos.router)
    app.include_router(summaries.router)
    app.include_router(admin.router)

    @app.on_event("startup")
    async def _startup() -> None:
        if settings.monitor_enabled:
            start_channel_monitor()
        else:
            logging.getLogger(__name__).info("Channel monitor disabled")

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        await stop_channel_monitor()

    @app.get("/healthz", tags=["health"])
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    return app


app = create_app()
