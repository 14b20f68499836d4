"""Application entry point for the FastAPI backend."""
from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import get_settings
from .database import init_db
from .routers import (
    auth_router,
    conversations_router,
    follows_router,
    notifications_router,
    posts_router,
    profiles_router,
    realtime_router,
    rooms_router,
    uploads_router,
)
from .services import LoginRequiredError, change_feed_manager
from .services.storage_service import is_storage_configured

logger = logging.getLogger(__name__)

settings = get_settings()

app = FastAPI(title=settings.app_name, version=settings.api_version)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

for router in (
    auth_router,
    profiles_router,
    follows_router,
    posts_router,
    rooms_router,
    conversations_router,
    notifications_router,
    uploads_router,
    realtime_router,
):
    app.include_router(router)


@app.exception_handler(LoginRequiredError)
async def _login_required_handler(request: Request, exc: LoginRequiredError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "redirect_to": exc.redirect_to},
        headers=exc.headers,
    )


@app.on_event("startup")
async def _startup() -> None:
    """Ensure the database schema exists before serving."""

    try:
        init_db()
    except Exception:
        logger.exception("Database initialisation failed")
        raise
    if not is_storage_configured():
        logger.warning("Storage credentials are not configured; uploads will be rejected")


@app.get("/api", tags=["system"])
def api_info() -> dict[str, str]:
    return {"service": settings.app_name, "version": settings.api_version}


@app.get("/health", tags=["system"])
async def healthcheck() -> dict[str, object]:
    return {
        "status": "ok",
        "realtime_connections": change_feed_manager.subscriber_count(),
        "storage_configured": is_storage_configured(),
    }


__all__ = ["app"]
