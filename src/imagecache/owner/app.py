from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.responses import JSONResponse, PlainTextResponse

from ..config import OwnerSettings
from ..errors import ImageCacheError
from ..shutdown import install_shutdown_route
from ..store.layout import DataDir
from ..store.lock import FileLock
from ..util.http import create_session
from .cache import ImageCache
from .download import ImageDownloader

LOGGER = logging.getLogger(__name__)


def build_cache(settings: OwnerSettings) -> ImageCache:
    data_dir = DataDir(settings.data_dir)
    session = create_session(
        settings.user_agent,
        retries=settings.download_retries,
        timeout=settings.download_timeout_seconds,
    )
    downloader = ImageDownloader(
        session,
        settings.image_url,
        timeout=settings.download_timeout_seconds,
        min_bytes=settings.min_image_bytes,
    )
    return ImageCache(
        data_dir,
        downloader,
        ttl_ms=settings.ttl_ms,
        image_url=settings.image_url,
        lock=FileLock(data_dir.lock_path, retry_interval=settings.lock.retry_seconds),
        lock_timeout=settings.lock.timeout_seconds,
        lock_stale_after=settings.lock.stale_after_seconds,
    )


def _failure(exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=500, content={"ok": False, "error": str(exc)})


def create_app(settings: OwnerSettings, cache: Optional[ImageCache] = None) -> FastAPI:
    cache = cache or build_cache(settings)
    app = FastAPI(title="image-cache", description="Owner of the cached image")
    app.state.cache = cache

    @app.get("/healthz", response_class=PlainTextResponse)
    def healthz():
        try:
            cache.data_dir.ensure()
        except OSError as exc:
            return PlainTextResponse(f"not ok: {exc}\n", status_code=500)
        return "ok\n"

    # sync handlers run in the threadpool; the file lock serializes them
    @app.get("/touch")
    def touch():
        try:
            result = cache.ensure_fresh()
            view = cache.view()
        except (ImageCacheError, OSError) as exc:
            LOGGER.error("Touch failed: %s", exc)
            return _failure(exc)
        return {"ok": True, **result.to_payload(), "view": view.to_payload()}

    @app.get("/meta")
    def meta():
        try:
            view = cache.view()
        except OSError as exc:
            return _failure(exc)
        return {"ok": True, "view": view.to_payload()}

    install_shutdown_route(app, settings.enable_shutdown)
    return app
