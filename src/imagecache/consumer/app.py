from __future__ import annotations

import logging
from typing import Optional

import requests
from fastapi import FastAPI
from fastapi.responses import FileResponse, HTMLResponse, PlainTextResponse

from ..config import ConsumerSettings
from ..shutdown import install_shutdown_route
from ..store.layout import DataDir
from ..util.http import create_session
from .page import fetch_pingpong, load_or_create_token, render_index
from .readiness import ReadinessPoller

LOGGER = logging.getLogger(__name__)

NO_CACHE_HEADERS = {
    "Cache-Control": "no-store, max-age=0",
    "Pragma": "no-cache",
    "Expires": "0",
}


def build_poller(settings: ConsumerSettings, session: requests.Session) -> ReadinessPoller:
    return ReadinessPoller(
        DataDir(settings.data_dir),
        session,
        settings.touch_url,
        touch_timeout=settings.touch_timeout_seconds,
        attempts=settings.poll_attempts,
        interval=settings.poll_interval_seconds,
    )


def create_app(
    settings: ConsumerSettings,
    poller: Optional[ReadinessPoller] = None,
    session: Optional[requests.Session] = None,
) -> FastAPI:
    # the trigger must not be retried behind the caller's back
    session = session or create_session(retries=0, timeout=settings.touch_timeout_seconds)
    poller = poller or build_poller(settings, session)
    data_dir = poller.data_dir
    data_dir.ensure()
    token = load_or_create_token(data_dir.root)

    app = FastAPI(title="log-output", description="Front end serving the cached image")
    app.state.poller = poller

    @app.get("/healthz", response_class=PlainTextResponse)
    def healthz():
        try:
            data_dir.ensure()
        except OSError as exc:
            return PlainTextResponse(f"not ok: {exc}\n", status_code=500)
        return "ok\n"

    @app.get("/image.jpg")
    def image():
        if not poller.ensure_ready():
            return PlainTextResponse("no image yet\n", status_code=404)
        return FileResponse(data_dir.image_path, media_type="image/jpeg", headers=NO_CACHE_HEADERS)

    @app.get("/", response_class=HTMLResponse)
    def index():
        ping_text = fetch_pingpong(session, settings.pingpong_url, settings.pingpong_timeout_seconds)
        return render_index(token, ping_text)

    install_shutdown_route(app, settings.enable_shutdown)
    return app
