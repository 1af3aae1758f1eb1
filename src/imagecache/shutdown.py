from __future__ import annotations

import logging
import os
import signal
import threading

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

LOGGER = logging.getLogger(__name__)

SHUTDOWN_DELAY = 0.2


def _terminate() -> None:
    os.kill(os.getpid(), signal.SIGTERM)


def install_shutdown_route(app: FastAPI, enabled: bool, delay: float = SHUTDOWN_DELAY) -> None:
    """Crash-test helper: ``GET /shutdown`` stops the process after answering.

    Off unless ``ENABLE_SHUTDOWN`` is set; there is no access control.
    """

    @app.get("/shutdown", response_class=PlainTextResponse)
    def shutdown():
        if not enabled:
            return PlainTextResponse("Not Found\n", status_code=404)
        LOGGER.warning("Shutdown requested over HTTP")
        timer = threading.Timer(delay, _terminate)
        timer.daemon = True
        timer.start()
        return "shutting down\n"
