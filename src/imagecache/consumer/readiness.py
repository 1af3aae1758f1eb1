from __future__ import annotations

import logging
import time
from typing import Callable

import requests

from ..models import TouchOutcome
from ..store.layout import DataDir
from ..util.time import now_ms

LOGGER = logging.getLogger(__name__)

TOUCH_TIMEOUT = 8.0
POLL_ATTEMPTS = 80
POLL_INTERVAL = 0.1


class ReadinessPoller:
    """Make sure the cached image exists before the consumer serves it.

    The consumer only predicts staleness from what it can read (image,
    expiry); whether a download really happens is decided by the owner.
    A failed trigger is not fatal: the poller still waits for the file.
    """

    def __init__(
        self,
        data_dir: DataDir,
        session: requests.Session,
        touch_url: str,
        touch_timeout: float = TOUCH_TIMEOUT,
        attempts: int = POLL_ATTEMPTS,
        interval: float = POLL_INTERVAL,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.data_dir = data_dir
        self.session = session
        self.touch_url = touch_url
        self.touch_timeout = touch_timeout
        self.attempts = attempts
        self.interval = interval
        self._sleep = sleep
        self._clock = clock

    def needs_touch(self) -> bool:
        if not self.data_dir.has_image():
            return True
        meta = self.data_dir.read_meta()
        if meta is None:
            return True
        return meta.is_expired(self._clock())

    def touch(self) -> TouchOutcome:
        try:
            resp = self.session.get(self.touch_url, timeout=self.touch_timeout)
        except requests.RequestException as exc:
            LOGGER.warning("Image cache trigger failed: %s", exc)
            return TouchOutcome(ok=False, error=str(exc))
        if not resp.ok:
            LOGGER.warning("Image cache trigger answered %s", resp.status_code)
            return TouchOutcome(ok=False, status=resp.status_code)
        return TouchOutcome(ok=True, status=resp.status_code)

    def wait_until_ready(self) -> bool:
        for _ in range(self.attempts):
            if self.data_dir.has_image():
                return True
            self._sleep(self.interval)
        ready = self.data_dir.has_image()
        if not ready:
            LOGGER.warning("Image still missing after %d polls", self.attempts)
        return ready

    def ensure_ready(self) -> bool:
        if self.needs_touch():
            self.touch()
        return self.wait_until_ready()
