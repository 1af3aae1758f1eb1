from __future__ import annotations

import logging
from typing import Callable, Optional

from ..errors import DownloadError
from ..models import CacheView, RefreshResult
from ..policy import decide
from ..store.layout import DataDir
from ..store.lock import DEFAULT_STALE_AFTER, DEFAULT_TIMEOUT, FileLock, LockBackend
from ..util.time import now_ms
from .download import Downloader

LOGGER = logging.getLogger(__name__)


class ImageCache:
    """Owner of the data directory: keeps one generation of the image current.

    Every refresh decision is re-derived from disk while holding the lock,
    so callers that queued behind a download see its result instead of
    downloading again.
    """

    def __init__(
        self,
        data_dir: DataDir,
        downloader: Downloader,
        ttl_ms: int,
        image_url: str = "",
        lock: Optional[LockBackend] = None,
        lock_timeout: float = DEFAULT_TIMEOUT,
        lock_stale_after: float = DEFAULT_STALE_AFTER,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.data_dir = data_dir
        self.downloader = downloader
        self.ttl_ms = ttl_ms
        self.image_url = image_url
        self.lock = lock if lock is not None else FileLock(data_dir.lock_path)
        self.lock_timeout = lock_timeout
        self.lock_stale_after = lock_stale_after
        self._clock = clock
        self.data_dir.ensure()

    def _refresh(self) -> RefreshResult:
        current = self.data_dir.read_meta()
        decision = decide(self.data_dir.has_image(), current, self._clock(), self.ttl_ms)
        if decision.download:
            # artifact first: metadata must never describe a generation that is not on disk yet
            try:
                body = self.downloader()
            except DownloadError as exc:
                LOGGER.warning("Refresh aborted, keeping previous generation: %s", exc)
                raise
            self.data_dir.publish_image(body)
        if decision.writes_meta:
            self.data_dir.write_meta(decision.meta)
        LOGGER.info("%s -> %s", decision.state.value, decision.action.value)
        return RefreshResult(action=decision.action.value, meta=decision.meta)

    def ensure_fresh(self) -> RefreshResult:
        self.data_dir.ensure()
        with self.lock.acquire(timeout=self.lock_timeout, stale_after=self.lock_stale_after):
            return self._refresh()

    def view(self) -> CacheView:
        return CacheView(
            data_dir=str(self.data_dir.root),
            image_url=self.image_url,
            ttl_ms=self.ttl_ms,
            meta=self.data_dir.read_meta(),
            image=self.data_dir.image_stat(),
        )
