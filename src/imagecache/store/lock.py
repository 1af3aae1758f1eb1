from __future__ import annotations

import logging
import os
import secrets
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, ContextManager, Iterator, Protocol, TypeVar

from ..errors import LockTimeoutError

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TIMEOUT = 15.0
DEFAULT_STALE_AFTER = 60.0
DEFAULT_RETRY_INTERVAL = 0.15


class LockBackend(Protocol):
    def acquire(self, timeout: float, stale_after: float) -> ContextManager[None]:  # pragma: no cover - structural contract
        ...


class FileLock:
    """Advisory cross-process lock backed by a create-exclusive marker file.

    The marker's mtime is its age. A marker older than ``stale_after`` is
    treated as left behind by a crashed holder and removed by whoever
    contends for it next. A holder that is merely slow and gets judged
    stale loses the lock without noticing.
    """

    def __init__(
        self,
        path: Path,
        retry_interval: float = DEFAULT_RETRY_INTERVAL,
        sleep: Callable[[float], None] = time.sleep,
        monotonic: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
    ) -> None:
        self.path = path
        self.retry_interval = retry_interval
        self._sleep = sleep
        self._monotonic = monotonic
        self._wall_clock = wall_clock

    def _try_create(self) -> bool:
        try:
            fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o644)
        except FileExistsError:
            return False
        os.close(fd)
        return True

    def age(self) -> float | None:
        """Seconds since the marker was last modified, ``None`` if absent."""
        try:
            mtime = self.path.stat().st_mtime
        except FileNotFoundError:
            return None
        return self._wall_clock() - mtime

    def break_if_stale(self, stale_after: float) -> bool:
        """Remove the marker if it is older than ``stale_after`` seconds.

        The marker is renamed aside before it is deleted. If what got moved
        is not the marker that was judged stale (another contender broke it
        and created a fresh one in between), it is linked back in place.
        """
        try:
            seen = self.path.stat()
        except FileNotFoundError:
            return False
        age = self._wall_clock() - seen.st_mtime
        if age <= stale_after:
            return False
        tomb = self.path.with_name(f"{self.path.name}.stale-{os.getpid()}-{secrets.token_hex(8)}")
        try:
            os.rename(self.path, tomb)
        except FileNotFoundError:
            return True
        try:
            moved = tomb.stat()
            if (moved.st_ino, moved.st_mtime_ns) != (seen.st_ino, seen.st_mtime_ns):
                LOGGER.debug("Lock %s was renewed while being broken, restoring it", self.path)
                try:
                    os.link(tomb, self.path)
                except FileExistsError:
                    pass
                return False
        finally:
            tomb.unlink(missing_ok=True)
        LOGGER.warning("Breaking stale lock %s (age %.1fs > %.1fs)", self.path, age, stale_after)
        return True

    def release(self) -> None:
        self.path.unlink(missing_ok=True)

    @contextmanager
    def acquire(self, timeout: float = DEFAULT_TIMEOUT, stale_after: float = DEFAULT_STALE_AFTER) -> Iterator[None]:
        started = self._monotonic()
        while not self._try_create():
            if self.break_if_stale(stale_after):
                continue
            waited = self._monotonic() - started
            if waited > timeout:
                LOGGER.warning("Gave up waiting for %s after %.1fs", self.path, waited)
                raise LockTimeoutError(self.path, waited)
            LOGGER.debug("Lock %s busy, retrying in %.2fs", self.path, self.retry_interval)
            self._sleep(self.retry_interval)
        try:
            yield
        finally:
            self.release()


def run_locked(
    lock: LockBackend,
    action: Callable[[], T],
    timeout: float = DEFAULT_TIMEOUT,
    stale_after: float = DEFAULT_STALE_AFTER,
) -> T:
    with lock.acquire(timeout=timeout, stale_after=stale_after):
        return action()
