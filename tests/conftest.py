from __future__ import annotations

import threading
import time

import pytest
import requests

from imagecache.models import CacheMetadata
from imagecache.store.layout import DataDir

JPEG_HEADER = b"\xff\xd8\xff\xe0"


def image_bytes(size: int = 4096, fill: bytes = b"a") -> bytes:
    return JPEG_HEADER + fill * (size - len(JPEG_HEADER))


def make_response(status: int = 200, body: bytes = b"", content_type: str | None = "image/jpeg") -> requests.Response:
    resp = requests.Response()
    resp.status_code = status
    resp.reason = "OK" if status < 400 else "Error"
    resp._content = body
    if content_type is not None:
        resp.headers["Content-Type"] = content_type
    return resp


class FakeDownloader:
    """Stands in for ImageDownloader; hands out payloads in order and counts calls."""

    def __init__(self, *payloads, delay: float = 0.0) -> None:
        self.payloads = list(payloads) or [image_bytes()]
        self.delay = delay
        self.calls = 0
        self._lock = threading.Lock()

    def __call__(self) -> bytes:
        with self._lock:
            self.calls += 1
            idx = min(self.calls, len(self.payloads)) - 1
        if self.delay:
            time.sleep(self.delay)
        item = self.payloads[idx]
        if isinstance(item, Exception):
            raise item
        return item


class FakeSession:
    """Maps URLs to callables returning a response (or raising)."""

    def __init__(self, routes=None) -> None:
        self.routes = dict(routes or {})
        self.calls: list[tuple[str, float | None]] = []

    def get(self, url, timeout=None, **kwargs):
        self.calls.append((url, timeout))
        handler = self.routes.get(url)
        if handler is None:
            raise requests.ConnectionError(f"no route to {url}")
        return handler()


class Clock:
    def __init__(self, start_ms: int = 1_700_000_000_000) -> None:
        self.value = start_ms

    def __call__(self) -> int:
        return self.value

    def advance(self, ms: int) -> None:
        self.value += ms


@pytest.fixture
def data_dir(tmp_path) -> DataDir:
    d = DataDir(tmp_path / "data")
    d.ensure()
    return d


@pytest.fixture
def clock() -> Clock:
    return Clock()


def seed_generation(data_dir: DataDir, body: bytes, meta: CacheMetadata) -> None:
    data_dir.image_path.write_bytes(body)
    data_dir.write_meta(meta)
