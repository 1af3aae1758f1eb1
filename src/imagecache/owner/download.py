from __future__ import annotations

import logging
from typing import Protocol

import requests

from ..errors import DownloadError, InvalidArtifactError

LOGGER = logging.getLogger(__name__)

MIN_IMAGE_BYTES = 1024


class Downloader(Protocol):
    def __call__(self) -> bytes:  # pragma: no cover - structural contract
        ...


def validate_image(content_type: str, body: bytes, min_bytes: int = MIN_IMAGE_BYTES) -> None:
    ct = (content_type or "").lower()
    if not ct.startswith("image/"):
        raise InvalidArtifactError(f"Unexpected content-type: {ct or '<none>'}")
    if len(body) < min_bytes:
        raise InvalidArtifactError(f"Image too small ({len(body)} bytes), refusing to write")


class ImageDownloader:
    """Fetch the remote image into memory and reject anything that is not one."""

    def __init__(self, session: requests.Session, url: str, timeout: float = 30, min_bytes: int = MIN_IMAGE_BYTES) -> None:
        self.session = session
        self.url = url
        self.timeout = timeout
        self.min_bytes = min_bytes

    def __call__(self) -> bytes:
        try:
            resp = self.session.get(self.url, timeout=self.timeout, allow_redirects=True)
        except requests.RequestException as exc:
            raise DownloadError(f"Failed to fetch image: {exc}") from exc
        if not resp.ok:
            raise DownloadError(f"Failed to fetch image: {resp.status_code} {resp.reason}")
        body = resp.content
        validate_image(resp.headers.get("Content-Type", ""), body, self.min_bytes)
        LOGGER.debug("Fetched %d bytes from %s", len(body), self.url)
        return body
