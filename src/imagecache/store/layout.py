from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from ..models import ArtifactStat, CacheMetadata
from .atomic import atomic_write_bytes, atomic_write_text

LOGGER = logging.getLogger(__name__)

IMAGE_NAME = "image.jpg"
META_NAME = "meta.json"
LOCK_NAME = ".download.lock"


@dataclass(frozen=True)
class DataDir:
    """Fixed file names inside the shared data directory."""

    root: Path

    @property
    def image_path(self) -> Path:
        return self.root / IMAGE_NAME

    @property
    def meta_path(self) -> Path:
        return self.root / META_NAME

    @property
    def lock_path(self) -> Path:
        return self.root / LOCK_NAME

    def ensure(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    def has_image(self) -> bool:
        return self.image_path.is_file()

    def image_stat(self) -> Optional[ArtifactStat]:
        try:
            st = self.image_path.stat()
        except FileNotFoundError:
            return None
        return ArtifactStat(size=st.st_size, mtime_ms=int(st.st_mtime * 1000))

    def read_meta(self) -> Optional[CacheMetadata]:
        try:
            raw = self.meta_path.read_bytes()
        except FileNotFoundError:
            return None
        try:
            payload = json.loads(raw)
        except ValueError:
            LOGGER.warning("Ignoring unparseable metadata in %s", self.meta_path)
            return None
        if not isinstance(payload, dict):
            return None
        try:
            return CacheMetadata.model_validate(payload)
        except ValidationError as exc:
            LOGGER.warning("Ignoring invalid metadata in %s: %s", self.meta_path, exc.error_count())
            return None

    def write_meta(self, meta: CacheMetadata) -> None:
        atomic_write_text(self.meta_path, json.dumps(meta.to_payload(), indent=2) + "\n")

    def publish_image(self, data: bytes) -> None:
        atomic_write_bytes(self.image_path, data)
