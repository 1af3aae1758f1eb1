from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Optional

from pydantic import BaseModel, Field


class CacheMetadata(BaseModel):
    """Record persisted next to the artifact, one per generation."""

    created_at_ms: int = Field(alias="createdAtMs", strict=True)
    expires_at_ms: int = Field(alias="expiresAtMs", strict=True)
    stale_served_once: bool = Field(default=False, alias="afterExpiryServedOnce", strict=True)

    model_config = {
        "populate_by_name": True,
        "frozen": True,
    }

    @classmethod
    def issue(cls, now_ms: int, ttl_ms: int) -> "CacheMetadata":
        return cls(created_at_ms=now_ms, expires_at_ms=now_ms + ttl_ms, stale_served_once=False)

    def is_expired(self, now_ms: int) -> bool:
        return now_ms > self.expires_at_ms

    def with_grace_used(self) -> "CacheMetadata":
        return self.model_copy(update={"stale_served_once": True})

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


@dataclass(slots=True)
class ArtifactStat:
    size: int
    mtime_ms: int

    def to_payload(self) -> dict[str, int]:
        return {"size": self.size, "mtimeMs": self.mtime_ms}


@dataclass(slots=True)
class CacheView:
    data_dir: str
    image_url: str
    ttl_ms: int
    meta: Optional[CacheMetadata]
    image: Optional[ArtifactStat]

    def to_payload(self) -> dict[str, Any]:
        return {
            "dataDir": self.data_dir,
            "imageUrl": self.image_url,
            "ttlMs": self.ttl_ms,
            "meta": self.meta.to_payload() if self.meta else None,
            "image": self.image.to_payload() if self.image else None,
        }


@dataclass(slots=True)
class RefreshResult:
    action: str
    meta: CacheMetadata

    def to_payload(self) -> dict[str, Any]:
        return {"action": self.action, "meta": self.meta.to_payload()}


@dataclass(slots=True)
class TouchOutcome:
    ok: bool
    status: Optional[int] = None
    error: Optional[str] = None

    def to_payload(self) -> dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}
