"""TTL refresh policy for the cached image.

The policy is a pure function of (artifact exists?, metadata, now). It
never touches the filesystem or the network, so the owner can evaluate
it under the refresh lock and every transition can be tested on its own.

    state               condition                                   action
    ------------------  ------------------------------------------  ------------------------
    MISSING             no artifact, or no valid metadata            download, fresh metadata
    FRESH               now <= expiresAt                             nothing
    EXPIRED_GRACE       now > expiresAt, grace not yet used          mark grace used
    EXPIRED_REFRESH     now > expiresAt, grace already used          download, fresh metadata
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .models import CacheMetadata


class CacheState(str, Enum):
    MISSING = "missing"
    FRESH = "fresh"
    EXPIRED_GRACE = "expired-grace"
    EXPIRED_REFRESH = "expired-refresh"


class RefreshAction(str, Enum):
    DOWNLOADED_INITIAL = "downloaded-initial"
    KEPT_VALID = "kept-valid"
    EXPIRED_SERVED_OLD_ONCE = "expired-served-old-once"
    DOWNLOADED_AFTER_EXPIRY = "downloaded-after-expiry"


@dataclass(frozen=True)
class Decision:
    state: CacheState
    action: RefreshAction
    download: bool
    # metadata in force once the action has been carried out
    meta: CacheMetadata

    @property
    def writes_meta(self) -> bool:
        return self.state is not CacheState.FRESH


_ACTIONS = {
    CacheState.MISSING: RefreshAction.DOWNLOADED_INITIAL,
    CacheState.FRESH: RefreshAction.KEPT_VALID,
    CacheState.EXPIRED_GRACE: RefreshAction.EXPIRED_SERVED_OLD_ONCE,
    CacheState.EXPIRED_REFRESH: RefreshAction.DOWNLOADED_AFTER_EXPIRY,
}


def classify(artifact_exists: bool, meta: Optional[CacheMetadata], now_ms: int) -> CacheState:
    if not artifact_exists or meta is None:
        return CacheState.MISSING
    if not meta.is_expired(now_ms):
        return CacheState.FRESH
    if not meta.stale_served_once:
        return CacheState.EXPIRED_GRACE
    return CacheState.EXPIRED_REFRESH


def decide(artifact_exists: bool, meta: Optional[CacheMetadata], now_ms: int, ttl_ms: int) -> Decision:
    state = classify(artifact_exists, meta, now_ms)
    action = _ACTIONS[state]
    if state is CacheState.FRESH:
        return Decision(state, action, download=False, meta=meta)
    if state is CacheState.EXPIRED_GRACE:
        return Decision(state, action, download=False, meta=meta.with_grace_used())
    return Decision(state, action, download=True, meta=CacheMetadata.issue(now_ms, ttl_ms))
