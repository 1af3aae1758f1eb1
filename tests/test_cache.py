import threading
from collections import Counter

import pytest

from conftest import FakeDownloader, FakeSession, image_bytes, make_response, seed_generation
from imagecache.errors import DownloadError, InvalidArtifactError, LockTimeoutError
from imagecache.models import CacheMetadata
from imagecache.owner.cache import ImageCache
from imagecache.owner.download import ImageDownloader
from imagecache.store.lock import FileLock

TTL = 600_000
HOUR = 3_600_000


def make_cache(data_dir, downloader, clock, **kwargs) -> ImageCache:
    kwargs.setdefault("lock", FileLock(data_dir.lock_path, retry_interval=0.005))
    return ImageCache(data_dir, downloader, ttl_ms=TTL, image_url="https://img.test/1200", clock=clock, **kwargs)


def snapshot(data_dir):
    return (
        data_dir.image_path.read_bytes(),
        data_dir.image_path.stat().st_mtime_ns,
        data_dir.meta_path.read_bytes(),
        data_dir.meta_path.stat().st_mtime_ns,
    )


def test_scenario_a_empty_dir_downloads_initial(data_dir, clock):
    body = image_bytes(5000)
    cache = make_cache(data_dir, FakeDownloader(body), clock)
    result = cache.ensure_fresh()
    assert result.action == "downloaded-initial"
    assert data_dir.image_path.read_bytes() == body
    meta = data_dir.read_meta()
    assert meta == result.meta
    assert meta.created_at_ms == clock.value
    assert meta.expires_at_ms == meta.created_at_ms + TTL
    assert meta.stale_served_once is False
    assert not data_dir.lock_path.exists()


def test_scenario_b_fresh_generation_is_kept(data_dir, clock):
    seed_generation(data_dir, image_bytes(), CacheMetadata(created_at_ms=clock.value, expires_at_ms=clock.value + HOUR))
    before = snapshot(data_dir)
    downloader = FakeDownloader()
    cache = make_cache(data_dir, downloader, clock)
    result = cache.ensure_fresh()
    assert result.action == "kept-valid"
    assert downloader.calls == 0
    assert snapshot(data_dir) == before


def test_scenario_c_first_expired_read_serves_old(data_dir, clock):
    old = image_bytes(3000, b"o")
    seed_generation(data_dir, old, CacheMetadata.issue(clock.value - TTL - 1, TTL))
    downloader = FakeDownloader()
    cache = make_cache(data_dir, downloader, clock)
    result = cache.ensure_fresh()
    assert result.action == "expired-served-old-once"
    assert downloader.calls == 0
    assert data_dir.image_path.read_bytes() == old
    assert data_dir.read_meta().stale_served_once is True


def test_scenario_d_second_expired_read_downloads(data_dir, clock):
    seed_generation(data_dir, image_bytes(3000, b"o"), CacheMetadata.issue(clock.value - TTL - 1, TTL).with_grace_used())
    new = image_bytes(6000, b"n")
    cache = make_cache(data_dir, FakeDownloader(new), clock)
    result = cache.ensure_fresh()
    assert result.action == "downloaded-after-expiry"
    assert data_dir.image_path.read_bytes() == new
    meta = data_dir.read_meta()
    assert meta.stale_served_once is False
    assert meta.created_at_ms == clock.value
    assert meta.expires_at_ms == clock.value + TTL


def test_scenario_e_non_image_keeps_previous_generation(data_dir, clock):
    seed_generation(data_dir, image_bytes(3000, b"o"), CacheMetadata.issue(clock.value - TTL - 1, TTL).with_grace_used())
    before = snapshot(data_dir)
    session = FakeSession({"https://img.test/1200": lambda: make_response(200, b"<html>" + b"x" * 394, "text/html")})
    cache = make_cache(data_dir, ImageDownloader(session, "https://img.test/1200"), clock)
    with pytest.raises(InvalidArtifactError):
        cache.ensure_fresh()
    assert snapshot(data_dir) == before
    assert not data_dir.lock_path.exists()
    assert sorted(p.name for p in data_dir.root.iterdir()) == ["image.jpg", "meta.json"]


def test_failed_initial_download_publishes_nothing(data_dir, clock):
    cache = make_cache(data_dir, FakeDownloader(DownloadError("connection refused")), clock)
    with pytest.raises(DownloadError):
        cache.ensure_fresh()
    assert list(data_dir.root.iterdir()) == []


def test_unparseable_meta_triggers_download(data_dir, clock):
    data_dir.image_path.write_bytes(image_bytes())
    data_dir.meta_path.write_text("{not json")
    cache = make_cache(data_dir, FakeDownloader(), clock)
    assert cache.ensure_fresh().action == "downloaded-initial"
    assert data_dir.read_meta() is not None


def test_meta_without_expiry_triggers_download(data_dir, clock):
    data_dir.image_path.write_bytes(image_bytes())
    data_dir.meta_path.write_text('{"createdAtMs": 1}')
    cache = make_cache(data_dir, FakeDownloader(), clock)
    assert cache.ensure_fresh().action == "downloaded-initial"


def test_float_timestamps_are_not_coerced(data_dir, clock):
    data_dir.image_path.write_bytes(image_bytes())
    data_dir.meta_path.write_text(
        '{"createdAtMs": 1700000000000.0, "expiresAtMs": 1.8e12, "afterExpiryServedOnce": false}'
    )
    assert data_dir.read_meta() is None
    downloader = FakeDownloader()
    cache = make_cache(data_dir, downloader, clock)
    result = cache.ensure_fresh()
    assert result.action == "downloaded-initial"
    assert downloader.calls == 1
    assert data_dir.read_meta().expires_at_ms == clock() + TTL


def test_non_bool_flag_triggers_download(data_dir, clock):
    data_dir.image_path.write_bytes(image_bytes())
    data_dir.meta_path.write_text(
        '{"createdAtMs": 1700000000000, "expiresAtMs": 1800000000000, "afterExpiryServedOnce": 0}'
    )
    cache = make_cache(data_dir, FakeDownloader(), clock)
    assert cache.ensure_fresh().action == "downloaded-initial"


def test_fresh_is_idempotent(data_dir, clock):
    downloader = FakeDownloader()
    cache = make_cache(data_dir, downloader, clock)
    cache.ensure_fresh()
    before = snapshot(data_dir)
    for _ in range(5):
        clock.advance(1000)
        assert cache.ensure_fresh().action == "kept-valid"
    assert downloader.calls == 1
    assert snapshot(data_dir) == before


def test_round_trip_keeps_ttl_invariant(data_dir, clock):
    cache = make_cache(data_dir, FakeDownloader(), clock)
    cache.ensure_fresh()
    clock.advance(TTL + 1)
    cache.ensure_fresh()
    cache.ensure_fresh()
    meta = data_dir.read_meta()
    assert meta.expires_at_ms - meta.created_at_ms == TTL


def test_full_lifecycle(data_dir, clock):
    downloader = FakeDownloader(image_bytes(2000, b"1"), image_bytes(2000, b"2"))
    cache = make_cache(data_dir, downloader, clock)
    actions = [cache.ensure_fresh().action]
    clock.advance(TTL + 1)
    actions += [cache.ensure_fresh().action, cache.ensure_fresh().action, cache.ensure_fresh().action]
    assert actions == ["downloaded-initial", "expired-served-old-once", "downloaded-after-expiry", "kept-valid"]
    assert data_dir.image_path.read_bytes() == image_bytes(2000, b"2")


def test_lock_timeout_surfaces_without_download(data_dir, clock):
    data_dir.lock_path.touch()
    downloader = FakeDownloader()
    cache = make_cache(data_dir, downloader, clock, lock_timeout=0.05)
    with pytest.raises(LockTimeoutError):
        cache.ensure_fresh()
    assert downloader.calls == 0
    assert data_dir.lock_path.exists()


def test_view_reports_meta_and_stat(data_dir, clock):
    cache = make_cache(data_dir, FakeDownloader(image_bytes(2500)), clock)
    empty = cache.view()
    assert empty.meta is None and empty.image is None
    cache.ensure_fresh()
    view = cache.view()
    assert view.image.size == 2500
    assert view.meta.expires_at_ms == clock.value + TTL
    assert view.to_payload()["imageUrl"] == "https://img.test/1200"


def _run_concurrently(cache, n=8):
    results = []
    errors = []
    barrier = threading.Barrier(n)

    def call():
        barrier.wait()
        try:
            results.append(cache.ensure_fresh().action)
        except Exception as exc:  # pragma: no cover - reported below
            errors.append(exc)

    threads = [threading.Thread(target=call) for _ in range(n)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert errors == []
    return Counter(results)


def test_concurrent_callers_after_forced_expiry_download_once(data_dir, clock):
    seed_generation(data_dir, image_bytes(3000, b"o"), CacheMetadata.issue(clock.value - TTL - 1, TTL).with_grace_used())
    downloader = FakeDownloader(image_bytes(3000, b"n"), delay=0.05)
    actions = _run_concurrently(make_cache(data_dir, downloader, clock))
    assert downloader.calls == 1
    assert actions == Counter({"downloaded-after-expiry": 1, "kept-valid": 7})


def test_concurrent_callers_use_grace_at_most_once(data_dir, clock):
    seed_generation(data_dir, image_bytes(3000, b"o"), CacheMetadata.issue(clock.value - TTL - 1, TTL))
    downloader = FakeDownloader(image_bytes(3000, b"n"), delay=0.02)
    actions = _run_concurrently(make_cache(data_dir, downloader, clock))
    assert actions["expired-served-old-once"] == 1
    assert actions["downloaded-after-expiry"] == 1
    assert downloader.calls == 1
    assert sum(actions.values()) == 8


def test_concurrent_callers_on_empty_dir(data_dir, clock):
    downloader = FakeDownloader(delay=0.02)
    actions = _run_concurrently(make_cache(data_dir, downloader, clock))
    assert downloader.calls == 1
    assert actions["downloaded-initial"] == 1
