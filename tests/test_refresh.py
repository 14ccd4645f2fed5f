from __future__ import annotations

import threading
from datetime import timedelta

import pytest

from cache import MemoryCache
from catalog import CatalogService
from conftest import TODAY, FakeTMDBClient, movie_payload, page_payload
from refresh import ALREADY_RUNNING, CatalogRefresher, RefreshScheduler
from strategies import DiscoverStrategy
from tmdb_client import UpstreamError


def _today():
    return TODAY


def _catalog(client: FakeTMDBClient, cache: MemoryCache) -> CatalogService:
    return CatalogService(
        client, cache,
        strategies=[DiscoverStrategy(client, today=_today, delay=0)],
        today=_today,
    )


def _records(count: int) -> list[dict]:
    return [
        movie_payload(i, release_date=(TODAY - timedelta(days=i)).isoformat())
        for i in range(1, count + 1)
    ]


def test_refresh_clears_and_rewarms(cache: MemoryCache) -> None:
    cache.set("stale", "value")
    client = FakeTMDBClient(discover_pages=[page_payload(_records(45))])
    catalog = _catalog(client, cache)
    refresher = CatalogRefresher(catalog, cache, pages=5, delay=0)

    summary = refresher.refresh()

    assert summary.success is True
    assert summary.movies_refreshed == 45
    assert summary.errors == []
    assert "stale" not in cache
    assert catalog.page_cache_key(1) in cache
    assert catalog.page_cache_key(3) in cache
    assert refresher.last_summary is summary

    body = summary.to_dict()
    assert body["moviesRefreshed"] == 45
    assert body["errors"] is None


def test_refresh_collects_page_errors(cache: MemoryCache) -> None:
    client = FakeTMDBClient(discover_pages=[UpstreamError("down", status_code=503)])
    refresher = CatalogRefresher(_catalog(client, cache), cache, pages=2, delay=0)

    summary = refresher.refresh()

    assert summary.success is True
    assert summary.movies_refreshed == 0
    assert len(summary.errors) == 2
    assert summary.errors[0].startswith("Page 1:")


def test_refresh_pauses_between_pages(cache: MemoryCache) -> None:
    pauses: list[float] = []
    client = FakeTMDBClient(discover_pages=[page_payload(_records(60))])
    refresher = CatalogRefresher(_catalog(client, cache), cache, pages=5, delay=0.1, sleep=pauses.append)

    refresher.refresh()

    assert pauses == [0.1, 0.1]


def test_refresh_is_not_reentrant(cache: MemoryCache) -> None:
    entered = threading.Event()
    release = threading.Event()

    class BlockingCatalog:
        def discover_movies(self, page: int = 1):
            entered.set()
            release.wait(5)
            raise UpstreamError("stop")

    refresher = CatalogRefresher(BlockingCatalog(), cache, pages=1, delay=0)  # type: ignore[arg-type]
    worker = threading.Thread(target=refresher.refresh)
    worker.start()
    try:
        assert entered.wait(5)
        assert refresher.is_running
        second = refresher.refresh()
    finally:
        release.set()
        worker.join(5)

    assert second.success is False
    assert second.errors == [ALREADY_RUNNING]
    assert not refresher.is_running


def test_scheduler_rejects_non_positive_interval(cache: MemoryCache) -> None:
    refresher = CatalogRefresher(_catalog(FakeTMDBClient(), cache), cache)
    with pytest.raises(ValueError):
        RefreshScheduler(refresher, 0)


def test_scheduler_runs_refresh_periodically(cache: MemoryCache) -> None:
    done = threading.Event()

    class RecordingRefresher:
        def refresh(self):
            done.set()

    scheduler = RefreshScheduler(RecordingRefresher(), interval=0.01)  # type: ignore[arg-type]
    scheduler.start()
    try:
        assert done.wait(5)
    finally:
        scheduler.stop()
