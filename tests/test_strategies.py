from __future__ import annotations

import pytest

from conftest import TODAY, FakeTMDBClient, movie_payload, page_payload
from constants import StrategyName
from metrics import metrics
from models import Movie
from providers import PROVIDER_LIST
from strategies import (
    DiscoverStrategy,
    ExternalIdEnricher,
    KeywordSearchStrategy,
    TitleSearchStrategy,
    build_strategies,
)
from tmdb_client import UpstreamError


def _today():
    return TODAY


def test_discover_params_include_language_date_and_providers() -> None:
    strategy = DiscoverStrategy(FakeTMDBClient(), today=_today, watch_region="IN", delay=0)
    params = strategy.build_params(3)
    assert params["with_original_language"] == "ml"
    assert params["sort_by"] == "release_date.desc"
    assert params["release_date.lte"] == "2024-06-01"
    assert params["include_adult"] == "false"
    assert params["page"] == 3
    assert params["with_watch_providers"] == PROVIDER_LIST
    assert params["watch_region"] == "IN"


def test_discover_without_provider_filter() -> None:
    strategy = DiscoverStrategy(FakeTMDBClient(), with_providers=False, today=_today, delay=0)
    params = strategy.build_params(1)
    assert "with_watch_providers" not in params
    assert "watch_region" not in params


def test_discover_pages_until_last_page_and_filters_candidates() -> None:
    client = FakeTMDBClient(discover_pages=[
        page_payload([movie_payload(1), movie_payload(2, language="ta")], total_pages=2),
        page_payload([movie_payload(3, release_date="2025-01-01"), movie_payload(4, release_date="")], total_pages=2),
    ])
    strategy = DiscoverStrategy(client, today=_today, delay=0)

    movies = strategy.fetch_candidates()

    assert [m.id for m in movies] == [1]
    assert client.count("discover_movies") == 2


def test_discover_stops_at_empty_page() -> None:
    client = FakeTMDBClient(discover_pages=[
        page_payload([movie_payload(1)], total_pages=5),
        page_payload([], total_pages=5),
        page_payload([movie_payload(3)], total_pages=5),
    ])
    movies = DiscoverStrategy(client, today=_today, delay=0).fetch_candidates()
    assert [m.id for m in movies] == [1]
    assert client.count("discover_movies") == 2


def test_discover_page_ceiling_is_counted() -> None:
    client = FakeTMDBClient(discover_pages=[
        page_payload([movie_payload(i)], total_pages=50) for i in range(1, 4)
    ])
    movies = DiscoverStrategy(client, max_pages=2, today=_today, delay=0).fetch_candidates()
    assert [m.id for m in movies] == [1, 2]
    assert metrics.get_counter("discover_page_ceiling_hits") == 1


def test_discover_first_page_failure_propagates() -> None:
    client = FakeTMDBClient(discover_pages=[UpstreamError("boom", status_code=500)])
    with pytest.raises(UpstreamError):
        DiscoverStrategy(client, today=_today, delay=0).fetch_candidates()


def test_discover_later_page_failure_keeps_earlier_pages() -> None:
    client = FakeTMDBClient(discover_pages=[
        page_payload([movie_payload(1)], total_pages=3),
        UpstreamError("boom", status_code=503),
        page_payload([movie_payload(3)], total_pages=3),
    ])
    movies = DiscoverStrategy(client, today=_today, delay=0).fetch_candidates()
    assert [m.id for m in movies] == [1]


def test_discover_pauses_between_pages() -> None:
    pauses: list[float] = []
    client = FakeTMDBClient(discover_pages=[
        page_payload([movie_payload(1)], total_pages=2),
        page_payload([movie_payload(2)], total_pages=2),
    ])
    DiscoverStrategy(client, today=_today, delay=0.1, sleep=pauses.append).fetch_candidates()
    assert pauses == [0.1]


def test_title_search_filters_language_and_absorbs_failures() -> None:
    client = FakeTMDBClient(searches={
        "Premalu": page_payload([movie_payload(10, title="Premalu"), movie_payload(11, language="te")]),
        "Aavesham": UpstreamError("rate limited", status_code=429),
    })
    strategy = TitleSearchStrategy(client, titles=("Premalu", "Aavesham"), today=_today, delay=0)

    movies = strategy.fetch_candidates()

    assert [m.id for m in movies] == [10]


def test_title_search_raises_when_every_search_fails() -> None:
    error = UpstreamError("down", status_code=503)
    client = FakeTMDBClient(searches={"A": error, "B": error})
    strategy = TitleSearchStrategy(client, titles=("A", "B"), today=_today, delay=0)
    with pytest.raises(UpstreamError) as exc_info:
        strategy.fetch_candidates()
    assert exc_info.value.status_code == 503


def test_keyword_search_reads_several_pages() -> None:
    client = FakeTMDBClient(searches={
        "mollywood": page_payload([movie_payload(20)], total_pages=3),
    })
    strategy = KeywordSearchStrategy(
        client, keywords=("mollywood",), pages_per_keyword=2, today=_today, delay=0,
    )
    movies = strategy.fetch_candidates()
    assert client.count("search_movies") == 2
    assert [m.id for m in movies] == [20, 20]


def test_build_strategies_in_order() -> None:
    client = FakeTMDBClient()
    strategies = build_strategies(
        [StrategyName.TITLES, StrategyName.DISCOVER], client,
        with_providers=False, max_pages=4, delay=0,
    )
    assert [s.name for s in strategies] == ["titles", "discover"]
    discover = strategies[1]
    assert isinstance(discover, DiscoverStrategy)
    assert discover.max_pages == 4
    assert discover.with_providers is False


def _providers(*ids: int, kind: str = "flatrate", region: str = "IN") -> dict:
    return {"results": {region: {kind: [{"provider_id": i} for i in ids]}}}


def test_enricher_keeps_streamable_movies_with_imdb_ids() -> None:
    client = FakeTMDBClient(
        providers={1: _providers(8), 2: _providers(8), 3: _providers(8, region="US"), 4: _providers(999)},
        external={1: {"imdb_id": "tt1234567"}, 2: {"imdb_id": None}},
    )
    movies = [Movie(id=i, title=f"M{i}", original_language="ml") for i in (1, 2, 3, 4)]

    enriched = ExternalIdEnricher(client, region="IN").enrich(movies)

    assert [(m.id, m.imdb_id) for m in enriched] == [(1, "tt1234567")]


def test_enricher_accepts_rent_and_buy_and_any_provider_when_unrestricted() -> None:
    client = FakeTMDBClient(
        providers={1: _providers(8, kind="rent"), 2: _providers(999, kind="buy")},
        external={1: {"imdb_id": "tt7654321"}, 2: {"imdb_id": "tt1111111"}},
    )
    movies = [Movie(id=1, original_language="ml"), Movie(id=2, original_language="ml")]

    enriched = ExternalIdEnricher(client, region="IN", known_providers_only=False).enrich(movies)

    assert [m.imdb_id for m in enriched] == ["tt7654321", "tt1111111"]


def test_enricher_skips_external_lookup_when_imdb_id_known() -> None:
    client = FakeTMDBClient(providers={1: _providers(119)})
    movies = [Movie(id=1, original_language="ml", imdb_id="tt0000001")]

    enriched = ExternalIdEnricher(client, region="IN").enrich(movies)

    assert enriched == movies
    assert client.count("external_ids") == 0


def test_enricher_raises_when_every_lookup_fails() -> None:
    error = UpstreamError("down", status_code=500)
    client = FakeTMDBClient(providers={1: error, 2: error})
    movies = [Movie(id=1, original_language="ml"), Movie(id=2, original_language="ml")]
    with pytest.raises(UpstreamError):
        ExternalIdEnricher(client, region="IN").enrich(movies)
