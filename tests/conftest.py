from __future__ import annotations

import sys
from datetime import date
from pathlib import Path
from typing import Any

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from cache import MemoryCache  # noqa: E402
from credentials import TMDBCredentials  # noqa: E402
from metrics import metrics  # noqa: E402
from tmdb_client import UpstreamError  # noqa: E402

TODAY = date(2024, 6, 1)


def movie_payload(
    movie_id: int,
    release_date: str = "2024-01-01",
    language: str = "ml",
    title: str | None = None,
    genre_ids: tuple[int, ...] = (18,),
    **extra: Any,
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "id": movie_id,
        "title": title or f"Movie {movie_id}",
        "original_title": title or f"Movie {movie_id}",
        "original_language": language,
        "release_date": release_date,
        "genre_ids": list(genre_ids),
        "poster_path": f"/poster{movie_id}.jpg",
        "backdrop_path": f"/backdrop{movie_id}.jpg",
        "overview": f"Overview of movie {movie_id}",
        "vote_average": 7.25,
    }
    payload.update(extra)
    return payload


def page_payload(results: list[dict[str, Any]], total_pages: int = 1, page: int = 1) -> dict[str, Any]:
    return {
        "page": page,
        "results": results,
        "total_pages": total_pages,
        "total_results": len(results),
    }


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeTMDBClient:
    """Scripted stand-in for TMDBClient; entries may be payloads or exceptions."""

    def __init__(
        self,
        discover_pages: list[Any] | None = None,
        searches: dict[str, Any] | None = None,
        details: dict[int, Any] | None = None,
        providers: dict[int, Any] | None = None,
        external: dict[int, Any] | None = None,
        trending: Any = None,
        configuration: Any = None,
    ) -> None:
        self.credentials = TMDBCredentials(api_key="test-key")
        self.discover_pages = discover_pages or []
        self.searches = searches or {}
        self.details = details or {}
        self.providers = providers or {}
        self.external = external or {}
        self.trending = trending if trending is not None else page_payload([])
        self._configuration = configuration if configuration is not None else {"images": {}}
        self.calls: list[tuple[str, Any]] = []

    @staticmethod
    def _answer(value: Any) -> dict[str, Any]:
        if isinstance(value, Exception):
            raise value
        return value

    def count(self, method: str) -> int:
        return sum(1 for name, _ in self.calls if name == method)

    def discover_movies(self, **filters: Any) -> dict[str, Any]:
        self.calls.append(("discover_movies", filters))
        page = filters.get("page", 1)
        if page > len(self.discover_pages):
            return page_payload([], total_pages=len(self.discover_pages), page=page)
        return self._answer(self.discover_pages[page - 1])

    def search_movies(self, query: str, page: int = 1, language: str = "en-US") -> dict[str, Any]:
        self.calls.append(("search_movies", (query, page)))
        return self._answer(self.searches.get(query, page_payload([])))

    def movie_details(self, movie_id: int, append: str = "") -> dict[str, Any]:
        self.calls.append(("movie_details", movie_id))
        if movie_id not in self.details:
            raise UpstreamError("not found", status_code=404, endpoint=f"/movie/{movie_id}")
        return self._answer(self.details[movie_id])

    def watch_providers(self, movie_id: int) -> dict[str, Any]:
        self.calls.append(("watch_providers", movie_id))
        return self._answer(self.providers.get(movie_id, {"results": {}}))

    def external_ids(self, movie_id: int) -> dict[str, Any]:
        self.calls.append(("external_ids", movie_id))
        return self._answer(self.external.get(movie_id, {}))

    def trending_movies(self, window: str = "week") -> dict[str, Any]:
        self.calls.append(("trending_movies", window))
        return self._answer(self.trending)

    def configuration(self) -> dict[str, Any]:
        self.calls.append(("configuration", None))
        return self._answer(self._configuration)


class FakeResponse:
    def __init__(self, status_code: int = 200, json_data: Any = None, text: str = "") -> None:
        self.status_code = status_code
        self._json_data = json_data
        self.text = text

    def json(self) -> Any:
        if self._json_data is None:
            raise ValueError("No JSON object could be decoded")
        return self._json_data


class FakeSession:
    """Records get() calls and replays queued responses or exceptions."""

    def __init__(self, responses: list[Any] | None = None) -> None:
        self.responses = list(responses or [])
        self.calls: list[dict[str, Any]] = []
        self.closed = False

    def get(self, url: str, **kwargs: Any) -> FakeResponse:
        self.calls.append({"url": url, **kwargs})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def close(self) -> None:
        self.closed = True


@pytest.fixture(autouse=True)
def _reset_metrics() -> None:  # pyright: ignore[reportUnusedFunction]
    metrics.reset()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> MemoryCache:
    return MemoryCache(default_ttl=3600, clock=clock)
