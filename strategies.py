"""
Candidate sourcing strategies for the Malayalam catalog.

Each strategy pulls candidate movies from TMDB in its own way and returns
only target-language, already released records. The catalog pipeline
merges, sorts and paginates whatever the active strategies return, so
strategies can be added, combined or dropped independently.

Failure policy:
    A failing call inside a strategy (one search term, one page) is logged
    and skipped. A strategy raises UpstreamError only when every upstream
    call it attempted failed, which lets the pipeline tell "no results"
    apart from "upstream unavailable".
"""

import logging
import time
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from datetime import date
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from constants import (
    CACHE_TTL_DISCOVER,
    CACHE_TTL_ENRICHED,
    CACHE_TTL_SEARCH_STRATEGY,
    KEYWORD_SEARCH_PAGES,
    MAX_DISCOVER_PAGES,
    MAX_ENRICH_WORKERS,
    REQUEST_DELAY,
    TARGET_LANGUAGE,
    WATCH_REGION,
    StrategyName,
)
from metrics import metrics
from models import Movie
from providers import PROVIDER_LIST, is_known_provider
from text_utils import parse_int, validate_imdb_id
from tmdb_client import TMDBClient, UpstreamError

logger = logging.getLogger(__name__)

# Well-known Malayalam releases, searched by title
KNOWN_MALAYALAM_TITLES: Tuple[str, ...] = (
    "Manjummel Boys",
    "Aavesham",
    "Premalu",
    "Bramayugam",
    "Aadujeevitham",
    "2018",
    "Romancham",
    "RDX",
    "Kannur Squad",
    "Drishyam 2",
    "Jaya Jaya Jaya Jaya Hey",
    "Minnal Murali",
    "Kumbalangi Nights",
    "Joji",
    "Nna Thaan Case Kodu",
    "Thallumaala",
    "Malaikottai Vaaliban",
    "Kishkindha Kaandam",
    "Ajayante Randam Moshanam",
    "Marco",
)

MALAYALAM_KEYWORDS: Tuple[str, ...] = ("malayalam", "mollywood", "kerala")


def parse_results(payload: Dict[str, Any]) -> List[Movie]:
    """Movies from a TMDB list payload, skipping malformed items."""
    return [
        Movie.from_tmdb(item)
        for item in payload.get("results") or []
        if isinstance(item, dict)
    ]


class CandidateStrategy(ABC):
    """
    Base class for candidate strategies.

    Subclasses set `name` and `cache_ttl` and implement fetch_candidates().
    """

    name: str = ""
    cache_ttl: int = CACHE_TTL_DISCOVER

    def __init__(
        self,
        client: TMDBClient,
        language: str = TARGET_LANGUAGE,
        delay: float = REQUEST_DELAY,
        today: Callable[[], date] = date.today,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Args:
            client: TMDB client used for every upstream call
            language: Original-language code records must have
            delay: Pause in seconds between successive upstream calls
            today: Date source for the "already released" check
            sleep: Sleep function (injectable for tests)
        """
        self.client = client
        self.language = language
        self.delay = delay
        self._today = today
        self._sleep = sleep

    @abstractmethod
    def fetch_candidates(self) -> List[Movie]:
        """Return eligible candidate movies; raises UpstreamError on total failure."""

    def today(self) -> date:
        return self._today()

    def keep(self, movie: Movie) -> bool:
        """Target language and released on or before today."""
        return movie.is_target_language(self.language) and movie.is_released(self.today())

    def pause(self) -> None:
        if self.delay > 0:
            self._sleep(self.delay)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


class DiscoverStrategy(CandidateStrategy):
    """
    Page through /discover/movie with language, provider and date filters.

    Stops at an empty page, the last upstream page, or `max_pages`,
    whichever comes first. Hitting `max_pages` while upstream reports more
    pages is logged as a warning.
    """

    name = StrategyName.DISCOVER.value
    cache_ttl = CACHE_TTL_DISCOVER

    def __init__(
        self,
        client: TMDBClient,
        max_pages: int = MAX_DISCOVER_PAGES,
        with_providers: bool = True,
        watch_region: str = WATCH_REGION,
        **kwargs,
    ):
        super().__init__(client, **kwargs)
        self.max_pages = max(1, max_pages)
        self.with_providers = with_providers
        self.watch_region = watch_region

    def build_params(self, page: int) -> Dict[str, Any]:
        """Discovery filter for one page."""
        params = {
            "with_original_language": self.language,
            "sort_by": "release_date.desc",
            "include_adult": "false",
            "release_date.lte": self.today().isoformat(),
            "page": page,
        }
        if self.with_providers:
            params["with_watch_providers"] = PROVIDER_LIST
            params["watch_region"] = self.watch_region
        return params

    def fetch_candidates(self) -> List[Movie]:
        movies: List[Movie] = []
        total_pages = 0

        for page in range(1, self.max_pages + 1):
            if page > 1:
                self.pause()

            try:
                payload = self.client.discover_movies(**self.build_params(page))
            except UpstreamError as e:
                if page == 1:
                    raise
                logger.warning(f"discover: page {page} failed, keeping {len(movies)} candidates: {e}")
                break

            page_movies = parse_results(payload)
            if not page_movies:
                logger.debug(f"discover: page {page} empty, stopping")
                break

            movies.extend(m for m in page_movies if self.keep(m))
            total_pages = parse_int(payload.get("total_pages"), page)
            if page >= total_pages:
                break
        else:
            logger.warning(
                f"discover: stopped at page ceiling {self.max_pages} "
                f"with {total_pages} upstream pages available"
            )
            metrics.inc("discover_page_ceiling_hits")

        logger.info(f"discover: {len(movies)} candidates")
        return movies


class SearchStrategy(CandidateStrategy):
    """
    Base for strategies that run /search/movie for a list of queries.

    Search is a text match, so results are re-filtered by language and
    release date.
    """

    pages_per_query: int = 1

    def __init__(self, client: TMDBClient, queries: Sequence[str], **kwargs):
        super().__init__(client, **kwargs)
        self.queries = tuple(queries)

    def fetch_candidates(self) -> List[Movie]:
        movies: List[Movie] = []
        attempted = 0
        failed = 0
        last_error: Optional[UpstreamError] = None

        for query in self.queries:
            for page in range(1, self.pages_per_query + 1):
                if attempted:
                    self.pause()
                attempted += 1

                try:
                    payload = self.client.search_movies(query, page=page)
                except UpstreamError as e:
                    failed += 1
                    last_error = e
                    logger.warning(f"{self.name}: search '{query}' page {page} failed: {e}")
                    break

                page_movies = parse_results(payload)
                kept = [m for m in page_movies if self.keep(m)]
                movies.extend(kept)
                logger.debug(
                    f"{self.name}: '{query}' page {page}: "
                    f"{len(kept)}/{len(page_movies)} kept"
                )

                if not page_movies or page >= parse_int(payload.get("total_pages"), page):
                    break

        if attempted and failed == attempted:
            raise UpstreamError(
                f"All {attempted} {self.name} searches failed",
                status_code=last_error.status_code if last_error else None,
                endpoint="/search/movie",
            )

        logger.info(f"{self.name}: {len(movies)} candidates from {len(self.queries)} queries")
        return movies


class TitleSearchStrategy(SearchStrategy):
    """One title search per curated Malayalam title."""

    name = StrategyName.TITLES.value
    cache_ttl = CACHE_TTL_SEARCH_STRATEGY
    pages_per_query = 1

    def __init__(self, client: TMDBClient, titles: Sequence[str] = KNOWN_MALAYALAM_TITLES, **kwargs):
        super().__init__(client, titles, **kwargs)


class KeywordSearchStrategy(SearchStrategy):
    """A few pages of text search per language/region keyword."""

    name = StrategyName.KEYWORDS.value
    cache_ttl = CACHE_TTL_SEARCH_STRATEGY

    def __init__(
        self,
        client: TMDBClient,
        keywords: Sequence[str] = MALAYALAM_KEYWORDS,
        pages_per_keyword: int = KEYWORD_SEARCH_PAGES,
        **kwargs,
    ):
        super().__init__(client, keywords, **kwargs)
        self.pages_per_query = max(1, pages_per_keyword)


STRATEGY_TYPES = {
    StrategyName.DISCOVER: DiscoverStrategy,
    StrategyName.TITLES: TitleSearchStrategy,
    StrategyName.KEYWORDS: KeywordSearchStrategy,
}


def build_strategies(
    names: Iterable[StrategyName],
    client: TMDBClient,
    with_providers: bool = True,
    max_pages: int = MAX_DISCOVER_PAGES,
    **kwargs,
) -> List[CandidateStrategy]:
    """
    Instantiate strategies by name, in the given order.

    Extra keyword arguments (language, delay, today, sleep) go to every
    strategy.
    """
    strategies = []
    for name in names:
        strategy_type = STRATEGY_TYPES[StrategyName(name)]
        if strategy_type is DiscoverStrategy:
            strategies.append(DiscoverStrategy(
                client, max_pages=max_pages, with_providers=with_providers, **kwargs
            ))
        else:
            strategies.append(strategy_type(client, **kwargs))
    return strategies


# =============================================================================
# Per-title enrichment
# =============================================================================

class ExternalIdEnricher:
    """
    Keep only candidates streaming in the watch region and attach IMDb ids.

    For each candidate:
        1. /movie/{id}/watch/providers must list a qualifying provider for
           the region (flatrate, rent or buy; one of ours when
           known_providers_only is set)
        2. /movie/{id}/external_ids must yield a valid IMDb id

    Candidates failing either check are dropped. Lookups run in a small
    thread pool; the shared session's rate limiter paces them.
    """

    name = "imdb"
    cache_ttl = CACHE_TTL_ENRICHED
    PROVIDER_KINDS = ("flatrate", "rent", "buy")

    def __init__(
        self,
        client: TMDBClient,
        region: str = WATCH_REGION,
        known_providers_only: bool = True,
        max_workers: int = MAX_ENRICH_WORKERS,
    ):
        self.client = client
        self.region = region
        self.known_providers_only = known_providers_only
        self.max_workers = min(5, max(1, max_workers))

    def has_qualifying_provider(self, payload: Dict[str, Any]) -> bool:
        region = (payload.get("results") or {}).get(self.region) or {}
        for kind in self.PROVIDER_KINDS:
            for entry in region.get(kind) or []:
                if not isinstance(entry, dict):
                    continue
                if not self.known_providers_only or is_known_provider(entry.get("provider_id")):
                    return True
        return False

    def enrich_one(self, movie: Movie) -> Tuple[Optional[Movie], bool]:
        """
        Enrich a single candidate.

        Returns:
            (enriched movie or None if dropped, whether an upstream call failed)
        """
        if movie.id is None:
            return None, False

        try:
            providers = self.client.watch_providers(movie.id)
        except UpstreamError as e:
            logger.debug(f"enrich: providers lookup failed for {movie.id}: {e}")
            return None, True

        if not self.has_qualifying_provider(providers):
            logger.debug(f"enrich: {movie.display_title} has no providers in {self.region}")
            return None, False

        if validate_imdb_id(movie.imdb_id):
            return movie, False

        try:
            external = self.client.external_ids(movie.id)
        except UpstreamError as e:
            logger.debug(f"enrich: external ids lookup failed for {movie.id}: {e}")
            return None, True

        imdb_id = external.get("imdb_id")
        if not validate_imdb_id(imdb_id):
            return None, False
        return replace(movie, imdb_id=imdb_id.lower()), False

    def enrich(self, movies: Sequence[Movie]) -> List[Movie]:
        """
        Enrich candidates, preserving input order.

        Raises:
            UpstreamError: if every candidate's lookups failed
        """
        if not movies:
            return []

        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            outcomes = list(pool.map(self.enrich_one, movies))

        enriched = [movie for movie, _ in outcomes if movie is not None]
        failures = sum(1 for _, failed in outcomes if failed)
        if failures == len(outcomes):
            raise UpstreamError(f"Enrichment failed for all {failures} candidates")
        if failures:
            logger.warning(f"enrich: {failures}/{len(outcomes)} lookups failed")

        logger.info(f"enrich: kept {len(enriched)}/{len(movies)} candidates with IMDb ids")
        return enriched
