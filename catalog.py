"""
Malayalam movie catalog pipeline.

Builds catalog pages from one or more candidate strategies:

    cache lookup (page key)
        -> candidate pool (cached separately, shared by all pages):
            run strategies, merge + dedup by TMDB id,
            optional IMDb enrichment + dedup by IMDb id,
            eligibility re-check (language, released),
            sort by release date, newest first
        -> genre / year filter
        -> paginate
        -> cache store (page key)

Partial upstream failures are absorbed by the strategies. Only when every
strategy fails does discover_movies() raise UpstreamUnavailableError
(or serve the placeholder page when that fallback is explicitly enabled).
"""

import logging
import math
from datetime import date
from typing import Callable, Hashable, Iterable, List, Optional, Sequence, Tuple

from cache import MemoryCache
from constants import (
    CACHE_TTL_DETAILS,
    CACHE_TTL_SEARCH,
    CACHE_TTL_TRENDING,
    PAGE_SIZE,
    TARGET_LANGUAGE,
    IdScheme,
)
from genres import get_genre_id
from metrics import metrics
from models import CataloguePage, Movie
from strategies import CandidateStrategy, DiscoverStrategy, ExternalIdEnricher, parse_results
from text_utils import normalize_for_cache_key, parse_int
from tmdb_client import TMDBClient, UpstreamError

logger = logging.getLogger(__name__)


class UpstreamUnavailableError(Exception):
    """Every catalog strategy failed; there is nothing to serve."""

    code = "upstream_unavailable"

    def __init__(self, message: str, failures: Sequence[str] = ()):
        super().__init__(message)
        self.message = message
        self.failures = list(failures)


# Served only when ENABLE_PLACEHOLDER_FALLBACK is on and upstream is down
PLACEHOLDER_MOVIES: Tuple[Movie, ...] = (
    Movie(
        id=0,
        title="Malayalam Movies (catalog temporarily unavailable)",
        original_language=TARGET_LANGUAGE,
        overview="The movie database could not be reached. Please try again later.",
    ),
)


# =============================================================================
# Pipeline Steps
# =============================================================================

def is_eligible(movie: Movie, language: str, today: date) -> bool:
    """Target language and released on or before today."""
    return movie.is_target_language(language) and movie.is_released(today)


def merge_candidates(
    batches: Iterable[Iterable[Movie]],
    key: Callable[[Movie], Optional[Hashable]] = lambda m: m.id,
) -> List[Movie]:
    """
    Concatenate candidate batches keeping the first record per key.

    Records whose key is None cannot be deduplicated and are dropped.
    """
    seen = set()
    merged = []
    for batch in batches:
        for movie in batch:
            identity = key(movie)
            if identity is None or identity in seen:
                continue
            seen.add(identity)
            merged.append(movie)
    return merged


def sort_by_release_date(movies: Iterable[Movie]) -> List[Movie]:
    """Newest first; undated records last. Stable for equal dates."""
    return sorted(movies, key=lambda m: m.release_date or date.min, reverse=True)


def filter_by_genre(movies: Sequence[Movie], genre: Optional[str]) -> List[Movie]:
    """
    Keep movies tagged with the named genre.

    An unrecognized genre name leaves the list unfiltered (logged).
    """
    if not genre or not genre.strip():
        return list(movies)

    genre_id = get_genre_id(genre)
    if genre_id is None:
        logger.warning(f"Unknown genre '{genre}', returning unfiltered catalog")
        metrics.inc("unknown_genre_requests")
        return list(movies)

    return [m for m in movies if genre_id in m.genre_ids]


def filter_by_year(movies: Sequence[Movie], year: Optional[int]) -> List[Movie]:
    """Keep movies released in the given year."""
    if not year:
        return list(movies)
    return [m for m in movies if m.release_year == year]


def paginate(movies: Sequence[Movie], page: int, page_size: int = PAGE_SIZE) -> CataloguePage:
    """Slice one 1-based page out of the filtered, sorted list."""
    page = max(1, page)
    total = len(movies)
    start = (page - 1) * page_size
    return CataloguePage(
        page=page,
        results=tuple(movies[start:start + page_size]),
        total_pages=math.ceil(total / page_size) if total else 0,
        total_results=total,
    )


# =============================================================================
# Catalog Service
# =============================================================================

class CatalogService:
    """
    Catalog pipeline plus secondary TMDB lookups, all behind one cache.

    Construct once per process and hand it to the HTTP layer.
    """

    def __init__(
        self,
        client: TMDBClient,
        cache: MemoryCache,
        strategies: Sequence[CandidateStrategy] = None,
        enricher: ExternalIdEnricher = None,
        id_scheme: IdScheme = IdScheme.TMDB,
        page_size: int = PAGE_SIZE,
        language: str = TARGET_LANGUAGE,
        placeholder_fallback: bool = False,
        today: Callable[[], date] = date.today,
    ):
        """
        Args:
            client: TMDB client
            cache: Shared result cache
            strategies: Candidate strategies, default discover only
            enricher: IMDb enrichment step; created automatically for IdScheme.IMDB
            id_scheme: Identifier scheme of the deployment
            page_size: Catalog page length
            language: Target original-language code
            placeholder_fallback: Serve PLACEHOLDER_MOVIES instead of raising
                when every strategy fails
            today: Date source for eligibility checks
        """
        if strategies is None:
            strategies = [DiscoverStrategy(client, language=language, today=today)]
        if not strategies:
            raise ValueError("CatalogService needs at least one strategy")

        self.client = client
        self.cache = cache
        self.strategies = list(strategies)
        self.id_scheme = IdScheme(id_scheme)
        if self.id_scheme is IdScheme.IMDB and enricher is None:
            enricher = ExternalIdEnricher(client)
        self.enricher = enricher
        self.page_size = page_size
        self.language = language
        self.placeholder_fallback = placeholder_fallback
        self._today = today

    @property
    def variant(self) -> str:
        """Identity of this pipeline configuration, part of every cache key."""
        names = "+".join(s.name for s in self.strategies)
        return f"{names}.{self.id_scheme.value}"

    @property
    def cache_ttl(self) -> int:
        if self.enricher is not None:
            return self.enricher.cache_ttl
        return min(s.cache_ttl for s in self.strategies)

    def identity_key(self, movie: Movie) -> Optional[Hashable]:
        """Dedup key: IMDb id for IMDb deployments, TMDB id otherwise."""
        if self.id_scheme is IdScheme.IMDB:
            return movie.imdb_id
        return movie.id

    def page_cache_key(self, page: int, genre: Optional[str] = None, year: Optional[int] = None) -> str:
        return (
            f"catalog:{self.variant}:p{page}"
            f":g{normalize_for_cache_key(genre)}:y{year or 'all'}"
        )

    @property
    def pool_cache_key(self) -> str:
        return f"pool:{self.variant}"

    # -------------------------------------------------------------------------
    # Catalog
    # -------------------------------------------------------------------------

    def discover_movies(
        self,
        page: int = 1,
        genre: Optional[str] = None,
        year: Optional[int] = None,
    ) -> CataloguePage:
        """
        Get one page of the Malayalam catalog, newest first.

        Args:
            page: 1-based page number (values below 1 are treated as 1)
            genre: Optional genre display name
            year: Optional release year

        Returns:
            CataloguePage with up to page_size movies and totals for the
            filtered set

        Raises:
            UpstreamUnavailableError: every strategy failed and the
                placeholder fallback is disabled
        """
        page = max(1, parse_int(page, 1))
        key = self.page_cache_key(page, genre, year)

        cached = self.cache.get(key)
        if cached is not None:
            metrics.inc("catalog_cache", labels={"result": "hit"})
            return cached
        metrics.inc("catalog_cache", labels={"result": "miss"})

        try:
            pool = self._candidate_pool()
        except UpstreamUnavailableError as e:
            if not self.placeholder_fallback:
                raise
            logger.warning(f"Serving placeholder catalog: {e}")
            metrics.inc("placeholder_pages")
            return paginate(PLACEHOLDER_MOVIES, 1, self.page_size)

        movies = filter_by_year(filter_by_genre(pool, genre), year)
        result = paginate(movies, page, self.page_size)

        self.cache.set(key, result, ttl=self.cache_ttl)
        logger.info(
            f"Catalog page {page} (genre={genre or 'all'}, year={year or 'all'}): "
            f"{len(result.results)} of {result.total_results} movies, {result.total_pages} pages",
            extra={"page": page, "genre": genre, "year": year},
        )
        return result

    def _candidate_pool(self) -> Tuple[Movie, ...]:
        """Merged, eligible, sorted candidates from all strategies."""
        cached = self.cache.get(self.pool_cache_key)
        if cached is not None:
            return cached

        batches: List[List[Movie]] = []
        failures: List[str] = []

        for strategy in self.strategies:
            try:
                with metrics.timer("strategy_duration_ms", labels={"strategy": strategy.name}):
                    batches.append(strategy.fetch_candidates())
            except UpstreamError as e:
                failures.append(f"{strategy.name}: {e}")
                logger.warning(f"Strategy '{strategy.name}' failed: {e}", extra={"strategy": strategy.name})
                metrics.inc("strategy_failures", labels={"strategy": strategy.name})
            except Exception as e:
                failures.append(f"{strategy.name}: {type(e).__name__}")
                logger.exception(f"Strategy '{strategy.name}' crashed: {e}", extra={"strategy": strategy.name})
                metrics.inc("strategy_failures", labels={"strategy": strategy.name})

        if not batches:
            raise UpstreamUnavailableError(
                f"All {len(self.strategies)} catalog strategies failed",
                failures,
            )

        merged = merge_candidates(batches)

        if self.enricher is not None:
            try:
                merged = self.enricher.enrich(merged)
            except UpstreamError as e:
                raise UpstreamUnavailableError(f"IMDb enrichment failed: {e}", failures + [str(e)]) from e
            merged = merge_candidates([merged], key=self.identity_key)

        today = self._today()
        eligible = [m for m in merged if is_eligible(m, self.language, today)]
        if len(eligible) != len(merged):
            logger.debug(f"Dropped {len(merged) - len(eligible)} ineligible candidates")

        pool = tuple(sort_by_release_date(eligible))
        self.cache.set(self.pool_cache_key, pool, ttl=self.cache_ttl)
        logger.info(
            f"Candidate pool '{self.variant}': {len(pool)} movies "
            f"({len(failures)} strategy failures)",
            extra={"strategy": self.variant, "pool_size": len(pool)},
        )
        return pool

    # -------------------------------------------------------------------------
    # Secondary lookups
    # -------------------------------------------------------------------------

    def get_movie_details(self, movie_id: int) -> Optional[Movie]:
        """
        Full details for one movie.

        Returns:
            Movie, or None when it is not a target-language movie

        Raises:
            UpstreamError: if the lookup fails
        """
        key = f"movie:{int(movie_id)}"
        movie = self.cache.get(key)
        if movie is None:
            movie = Movie.from_tmdb(self.client.movie_details(movie_id))
            self.cache.set(key, movie, ttl=CACHE_TTL_DETAILS)

        if not movie.is_target_language(self.language):
            logger.info(f"Movie {movie_id} is not a '{self.language}' movie")
            return None
        return movie

    def get_trending(self) -> List[Movie]:
        """This week's trending movies in the target language."""
        key = "trending:week"
        movies = self.cache.get(key)
        if movies is None:
            payload = self.client.trending_movies("week")
            movies = tuple(m for m in parse_results(payload) if m.is_target_language(self.language))
            self.cache.set(key, movies, ttl=CACHE_TTL_TRENDING)
        return list(movies)

    def search(self, query: str, page: int = 1) -> CataloguePage:
        """
        Title search restricted to the target language.

        total_pages is upstream's page count for the unfiltered search;
        total_results counts the target-language matches on this page.
        """
        query = (query or "").strip()
        page = max(1, parse_int(page, 1))
        if not query:
            return CataloguePage(page=page)

        key = f"search:{normalize_for_cache_key(query)}:p{page}"
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        payload = self.client.search_movies(query, page=page)
        results = tuple(m for m in parse_results(payload) if m.is_target_language(self.language))
        result = CataloguePage(
            page=page,
            results=results,
            total_pages=parse_int(payload.get("total_pages"), 0),
            total_results=len(results),
        )
        self.cache.set(key, result, ttl=CACHE_TTL_SEARCH)
        return result
