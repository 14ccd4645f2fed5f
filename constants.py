"""
Shared constants, enums, and configuration for the Malayalam catalog addon.

This module centralizes all magic strings/numbers and reads the
environment-supplied configuration once at import time.
"""

import os
from enum import Enum
from typing import Final, Tuple


def _get_bool_env(key: str, default: bool = False) -> bool:
    """Get boolean from environment variable."""
    value = os.environ.get(key, "").lower()
    if value in ("true", "1", "yes", "on"):
        return True
    if value in ("false", "0", "no", "off"):
        return False
    return default


def _get_int_env(key: str, default: int) -> int:
    """Get integer from environment variable, falling back on bad input."""
    try:
        return int(os.environ.get(key, default))
    except (TypeError, ValueError):
        return default


def _get_float_env(key: str, default: float) -> float:
    """Get float from environment variable, falling back on bad input."""
    try:
        return float(os.environ.get(key, default))
    except (TypeError, ValueError):
        return default


# =============================================================================
# Enums
# =============================================================================

class IdScheme(str, Enum):
    """
    Identifier scheme for catalog entries.

    Inherits from str for JSON serialization compatibility.
    """
    TMDB = "tmdb"  # tmdb:{id}
    IMDB = "imdb"  # tt1234567, requires per-title external id lookups

    @classmethod
    def from_value(cls, value: str) -> "IdScheme":
        """Parse a configured scheme, defaulting to TMDB."""
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.TMDB


class StrategyName(str, Enum):
    """Names of the candidate sourcing strategies."""
    DISCOVER = "discover"
    TITLES = "titles"
    KEYWORDS = "keywords"

    @classmethod
    def parse_list(cls, value: str) -> Tuple["StrategyName", ...]:
        """Parse a comma separated list, ignoring unknown names."""
        names = []
        for part in (value or "").split(","):
            part = part.strip().lower()
            if not part:
                continue
            try:
                name = cls(part)
            except ValueError:
                continue
            if name not in names:
                names.append(name)
        return tuple(names) or (cls.DISCOVER,)


# =============================================================================
# Addon Identity
# =============================================================================

ADDON_ID: Final = "org.malayalam.movies.ott.catalog"
ADDON_VERSION: Final = "1.0.0"
ADDON_NAME: Final = "Malayalam Movies OTT"
ADDON_DESCRIPTION: Final = (
    "Catalog of Malayalam movies available on OTT platforms in India, "
    "sorted by release date"
)
CATALOG_ID: Final = "malayalam_movies_latest"
CATALOG_NAME: Final = "Latest Malayalam Movies"
CATALOG_DESCRIPTION: Final = "Latest Malayalam movies available on OTT platforms"
CONTENT_TYPE_MOVIE: Final = "movie"
GENRE_OPTIONS: Final = (
    "Action", "Comedy", "Drama", "Romance", "Thriller",
    "Horror", "Family", "Crime", "Mystery", "Adventure",
)


# =============================================================================
# Catalog Settings
# =============================================================================

TARGET_LANGUAGE: Final = "ml"
WATCH_REGION: Final = os.environ.get("WATCH_REGION", "IN")
PAGE_SIZE: Final = 20
DEFAULT_DESCRIPTION: Final = "No description available"

CATALOG_STRATEGIES: Final = StrategyName.parse_list(
    os.environ.get("CATALOG_STRATEGIES", "discover")
)
CATALOG_ID_SCHEME: Final = IdScheme.from_value(os.environ.get("CATALOG_ID_SCHEME", "tmdb"))
FILTER_BY_PROVIDERS: bool = _get_bool_env("FILTER_BY_PROVIDERS", True)

# Returns a built-in placeholder page when every upstream strategy fails.
# Demo use only: callers cannot tell placeholder data from real data.
ENABLE_PLACEHOLDER_FALLBACK: bool = _get_bool_env("ENABLE_PLACEHOLDER_FALLBACK", False)


# =============================================================================
# Cache Settings (seconds)
# =============================================================================

DEFAULT_CACHE_TTL: Final = _get_int_env("CACHE_DURATION", 3600) or 3600
CACHE_TTL_DISCOVER: Final = 30 * 60
CACHE_TTL_SEARCH_STRATEGY: Final = 60 * 60
CACHE_TTL_ENRICHED: Final = 2 * 60 * 60
CACHE_TTL_DETAILS: Final = 2 * 60 * 60
CACHE_TTL_TRENDING: Final = 60 * 60
CACHE_TTL_SEARCH: Final = 30 * 60


# =============================================================================
# Upstream Settings
# =============================================================================

TMDB_API_BASE: Final = "https://api.themoviedb.org/3"
TMDB_IMAGE_BASE: Final = "https://image.tmdb.org/t/p"
POSTER_SIZE: Final = "w500"
BACKDROP_SIZE: Final = "w1280"

# Every upstream call carries a timeout between 10 and 30 seconds
TMDB_TIMEOUT: Final = min(30.0, max(10.0, _get_float_env("TMDB_TIMEOUT", 15.0)))
MAX_DISCOVER_PAGES: Final = max(1, _get_int_env("MAX_DISCOVER_PAGES", 10))
KEYWORD_SEARCH_PAGES: Final = max(1, _get_int_env("KEYWORD_SEARCH_PAGES", 3))
REQUEST_DELAY: Final = max(0.0, _get_float_env("REQUEST_DELAY", 0.1))
MAX_ENRICH_WORKERS: Final = min(5, max(1, _get_int_env("MAX_ENRICH_WORKERS", 4)))


# =============================================================================
# Rate Limits (requests per second)
# =============================================================================

RATE_LIMIT_TMDB: Final = 4.0  # TMDB allows ~40/10s


# =============================================================================
# Retry Settings
# =============================================================================

MAX_RETRIES: Final = 2
RETRY_BACKOFF_BASE: Final = 0.5  # Exponential backoff base (seconds)


# =============================================================================
# Maintenance
# =============================================================================

REFRESH_PAGES: Final = max(1, _get_int_env("REFRESH_PAGES", 5))
REFRESH_INTERVAL: Final = max(0, _get_int_env("REFRESH_INTERVAL", 0))  # 0 = disabled
REFRESH_DELAY: Final = 0.1  # Pause between pre-warmed pages


# =============================================================================
# HTTP Response Headers
# =============================================================================

CORS_METHODS: Final = ("GET", "OPTIONS")
CORS_ALLOW_HEADERS: Final = ("Content-Type",)
CACHE_CONTROL_MANIFEST: Final = "public, max-age=86400"
CACHE_CONTROL_CATALOG: Final = "public, max-age=1800"
