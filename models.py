"""
Shared data models for the Malayalam catalog.

This module contains data classes used across the catalog pipeline, the
addon schema mapping and the HTTP layer, kept separate to avoid circular
imports between modules.
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

from text_utils import parse_release_date


def _to_int(value) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _to_float(value) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _genre_ids(data: Dict[str, Any]) -> Tuple[int, ...]:
    """Genre ids from list items (genre_ids) or details (genres[{id, name}])."""
    raw = data.get("genre_ids")
    if raw is None:
        raw = [g.get("id") for g in data.get("genres") or [] if isinstance(g, dict)]
    ids = []
    for value in raw or []:
        genre_id = _to_int(value)
        if genre_id is not None and genre_id not in ids:
            ids.append(genre_id)
    return tuple(ids)


@dataclass(frozen=True)
class Movie:
    """
    A movie record as received from TMDB.

    Frozen so that cached pages can be shared between requests; use
    dataclasses.replace() to derive an enriched copy.
    """
    id: Optional[int]
    title: Optional[str] = None
    original_title: Optional[str] = None
    original_language: Optional[str] = None
    release_date: Optional[date] = None
    genre_ids: Tuple[int, ...] = ()
    poster_path: Optional[str] = None
    backdrop_path: Optional[str] = None
    overview: Optional[str] = None
    vote_average: Optional[float] = None
    vote_count: Optional[int] = None
    runtime: Optional[int] = None
    imdb_id: Optional[str] = None

    @classmethod
    def from_tmdb(cls, data: Dict[str, Any]) -> "Movie":
        """
        Build a Movie from a TMDB list item or details payload.

        Missing or malformed fields become None; this never raises for a dict.
        """
        external = data.get("external_ids") or {}
        imdb_id = data.get("imdb_id") or external.get("imdb_id")
        return cls(
            id=_to_int(data.get("id")),
            title=data.get("title") or None,
            original_title=data.get("original_title") or None,
            original_language=data.get("original_language") or None,
            release_date=parse_release_date(data.get("release_date")),
            genre_ids=_genre_ids(data),
            poster_path=data.get("poster_path") or None,
            backdrop_path=data.get("backdrop_path") or None,
            overview=data.get("overview") or None,
            vote_average=_to_float(data.get("vote_average")),
            vote_count=_to_int(data.get("vote_count")),
            runtime=_to_int(data.get("runtime")),
            imdb_id=imdb_id or None,
        )

    @property
    def display_title(self) -> Optional[str]:
        """Title, falling back to the original title."""
        return self.title or self.original_title

    @property
    def release_year(self) -> Optional[int]:
        return self.release_date.year if self.release_date else None

    def is_target_language(self, language: str) -> bool:
        return (self.original_language or "").lower() == language.lower()

    def is_released(self, today: date) -> bool:
        """True when the release date is known and not in the future."""
        return self.release_date is not None and self.release_date <= today

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "title": self.title,
            "original_title": self.original_title,
            "original_language": self.original_language,
            "release_date": self.release_date.isoformat() if self.release_date else None,
            "genre_ids": list(self.genre_ids),
            "poster_path": self.poster_path,
            "backdrop_path": self.backdrop_path,
            "overview": self.overview,
            "vote_average": self.vote_average,
            "vote_count": self.vote_count,
            "runtime": self.runtime,
            "imdb_id": self.imdb_id,
        }


@dataclass(frozen=True)
class CataloguePage:
    """One page of catalog results plus totals for the filtered set."""
    page: int
    results: Tuple[Movie, ...] = ()
    total_pages: int = 0
    total_results: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "page": self.page,
            "results": [m.to_dict() for m in self.results],
            "total_pages": self.total_pages,
            "total_results": self.total_results,
        }


@dataclass
class RefreshSummary:
    """Outcome of a cache refresh run."""
    success: bool
    timestamp: str
    movies_refreshed: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "timestamp": self.timestamp,
            "moviesRefreshed": self.movies_refreshed,
            "errors": self.errors or None,
        }
