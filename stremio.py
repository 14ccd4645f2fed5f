"""
Stremio addon protocol: manifest and catalog meta previews.

movie_to_meta() is total: it never raises, and returns None for records
that cannot be shown (no identifier, no title, or not a target-language
movie in strict mode). Optional fields are omitted when unknown.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from constants import (
    ADDON_DESCRIPTION,
    ADDON_ID,
    ADDON_NAME,
    ADDON_VERSION,
    BACKDROP_SIZE,
    CATALOG_DESCRIPTION,
    CATALOG_ID,
    CATALOG_NAME,
    CONTENT_TYPE_MOVIE,
    DEFAULT_DESCRIPTION,
    GENRE_OPTIONS,
    PAGE_SIZE,
    POSTER_SIZE,
    TARGET_LANGUAGE,
    TMDB_IMAGE_BASE,
    IdScheme,
)
from genres import get_genre_names
from models import Movie
from text_utils import sanitize_description, validate_imdb_id

logger = logging.getLogger(__name__)


def build_manifest(id_scheme: IdScheme = IdScheme.TMDB) -> Dict[str, Any]:
    """Addon manifest advertising the single movie catalog."""
    manifest = {
        "id": ADDON_ID,
        "version": ADDON_VERSION,
        "name": ADDON_NAME,
        "description": ADDON_DESCRIPTION,
        "resources": ["catalog"],
        "types": [CONTENT_TYPE_MOVIE],
        "catalogs": [
            {
                "id": CATALOG_ID,
                "type": CONTENT_TYPE_MOVIE,
                "name": CATALOG_NAME,
                "description": CATALOG_DESCRIPTION,
                "extra": [
                    {"name": "skip", "isRequired": False},
                    {"name": "genre", "isRequired": False, "options": list(GENRE_OPTIONS)},
                ],
            }
        ],
        "behaviorHints": {
            "adult": False,
            "p2p": False,
            "configurable": True,
            "configurationRequired": False,
        },
    }
    if id_scheme is IdScheme.IMDB:
        manifest["idPrefixes"] = ["tt"]
    return manifest


def image_url(path: Optional[str], size: str) -> Optional[str]:
    """Absolute TMDB image URL for a relative path, None when absent."""
    if not path or not isinstance(path, str):
        return None
    if not path.startswith("/"):
        path = f"/{path}"
    return f"{TMDB_IMAGE_BASE}/{size}{path}"


def meta_id(movie: Movie, id_scheme: IdScheme = IdScheme.TMDB) -> Optional[str]:
    """Catalog identifier under the deployment's scheme."""
    if id_scheme is IdScheme.IMDB:
        return movie.imdb_id if validate_imdb_id(movie.imdb_id) else None
    if movie.id is None:
        return None
    return f"tmdb:{movie.id}"


def movie_to_meta(
    movie: Movie,
    id_scheme: IdScheme = IdScheme.TMDB,
    strict_language: bool = True,
    language: str = TARGET_LANGUAGE,
) -> Optional[Dict[str, Any]]:
    """
    Project a Movie onto a Stremio meta preview.

    Args:
        movie: Movie record
        id_scheme: Identifier scheme of the deployment
        strict_language: Drop records not in the target language
        language: Target original-language code

    Returns:
        Meta dict, or None if the record must be dropped
    """
    try:
        identifier = meta_id(movie, id_scheme)
        name = movie.display_title
        if not identifier or not name:
            return None
        if strict_language and not movie.is_target_language(language):
            return None

        meta: Dict[str, Any] = {
            "id": identifier,
            "type": CONTENT_TYPE_MOVIE,
            "name": name,
            "genres": get_genre_names(movie.genre_ids),
            "description": sanitize_description(movie.overview) or DEFAULT_DESCRIPTION,
        }

        poster = image_url(movie.poster_path, POSTER_SIZE)
        if poster:
            meta["poster"] = poster

        background = image_url(movie.backdrop_path, BACKDROP_SIZE)
        if background:
            meta["background"] = background

        if movie.release_year:
            meta["releaseInfo"] = f"{movie.release_year:04d}"

        if movie.vote_average:
            meta["imdbRating"] = f"{movie.vote_average:.1f}"

        if movie.runtime:
            meta["runtime"] = f"{movie.runtime} min"

        return meta

    except Exception as e:
        logger.warning(f"Could not map movie {getattr(movie, 'id', None)}: {e}")
        return None


def metas_for_movies(
    movies: Iterable[Movie],
    id_scheme: IdScheme = IdScheme.TMDB,
    limit: int = PAGE_SIZE,
) -> List[Dict[str, Any]]:
    """Map movies to metas, dropping unmappable ones, truncated to limit."""
    metas = []
    for movie in movies:
        meta = movie_to_meta(movie, id_scheme)
        if meta is None:
            continue
        metas.append(meta)
        if len(metas) >= limit:
            break
    return metas
