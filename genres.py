"""
TMDB movie genre table.

Bidirectional lookup between numeric TMDB genre ids and display names.
"""

from typing import Dict, Iterable, List, Optional

from text_utils import normalize_for_comparison

GENRE_MAP: Dict[int, str] = {
    28: "Action",
    12: "Adventure",
    16: "Animation",
    35: "Comedy",
    80: "Crime",
    99: "Documentary",
    18: "Drama",
    10751: "Family",
    14: "Fantasy",
    36: "History",
    27: "Horror",
    10402: "Music",
    9648: "Mystery",
    10749: "Romance",
    878: "Science Fiction",
    10770: "TV Movie",
    53: "Thriller",
    10752: "War",
    37: "Western",
}

# Reverse mapping keyed by normalized name ("science fiction" -> 878)
GENRE_ID_MAP: Dict[str, int] = {
    normalize_for_comparison(name): genre_id for genre_id, name in GENRE_MAP.items()
}


def get_genre_name(genre_id) -> Optional[str]:
    """Get genre display name by id, None when unknown."""
    try:
        return GENRE_MAP.get(int(genre_id))
    except (TypeError, ValueError):
        return None


def get_genre_id(genre_name: Optional[str]) -> Optional[int]:
    """
    Get genre id by display name.

    Matching ignores case, accents, punctuation and extra whitespace.

    Returns:
        TMDB genre id, or None if the name is not a known genre
    """
    if not genre_name:
        return None
    return GENRE_ID_MAP.get(normalize_for_comparison(genre_name))


def get_genre_names(genre_ids: Iterable) -> List[str]:
    """Convert genre ids to names, dropping unknown ids."""
    names = []
    for genre_id in genre_ids or ():
        name = get_genre_name(genre_id)
        if name:
            names.append(name)
    return names
