"""
Text utilities for normalization, parsing, and validation.

Handles Unicode normalization of user-supplied names (genres, search
queries), tolerant parsing of upstream date strings, and identifier
validation.
"""

import re
import html
import hashlib
import unicodedata
from datetime import date, datetime
from typing import Optional

MAX_KEY_LENGTH = 50


# =============================================================================
# Normalization
# =============================================================================

def normalize_for_comparison(text: str) -> str:
    """
    Normalize text for case-insensitive comparison.

    - NFKC normalization, lowercase
    - Remove accents
    - Remove punctuation
    - Collapse whitespace

    Args:
        text: Input text to normalize

    Returns:
        Normalized text suitable for comparison
    """
    if not text:
        return ""

    text = unicodedata.normalize('NFKC', text).lower()

    # NFD decomposes, then we strip combining marks
    text = unicodedata.normalize('NFD', text)
    text = ''.join(c for c in text if unicodedata.category(c) != 'Mn')

    text = re.sub(r'[^\w\s]', '', text)
    return ' '.join(text.split())


def normalize_for_cache_key(text: Optional[str], max_length: int = MAX_KEY_LENGTH) -> str:
    """
    Normalize text for use inside cache keys.

    Only lowercase alphanumerics and hyphens survive. Long values are
    truncated and suffixed with a short hash so distinct inputs stay
    distinct.

    Args:
        text: Input text, None maps to "all"
        max_length: Maximum length for the result

    Returns:
        Safe string for use in a cache key
    """
    if text is None or not str(text).strip():
        return "all"

    normalized = normalize_for_comparison(str(text))
    safe = re.sub(r'[^a-z0-9\s-]', '', normalized)
    safe = re.sub(r'\s+', '-', safe)
    safe = re.sub(r'-+', '-', safe).strip('-')

    if not safe or len(safe) > max_length - 9:
        text_hash = hashlib.sha256(str(text).encode()).hexdigest()[:8]
        safe = f"{safe[:max_length - 9]}-{text_hash}".lstrip('-')

    return safe[:max_length]


def sanitize_description(text: Optional[str]) -> str:
    """
    Sanitize synopsis text for display.

    Decodes HTML entities, strips tags and control characters and
    collapses whitespace.
    """
    if not text:
        return ""

    text = html.unescape(text)
    text = re.sub(r'<[^>]+>', '', text)
    text = ''.join(
        c for c in text
        if c in '\n\t' or unicodedata.category(c)[0] != 'C'
    )
    lines = [' '.join(line.split()) for line in text.split('\n')]
    return '\n'.join(line for line in lines if line).strip()


# =============================================================================
# Parsing
# =============================================================================

def parse_release_date(value) -> Optional[date]:
    """
    Parse an upstream release date.

    Accepts "YYYY-MM-DD" strings (optionally with a time part), date and
    datetime objects. Empty or malformed values return None.
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None

    try:
        return date.fromisoformat(value.strip()[:10])
    except ValueError:
        return None


def parse_int(value, default: Optional[int] = None) -> Optional[int]:
    """Parse an integer from a query value, returning default on failure."""
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(str(value).strip())
    except ValueError:
        return default


# =============================================================================
# Validation
# =============================================================================

def validate_imdb_id(imdb_id: Optional[str]) -> bool:
    """
    Validate IMDB ID format.

    Args:
        imdb_id: IMDB ID to validate (e.g., "tt1234567")

    Returns:
        True if valid IMDB ID format
    """
    if not imdb_id or not isinstance(imdb_id, str):
        return False

    # IMDB IDs are tt followed by 7-8 digits
    return bool(re.match(r'^tt\d{7,8}$', imdb_id.lower()))
