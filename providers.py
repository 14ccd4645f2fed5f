"""
Streaming platforms that carry Malayalam content in India.

Ids are TMDB watch-provider ids.
"""

from enum import Enum
from typing import Dict, Final, Optional


class Provider(int, Enum):
    """TMDB watch-provider ids of interest."""
    NETFLIX = 8
    PRIME_VIDEO = 119
    SONYLIV = 237
    ZEE5 = 232
    JIOHOTSTAR = 433
    SUN_NXT = 309
    MANORAMA_MAX = 542

    @property
    def display_name(self) -> str:
        return PROVIDER_NAMES[self.value]


PROVIDER_NAMES: Final[Dict[int, str]] = {
    8: "Netflix",
    119: "Amazon Prime Video",
    237: "SonyLIV",
    232: "ZEE5",
    433: "JioHotstar",
    309: "Sun NXT",
    542: "ManoramaMAX",
}

# Pipe-separated ids: TMDB treats "|" as OR in with_watch_providers
PROVIDER_LIST: Final = "|".join(str(p.value) for p in Provider)


def provider_name(provider_id) -> Optional[str]:
    """Get provider display name by id."""
    try:
        return PROVIDER_NAMES.get(int(provider_id))
    except (TypeError, ValueError):
        return None


def is_known_provider(provider_id) -> bool:
    """Check whether a watch-provider id is one of ours."""
    return provider_name(provider_id) is not None
