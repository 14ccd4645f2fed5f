"""
TMDB credential holder.

TMDB accepts either a v4 read access token (sent as a bearer header) or a
v3 API key (sent as the api_key query parameter). Both come from the
environment. Secrets never leave this module unmasked: error messages and
health output go through redact()/describe().
"""

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict

logger = logging.getLogger(__name__)


def _mask(secret: str) -> str:
    """Short preview of a secret for diagnostics."""
    if not secret:
        return ""
    if len(secret) <= 8:
        return "***"
    return f"{secret[:4]}...{secret[-2:]}"


@dataclass(frozen=True)
class TMDBCredentials:
    """
    Immutable credential holder.

    Using frozen=True ensures credentials can't be modified after the
    client has been constructed with them.
    """
    api_key: str = ""
    access_token: str = ""

    @classmethod
    def from_env(cls) -> "TMDBCredentials":
        """Read TMDB_API_KEY and TMDB_ACCESS_TOKEN from the environment."""
        creds = cls(
            api_key=os.environ.get("TMDB_API_KEY", "").strip(),
            access_token=os.environ.get("TMDB_ACCESS_TOKEN", "").strip(),
        )
        if not creds.is_configured:
            logger.warning("No TMDB credentials configured (TMDB_ACCESS_TOKEN / TMDB_API_KEY)")
        return creds

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key or self.access_token)

    def auth_headers(self) -> Dict[str, str]:
        """Headers for authenticated requests (bearer token preferred)."""
        if self.access_token:
            return {"Authorization": f"Bearer {self.access_token}"}
        return {}

    def auth_params(self) -> Dict[str, str]:
        """Query parameters for authenticated requests when no token is set."""
        if self.api_key and not self.access_token:
            return {"api_key": self.api_key}
        return {}

    def redact(self, text: Any) -> str:
        """Mask every configured secret inside text."""
        text = str(text)
        for secret in (self.api_key, self.access_token):
            if secret:
                text = text.replace(secret, "***")
        return text

    def describe(self) -> Dict[str, Any]:
        """Presence and masked previews, safe to return from health checks."""
        return {
            "api_key_present": bool(self.api_key),
            "access_token_present": bool(self.access_token),
            "api_key_preview": _mask(self.api_key),
            "access_token_preview": _mask(self.access_token),
        }
