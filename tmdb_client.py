"""
TMDB API client.

Thin transport over the endpoints the catalog needs. Every method returns
the decoded JSON payload or raises UpstreamError; callers decide whether a
failure is fatal (secondary lookups) or absorbed (catalog strategies).
"""

import logging
from typing import Any, Dict, Optional

import requests

from constants import TMDB_API_BASE, TMDB_TIMEOUT
from credentials import TMDBCredentials
from http_client import TMDBSession, SessionAwareComponent
from metrics import metrics

logger = logging.getLogger(__name__)


class UpstreamError(Exception):
    """A TMDB call failed: network error, timeout, non-2xx status or bad JSON."""

    def __init__(self, message: str, status_code: Optional[int] = None, endpoint: str = ""):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.endpoint = endpoint

    @property
    def is_client_error(self) -> bool:
        """True for 4xx statuses (malformed query, bad credentials)."""
        return self.status_code is not None and 400 <= self.status_code < 500


class TMDBClient(SessionAwareComponent):
    """
    Client for the TMDB v3 API (movies only).

    The session is shared for connection pooling; pass one in to reuse it
    across clients, or let the client create and own its own.
    """

    def __init__(
        self,
        credentials: TMDBCredentials = None,
        session: TMDBSession = None,
        timeout: float = TMDB_TIMEOUT,
        base_url: str = TMDB_API_BASE,
    ):
        """
        Initialize TMDB client.

        Args:
            credentials: API credentials. Defaults to the environment.
            session: Optional shared session for connection pooling.
            timeout: Per-request timeout in seconds.
            base_url: API root, overridable for tests.
        """
        self.credentials = credentials or TMDBCredentials.from_env()
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.init_session(session, timeout=timeout)

    def _get(self, endpoint: str, params: Dict[str, Any] = None) -> Dict[str, Any]:
        """
        Make authenticated GET request to TMDB API.

        Raises:
            UpstreamError: on any failure, with secrets redacted from the message
        """
        if not self.credentials.is_configured:
            raise UpstreamError("TMDB credentials are not configured", endpoint=endpoint)

        query = dict(params or {})
        query.update(self.credentials.auth_params())
        url = f"{self.base_url}{endpoint}"
        label = {"endpoint": endpoint.split("/")[1] if "/" in endpoint else endpoint}

        try:
            with metrics.timer("tmdb_request_duration_ms", labels=label):
                response = self.session.get(
                    url,
                    params=query,
                    headers=self.credentials.auth_headers(),
                    timeout=self.timeout,
                )
        except requests.exceptions.Timeout as e:
            metrics.inc("tmdb_requests", labels={"status": "timeout"})
            message = f"TMDB request to {endpoint} timed out"
            logger.warning(f"{message}: {self.credentials.redact(e)}")
            raise UpstreamError(message, endpoint=endpoint) from e
        except requests.exceptions.RequestException as e:
            metrics.inc("tmdb_requests", labels={"status": "network_error"})
            message = f"TMDB request to {endpoint} failed: {type(e).__name__}"
            logger.warning(f"{message}: {self.credentials.redact(e)}")
            raise UpstreamError(message, endpoint=endpoint) from e

        if response.status_code != 200:
            metrics.inc("tmdb_requests", labels={"status": str(response.status_code)})
            body = self.credentials.redact((response.text or "")[:200])
            error = UpstreamError(
                f"TMDB returned HTTP {response.status_code} for {endpoint}",
                status_code=response.status_code,
                endpoint=endpoint,
            )
            # 4xx means a bad query or bad credentials
            log = logger.error if error.is_client_error else logger.warning
            log(
                f"TMDB API error {response.status_code} for {endpoint}: {body}",
                extra={"status_code": response.status_code, "endpoint": endpoint},
            )
            raise error

        try:
            data = response.json()
        except ValueError as e:
            metrics.inc("tmdb_requests", labels={"status": "invalid_json"})
            raise UpstreamError(f"TMDB returned invalid JSON for {endpoint}", endpoint=endpoint) from e

        if not isinstance(data, dict):
            raise UpstreamError(f"TMDB returned unexpected payload for {endpoint}", endpoint=endpoint)

        metrics.inc("tmdb_requests", labels={"status": "200"})
        return data

    # -------------------------------------------------------------------------
    # Endpoints
    # -------------------------------------------------------------------------

    def discover_movies(self, **filters) -> Dict[str, Any]:
        """
        Query /discover/movie.

        Keyword names are passed through as TMDB query parameters; use
        dict unpacking for dotted names, e.g. **{"release_date.lte": "2024-01-01"}.
        """
        return self._get("/discover/movie", filters)

    def search_movies(self, query: str, page: int = 1, language: str = "en-US") -> Dict[str, Any]:
        """Full text title search."""
        return self._get("/search/movie", {
            "query": query,
            "page": page,
            "language": language,
            "include_adult": "false",
        })

    def movie_details(self, movie_id: int, append: str = "external_ids,watch/providers") -> Dict[str, Any]:
        """Movie details with optional appended sub-resources."""
        params = {"append_to_response": append} if append else None
        return self._get(f"/movie/{int(movie_id)}", params)

    def watch_providers(self, movie_id: int) -> Dict[str, Any]:
        """Watch providers per region: {"results": {"IN": {"flatrate": [...]}}}."""
        return self._get(f"/movie/{int(movie_id)}/watch/providers")

    def external_ids(self, movie_id: int) -> Dict[str, Any]:
        """Cross-reference ids (imdb_id, wikidata_id, ...)."""
        return self._get(f"/movie/{int(movie_id)}/external_ids")

    def trending_movies(self, window: str = "week") -> Dict[str, Any]:
        """Trending movies for the given time window ("day" or "week")."""
        return self._get(f"/trending/movie/{window}")

    def configuration(self) -> Dict[str, Any]:
        """API configuration; cheap call used to verify credentials."""
        return self._get("/configuration")


__all__ = [
    'TMDBClient',
    'UpstreamError',
]
