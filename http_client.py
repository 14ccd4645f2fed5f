"""
Pooled, throttled HTTP session for the TMDB API.

- One urllib3 connection pool per session, shared by all TMDB calls
- 429 and 5xx answers retried with exponential backoff (Retry-After honoured)
- A process-wide token bucket keeps the whole addon under TMDB's rate limit,
  including the enrichment thread pool
- Every request gets the configured timeout unless the caller passes one
"""

import logging
import threading
import time
from typing import Callable, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from constants import (
    ADDON_ID,
    ADDON_VERSION,
    MAX_RETRIES,
    RATE_LIMIT_TMDB,
    RETRY_BACKOFF_BASE,
    TMDB_TIMEOUT,
)
from metrics import metrics

logger = logging.getLogger(__name__)

RETRY_STATUSES = (429, 500, 502, 503, 504)
TMDB_BURST = 5


class TokenBucket:
    """
    Thread-safe token bucket.

    Holds up to `capacity` tokens, refilled at `rate` tokens per second.
    take() blocks until a token is available or the timeout passes.
    """

    def __init__(
        self,
        rate: float,
        capacity: int = 1,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if rate <= 0:
            raise ValueError("rate must be positive")
        self.rate = rate
        self.capacity = max(1, capacity)
        self._clock = clock
        self._sleep = sleep
        self._tokens = float(self.capacity)
        self._stamp = clock()
        self._lock = threading.Lock()

    def _refill(self) -> None:
        now = self._clock()
        self._tokens = min(self.capacity, self._tokens + (now - self._stamp) * self.rate)
        self._stamp = now

    def try_take(self) -> float:
        """
        Take a token if one is available.

        Returns:
            0.0 on success, otherwise seconds until the next token
        """
        with self._lock:
            self._refill()
            if self._tokens >= 1.0:
                self._tokens -= 1.0
                return 0.0
            return (1.0 - self._tokens) / self.rate

    def take(self, timeout: float) -> bool:
        """Block for a token; False if none becomes available within timeout."""
        deadline = self._clock() + timeout
        waited = False
        while True:
            wait = self.try_take()
            if wait == 0.0:
                if waited:
                    metrics.inc("tmdb_rate_limit_waits")
                return True
            if self._clock() + wait > deadline:
                return False
            waited = True
            self._sleep(min(wait, 0.1))


_shared_bucket: Optional[TokenBucket] = None
_shared_bucket_lock = threading.Lock()


def shared_bucket() -> TokenBucket:
    """Process-wide TMDB token bucket, created on first use."""
    global _shared_bucket
    with _shared_bucket_lock:
        if _shared_bucket is None:
            _shared_bucket = TokenBucket(RATE_LIMIT_TMDB, TMDB_BURST)
        return _shared_bucket


def build_retry(max_retries: int = MAX_RETRIES, backoff: float = RETRY_BACKOFF_BASE) -> Retry:
    """Retry policy for idempotent TMDB reads."""
    return Retry(
        total=max_retries,
        backoff_factor=backoff,
        status_forcelist=list(RETRY_STATUSES),
        allowed_methods=["GET"],
        respect_retry_after_header=True,
        raise_on_status=False,
    )


class TMDBSession:
    """
    requests.Session wrapper used by TMDBClient.

    Usage:
        with TMDBSession() as session:
            response = session.get("https://api.themoviedb.org/3/configuration")
    """

    def __init__(
        self,
        timeout: float = TMDB_TIMEOUT,
        bucket: Optional[TokenBucket] = None,
        retry: Optional[Retry] = None,
        user_agent: str = None,
    ):
        """
        Args:
            timeout: Default request timeout in seconds
            bucket: Token bucket to draw from, default the process-wide one
            retry: urllib3 retry policy, default build_retry()
            user_agent: Custom user agent string
        """
        self.timeout = timeout
        self.bucket = bucket or shared_bucket()
        self.session = requests.Session()

        adapter = HTTPAdapter(max_retries=retry or build_retry(), pool_connections=4, pool_maxsize=10)
        self.session.mount("https://", adapter)
        self.session.mount("http://", adapter)
        self.session.headers.update({
            "User-Agent": user_agent or f"{ADDON_ID}/{ADDON_VERSION}",
            "Accept": "application/json",
        })

    def get(self, url: str, **kwargs) -> requests.Response:
        """
        Throttled GET.

        Raises:
            requests.exceptions.Timeout: if no rate-limit token frees up in time
        """
        if not self.bucket.take(timeout=self.timeout):
            logger.warning(f"Rate limit wait exceeded {self.timeout:.0f}s for {url}")
            raise requests.exceptions.Timeout("Rate limit wait timed out")
        kwargs.setdefault("timeout", self.timeout)
        return self.session.get(url, **kwargs)

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> "TMDBSession":
        return self

    def __exit__(self, *args) -> None:
        self.close()


def create_session(timeout: float = TMDB_TIMEOUT, user_agent: str = None) -> TMDBSession:
    """Session with the default retry policy and the shared token bucket."""
    return TMDBSession(timeout=timeout, user_agent=user_agent)


class SessionAwareComponent:
    """
    Mixin for clients that either borrow a session or own one.

    A borrowed session is left open on close(); an owned one is closed.
    """

    session: TMDBSession
    _owns_session: bool

    def init_session(self, session: TMDBSession = None, timeout: float = TMDB_TIMEOUT) -> None:
        self.session = session or create_session(timeout=timeout)
        self._owns_session = session is None

    def close(self) -> None:
        """Close session if we own it."""
        if self._owns_session:
            self.session.close()
