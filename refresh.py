"""
Scheduled catalog refresh.

Flushes the result cache and re-warms the first pages of the default
listing so the next catalog requests are served from cache.
"""

import logging
import threading
import time
from datetime import datetime, timezone
from typing import Callable, Optional

from cache import MemoryCache
from catalog import CatalogService
from constants import REFRESH_DELAY, REFRESH_PAGES
from metrics import metrics
from models import RefreshSummary

logger = logging.getLogger(__name__)

ALREADY_RUNNING = "refresh already in progress"


class CatalogRefresher:
    """
    Clear-and-rewarm maintenance job.

    Never runs concurrently with itself: a call made while another refresh
    is in flight returns immediately with success=False.
    """

    def __init__(
        self,
        catalog: CatalogService,
        cache: MemoryCache,
        pages: int = REFRESH_PAGES,
        delay: float = REFRESH_DELAY,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.catalog = catalog
        self.cache = cache
        self.pages = max(1, pages)
        self.delay = delay
        self._sleep = sleep
        self._running = threading.Lock()
        self.last_summary: Optional[RefreshSummary] = None

    @property
    def is_running(self) -> bool:
        return self._running.locked()

    def refresh(self) -> RefreshSummary:
        """
        Clear the cache and re-warm pages 1..N.

        Per-page failures are collected into the summary, not raised.
        """
        timestamp = datetime.now(timezone.utc).isoformat()
        if not self._running.acquire(blocking=False):
            logger.info("Catalog refresh skipped: another refresh is running")
            metrics.inc("catalog_refreshes", labels={"result": "skipped"})
            return RefreshSummary(success=False, timestamp=timestamp, errors=[ALREADY_RUNNING])

        try:
            logger.info("Starting catalog refresh...")
            cleared = self.cache.clear()
            logger.info(f"Cache cleared ({cleared} entries)")

            refreshed = 0
            errors = []
            for page in range(1, self.pages + 1):
                try:
                    result = self.catalog.discover_movies(page=page)
                except Exception as e:
                    logger.error(f"Error refreshing page {page}: {e}")
                    errors.append(f"Page {page}: {e}")
                    continue

                refreshed += len(result.results)
                logger.info(f"Page {page}: {len(result.results)} movies refreshed")
                if page >= result.total_pages:
                    break
                if self.delay > 0:
                    self._sleep(self.delay)

            summary = RefreshSummary(
                success=True,
                timestamp=timestamp,
                movies_refreshed=refreshed,
                errors=errors,
            )
            self.last_summary = summary
            metrics.inc("catalog_refreshes", labels={"result": "errors" if errors else "ok"})
            logger.info(f"Catalog refresh completed: {refreshed} movies, {len(errors)} errors")
            return summary
        finally:
            self._running.release()


class RefreshScheduler:
    """
    Run CatalogRefresher.refresh() every `interval` seconds on a daemon thread.

    Usage:
        scheduler = RefreshScheduler(refresher, interval=6 * 3600)
        scheduler.start()
        ...
        scheduler.stop()
    """

    def __init__(self, refresher: CatalogRefresher, interval: float):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.refresher = refresher
        self.interval = interval
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="catalog-refresh", daemon=True)
        self._thread.start()
        logger.info(f"Catalog refresh scheduled every {self.interval:.0f}s")

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread:
            self._thread.join(timeout)
            self._thread = None

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                self.refresher.refresh()
            except Exception:
                logger.exception("Scheduled catalog refresh failed")
