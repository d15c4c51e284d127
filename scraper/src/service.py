"""
Stats service: freshness policy on top of the StatsFetcher.

The HTTP layer calls :meth:`StatsService.get_current_stats`, which serves the
cached record while it is younger than the minimum refresh interval and
otherwise triggers a fetch. An optional background loop keeps the cache warm
by refreshing on the same interval.

CHANGELOG:
- 2026-10-19: Initial creation
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING

from scraper.src.errors import ScraperError

if TYPE_CHECKING:
    from scraper.src.fetcher import StatsFetcher
    from scraper.src.models import StatsRecord

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_S = 300
"""Background refresh period used when no refresh interval is configured."""


class StatsService:
    """Serve the latest statistics with a minimum refresh interval.

    Args:
        fetcher: The statistics fetcher owning the session and cache.
        min_refresh_interval_s: Seconds a fetched record is served before the
            portal is contacted again. 0 fetches on every call.
    """

    def __init__(self, fetcher: StatsFetcher, *, min_refresh_interval_s: float) -> None:
        self._fetcher = fetcher
        self._min_refresh_interval_s = min_refresh_interval_s

    @property
    def fetcher(self) -> StatsFetcher:
        return self._fetcher

    @property
    def min_refresh_interval_s(self) -> float:
        return self._min_refresh_interval_s

    async def get_current_stats(self) -> StatsRecord:
        """Return the cached record if fresh enough, else fetch a new one.

        Raises:
            ScraperError: Whatever the fetch raised; the cache is unchanged.
        """
        cached = self._fetcher.latest
        age = self._fetcher.age_s()
        if cached is not None and age is not None and age < self._min_refresh_interval_s:
            logger.debug("Serving cached statistics (age %.1fs)", age)
            return cached
        return await self._fetcher.fetch()

    async def refresh_once(self) -> bool:
        """Fetch once, logging instead of raising on failure.

        Returns:
            True if the fetch succeeded.
        """
        try:
            await self._fetcher.fetch()
        except ScraperError as exc:
            logger.warning("Statistics refresh failed (%s): %s", exc.kind, exc)
            return False
        except Exception:
            logger.error("Statistics refresh error", exc_info=True)
            return False
        return True

    async def poll_loop(self, shutdown_event: asyncio.Event) -> None:
        """Refresh every ``min_refresh_interval_s`` until *shutdown_event* is set.

        An interval of 0 means "no caching", not "poll continuously"; the loop
        then falls back to :data:`DEFAULT_POLL_INTERVAL_S`.
        """
        interval = self._min_refresh_interval_s or DEFAULT_POLL_INTERVAL_S
        logger.info("Background refresh loop started (interval=%ss)", interval)
        while not shutdown_event.is_set():
            await self.refresh_once()
            # Use wait with timeout so we can check shutdown between sleeps
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(shutdown_event.wait(), timeout=interval)
        logger.info("Background refresh loop stopped")
