"""
Periodic expired-entry sweep for the secret cache.

The cache only expires entries when they are touched, so keys that are never
requested again would stay in memory until shutdown. The sweeper bounds that
by expiring them on an interval.
"""

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from loguru import logger

from vault_bridge.services.cache import TTLCache


class CacheSweeper:
    """Runs ``TTLCache.cleanup_expired`` every ``interval_seconds``."""

    def __init__(self, cache: TTLCache, interval_seconds: float):
        self.cache = cache
        self.interval_seconds = interval_seconds
        self.scheduler = AsyncIOScheduler()
        self._is_running = False

    def sweep_job(self) -> int:
        removed = self.cache.cleanup_expired()
        if removed:
            logger.debug(f"Cache sweep expired {removed} entries")
        return removed

    def start(self) -> None:
        if self._is_running:
            logger.warning("Cache sweeper is already running")
            return

        self.scheduler.add_job(
            self.sweep_job,
            trigger="interval",
            seconds=self.interval_seconds,
            id="cache_sweep_job",
            name="Secret Cache Sweeper",
            replace_existing=True,
        )
        self.scheduler.start()
        self._is_running = True
        logger.info(f"Cache sweeper started: sweeping every {self.interval_seconds}s")

    def stop(self) -> None:
        if not self._is_running:
            return

        self.scheduler.shutdown(wait=False)
        self._is_running = False
        logger.info("Cache sweeper stopped")

    def is_running(self) -> bool:
        return self._is_running
