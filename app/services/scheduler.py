"""
Background housekeeping jobs: rate-limiter bucket sweep, cache TTL sweep and
the expired refresh-token reaper. Runs on its own thread, started and stopped
by the application lifespan.
"""

import logging
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.orm import Session

from app.services.cache import CacheService
from app.services.rate_limit import RateLimiter
from app.services.retention import purge_expired_refresh_tokens

if TYPE_CHECKING:
    from app.core.config import Settings

logger = logging.getLogger(__name__)


class HousekeepingScheduler:
    """Owns one BackgroundScheduler and the periodic sweep jobs."""

    def __init__(
        self,
        settings: "Settings",
        session_factory: Callable[[], Session],
        cache: CacheService,
        limiters: Sequence[RateLimiter],
    ) -> None:
        self.settings = settings
        self.session_factory = session_factory
        self.cache = cache
        self.limiters = list(limiters)
        self.scheduler = BackgroundScheduler(timezone="UTC")
        self.is_running = False

    def start(self) -> None:
        if self.is_running:
            return
        self.scheduler.add_job(
            self.sweep_rate_limiters,
            trigger=IntervalTrigger(seconds=self.settings.RATE_LIMIT_SWEEP_SECONDS),
            id="sweep_rate_limiters",
            name="Sweep idle rate-limit buckets",
            replace_existing=True,
        )
        self.scheduler.add_job(
            self.sweep_cache,
            trigger=IntervalTrigger(seconds=self.settings.CACHE_SWEEP_SECONDS),
            id="sweep_cache",
            name="Sweep expired cache entries",
            replace_existing=True,
        )
        if self.settings.REFRESH_TOKEN_REAPER_ENABLED:
            self.scheduler.add_job(
                self.reap_refresh_tokens,
                trigger=IntervalTrigger(minutes=self.settings.REFRESH_TOKEN_REAPER_MINUTES),
                id="reap_refresh_tokens",
                name="Delete expired refresh tokens",
                replace_existing=True,
            )
        self.scheduler.start()
        self.is_running = True
        logger.info("Housekeeping scheduler started jobs=%s", [j.id for j in self.scheduler.get_jobs()])

    def stop(self) -> None:
        if self.is_running:
            self.scheduler.shutdown(wait=False)
            self.is_running = False
            logger.info("Housekeeping scheduler stopped")

    def sweep_rate_limiters(self) -> int:
        removed = sum(limiter.sweep() for limiter in self.limiters)
        if removed:
            logger.info("Rate limiter sweep removed %d idle buckets", removed)
        return removed

    def sweep_cache(self) -> int:
        removed = self.cache.sweep_expired()
        if removed:
            logger.info("Cache sweep removed %d expired entries", removed)
        return removed

    def reap_refresh_tokens(self) -> int:
        db = self.session_factory()
        try:
            return purge_expired_refresh_tokens(db, self.settings)
        except Exception:
            db.rollback()
            logger.exception("Refresh token reaper failed")
            return 0
        finally:
            db.close()
