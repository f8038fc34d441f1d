"""Feed scheduler: periodically re-ingests enabled feeds whose refresh interval elapsed."""

import asyncio
from datetime import datetime, timedelta
from typing import Optional

from ..models.base import utcnow
from ..models.threat_feed import ThreatFeed
from ..utils.logging import get_logger
from .feed_registry import FeedRegistry
from .ingestion import IngestionEngine

logger = get_logger("intel.scheduler")


def is_feed_due(feed: ThreatFeed, now: datetime) -> bool:
    """A never-ingested feed is always due."""
    if feed.last_updated is None:
        return True
    return now - feed.last_updated >= timedelta(minutes=feed.refresh_interval)


class FeedScheduler:
    """Single background loop that evaluates every enabled feed each pass.

    Due feeds are ingested concurrently. A feed whose previous run (scheduled
    or on-demand) is still in progress is skipped until that run finishes.
    A failing feed is logged and never stops the rest of the pass.
    """

    def __init__(
        self,
        engine: IngestionEngine,
        registry: FeedRegistry,
        poll_interval: float = 60,
    ) -> None:
        self._engine = engine
        self._registry = registry
        self._poll_interval = poll_interval
        self._task: Optional[asyncio.Task] = None
        self._running = False
        self._last_pass: Optional[datetime] = None

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._loop())
        logger.info("scheduler_started", poll_interval=self._poll_interval)

    async def stop(self) -> None:
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("scheduler_stopped")

    async def _loop(self) -> None:
        while self._running:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.error("scheduler_pass_error", error=str(exc), exc_info=True)
            await asyncio.sleep(self._poll_interval)

    async def run_once(self) -> list[str]:
        """Evaluate all enabled feeds once. Returns the ids that were triggered."""
        now = utcnow()
        self._last_pass = now
        feeds = await self._registry.list_enabled_feeds()

        due: list[ThreatFeed] = []
        for feed in feeds:
            if not is_feed_due(feed, now):
                continue
            if self._engine.is_ingesting(feed.id):
                logger.info("scheduler_feed_busy", feed_id=feed.id, name=feed.name)
                continue
            due.append(feed)

        if due:
            logger.info("scheduler_feeds_due", count=len(due))
            await asyncio.gather(*(self._ingest(feed) for feed in due))
        return [feed.id for feed in due]

    async def _ingest(self, feed: ThreatFeed) -> None:
        try:
            result = await self._engine.ingest(feed.id)
        except Exception as exc:
            logger.error("scheduler_ingest_error", feed_id=feed.id, name=feed.name, error=str(exc))
            return
        if not result.success:
            logger.warning(
                "scheduler_ingest_failed",
                feed_id=feed.id,
                name=feed.name,
                error=result.errors[0] if result.errors else None,
            )

    def status(self) -> dict:
        return {
            "running": self._running,
            "poll_interval_seconds": self._poll_interval,
            "last_pass": self._last_pass.isoformat() if self._last_pass else None,
            "ingesting": self._engine.ingesting_feeds(),
        }
