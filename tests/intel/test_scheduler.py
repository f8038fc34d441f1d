"""Tests for the feed scheduler."""

import asyncio
from datetime import datetime, timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from threatfeeds.intel.scheduler import FeedScheduler, is_feed_due


class TestIsFeedDue:
    def test_never_ingested(self):
        assert is_feed_due(SimpleNamespace(last_updated=None, refresh_interval=60), datetime(2024, 1, 1))

    def test_interval_elapsed(self):
        now = datetime(2024, 1, 1, 12, 0)
        fresh = SimpleNamespace(last_updated=now - timedelta(minutes=59), refresh_interval=60)
        stale = SimpleNamespace(last_updated=now - timedelta(minutes=60), refresh_interval=60)
        assert is_feed_due(fresh, now) is False
        assert is_feed_due(stale, now) is True


@pytest.fixture
def scheduler(ingestion_engine, registry):
    return FeedScheduler(engine=ingestion_engine, registry=registry, poll_interval=3600)


@pytest.mark.asyncio
class TestRunOnce:
    async def test_only_due_enabled_feeds_triggered(self, scheduler, registry, feed_server, make_feed):
        due = await make_feed(name="due")
        fresh = await make_feed(name="fresh", url="https://example.test/fresh.txt")
        await registry.record_success(fresh.id, 0)
        await make_feed(name="disabled", url="https://example.test/off.txt", enabled=False)
        feed_server.serve("https://example.test/feed.txt", "1.2.3.4\n")

        triggered = await scheduler.run_once()

        assert triggered == [due.id]
        assert [str(r.url) for r in feed_server.requests] == ["https://example.test/feed.txt"]
        assert (await registry.get_feed(due.id)).indicator_count == 1

    async def test_failing_feed_does_not_stop_pass(self, scheduler, registry, feed_server, make_feed):
        broken = await make_feed(name="broken", url="https://example.test/broken.txt")
        healthy = await make_feed(name="healthy")
        feed_server.serve("https://example.test/broken.txt", "", status_code=503)
        feed_server.serve("https://example.test/feed.txt", "evil.test\n")

        triggered = await scheduler.run_once()

        assert set(triggered) == {broken.id, healthy.id}
        assert (await registry.get_feed(healthy.id)).indicator_count == 1
        failed = await registry.get_feed(broken.id)
        assert failed.last_error.startswith("HTTP 503")
        assert failed.last_updated is None

    async def test_failed_feed_retried_next_pass(self, scheduler, feed_server, make_feed):
        broken = await make_feed(url="https://example.test/broken.txt")
        assert await scheduler.run_once() == [broken.id]
        assert await scheduler.run_once() == [broken.id]

    async def test_busy_feed_skipped(self, scheduler, ingestion_engine, make_feed, monkeypatch):
        feed = await make_feed()
        monkeypatch.setattr(ingestion_engine, "is_ingesting", lambda feed_id: feed_id == feed.id)
        assert await scheduler.run_once() == []

    async def test_engine_exception_is_contained(self, registry, make_feed):
        feed = await make_feed()
        engine = AsyncMock()
        engine.is_ingesting = lambda feed_id: False
        engine.ingest.side_effect = RuntimeError("boom")
        scheduler = FeedScheduler(engine=engine, registry=registry, poll_interval=3600)

        assert await scheduler.run_once() == [feed.id]
        engine.ingest.assert_awaited_once_with(feed.id)


@pytest.mark.asyncio
class TestLifecycle:
    async def test_start_runs_a_pass_and_stop_cancels(self, scheduler, feed_server, make_feed):
        await make_feed()
        feed_server.serve("https://example.test/feed.txt", "1.2.3.4\n")

        await scheduler.start()
        assert scheduler.is_running is True
        for _ in range(200):
            if feed_server.requests and not scheduler.status()["ingesting"]:
                break
            await asyncio.sleep(0.01)
        assert len(feed_server.requests) == 1

        await scheduler.stop()
        assert scheduler.is_running is False
        assert scheduler.status()["running"] is False

    async def test_status_shape(self, scheduler):
        status = scheduler.status()
        assert status == {
            "running": False,
            "poll_interval_seconds": 3600,
            "last_pass": None,
            "ingesting": [],
        }

    async def test_start_is_idempotent(self, scheduler):
        await scheduler.start()
        task = scheduler._task
        await scheduler.start()
        assert scheduler._task is task
        await scheduler.stop()
