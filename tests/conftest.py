"""Shared test fixtures."""

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from threatfeeds.config import FeedsConfig
from threatfeeds.intel.feed_registry import FeedRegistry
from threatfeeds.intel.indicator_store import IndicatorStore
from threatfeeds.intel.ingestion import IngestionEngine
from threatfeeds.intel.schemas import FeedCreate
from threatfeeds.models.base import Base


class FakeFeedServer:
    """Canned upstream feed responses served through ``httpx.MockTransport``.

    Each URL maps to ``(status, body)`` or to an exception raised from the
    transport. Every request is recorded for header assertions.
    """

    def __init__(self) -> None:
        self.routes: dict[str, object] = {}
        self.requests: list[httpx.Request] = []

    def serve(self, url: str, body: str, status_code: int = 200) -> None:
        self.routes[url] = (status_code, body)

    def fail(self, url: str, exc_factory) -> None:
        self.routes[url] = exc_factory

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get(str(request.url))
        if route is None:
            return httpx.Response(404, text="not found")
        if callable(route):
            raise route(request)
        status_code, body = route
        # Content type deliberately wrong: the feed type decides the parser.
        return httpx.Response(
            status_code, content=body.encode("utf-8"), headers={"Content-Type": "text/html"}
        )

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def feeds_config():
    return FeedsConfig(
        _env_file=None,
        debug=True,
        secret_key="test-secret-key",
        feed_fetch_timeout=5.0,
        ingestion_history_limit=100,
    )


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    """File-backed SQLite so concurrent sessions get their own connections."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'feeds.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def feed_server():
    return FakeFeedServer()


@pytest.fixture
def store(session_factory):
    return IndicatorStore(db_session_factory=session_factory)


@pytest.fixture
def registry(session_factory, feeds_config, store):
    return FeedRegistry(db_session_factory=session_factory, config=feeds_config, store=store)


@pytest.fixture
def ingestion_engine(session_factory, feeds_config, registry, store, feed_server):
    return IngestionEngine(
        db_session_factory=session_factory,
        config=feeds_config,
        registry=registry,
        store=store,
        transport=feed_server.transport(),
    )


@pytest.fixture
def make_feed(registry):
    """Create a feed through the registry with sensible defaults."""

    async def _make(**overrides):
        data = {
            "name": "test-feed",
            "url": "https://example.test/feed.txt",
            "type": "txt",
            "refresh_interval": 60,
            "enabled": True,
            "fields": {"indicator_field": "indicator"},
        }
        data.update(overrides)
        return await registry.create_feed(FeedCreate.model_validate(data), created_by="tester")

    return _make
