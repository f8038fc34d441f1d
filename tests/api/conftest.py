"""API test fixtures: app wired to a temp database and a fake feed upstream."""

import os
import tempfile

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

# Force test config BEFORE any app imports
os.environ["DEBUG"] = "true"
os.environ["SECRET_KEY"] = "test-secret-key-for-api-tests"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["LOG_DIR"] = tempfile.mkdtemp(prefix="threatfeeds-logs-")

import threatfeeds.database as db_mod
import threatfeeds.dependencies as dep_mod
from threatfeeds.intel.ingestion import IngestionEngine
from threatfeeds.models.base import Base
from threatfeeds.models.user import User
from threatfeeds.utils.security import hash_password

USERS = {
    "admin": ("admin-pass", "admin"),
    "analyst": ("analyst-pass", "analyst"),
    "viewer": ("viewer-pass", "viewer"),
}


@pytest_asyncio.fixture
async def test_app(tmp_path, feed_server):
    """App bound to a fresh file database; outbound fetches hit ``feed_server``."""
    dep_mod.reset_services()
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'api.db'}")
    event.listen(engine.sync_engine, "connect", db_mod._enable_sqlite_foreign_keys)
    factory = async_sessionmaker(engine, expire_on_commit=False)
    db_mod._engine = engine
    db_mod._session_factory = factory

    from threatfeeds.main import app

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with factory() as session:
        for username, (password, role) in USERS.items():
            session.add(User(username=username, password_hash=hash_password(password), role=role))
        await session.commit()

    config = dep_mod.get_app_config()
    ingestion_engine = IngestionEngine(
        db_session_factory=factory,
        config=config,
        registry=dep_mod.get_feed_registry(),
        store=dep_mod.get_indicator_store(),
        transport=feed_server.transport(),
    )
    app.dependency_overrides[dep_mod.get_ingestion_engine] = lambda: ingestion_engine

    yield app

    app.dependency_overrides.clear()
    dep_mod.reset_services()
    await engine.dispose()
    db_mod._engine = None
    db_mod._session_factory = None


@pytest_asyncio.fixture
async def client(test_app):
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


async def _login(client, username):
    password, _ = USERS[username]
    resp = await client.post("/api/v1/auth/login", json={"username": username, "password": password})
    assert resp.status_code == 200, resp.text
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}


@pytest_asyncio.fixture
async def admin_headers(client):
    return await _login(client, "admin")


@pytest_asyncio.fixture
async def analyst_headers(client):
    return await _login(client, "analyst")


@pytest_asyncio.fixture
async def viewer_headers(client):
    return await _login(client, "viewer")
