"""FastAPI dependency injection providers and service singletons.

The indicator store, feed registry, ingestion engine and scheduler live for
the whole process: created lazily on first use and dropped by
``reset_services()`` at shutdown.
"""

from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .config import FeedsConfig, get_config
from .database import get_session, get_session_factory
from .utils.logging import get_logger
from .utils.security import decode_access_token

_dep_logger = get_logger("dependencies")

security_scheme = HTTPBearer(auto_error=False)

_config_instance: FeedsConfig | None = None
_indicator_store = None
_feed_registry = None
_ingestion_engine = None
_feed_scheduler = None


def get_app_config() -> FeedsConfig:
    """Get the application config singleton."""
    global _config_instance
    if _config_instance is None:
        _config_instance = get_config()
    return _config_instance


async def get_db(config: FeedsConfig = Depends(get_app_config)):
    """Get an async database session."""
    async for session in get_session(config):
        yield session


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security_scheme),
    config: FeedsConfig = Depends(get_app_config),
) -> dict:
    """Validate the bearer token and return its claims."""
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = decode_access_token(credentials.credentials, config.secret_key, config.jwt_algorithm)
    if payload is None or not payload.get("sub"):
        _dep_logger.info("invalid_access_token")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return payload


def get_indicator_store():
    """Get the indicator store singleton."""
    global _indicator_store
    if _indicator_store is None:
        from .intel.indicator_store import IndicatorStore
        config = get_app_config()
        _indicator_store = IndicatorStore(db_session_factory=get_session_factory(config))
    return _indicator_store


def get_feed_registry():
    """Get the feed registry singleton."""
    global _feed_registry
    if _feed_registry is None:
        from .intel.feed_registry import FeedRegistry
        config = get_app_config()
        _feed_registry = FeedRegistry(
            db_session_factory=get_session_factory(config),
            config=config,
            store=get_indicator_store(),
        )
    return _feed_registry


def get_ingestion_engine():
    """Get the ingestion engine singleton."""
    global _ingestion_engine
    if _ingestion_engine is None:
        from .intel.ingestion import IngestionEngine
        config = get_app_config()
        _ingestion_engine = IngestionEngine(
            db_session_factory=get_session_factory(config),
            config=config,
            registry=get_feed_registry(),
            store=get_indicator_store(),
        )
    return _ingestion_engine


def get_feed_scheduler():
    """Get the feed scheduler singleton."""
    global _feed_scheduler
    if _feed_scheduler is None:
        from .intel.scheduler import FeedScheduler
        config = get_app_config()
        _feed_scheduler = FeedScheduler(
            engine=get_ingestion_engine(),
            registry=get_feed_registry(),
            poll_interval=config.scheduler_poll_interval,
        )
    return _feed_scheduler


def reset_services() -> None:
    """Drop all service singletons (process shutdown, tests)."""
    global _config_instance, _indicator_store, _feed_registry, _ingestion_engine, _feed_scheduler
    _config_instance = None
    _indicator_store = None
    _feed_registry = None
    _ingestion_engine = None
    _feed_scheduler = None
