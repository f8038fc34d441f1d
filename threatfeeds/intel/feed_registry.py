"""Feed registry: CRUD over custom threat feed configurations."""

import json
import uuid
from typing import Optional

from cryptography.fernet import InvalidToken
from pydantic import TypeAdapter, ValidationError
from sqlalchemy import select

from ..models.base import utcnow
from ..models.threat_feed import ThreatFeed
from ..utils.encryption import decrypt_value, encrypt_value
from ..utils.logging import get_logger
from .errors import FeedNotFoundError
from .indicator_store import IndicatorStore
from .schemas import AuthScheme, FeedCreate, FeedFilters, FeedUpdate, FieldMapping, NoAuth

logger = get_logger("intel.feed_registry")

_auth_adapter = TypeAdapter(AuthScheme)


class FeedRegistry:
    """Stores feed configurations and their per-run metadata.

    Credentials are kept Fernet-encrypted at rest and only decrypted when the
    ingestion engine needs to build request headers.
    """

    def __init__(self, db_session_factory, config, store: IndicatorStore) -> None:
        self._session_factory = db_session_factory
        self._config = config
        self._store = store

    # ------------------------------------------------------------------
    # Serialization helpers
    # ------------------------------------------------------------------
    def _encrypt_auth(self, auth) -> Optional[str]:
        creds = auth.credentials()
        if not any(creds.values()):
            return None
        return encrypt_value(json.dumps(creds), self._config.secret_key)

    def get_authentication(self, feed: ThreatFeed):
        """Decrypt and rebuild the feed's authentication scheme."""
        creds: dict = {}
        if feed.auth_credentials_encrypted:
            try:
                creds = json.loads(
                    decrypt_value(feed.auth_credentials_encrypted, self._config.secret_key)
                )
            except (InvalidToken, ValueError) as exc:
                logger.error("feed_credentials_decrypt_error", feed_id=feed.id, error=str(exc))
        try:
            return _auth_adapter.validate_python({"type": feed.auth_type, **creds})
        except ValidationError:
            logger.warning("feed_auth_type_unknown", feed_id=feed.id, auth_type=feed.auth_type)
            return NoAuth()

    @staticmethod
    def get_field_mapping(feed: ThreatFeed) -> FieldMapping:
        return FieldMapping.model_validate_json(feed.fields_json)

    @staticmethod
    def get_filters(feed: ThreatFeed) -> Optional[FeedFilters]:
        if not feed.filters_json:
            return None
        return FeedFilters.model_validate_json(feed.filters_json)

    def feed_to_dict(self, feed: ThreatFeed) -> dict:
        """API view of a feed with credentials masked."""
        return {
            "id": feed.id,
            "name": feed.name,
            "description": feed.description,
            "url": feed.url,
            "type": feed.feed_type,
            "format": feed.format,
            "authentication": self.get_authentication(feed).masked(),
            "refresh_interval": feed.refresh_interval,
            "enabled": feed.enabled,
            "fields": json.loads(feed.fields_json),
            "filters": json.loads(feed.filters_json) if feed.filters_json else None,
            "last_updated": feed.last_updated.isoformat() if feed.last_updated else None,
            "last_error": feed.last_error,
            "indicator_count": feed.indicator_count,
            "created_at": feed.created_at.isoformat() if feed.created_at else None,
            "created_by": feed.created_by,
        }

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------
    async def create_feed(self, data: FeedCreate, created_by: str = "system") -> ThreatFeed:
        feed = ThreatFeed(
            id=str(uuid.uuid4()),
            name=data.name,
            description=data.description,
            url=data.url,
            feed_type=data.type,
            format=data.format,
            auth_type=data.authentication.type,
            auth_credentials_encrypted=self._encrypt_auth(data.authentication),
            refresh_interval=data.refresh_interval,
            enabled=data.enabled,
            fields_json=data.fields.model_dump_json(),
            filters_json=data.filters.model_dump_json() if data.filters else None,
            indicator_count=0,
            created_at=utcnow(),
            created_by=created_by,
        )
        async with self._session_factory() as session:
            session.add(feed)
            await session.commit()
        logger.info("feed_created", feed_id=feed.id, name=feed.name, feed_type=feed.feed_type)
        return feed

    async def list_feeds(self) -> list[ThreatFeed]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(ThreatFeed).order_by(ThreatFeed.created_at.desc())
            )
            return list(result.scalars().all())

    async def list_enabled_feeds(self) -> list[ThreatFeed]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(ThreatFeed).where(ThreatFeed.enabled == True)  # noqa: E712
            )
            return list(result.scalars().all())

    async def find_feed(self, feed_id: str) -> Optional[ThreatFeed]:
        async with self._session_factory() as session:
            result = await session.execute(select(ThreatFeed).where(ThreatFeed.id == feed_id))
            return result.scalar_one_or_none()

    async def get_feed(self, feed_id: str) -> ThreatFeed:
        """Like ``find_feed`` but raises ``FeedNotFoundError`` for unknown ids."""
        feed = await self.find_feed(feed_id)
        if feed is None:
            raise FeedNotFoundError(feed_id)
        return feed

    async def update_feed(self, feed_id: str, data: FeedUpdate) -> ThreatFeed:
        """Merge the fields present in ``data``; changes apply from the next run."""
        changes = data.model_dump(exclude_unset=True)
        async with self._session_factory() as session:
            result = await session.execute(select(ThreatFeed).where(ThreatFeed.id == feed_id))
            feed = result.scalar_one_or_none()
            if feed is None:
                raise FeedNotFoundError(feed_id)

            for key in ("name", "description", "url", "format", "refresh_interval", "enabled"):
                if changes.get(key) is not None:
                    setattr(feed, key, changes[key])
            if data.type is not None:
                feed.feed_type = data.type
            if data.authentication is not None:
                feed.auth_type = data.authentication.type
                feed.auth_credentials_encrypted = self._encrypt_auth(data.authentication)
            if data.fields is not None:
                feed.fields_json = data.fields.model_dump_json()
            if "filters" in changes:
                feed.filters_json = data.filters.model_dump_json() if data.filters else None

            await session.commit()
        logger.info("feed_updated", feed_id=feed_id, fields=sorted(changes))
        return feed

    async def delete_feed(self, feed_id: str) -> int:
        """Delete a feed and purge its indicators. Returns indicators removed."""
        feed = await self.get_feed(feed_id)
        purged = await self._store.purge_by_source(feed_id)
        async with self._session_factory() as session:
            result = await session.execute(select(ThreatFeed).where(ThreatFeed.id == feed_id))
            row = result.scalar_one_or_none()
            if row is not None:
                await session.delete(row)
                await session.commit()
        logger.info("feed_deleted", feed_id=feed_id, name=feed.name, indicators_purged=purged)
        return purged

    # ------------------------------------------------------------------
    # Run metadata
    # ------------------------------------------------------------------
    async def record_success(self, feed_id: str, indicator_count: int) -> None:
        async with self._session_factory() as session:
            result = await session.execute(select(ThreatFeed).where(ThreatFeed.id == feed_id))
            feed = result.scalar_one_or_none()
            if feed is None:
                return
            feed.last_updated = utcnow()
            feed.last_error = None
            feed.indicator_count = indicator_count
            await session.commit()

    async def record_failure(self, feed_id: str, message: str) -> None:
        """Store the error; indicator_count and last_updated stay as they were."""
        async with self._session_factory() as session:
            result = await session.execute(select(ThreatFeed).where(ThreatFeed.id == feed_id))
            feed = result.scalar_one_or_none()
            if feed is None:
                return
            feed.last_error = message
            await session.commit()
