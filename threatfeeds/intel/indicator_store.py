"""Indicator store: canonical storage for ingested feed indicators.

Rows are unique on (indicator, source_feed). Re-ingesting a value from the
same feed updates the existing row in place, keeping its id and first_seen.
The same value from two feeds is two independent rows.
"""

import json
import uuid
from datetime import timedelta
from typing import Optional

from sqlalchemy import delete, func, select

from ..models.base import utcnow
from ..models.threat_indicator import ThreatIndicator
from ..utils.logging import get_logger
from .schemas import CandidateIndicator

logger = get_logger("intel.indicator_store")


def indicator_tags(indicator: ThreatIndicator) -> list[str]:
    try:
        return json.loads(indicator.tags_json or "[]")
    except json.JSONDecodeError:
        return []


def indicator_to_dict(indicator: ThreatIndicator) -> dict:
    try:
        metadata = json.loads(indicator.metadata_json or "{}")
    except json.JSONDecodeError:
        metadata = {}
    return {
        "id": indicator.id,
        "indicator": indicator.indicator,
        "type": indicator.indicator_type,
        "confidence": indicator.confidence,
        "tags": indicator_tags(indicator),
        "source_feed": indicator.source_feed,
        "first_seen": indicator.first_seen.isoformat() if indicator.first_seen else None,
        "last_seen": indicator.last_seen.isoformat() if indicator.last_seen else None,
        "metadata": metadata,
    }


class IndicatorStore:
    """Upsert/query access to the ``threat_indicators`` table."""

    def __init__(self, db_session_factory) -> None:
        self._session_factory = db_session_factory

    async def upsert(
        self, candidate: CandidateIndicator, source_feed: str
    ) -> tuple[ThreatIndicator, bool]:
        """Insert or update one indicator. Returns ``(row, is_new)``."""
        tags_json = json.dumps(sorted(set(candidate.tags)))
        metadata_json = json.dumps(candidate.metadata, default=str)

        async with self._session_factory() as session:
            result = await session.execute(
                select(ThreatIndicator).where(
                    ThreatIndicator.indicator == candidate.indicator,
                    ThreatIndicator.source_feed == source_feed,
                )
            )
            existing = result.scalar_one_or_none()
            now = utcnow()

            if existing is not None:
                # last_seen must move forward even when two upserts share a clock tick
                if existing.last_seen is not None and now <= existing.last_seen:
                    now = existing.last_seen + timedelta(microseconds=1)
                existing.indicator_type = candidate.indicator_type
                existing.confidence = candidate.confidence
                existing.tags_json = tags_json
                existing.metadata_json = metadata_json
                existing.last_seen = now
                await session.commit()
                return existing, False

            row = ThreatIndicator(
                id=str(uuid.uuid4()),
                indicator=candidate.indicator,
                indicator_type=candidate.indicator_type,
                confidence=candidate.confidence,
                tags_json=tags_json,
                source_feed=source_feed,
                first_seen=now,
                last_seen=now,
                metadata_json=metadata_json,
            )
            session.add(row)
            await session.commit()
            return row, True

    async def query(
        self, source_feed: Optional[str] = None, limit: Optional[int] = None
    ) -> list[ThreatIndicator]:
        """Indicators, newest first, optionally scoped to one feed."""
        stmt = select(ThreatIndicator).order_by(
            ThreatIndicator.first_seen.desc(), ThreatIndicator.id
        )
        if source_feed:
            stmt = stmt.where(ThreatIndicator.source_feed == source_feed)
        if limit:
            stmt = stmt.limit(limit)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def search(
        self, text: str, indicator_type: Optional[str] = None
    ) -> list[ThreatIndicator]:
        """Case-insensitive substring match on the value or any tag.

        Only the type filter runs in SQL. SQLite's ``lower()`` folds ASCII
        alone and tags are stored as escaped JSON text, so the match itself
        is done on decoded values with ``casefold()``.
        """
        needle = text.strip().casefold()
        stmt = select(ThreatIndicator)
        if indicator_type:
            stmt = stmt.where(ThreatIndicator.indicator_type == indicator_type)
        stmt = stmt.order_by(ThreatIndicator.first_seen.desc(), ThreatIndicator.id)

        async with self._session_factory() as session:
            result = await session.execute(stmt)
            rows = result.scalars().all()

        return [
            row
            for row in rows
            if needle in row.indicator.casefold()
            or any(needle in tag.casefold() for tag in indicator_tags(row))
        ]

    async def count_by_source(self, feed_id: str) -> int:
        async with self._session_factory() as session:
            result = await session.execute(
                select(func.count()).select_from(ThreatIndicator).where(
                    ThreatIndicator.source_feed == feed_id
                )
            )
            return int(result.scalar_one())

    async def purge_by_source(self, feed_id: str) -> int:
        """Delete every indicator owned by ``feed_id``. Returns rows removed."""
        async with self._session_factory() as session:
            result = await session.execute(
                delete(ThreatIndicator).where(ThreatIndicator.source_feed == feed_id)
            )
            await session.commit()
        logger.info("indicators_purged", feed_id=feed_id, deleted=result.rowcount)
        return result.rowcount or 0
