"""Ingestion engine: one fetch → parse → map → validate → upsert run per call.

A run moves through Fetching, Parsing and Mapping/Upserting, then always
Finalizes. Transport and format failures end the run early and are recorded
as the single error of a failed result. Errors on individual records are
collected and the run carries on. Only an unknown feed id escapes
``ingest`` as an exception.

Runs for the same feed are serialized with a per-feed ``asyncio.Lock``;
different feeds ingest concurrently.
"""

import asyncio
import json
import time
from typing import Optional

import httpx
from sqlalchemy import delete, select

from ..models.base import utcnow
from ..models.ingestion_result import FeedIngestionResult
from ..models.threat_feed import ThreatFeed
from ..utils.logging import get_logger
from .authenticator import build_headers
from .classifier import validate
from .errors import FeedFetchError, FeedNotFoundError, FeedParseError
from .feed_registry import FeedRegistry
from .field_mapper import map_record, passes_filters
from .indicator_store import IndicatorStore
from .parsers import parse_feed
from .schemas import TEXT_FIELD_MAPPING, IngestionResult

logger = get_logger("intel.ingestion")

DEFAULT_HISTORY_LIMIT = 100


def result_from_row(row: FeedIngestionResult) -> IngestionResult:
    return IngestionResult(
        id=row.id,
        feed_id=row.feed_id,
        success=row.success,
        indicators_processed=row.indicators_processed,
        indicators_added=row.indicators_added,
        indicators_updated=row.indicators_updated,
        errors=tuple(json.loads(row.errors_json or "[]")),
        processing_time=row.processing_time,
        timestamp=row.timestamp,
    )


class IngestionEngine:
    """Runs feed ingestions and keeps a bounded history of their results."""

    def __init__(
        self,
        db_session_factory,
        config,
        registry: FeedRegistry,
        store: IndicatorStore,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._session_factory = db_session_factory
        self._config = config
        self._registry = registry
        self._store = store
        # Injected in tests (httpx.MockTransport); None means a real network client.
        self._transport = transport
        self._locks: dict[str, asyncio.Lock] = {}

    @property
    def _history_limit(self) -> int:
        return int(getattr(self._config, "ingestion_history_limit", DEFAULT_HISTORY_LIMIT))

    def is_ingesting(self, feed_id: str) -> bool:
        lock = self._locks.get(feed_id)
        return lock is not None and lock.locked()

    def ingesting_feeds(self) -> list[str]:
        return [feed_id for feed_id, lock in self._locks.items() if lock.locked()]

    async def ingest(self, feed_id: str) -> IngestionResult:
        """Run one ingestion for ``feed_id``.

        Raises ``FeedNotFoundError`` if the feed does not exist; every other
        failure is reported in the returned result.
        """
        await self._registry.get_feed(feed_id)
        lock = self._locks.setdefault(feed_id, asyncio.Lock())
        try:
            async with lock:
                # Re-read under the lock: config may have changed while waiting.
                feed = await self._registry.get_feed(feed_id)
                return await self._run(feed)
        except FeedNotFoundError:
            # Deleted while this run was waiting for the lock.
            self.forget(feed_id)
            raise

    def forget(self, feed_id: str) -> None:
        """Drop the run lock of a deleted feed. A lock still held is kept."""
        lock = self._locks.get(feed_id)
        if lock is not None and not lock.locked():
            del self._locks[feed_id]

    # ------------------------------------------------------------------
    # Run stages
    # ------------------------------------------------------------------
    async def _run(self, feed: ThreatFeed) -> IngestionResult:
        started = time.monotonic()
        errors: list[str] = []
        processed = added = updated = 0
        success = False

        logger.info("feed_ingestion_started", feed_id=feed.id, name=feed.name, feed_type=feed.feed_type)
        try:
            body = await self._fetch(feed)
            records = parse_feed(body, feed.feed_type)
            processed, added, updated = await self._map_and_upsert(feed, records, errors)
            success = True
        except (FeedFetchError, FeedParseError) as exc:
            errors.append(str(exc))
        except Exception as exc:
            logger.error("feed_ingestion_unexpected_error", feed_id=feed.id, error=str(exc), exc_info=True)
            errors.append(f"Unexpected error: {exc}")

        # Finalizing
        processing_time = int((time.monotonic() - started) * 1000)
        try:
            if success:
                count = await self._store.count_by_source(feed.id)
                await self._registry.record_success(feed.id, count)
                logger.info(
                    "feed_ingestion_complete",
                    feed_id=feed.id,
                    name=feed.name,
                    processed=processed,
                    added=added,
                    updated=updated,
                    record_errors=len(errors),
                    indicator_count=count,
                    duration_ms=processing_time,
                )
            else:
                await self._registry.record_failure(feed.id, errors[0])
                logger.error("feed_ingestion_failed", feed_id=feed.id, name=feed.name, error=errors[0])
        except Exception as exc:
            logger.error("feed_ingestion_finalize_error", feed_id=feed.id, error=str(exc), exc_info=True)
            success = False
            errors.append(f"Failed to record feed state: {exc}")

        try:
            return await self._record_result(
                feed_id=feed.id,
                success=success,
                processed=processed,
                added=added,
                updated=updated,
                errors=errors,
                processing_time=processing_time,
            )
        except Exception as exc:
            # History is unavailable; report the run without a stored id.
            logger.error("feed_ingestion_result_store_error", feed_id=feed.id, error=str(exc), exc_info=True)
            errors.append(f"Failed to store ingestion result: {exc}")
            return IngestionResult(
                feed_id=feed.id,
                success=False,
                indicators_processed=processed,
                indicators_added=added,
                indicators_updated=updated,
                errors=tuple(errors),
                processing_time=processing_time,
                timestamp=utcnow(),
            )

    async def _fetch(self, feed: ThreatFeed) -> str:
        """GET the feed URL and return the body as UTF-8 text."""
        headers = {"User-Agent": self._config.feed_user_agent}
        headers.update(
            build_headers(
                self._registry.get_authentication(feed),
                api_key_header=self._config.feed_api_key_header,
            )
        )
        timeout = self._config.feed_fetch_timeout
        try:
            async with httpx.AsyncClient(
                timeout=timeout, transport=self._transport, follow_redirects=True
            ) as client:
                response = await client.get(feed.url, headers=headers)
        except httpx.TimeoutException as exc:
            raise FeedFetchError(f"Timed out after {timeout}s fetching {feed.url}") from exc
        except httpx.HTTPError as exc:
            raise FeedFetchError(f"Request failed: {exc}") from exc

        if not response.is_success:
            raise FeedFetchError(f"HTTP {response.status_code}: {response.reason_phrase}")
        # Content-Type is ignored; the feed's declared type picks the parser.
        return response.content.decode("utf-8", errors="replace")

    async def _map_and_upsert(
        self, feed: ThreatFeed, records: list[dict], errors: list[str]
    ) -> tuple[int, int, int]:
        fields = TEXT_FIELD_MAPPING if feed.feed_type == "txt" else self._registry.get_field_mapping(feed)
        filters = self._registry.get_filters(feed)
        default_confidence = self._config.feed_default_confidence

        processed = added = updated = 0
        for record in records:
            value = record.get(fields.indicator_field)
            try:
                candidate = map_record(record, fields, default_confidence)
                if candidate is None:
                    continue
                if not validate(candidate.indicator, candidate.indicator_type):
                    logger.debug(
                        "indicator_invalid_skipped",
                        feed_id=feed.id,
                        indicator=candidate.indicator,
                        indicator_type=candidate.indicator_type,
                    )
                    continue
                if not passes_filters(candidate, filters):
                    continue

                processed += 1
                _, is_new = await self._store.upsert(candidate, feed.id)
                if is_new:
                    added += 1
                else:
                    updated += 1
            except Exception as exc:
                errors.append(f"Error processing indicator {value}: {exc}")
                logger.warning("indicator_processing_error", feed_id=feed.id, indicator=value, error=str(exc))
        return processed, added, updated

    # ------------------------------------------------------------------
    # Result history
    # ------------------------------------------------------------------
    async def _record_result(
        self,
        feed_id: str,
        success: bool,
        processed: int,
        added: int,
        updated: int,
        errors: list[str],
        processing_time: int,
    ) -> IngestionResult:
        row = FeedIngestionResult(
            feed_id=feed_id,
            success=success,
            indicators_processed=processed,
            indicators_added=added,
            indicators_updated=updated,
            errors_json=json.dumps(errors),
            processing_time=processing_time,
            timestamp=utcnow(),
        )
        async with self._session_factory() as session:
            session.add(row)
            await session.flush()
            # Retention: keep the newest N results across all feeds.
            keep = (
                select(FeedIngestionResult.id)
                .order_by(FeedIngestionResult.id.desc())
                .limit(self._history_limit)
            )
            await session.execute(
                delete(FeedIngestionResult)
                .where(FeedIngestionResult.id.not_in(keep))
                .execution_options(synchronize_session=False)
            )
            await session.commit()
        return result_from_row(row)

    async def list_results(
        self, feed_id: Optional[str] = None, limit: Optional[int] = None
    ) -> list[IngestionResult]:
        """Ingestion history, newest first."""
        stmt = select(FeedIngestionResult).order_by(FeedIngestionResult.id.desc())
        if feed_id:
            stmt = stmt.where(FeedIngestionResult.feed_id == feed_id)
        if limit:
            stmt = stmt.limit(limit)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [result_from_row(row) for row in result.scalars().all()]
