"""Field mapper: turns a decoded feed record into a candidate indicator.

Mapping never raises. A malformed optional field (confidence, tags,
timestamp) degrades to its default instead of failing the record; only a
missing or blank indicator value drops the record.
"""

from datetime import datetime, timezone
from typing import Any, Optional

from ..models.base import utcnow
from .classifier import classify
from .schemas import CandidateIndicator, FeedFilters, FieldMapping

DEFAULT_CONFIDENCE = 50

# Epoch values above this are taken to be milliseconds.
_EPOCH_MS_THRESHOLD = 10**11


def _present(value: Any) -> bool:
    return value is not None and str(value).strip() != ""


def parse_confidence(value: Any, default: int = DEFAULT_CONFIDENCE) -> int:
    """Integer confidence clamped to 0-100, ``default`` when unreadable."""
    if not _present(value) or isinstance(value, bool):
        return default
    text = str(value).strip()
    try:
        score = int(text)
    except ValueError:
        try:
            score = int(float(text))
        except (ValueError, OverflowError):
            return default
    return min(100, max(0, score))


def parse_tags(value: Any) -> list[str]:
    """Comma-separated string (or list) to a de-duplicated tag list."""
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        parts = [str(item) for item in value if item is not None]
    else:
        parts = str(value).split(",")
    tags: list[str] = []
    for part in parts:
        tag = part.strip()
        if tag and tag not in tags:
            tags.append(tag)
    return tags


def _to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def parse_timestamp(value: Any) -> Optional[datetime]:
    """ISO-8601 string or unix epoch (s or ms) to naive UTC; None when unreadable."""
    if isinstance(value, datetime):
        return _to_naive_utc(value)
    if not _present(value) or isinstance(value, bool):
        return None
    try:
        if isinstance(value, (int, float)) or str(value).strip().lstrip("-").isdigit():
            epoch = float(value)
            if abs(epoch) > _EPOCH_MS_THRESHOLD:
                epoch /= 1000
            return datetime.fromtimestamp(epoch, tz=timezone.utc).replace(tzinfo=None)
        text = str(value).strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        return _to_naive_utc(datetime.fromisoformat(text))
    except (ValueError, OverflowError, OSError):
        return None


def map_record(
    record: dict[str, Any],
    fields: FieldMapping,
    default_confidence: int = DEFAULT_CONFIDENCE,
) -> Optional[CandidateIndicator]:
    """Apply a feed's field mapping to one record, or None if it has no indicator."""
    raw_value = record.get(fields.indicator_field)
    if not _present(raw_value):
        return None
    value = str(raw_value).strip()

    indicator_type = None
    if fields.type_field and _present(record.get(fields.type_field)):
        indicator_type = str(record[fields.type_field]).strip().lower()
    if not indicator_type:
        indicator_type = classify(value)

    confidence = default_confidence
    if fields.confidence_field:
        confidence = parse_confidence(record.get(fields.confidence_field), default_confidence)

    tags = parse_tags(record.get(fields.tags_field)) if fields.tags_field else []

    timestamp = None
    if fields.timestamp_field:
        timestamp = parse_timestamp(record.get(fields.timestamp_field))

    mapped = fields.mapped_keys()
    metadata = {k: v for k, v in record.items() if k not in mapped and _present(v)}
    if timestamp is not None:
        metadata["feed_timestamp"] = timestamp.isoformat()

    return CandidateIndicator(
        indicator=value,
        indicator_type=indicator_type,
        confidence=confidence,
        tags=tags,
        timestamp=timestamp or utcnow(),
        metadata=metadata,
    )


def passes_filters(candidate: CandidateIndicator, filters: Optional[FeedFilters]) -> bool:
    """Apply a feed's allow/deny filters. No filters means everything passes."""
    if filters is None:
        return True
    if filters.indicator_types and candidate.indicator_type not in filters.indicator_types:
        return False
    if filters.min_confidence is not None and candidate.confidence < filters.min_confidence:
        return False

    tags = {t.lower() for t in candidate.tags}
    if filters.tags_include and not tags & {t.lower() for t in filters.tags_include}:
        return False
    if filters.tags_exclude and tags & {t.lower() for t in filters.tags_exclude}:
        return False
    return True
