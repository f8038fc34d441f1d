"""SQLAlchemy declarative base."""

from datetime import datetime, timezone

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


def utcnow() -> datetime:
    """Naive UTC timestamp, matching what SQLite hands back on reads."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
