"""Threat indicator model: normalized indicators ingested from custom feeds."""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, utcnow


class ThreatIndicator(Base):
    __tablename__ = "threat_indicators"
    __table_args__ = (
        UniqueConstraint("indicator", "source_feed", name="uq_indicator_source_feed"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    indicator: Mapped[str] = mapped_column(String(2048), nullable=False, index=True)
    indicator_type: Mapped[str] = mapped_column(
        String(20), nullable=False, index=True
    )  # ip, domain, hash, url, email
    confidence: Mapped[int] = mapped_column(Integer, default=50, nullable=False)
    tags_json: Mapped[str] = mapped_column(Text, default="[]", nullable=False)
    source_feed: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("threat_feeds.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    first_seen: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    last_seen: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    metadata_json: Mapped[str] = mapped_column(Text, default="{}", nullable=False)
