"""Feed ingestion result model: append-only audit record per ingestion run."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, utcnow


class FeedIngestionResult(Base):
    __tablename__ = "feed_ingestion_results"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # No FK: history outlives the feed it describes.
    feed_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    success: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    indicators_processed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    indicators_added: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    indicators_updated: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    errors_json: Mapped[str] = mapped_column(Text, default="[]", nullable=False)
    processing_time: Mapped[int] = mapped_column(Integer, default=0, nullable=False)  # ms
    timestamp: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, nullable=False, index=True
    )
