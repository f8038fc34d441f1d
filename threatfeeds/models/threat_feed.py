"""Threat feed model: custom external feed configuration and run state."""

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, utcnow


class ThreatFeed(Base):
    __tablename__ = "threat_feeds"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    feed_type: Mapped[str] = mapped_column(String(10), nullable=False)  # json, csv, xml, txt
    format: Mapped[str] = mapped_column(
        String(20), default="ioc_list", nullable=False
    )  # ioc_list, stix, misp, custom
    auth_type: Mapped[str] = mapped_column(String(20), default="none", nullable=False)
    auth_credentials_encrypted: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    refresh_interval: Mapped[int] = mapped_column(Integer, default=60, nullable=False)  # minutes
    enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    fields_json: Mapped[str] = mapped_column(Text, nullable=False)
    filters_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    last_updated: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    indicator_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    created_by: Mapped[str] = mapped_column(String(100), default="system", nullable=False)
