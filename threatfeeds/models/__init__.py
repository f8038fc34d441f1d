"""SQLAlchemy models package."""

from .base import Base
from .user import User
from .threat_feed import ThreatFeed
from .threat_indicator import ThreatIndicator
from .ingestion_result import FeedIngestionResult
