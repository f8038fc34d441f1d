"""Pydantic contracts for custom threat feeds.

Authentication schemes are a closed tagged union keyed on ``type``. The wire
shape accepted from clients is the nested one used by the dashboard::

    {"type": "bearer", "credentials": {"token": "abc"}}

Each variant keeps only the credential fields its scheme needs.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

IndicatorType = Literal["ip", "domain", "hash", "url", "email"]
FeedType = Literal["json", "csv", "xml", "txt"]
FeedFormat = Literal["ioc_list", "stix", "misp", "custom"]

INDICATOR_TYPES: tuple[str, ...] = ("ip", "domain", "hash", "url", "email")

# Minutes. Anything faster hammers the upstream provider.
MIN_REFRESH_INTERVAL = 5


# ── Authentication ──
class _AuthBase(BaseModel):
    model_config = ConfigDict(extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def _flatten_credentials(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("credentials"), dict):
            merged = {k: v for k, v in data.items() if k != "credentials"}
            for key, value in data["credentials"].items():
                merged.setdefault(key, value)
            return merged
        return data

    def credentials(self) -> dict[str, str]:
        return self.model_dump(exclude={"type"})

    def masked(self) -> dict:
        """Wire shape with every non-empty secret replaced by a placeholder."""
        creds = {k: ("****" if v else "") for k, v in self.credentials().items()}
        if "username" in creds:
            creds["username"] = getattr(self, "username")
        return {"type": self.type, "credentials": creds}


class NoAuth(_AuthBase):
    type: Literal["none"] = "none"


class ApiKeyAuth(_AuthBase):
    type: Literal["api_key"]
    api_key: str = ""


class BasicAuth(_AuthBase):
    type: Literal["basic"]
    username: str = ""
    password: str = ""


class BearerAuth(_AuthBase):
    type: Literal["bearer"]
    token: str = ""


AuthScheme = Annotated[
    Union[NoAuth, ApiKeyAuth, BasicAuth, BearerAuth],
    Field(discriminator="type"),
]


# ── Field mapping / filters ──
class FieldMapping(BaseModel):
    """Which raw-record keys carry the indicator and its attributes."""

    indicator_field: str = Field(min_length=1)
    type_field: Optional[str] = None
    confidence_field: Optional[str] = None
    tags_field: Optional[str] = None
    timestamp_field: Optional[str] = None

    @field_validator("indicator_field")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("indicator_field must not be blank")
        return v.strip()

    def mapped_keys(self) -> set[str]:
        return {v for v in self.model_dump().values() if v}


# Line-oriented feeds carry nothing but the indicator itself.
TEXT_FIELD_MAPPING = FieldMapping(indicator_field="indicator")


class FeedFilters(BaseModel):
    indicator_types: list[IndicatorType] = []
    min_confidence: Optional[int] = Field(default=None, ge=0, le=100)
    tags_include: list[str] = []
    tags_exclude: list[str] = []


# ── Feed create / update ──
def _check_url(v: str) -> str:
    v = v.strip()
    if not v.lower().startswith(("http://", "https://")):
        raise ValueError("url must be an http(s) URL")
    return v


class FeedCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: str = ""
    url: str
    type: FeedType = "json"
    format: FeedFormat = "ioc_list"
    authentication: AuthScheme = Field(default_factory=NoAuth)
    refresh_interval: int = Field(default=60, ge=MIN_REFRESH_INTERVAL)
    enabled: bool = True
    fields: FieldMapping
    filters: Optional[FeedFilters] = None

    @field_validator("url")
    @classmethod
    def _url(cls, v: str) -> str:
        return _check_url(v)


class FeedUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    url: Optional[str] = None
    type: Optional[FeedType] = None
    format: Optional[FeedFormat] = None
    authentication: Optional[AuthScheme] = None
    refresh_interval: Optional[int] = Field(default=None, ge=MIN_REFRESH_INTERVAL)
    enabled: Optional[bool] = None
    fields: Optional[FieldMapping] = None
    filters: Optional[FeedFilters] = None

    @field_validator("url")
    @classmethod
    def _url(cls, v: Optional[str]) -> Optional[str]:
        return _check_url(v) if v is not None else v


# ── Pipeline values ──
@dataclass
class CandidateIndicator:
    """A normalized record on its way into the indicator store."""

    indicator: str
    indicator_type: str
    confidence: int
    tags: list[str] = field(default_factory=list)
    timestamp: Optional[datetime] = None
    metadata: dict[str, Any] = field(default_factory=dict)


class IngestionResult(BaseModel):
    """Outcome of one ingestion run. Never modified once built."""

    model_config = ConfigDict(frozen=True)

    id: Optional[int] = None
    feed_id: str
    success: bool
    indicators_processed: int = 0
    indicators_added: int = 0
    indicators_updated: int = 0
    errors: tuple[str, ...] = ()
    processing_time: int = 0  # milliseconds
    timestamp: datetime
