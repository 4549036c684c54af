"""Data models for Notura Store."""

import datetime
import json
import logging
import uuid
from datetime import timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

logger = logging.getLogger(__name__)


def utc_now() -> datetime.datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.datetime.now(timezone.utc)


def ensure_timezone_aware(dt_value: Optional[datetime.datetime]) -> datetime.datetime:
    """Ensure a datetime is timezone-aware, treating naive datetimes as UTC.

    SQLite has no timezone storage, so values read back from the database
    come back naive and are assumed to be UTC.

    Args:
        dt_value: A datetime that may or may not have timezone info.

    Returns:
        The same datetime with UTC timezone if it was naive, otherwise unchanged.
    """
    if dt_value is None:
        return utc_now()
    if dt_value.tzinfo is None:
        return dt_value.replace(tzinfo=timezone.utc)
    return dt_value


def generate_id() -> str:
    """Generate an opaque unique identifier (random UUID4 string)."""
    return str(uuid.uuid4())


def parse_tags(raw: Optional[str]) -> List[str]:
    """Parse the serialized tag list stored on a note row.

    Malformed JSON is treated as "no tags" rather than a hard failure.
    """
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except (json.JSONDecodeError, TypeError) as e:
        logger.warning(f"Malformed tag JSON {raw[:50]!r}: {e}")
        return []
    if not isinstance(value, list):
        logger.warning(f"Tag JSON is not a list: {raw[:50]!r}")
        return []
    return [str(tag) for tag in value]


def serialize_tags(tags: Optional[List[str]]) -> str:
    """Serialize a tag list for storage."""
    return json.dumps(list(tags or []), ensure_ascii=False)


class ExportFormat(str, Enum):
    """Supported export formats."""

    MARKDOWN = "markdown"
    JSON = "json"


class Note(BaseModel):
    """A note with its derived counts."""

    id: str = Field(default_factory=generate_id, description="Unique ID of the note")
    title: str = Field(..., description="Title of the note")
    content: str = Field(..., description="Normalized content of the note")
    collection_id: Optional[str] = Field(
        default=None, description="Collection the note belongs to"
    )
    tags: List[str] = Field(default_factory=list, description="Ordered tag list")
    created_at: datetime.datetime = Field(
        default_factory=utc_now, description="When the note was created (UTC)"
    )
    updated_at: datetime.datetime = Field(
        default_factory=utc_now, description="When the note was last updated (UTC)"
    )
    word_count: int = Field(default=0, description="Whitespace-delimited tokens")
    character_count: int = Field(default=0, description="Unicode code points")
    is_archived: bool = Field(default=False, description="Hidden from lists and search")

    model_config = {"extra": "forbid"}


class Collection(BaseModel):
    """A node in the collection tree."""

    id: str = Field(default_factory=generate_id)
    name: str = Field(..., description="Display name")
    description: Optional[str] = None
    parent_id: Optional[str] = Field(
        default=None, description="Parent collection, None for root level"
    )
    color: Optional[str] = None
    icon: Optional[str] = None
    sort_order: int = Field(default=1, description="Position among siblings")
    created_at: datetime.datetime = Field(default_factory=utc_now)
    updated_at: datetime.datetime = Field(default_factory=utc_now)

    model_config = {"extra": "forbid"}


class ImageMetadata(BaseModel):
    """Metadata row for an image stored on disk."""

    id: str
    filename: str = Field(..., description="System-generated storage filename")
    original_name: str
    file_path: str
    size: int = Field(..., ge=0, description="Size in bytes")
    mime_type: str
    created_at: datetime.datetime = Field(default_factory=utc_now)


class ImageWithData(ImageMetadata):
    """Image metadata plus an inline data URL for direct display."""

    data_url: str


class DateRange(BaseModel):
    """Inclusive date range applied to a note's updated_at."""

    start: datetime.datetime
    end: datetime.datetime

    @field_validator("start", "end")
    @classmethod
    def _as_utc(cls, v: datetime.datetime) -> datetime.datetime:
        return ensure_timezone_aware(v).astimezone(timezone.utc)

    @model_validator(mode="after")
    def _check_order(self) -> "DateRange":
        if self.start > self.end:
            raise ValueError("date_range start must not be after end")
        return self


class SearchFilters(BaseModel):
    """Optional restrictions applied to a full-text search."""

    collections: Optional[List[str]] = None
    tags: Optional[List[str]] = None
    date_range: Optional[DateRange] = None
    # No stored counterpart: accepted and reported as ignored
    content_type: Optional[str] = None


class SearchResult(BaseModel):
    """A ranked full-text search hit.

    relevance_score is the FTS5 rank verbatim: BM25 where lower (more
    negative) means a better match. Results arrive sorted ascending.
    """

    note_id: str
    title: str
    excerpt: str
    highlights: List[str] = Field(default_factory=list)
    relevance_score: float
    last_modified: datetime.datetime


class StorageInfo(BaseModel):
    """Storage diagnostics."""

    total_notes: int
    total_collections: int
    database_size: int
    last_backup: Optional[str] = None
