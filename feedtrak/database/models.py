"""
FeedTrak Data Models
====================

Pydantic data models matching the database schema. Repositories build these
from rows with ``from_db_row``.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Dict, Any
from dataclasses import dataclass

from pydantic import BaseModel, Field, field_serializer, field_validator


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime as fixed-width UTC text for storage.

    Naive datetimes are taken as UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f+00:00")


class FeedType(str, Enum):
    """Supported syndication formats."""
    RSS = "rss"
    ATOM = "atom"


class Feed(BaseModel):
    """Shared feed source. feed_url is the identity."""
    id: Optional[int] = Field(default=None, description="Database primary key")
    title: str = Field(..., min_length=1, description="Feed display title")
    description: Optional[str] = Field(default=None, description="Feed description")
    url: Optional[str] = Field(default=None, description="Site URL")
    feed_url: str = Field(..., min_length=1, description="Canonical feed URL")
    type: FeedType = Field(default=FeedType.RSS, description="Syndication format")
    icon_url: Optional[str] = Field(default=None, description="Feed icon URL")
    last_fetched_at: Optional[datetime] = Field(default=None, description="Last successful fetch")
    created_at: Optional[datetime] = Field(default_factory=utc_now)
    updated_at: Optional[datetime] = Field(default_factory=utc_now)

    @field_serializer("last_fetched_at", "created_at", "updated_at", when_used="json")
    def serialize_datetime(self, value: Optional[datetime]) -> Optional[str]:
        return value.isoformat() if value else None

    @classmethod
    def from_db_row(cls, row: Dict[str, Any]) -> "Feed":
        return cls(**dict(row))

    def __str__(self) -> str:
        return f"Feed({self.title}:{self.feed_url})"


class Entry(BaseModel):
    """Feed item, unique per (feed_id, guid)."""
    id: Optional[int] = Field(default=None, description="Database primary key")
    feed_id: int = Field(..., description="Owning feed")
    title: str = Field(..., description="Entry title")
    content: Optional[str] = Field(default=None, description="Raw HTML body")
    excerpt: Optional[str] = Field(default=None, description="Plain-text excerpt")
    url: Optional[str] = Field(default=None, description="Entry link")
    thumbnail_url: Optional[str] = Field(default=None, description="Representative image")
    author: Optional[str] = Field(default=None, description="Author name")
    published_at: datetime = Field(..., description="Publication time (UTC)")
    guid: str = Field(..., min_length=1, description="Dedup identifier within the feed")
    created_at: Optional[datetime] = Field(default_factory=utc_now)

    @field_serializer("published_at", "created_at", when_used="json")
    def serialize_datetime(self, value: Optional[datetime]) -> Optional[str]:
        return value.isoformat() if value else None

    @classmethod
    def from_db_row(cls, row: Dict[str, Any]) -> "Entry":
        return cls(**dict(row))

    def __str__(self) -> str:
        return f"Entry({self.title[:50]}:{self.guid})"


class Category(BaseModel):
    """User-owned feed label."""
    id: Optional[int] = Field(default=None, description="Database primary key")
    user_id: int = Field(..., description="Owning user")
    name: str = Field(..., min_length=1, max_length=255, description="Category name")
    color: Optional[str] = Field(default=None, description="Display color")
    sort_order: int = Field(default=0, description="Position in the user's list")
    created_at: Optional[datetime] = Field(default_factory=utc_now)

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Category name cannot be empty")
        return v

    @classmethod
    def from_db_row(cls, row: Dict[str, Any]) -> "Category":
        return cls(**dict(row))


class UserFeedSubscription(BaseModel):
    """A user following a feed."""
    id: Optional[int] = Field(default=None, description="Database primary key")
    user_id: int = Field(..., description="Subscriber")
    feed_id: int = Field(..., description="Subscribed feed")
    category_id: Optional[int] = Field(default=None, description="Category, None when uncategorized")
    is_active: bool = Field(default=True, description="Whether the feed is refreshed for this user")
    created_at: Optional[datetime] = Field(default_factory=utc_now)

    @classmethod
    def from_db_row(cls, row: Dict[str, Any]) -> "UserFeedSubscription":
        return cls(**dict(row))


class UserEntryReadState(BaseModel):
    """Explicit read state. Absence of a row means unread."""
    id: Optional[int] = Field(default=None)
    user_id: int
    entry_id: int
    is_read: bool = Field(default=False)
    read_at: Optional[datetime] = Field(default=None)

    @classmethod
    def from_db_row(cls, row: Dict[str, Any]) -> "UserEntryReadState":
        return cls(**dict(row))


class SavedItem(BaseModel):
    """Per-user bookmark, independent of read state."""
    id: Optional[int] = Field(default=None)
    user_id: int
    entry_id: int
    created_at: Optional[datetime] = Field(default_factory=utc_now)

    @classmethod
    def from_db_row(cls, row: Dict[str, Any]) -> "SavedItem":
        return cls(**dict(row))


@dataclass
class UnreadCount:
    """Unread entries for one subscribed feed."""
    feed_id: int
    feed_title: str
    unread: int
