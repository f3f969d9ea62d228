"""
Canonical Feed Types
====================

Format-independent shapes produced by the normalizer and consumed by the
fetch pipeline and OPML importer.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional, Union
from dataclasses import dataclass, field

from ..database.models import FeedType
from ..utils.exceptions import FeedError


@dataclass
class CanonicalEntry:
    """One normalized RSS item or Atom entry."""

    title: str
    content: str
    excerpt: str
    url: str
    guid: str
    published_at: datetime
    author: str = ""
    thumbnail_url: Optional[str] = None


@dataclass
class CanonicalFeed:
    """A normalized feed document."""

    title: str
    description: str
    url: str
    feed_url: str
    type: FeedType = FeedType.RSS
    entries: List[CanonicalEntry] = field(default_factory=list)

    def truncated(self, limit: Optional[int]) -> "CanonicalFeed":
        """Copy of the feed keeping the first ``limit`` entries in document order."""
        if limit is None or len(self.entries) <= limit:
            return self
        return CanonicalFeed(
            title=self.title,
            description=self.description,
            url=self.url,
            feed_url=self.feed_url,
            type=self.type,
            entries=self.entries[:limit],
        )


class FailureReason(str, Enum):
    """Why discovery produced no feed."""
    FETCH_ERROR = "fetch_error"
    NO_FEED_FOUND = "no_feed_found"
    PARSE_ERROR = "parse_error"


@dataclass
class DiscoveryFailure:
    """Discovery outcome when no feed could be produced.

    ``error`` carries the classified fetch error for FETCH_ERROR so that the
    job runner can decide between retrying and failing permanently.
    """

    reason: FailureReason
    url: str
    message: str = ""
    error: Optional[FeedError] = None


DiscoveryResult = Union[CanonicalFeed, DiscoveryFailure]


def is_failure(result: DiscoveryResult) -> bool:
    return isinstance(result, DiscoveryFailure)
