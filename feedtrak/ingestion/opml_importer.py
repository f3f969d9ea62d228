"""
OPML Importer
=============

Imports an OPML subscription list for one user: creates missing
categories, discovers and registers each feed, subscribes the user and
queues a background fetch per imported feed.

Only a structurally broken document (unparseable XML, no ``<body>``) fails
the import as a whole; per-feed problems are collected in the summary.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Union

from lxml import etree

from .feed_discovery import FeedDiscoveryService
from .models import DiscoveryFailure
from .xml_tree import children, first_child
from ..config.settings import FeedTrakSettings, get_settings
from ..database.connection import DatabaseConnection
from ..jobs.queue import FEEDS_QUEUE, JobQueue, enqueue_fetch
from ..storage import CategoryRepository, FeedRepository, SubscriptionRepository
from ..utils.exceptions import ErrorCode, FeedTrakError, OpmlStructureError
from ..utils.logging import get_logger_for_component

CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
XML_DECL_ENCODING = re.compile(r'(<\?xml[^>]*encoding=["\'])([^"\']+)(["\'])', re.IGNORECASE)

DEFAULT_CATEGORY_NAME = "Uncategorized"
DEFAULT_FEED_TITLE = "Untitled Feed"

_OPML_PARSER = etree.XMLParser(
    recover=False,
    resolve_entities=False,
    no_network=True,
    strip_cdata=True,
)


@dataclass
class OpmlFeed:
    """A feed outline."""
    title: str
    feed_url: str
    url: str
    description: str = ""
    category: Optional[str] = None


@dataclass
class ParsedOpml:
    """Outline tree flattened into categories and their feeds.

    ``feeds`` holds every feed outline in document order, categorized or not.
    """
    categories: Dict[str, List[OpmlFeed]] = field(default_factory=dict)
    feeds: List[OpmlFeed] = field(default_factory=list)

    @property
    def uncategorized(self) -> List[OpmlFeed]:
        return [feed for feed in self.feeds if not feed.category]


@dataclass
class ImportSummary:
    """Aggregate result of one import."""
    categories_created: int = 0
    feeds_imported: int = 0
    feeds_skipped: int = 0
    errors: List[str] = field(default_factory=list)


def normalize_encoding(content: Union[bytes, str], candidate_encodings: Optional[List[str]] = None) -> str:
    """Decode an upload to text, dropping control characters and a leading BOM."""
    if isinstance(content, bytes):
        text = None
        for encoding in candidate_encodings or ["utf-8", "windows-1252", "iso-8859-1"]:
            try:
                text = content.decode(encoding)
                break
            except (UnicodeDecodeError, LookupError):
                continue
        if text is None:
            text = content.decode("utf-8", errors="replace")
    else:
        text = content

    text = CONTROL_CHARS.sub("", text)
    return text.lstrip("\ufeff")


def _attr(element: etree._Element, *names: str) -> str:
    for name in names:
        value = (element.get(name) or "").strip()
        if value:
            return value
    return ""


class OpmlImporter:
    """Parse OPML documents and import them for a user."""

    def __init__(
        self,
        db_connection: DatabaseConnection,
        queue: JobQueue,
        settings: Optional[FeedTrakSettings] = None,
        discovery: Optional[FeedDiscoveryService] = None,
    ):
        self.settings = settings or get_settings()
        self.queue = queue
        self.discovery = discovery or FeedDiscoveryService(settings=self.settings)
        self.feeds = FeedRepository(db_connection)
        self.categories = CategoryRepository(db_connection)
        self.subscriptions = SubscriptionRepository(db_connection)
        self.logger = get_logger_for_component("opml_importer")

    def parse(self, opml_content: Union[bytes, str]) -> ParsedOpml:
        """Parse an OPML document.

        Raises:
            OpmlStructureError: unparseable XML or missing ``<body>``
        """
        text = normalize_encoding(opml_content, self.settings.opml.candidate_encodings)
        # The text is re-encoded as UTF-8, so the declaration must agree
        document = XML_DECL_ENCODING.sub(r"\1UTF-8\3", text, count=1).encode("utf-8")

        try:
            root = etree.fromstring(document, parser=_OPML_PARSER)
        except etree.XMLSyntaxError as e:
            raise OpmlStructureError(f"Invalid OPML file format: Line {e.lineno}: {e.msg}") from e

        body = first_child(root, "body")
        if body is None:
            raise OpmlStructureError(
                "Invalid OPML: missing body element",
                error_code=ErrorCode.OPML_MISSING_BODY,
            )

        parsed = ParsedOpml()
        for outline in children(body, "outline"):
            self._walk(outline, None, parsed)
        return parsed

    def _walk(self, outline: etree._Element, category: Optional[str], parsed: ParsedOpml) -> None:
        feed_url = _attr(outline, "xmlUrl")
        nested = children(outline, "outline")

        if not feed_url and nested:
            name = _attr(outline, "title", "text") or DEFAULT_CATEGORY_NAME
            parsed.categories.setdefault(name, [])
            for child in nested:
                self._walk(child, name, parsed)
            return

        if feed_url:
            feed = OpmlFeed(
                title=_attr(outline, "title", "text") or DEFAULT_FEED_TITLE,
                feed_url=feed_url,
                url=_attr(outline, "htmlUrl") or feed_url,
                description=_attr(outline, "description"),
                category=category,
            )
            parsed.feeds.append(feed)
            if category:
                parsed.categories[category].append(feed)

    def import_opml(self, opml_content: Union[bytes, str], user_id: int) -> ImportSummary:
        """Import a document for ``user_id``.

        Raises:
            OpmlStructureError: the document is structurally invalid
            FeedTrakError: an unexpected failure outside a single feed
        """
        parsed = self.parse(opml_content)
        summary = ImportSummary()

        try:
            subscribed = self.subscriptions.get_subscribed_feed_urls(user_id)

            for name, feeds in parsed.categories.items():
                category = self.categories.get_by_name(user_id, name)
                if category is None:
                    category = self.categories.create(user_id, name)
                    summary.categories_created += 1

                for feed in feeds:
                    self._import_feed(feed, user_id, category.id, subscribed, summary)

            for feed in parsed.uncategorized:
                self._import_feed(feed, user_id, None, subscribed, summary)
        except FeedTrakError:
            raise
        except Exception as e:
            self.logger.error(f"OPML import failed for user {user_id}: {e}", exc_info=True)
            raise FeedTrakError(f"Failed to import OPML: {e}", error_code=ErrorCode.OPML_INVALID) from e

        self.logger.info(
            f"OPML import for user {user_id}: {summary.feeds_imported} imported, "
            f"{summary.feeds_skipped} skipped, {summary.categories_created} categories created, "
            f"{len(summary.errors)} errors"
        )
        return summary

    def _import_feed(
        self,
        opml_feed: OpmlFeed,
        user_id: int,
        category_id: Optional[int],
        subscribed: Set[str],
        summary: ImportSummary,
    ) -> None:
        if opml_feed.feed_url in subscribed:
            summary.feeds_skipped += 1
            return

        try:
            result = self.discovery.discover(opml_feed.feed_url)
            if isinstance(result, DiscoveryFailure):
                summary.errors.append(f"Could not fetch feed: {opml_feed.title}")
                return

            if not result.title:
                result.title = opml_feed.title
            feed, _ = self.feeds.upsert(result)
            self.subscriptions.create_if_absent(user_id, feed.id, category_id, is_active=True)

            subscribed.add(opml_feed.feed_url)
            summary.feeds_imported += 1

            enqueue_fetch(self.queue, feed.feed_url, queue_name=FEEDS_QUEUE)
        except Exception as e:
            self.logger.error(f"Failed to import feed {opml_feed.feed_url}: {e}")
            summary.errors.append(f"Failed to import feed: {opml_feed.title} - {e}")
