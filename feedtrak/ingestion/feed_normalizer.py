"""
Feed Normalizer
===============

Parses RSS 2.0 and Atom documents into CanonicalFeed/CanonicalEntry.

Malformed XML and unknown document types yield None rather than an
exception, so one bad document never aborts a batch.
"""

import hashlib
import re
from datetime import datetime, timedelta, timezone
from email.utils import parsedate_to_datetime
from typing import Optional, Union

from dateutil import parser as dateutil_parser
from lxml import etree

from .content_cleaner import make_excerpt
from .models import CanonicalEntry, CanonicalFeed
from .thumbnail_extractor import ThumbnailExtractor
from .xml_tree import (
    CONTENT_NS,
    DC_NS,
    XHTML_NS,
    children,
    first_child,
    child_text,
    local_name,
    markup_of,
    namespace_of,
    text_of,
)
from ..database.models import FeedType
from ..utils.logging import get_logger_for_component

XML_DECL_ENCODING = re.compile(r'(<\?xml[^>]*encoding=["\'])([^"\']+)(["\'])', re.IGNORECASE)

_XML_PARSER = etree.XMLParser(
    ns_clean=True,
    recover=False,
    resolve_entities=False,
    no_network=True,
    collect_ids=False,
)


def parse_rss_date(value: str) -> Optional[datetime]:
    """Parse an RFC-822 date, falling back to dateutil for anything else."""
    if not value:
        return None
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        parsed = None
    if parsed is None:
        return parse_iso_date(value)
    return _ensure_utc(parsed)


def parse_iso_date(value: str) -> Optional[datetime]:
    """Parse an ISO-8601 (or otherwise dateutil-readable) date."""
    if not value:
        return None
    try:
        parsed = dateutil_parser.parse(value)
    except (ValueError, TypeError, OverflowError):
        return None
    return _ensure_utc(parsed)


def _ensure_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def fallback_guid(title: str, content: str) -> str:
    """Stable identifier for items that carry neither guid nor link."""
    digest = hashlib.sha256(f"{title}|{content}".encode("utf-8")).hexdigest()
    return f"urn:sha256:{digest}"


class FeedNormalizer:
    """Convert feed XML into the canonical feed shape."""

    def __init__(self, excerpt_length: int = 300, thumbnail_extractor: Optional[ThumbnailExtractor] = None):
        self.excerpt_length = excerpt_length
        self.thumbnails = thumbnail_extractor or ThumbnailExtractor()
        self.logger = get_logger_for_component("feed_normalizer")

    def parse(
        self,
        document: Union[bytes, str],
        source_url: str,
        ingested_at: Optional[datetime] = None,
    ) -> Optional[CanonicalFeed]:
        """Parse a feed document.

        Args:
            document: Raw XML
            source_url: URL the document was fetched from; becomes feed_url
            ingested_at: Reference time for entries without a date

        Returns:
            CanonicalFeed, or None for malformed XML or an unknown root
        """
        root = self._parse_xml(document, source_url)
        if root is None:
            return None

        ingested_at = ingested_at or datetime.now(timezone.utc)
        root_name = local_name(root)

        if root_name == "rss":
            return self._parse_rss(root, source_url, ingested_at)
        if root_name == "feed":
            return self._parse_atom(root, source_url, ingested_at)

        self.logger.info(f"Unsupported feed root element <{root_name}> at {source_url}")
        return None

    def _parse_xml(self, document: Union[bytes, str], source_url: str) -> Optional[etree._Element]:
        if not document:
            return None

        if isinstance(document, str):
            # lxml refuses str input carrying an encoding declaration
            document = XML_DECL_ENCODING.sub(r"\1utf-8\3", document, count=1).encode("utf-8")

        try:
            return etree.fromstring(document, parser=_XML_PARSER)
        except etree.XMLSyntaxError as e:
            self.logger.info(f"Malformed XML at {source_url}: {e}")
            return None

    def _fallback_published(self, ingested_at: datetime, position: int) -> datetime:
        # Earlier document position sorts as newer, matching feed order
        return ingested_at - timedelta(microseconds=position)

    # RSS 2.0

    def _parse_rss(self, root: etree._Element, source_url: str, ingested_at: datetime) -> Optional[CanonicalFeed]:
        channel = first_child(root, "channel")
        if channel is None:
            self.logger.info(f"RSS document without <channel> at {source_url}")
            return None

        feed = CanonicalFeed(
            title=child_text(channel, "title"),
            description=child_text(channel, "description"),
            url=child_text(channel, "link") or source_url,
            feed_url=source_url,
            type=FeedType.RSS,
        )

        for position, item in enumerate(children(channel, "item")):
            feed.entries.append(self._parse_rss_item(item, ingested_at, position))

        return feed

    def _parse_rss_item(self, item: etree._Element, ingested_at: datetime, position: int) -> CanonicalEntry:
        title = child_text(item, "title")
        link = child_text(item, "link")
        content = (
            child_text(item, "description")
            or child_text(item, "encoded", (CONTENT_NS,))
            or child_text(item, "content")
        )
        author = child_text(item, "author") or child_text(item, "creator", (DC_NS,))

        published = parse_rss_date(child_text(item, "pubDate")) or parse_rss_date(
            child_text(item, "date", (DC_NS,))
        )

        guid = child_text(item, "guid") or link or fallback_guid(title, content)

        return CanonicalEntry(
            title=title,
            content=content,
            excerpt=make_excerpt(content, self.excerpt_length),
            url=link,
            guid=guid,
            published_at=published or self._fallback_published(ingested_at, position),
            author=author,
            thumbnail_url=self.thumbnails.extract(item, link, is_rss=True),
        )

    # Atom

    def _parse_atom(self, root: etree._Element, source_url: str, ingested_at: datetime) -> CanonicalFeed:
        ns = (namespace_of(root),)

        feed = CanonicalFeed(
            title=child_text(root, "title", ns),
            description=child_text(root, "subtitle", ns),
            url=self._atom_link(root, ns) or source_url,
            feed_url=source_url,
            type=FeedType.ATOM,
        )

        for position, entry in enumerate(children(root, "entry", ns)):
            feed.entries.append(self._parse_atom_entry(entry, ns, ingested_at, position))

        return feed

    def _parse_atom_entry(self, entry: etree._Element, ns: tuple, ingested_at: datetime, position: int) -> CanonicalEntry:
        title = child_text(entry, "title", ns)
        link = self._atom_link(entry, ns)

        content = self._atom_text(first_child(entry, "content", ns)) or self._atom_text(
            first_child(entry, "summary", ns)
        )

        author_element = first_child(entry, "author", ns)
        author = child_text(author_element, "name", ns) if author_element is not None else ""

        published = parse_iso_date(child_text(entry, "published", ns)) or parse_iso_date(
            child_text(entry, "updated", ns)
        )

        guid = child_text(entry, "id", ns) or link or fallback_guid(title, content)

        return CanonicalEntry(
            title=title,
            content=content,
            excerpt=make_excerpt(content, self.excerpt_length),
            url=link,
            guid=guid,
            published_at=published or self._fallback_published(ingested_at, position),
            author=author,
            thumbnail_url=self.thumbnails.extract(entry, link, is_rss=False),
        )

    @staticmethod
    def _atom_text(element: Optional[etree._Element]) -> str:
        """Text construct body; xhtml content keeps its markup."""
        if element is None:
            return ""
        if element.get("type") == "xhtml":
            div = first_child(element, "div", (XHTML_NS,))
            return markup_of(div if div is not None else element)
        return text_of(element)

    @staticmethod
    def _atom_link(element: etree._Element, ns: tuple) -> str:
        """First ``<link>`` with rel="alternate" or no rel."""
        for link in children(element, "link", ns):
            rel = link.get("rel")
            if rel is None or rel == "alternate":
                href = (link.get("href") or "").strip()
                if href:
                    return href
        return ""
