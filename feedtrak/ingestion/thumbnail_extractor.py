"""
Thumbnail Extractor
===================

Picks a representative image for a feed item from the conventions feeds use
to embed one. Checks run in priority order and the first hit wins:

1. ``<media:thumbnail url>``, directly on the item or inside ``<media:group>``
2. an enclosure whose type contains "image"
3. RSS only: an ``<img>`` pointing at YouTube inside the description
4. RSS only: a YouTube watch/short link, mapped to its still image
"""

import re
from typing import Optional

from lxml import etree

from .xml_tree import MEDIA_NS, ATOM_NS, children, first_child, child_text, UNQUALIFIED

YOUTUBE_IMG_PATTERN = re.compile(r'<img[^>]+src=["\']([^"\']+youtube[^"\']+)["\']', re.IGNORECASE)
YOUTUBE_WATCH_PATTERN = re.compile(r"youtube\.com/watch\?v=([a-zA-Z0-9_-]+)")
YOUTUBE_SHORT_PATTERN = re.compile(r"youtu\.be/([a-zA-Z0-9_-]+)")

YOUTUBE_STILL_URL = "https://img.youtube.com/vi/{video_id}/maxresdefault.jpg"


class ThumbnailExtractor:
    """Extract an image URL from a parsed RSS item or Atom entry."""

    def extract(self, item: etree._Element, link_url: str, is_rss: bool = True) -> Optional[str]:
        """Return the item's thumbnail URL or None.

        Args:
            item: ``<item>`` or ``<entry>`` element
            link_url: The item's resolved link
            is_rss: Enables the description and link heuristics
        """
        return (
            self._media_thumbnail(item)
            or self._image_enclosure(item)
            or (is_rss and self._youtube_img_in_description(item))
            or (is_rss and self.youtube_still_for_link(link_url))
            or None
        )

    def _media_thumbnail(self, item: etree._Element) -> Optional[str]:
        thumbnail = first_child(item, "thumbnail", MEDIA_NS)
        if thumbnail is None:
            group = first_child(item, "group", MEDIA_NS)
            if group is not None:
                thumbnail = first_child(group, "thumbnail", MEDIA_NS)
        if thumbnail is None:
            return None
        return (thumbnail.get("url") or "").strip() or None

    def _image_enclosure(self, item: etree._Element) -> Optional[str]:
        for enclosure in children(item, "enclosure", UNQUALIFIED + (ATOM_NS,)):
            if "image" in (enclosure.get("type") or ""):
                url = (enclosure.get("url") or enclosure.get("href") or "").strip()
                if url:
                    return url

        # Atom spells enclosures as <link rel="enclosure">
        for link in children(item, "link", (ATOM_NS,)):
            if link.get("rel") == "enclosure" and "image" in (link.get("type") or ""):
                href = (link.get("href") or "").strip()
                if href:
                    return href

        return None

    def _youtube_img_in_description(self, item: etree._Element) -> Optional[str]:
        description = child_text(item, "description")
        if not description:
            return None
        match = YOUTUBE_IMG_PATTERN.search(description)
        return match.group(1) if match else None

    @staticmethod
    def youtube_still_for_link(link_url: str) -> Optional[str]:
        """Map a YouTube watch or short URL to its max-resolution still."""
        if not link_url:
            return None
        match = YOUTUBE_WATCH_PATTERN.search(link_url) or YOUTUBE_SHORT_PATTERN.search(link_url)
        if match is None:
            return None
        return YOUTUBE_STILL_URL.format(video_id=match.group(1))
