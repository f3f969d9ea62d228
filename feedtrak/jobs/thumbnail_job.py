"""
Thumbnail Backfill Job
======================

Fills in missing entry thumbnails by reading the linked article page.

Image priority: ``og:image`` meta, ``twitter:image`` meta, then the first
``<img>`` that is not an SVG, an icon or a data URI.
"""

from typing import Any, Dict, Optional

import requests
from bs4 import BeautifulSoup

from ..config.settings import FeedTrakSettings, get_settings
from ..database.connection import DatabaseConnection
from ..ingestion.http_client import build_session, fetch, resolve_against_page
from ..storage import EntryRepository
from ..utils.exceptions import FeedError
from ..utils.logging import get_logger_for_component
from ..utils.validators import URLValidator

IGNORED_IMAGE_SUFFIXES = (".svg", ".ico")


def find_page_image(html: str) -> Optional[str]:
    """Pick the representative image URL of an article page, unresolved."""
    if not html:
        return None

    soup = BeautifulSoup(html, "html.parser")

    # Attribute order inside the tag does not matter to the parser
    og_image = soup.find("meta", attrs={"property": "og:image", "content": True})
    if og_image and og_image["content"].strip():
        return og_image["content"].strip()

    twitter_image = soup.find("meta", attrs={"name": "twitter:image", "content": True})
    if twitter_image and twitter_image["content"].strip():
        return twitter_image["content"].strip()

    for img in soup.find_all("img", src=True):
        src = img["src"].strip()
        if not src or src.lower().startswith("data:"):
            continue
        path = src.split("?", 1)[0].split("#", 1)[0].lower()
        if path.endswith(IGNORED_IMAGE_SUFFIXES):
            continue
        return src

    return None


class ThumbnailBackfillJob:
    """Handler for ``fetch_thumbnail`` jobs."""

    def __init__(
        self,
        db_connection: DatabaseConnection,
        settings: Optional[FeedTrakSettings] = None,
        session: Optional[requests.Session] = None,
    ):
        self.settings = settings or get_settings()
        self.session = session or build_session(
            self.settings.fetch.thumbnail_user_agent,
            accept="text/html,application/xhtml+xml;q=0.9,*/*;q=0.8",
        )
        self.entries = EntryRepository(db_connection)
        self.logger = get_logger_for_component("thumbnail_job")

    def handle(self, payload: Dict[str, Any]) -> Optional[str]:
        return self.run(payload["entry_id"])

    def run(self, entry_id: int) -> Optional[str]:
        """Find and store a thumbnail for one entry.

        Returns:
            The saved thumbnail URL, or None when nothing was saved
        """
        entry = self.entries.get_by_id(entry_id)
        if entry is None:
            self.logger.debug(f"Entry {entry_id} no longer exists")
            return None
        if entry.thumbnail_url or not entry.url:
            return None

        try:
            response = fetch(self.session, entry.url, self.settings.fetch.request_timeout)
        except FeedError as e:
            self.logger.debug(f"Could not fetch article page for entry {entry_id}: {e}")
            return None

        image = find_page_image(response.text)
        if not image:
            return None

        thumbnail_url = resolve_against_page(image, entry.url)
        if not URLValidator.is_absolute_http_url(thumbnail_url):
            self.logger.debug(f"Ignoring unusable image URL {thumbnail_url!r} for entry {entry_id}")
            return None

        if self.entries.update_thumbnail(entry_id, thumbnail_url):
            self.logger.info(f"Saved thumbnail for entry {entry_id}")
            return thumbnail_url
        return None
