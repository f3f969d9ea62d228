"""
HTML Link Scanner
=================

Finds the alternate feed link advertised in an HTML page head.
"""

from typing import Optional

from bs4 import BeautifulSoup

from .http_client import resolve_against_host
from ..utils.logging import get_logger_for_component

ALTERNATE_FEED_TYPES = {"application/rss+xml", "application/atom+xml"}


class HtmlLinkScanner:
    """Scan HTML for ``<link rel="alternate" type="application/{rss,atom}+xml">``."""

    def __init__(self):
        self.logger = get_logger_for_component("html_link_scanner")

    def find_feed_link(self, html: str, base_url: str) -> Optional[str]:
        """Return the first advertised feed URL, resolved against ``base_url``.

        Args:
            html: Page markup, possibly malformed
            base_url: URL the page was fetched from

        Returns:
            Absolute feed URL, or None when the page advertises no feed
        """
        if not html:
            return None

        soup = BeautifulSoup(html, "html.parser")

        for link in soup.find_all("link", href=True):
            rel = [value.lower() for value in (link.get("rel") or [])]
            link_type = (link.get("type") or "").strip().lower()
            if "alternate" in rel and link_type in ALTERNATE_FEED_TYPES:
                href = link["href"].strip()
                if not href:
                    continue
                feed_url = resolve_against_host(href, base_url)
                self.logger.debug(f"Found feed link {feed_url} on {base_url}")
                return feed_url

        return None
