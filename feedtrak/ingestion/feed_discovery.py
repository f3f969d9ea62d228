"""
Feed Discovery Service
======================

Turns an arbitrary URL into a parsed feed:

- YouTube URLs go through the channel resolver, then the channel RSS feed
- XML responses are parsed directly
- HTML responses are scanned for an alternate feed link, which is fetched
  and parsed once (no further HTML chasing)

Discovery has no side effects and never raises for fetch or parse problems;
it returns a DiscoveryFailure describing what went wrong.
"""

from datetime import datetime, timezone
from typing import Optional

import requests

from .feed_normalizer import FeedNormalizer
from .html_link_scanner import HtmlLinkScanner
from .http_client import build_session, fetch, is_feed_content_type
from .models import CanonicalFeed, DiscoveryFailure, DiscoveryResult, FailureReason
from .youtube_resolver import YouTubeChannelResolver, is_youtube_url
from ..config.settings import FeedTrakSettings, get_settings
from ..utils.exceptions import FeedError
from ..utils.logging import get_logger_for_component, PerformanceLogger


class FeedDiscoveryService:
    """Locate and normalize the feed behind a URL."""

    def __init__(
        self,
        settings: Optional[FeedTrakSettings] = None,
        session: Optional[requests.Session] = None,
        normalizer: Optional[FeedNormalizer] = None,
        link_scanner: Optional[HtmlLinkScanner] = None,
        youtube_resolver: Optional[YouTubeChannelResolver] = None,
    ):
        self.settings = settings or get_settings()
        self.session = session or build_session(self.settings.fetch.user_agent)
        self.timeout = self.settings.fetch.request_timeout
        self.normalizer = normalizer or FeedNormalizer(excerpt_length=self.settings.fetch.excerpt_length)
        self.link_scanner = link_scanner or HtmlLinkScanner()
        self.youtube_resolver = youtube_resolver or YouTubeChannelResolver(
            session=self.session,
            mirror_instances=self.settings.youtube.mirror_instances,
            browser_user_agent=self.settings.youtube.browser_user_agent,
            consent_cookie=self.settings.youtube.consent_cookie,
            timeout=self.timeout,
        )
        self.logger = get_logger_for_component("feed_discovery")

    def discover(self, url: str, entry_limit: Optional[int] = None) -> DiscoveryResult:
        """Resolve ``url`` to a CanonicalFeed.

        Args:
            url: Feed URL, site URL or YouTube URL
            entry_limit: Keep only the first N entries in document order

        Returns:
            CanonicalFeed on success, DiscoveryFailure otherwise
        """
        with PerformanceLogger(self.logger, "feed discovery", url=url):
            if is_youtube_url(url):
                result = self._discover_youtube(url)
            else:
                result = self._discover_generic(url)

        if isinstance(result, CanonicalFeed):
            self.logger.info(f"Discovered {result.type.value} feed {result.feed_url} with {len(result.entries)} entries")
            return result.truncated(entry_limit)

        self.logger.info(f"Discovery failed for {url}: {result.reason.value} {result.message}")
        return result

    def _discover_youtube(self, url: str) -> DiscoveryResult:
        rss_url = self.youtube_resolver.resolve(url)
        if rss_url:
            return self._fetch_and_parse(rss_url)

        legacy_url = self.youtube_resolver.legacy_feed_url(url)
        if legacy_url:
            self.logger.info(f"Trying legacy YouTube feed {legacy_url}")
            result = self._fetch_and_parse(legacy_url)
            if isinstance(result, CanonicalFeed):
                return result

        return DiscoveryFailure(
            reason=FailureReason.NO_FEED_FOUND,
            url=url,
            message="Could not resolve YouTube channel",
        )

    def _discover_generic(self, url: str) -> DiscoveryResult:
        try:
            response = fetch(self.session, url, self.timeout)
        except FeedError as e:
            return DiscoveryFailure(reason=FailureReason.FETCH_ERROR, url=url, message=str(e), error=e)

        if is_feed_content_type(response.headers.get("Content-Type")):
            return self._parse(response.content, url)

        feed_url = self.link_scanner.find_feed_link(response.text, url)
        if not feed_url:
            return DiscoveryFailure(
                reason=FailureReason.NO_FEED_FOUND,
                url=url,
                message="No alternate feed link in page",
            )

        self.logger.debug(f"Following feed link {feed_url} from {url}")
        return self._fetch_and_parse(feed_url)

    def _fetch_and_parse(self, feed_url: str) -> DiscoveryResult:
        try:
            response = fetch(self.session, feed_url, self.timeout)
        except FeedError as e:
            return DiscoveryFailure(reason=FailureReason.FETCH_ERROR, url=feed_url, message=str(e), error=e)
        return self._parse(response.content, feed_url)

    def _parse(self, body: bytes, feed_url: str) -> DiscoveryResult:
        feed = self.normalizer.parse(body, feed_url, ingested_at=datetime.now(timezone.utc))
        if feed is None:
            return DiscoveryFailure(
                reason=FailureReason.PARSE_ERROR,
                url=feed_url,
                message="Document is not a parseable RSS or Atom feed",
            )
        return feed
