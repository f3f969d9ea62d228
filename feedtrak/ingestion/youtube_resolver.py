"""
YouTube Channel Resolver
========================

Turns YouTube channel, handle and custom URLs into the channel's RSS URL.

YouTube's markup and anti-scraping behaviour change often, so handles are
resolved through independent strategies tried in order:

1. read-only mirror APIs (``/api/v1/channels/@handle`` -> ``authorId``)
2. the channel page with browser headers and a consent cookie, refetched
   without cookies when the consent interstitial is served
3. the no-cookie domain
4. the channel's ``/videos`` subpage

Every strategy failure is absorbed; ``resolve`` returns None when nothing
worked and callers treat that as "nothing to discover".
"""

import json
import re
from typing import Any, Callable, List, Optional
from urllib.parse import quote, urlparse

import requests

from .http_client import fetch
from ..utils.exceptions import FeedError
from ..utils.logging import get_logger_for_component

RSS_URL_TEMPLATE = "https://www.youtube.com/feeds/videos.xml?channel_id={channel_id}"
LEGACY_RSS_URL_TEMPLATE = "https://www.youtube.com/feeds/videos.xml?user={handle}"

HANDLE_PATTERN = re.compile(r"youtube\.com/@([a-zA-Z0-9_.-]+)")
CHANNEL_PATTERN = re.compile(r"youtube\.com/channel/([a-zA-Z0-9_-]+)")
CUSTOM_PATTERN = re.compile(r"youtube\.com/c/([a-zA-Z0-9_-]+)")

# Page embedding points for the channel ID, most reliable first
CHANNEL_ID_PAGE_PATTERNS = [
    re.compile(r'"channelId":"([a-zA-Z0-9_-]+)"'),
    re.compile(r'<meta property="og:url" content="https://www\.youtube\.com/channel/([a-zA-Z0-9_-]+)"'),
    re.compile(r'"externalChannelId":"([a-zA-Z0-9_-]+)"'),
    re.compile(r'<link rel="canonical" href="https://www\.youtube\.com/channel/([a-zA-Z0-9_-]+)"'),
]
SIMPLE_CHANNEL_ID_PATTERN = CHANNEL_ID_PAGE_PATTERNS[0]
INITIAL_DATA_MARKER = re.compile(r"var ytInitialData\s*=\s*")

CONSENT_MARKER = "consent.youtube.com"

YOUTUBE_HOSTS = ("youtube.com", "youtu.be", "youtube-nocookie.com")

BROWSER_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,image/apng,*/*;q=0.8"


def is_youtube_url(url: str) -> bool:
    """Check whether the URL points at a YouTube host or one of its subdomains."""
    if "//" not in url:
        url = f"//{url}"
    host = (urlparse(url).hostname or "").lower()
    return any(host == name or host.endswith(f".{name}") for name in YOUTUBE_HOSTS)


def find_key_recursive(value: Any, key: str) -> Optional[str]:
    """Depth-first search of parsed JSON for the first string under ``key``.

    Keys are visited in document order; at each object level a direct hit is
    checked before descending into that member.
    """
    if isinstance(value, dict):
        for k, v in value.items():
            if k == key and isinstance(v, str) and v:
                return v
            if isinstance(v, (dict, list)):
                found = find_key_recursive(v, key)
                if found:
                    return found
    elif isinstance(value, list):
        for item in value:
            if isinstance(item, (dict, list)):
                found = find_key_recursive(item, key)
                if found:
                    return found
    return None


def extract_channel_id_from_initial_data(data: Any) -> Optional[str]:
    """Find the channel ID in a decoded ytInitialData blob."""
    if isinstance(data, dict):
        header = data.get("header")
        if isinstance(header, dict):
            renderer = header.get("c4TabbedHeaderRenderer")
            if isinstance(renderer, dict) and isinstance(renderer.get("channelId"), str):
                return renderer["channelId"]
    return find_key_recursive(data, "channelId")


class YouTubeChannelResolver:
    """Resolve YouTube URLs to channel RSS feed URLs."""

    def __init__(
        self,
        session: requests.Session,
        mirror_instances: List[str],
        browser_user_agent: str,
        consent_cookie: str,
        timeout: float = 10,
    ):
        self.session = session
        self.mirror_instances = mirror_instances
        self.browser_user_agent = browser_user_agent
        self.consent_cookie = consent_cookie
        self.timeout = timeout
        self.logger = get_logger_for_component("youtube_resolver")

    @staticmethod
    def rss_url_for_channel(channel_id: str) -> str:
        return RSS_URL_TEMPLATE.format(channel_id=channel_id)

    @staticmethod
    def legacy_feed_url(url: str) -> Optional[str]:
        """The old ``?user=`` feed form for an ``/@handle`` URL, if any."""
        match = HANDLE_PATTERN.search(url)
        if match is None:
            return None
        return LEGACY_RSS_URL_TEMPLATE.format(handle=quote(match.group(1)))

    def resolve(self, url: str) -> Optional[str]:
        """Return the RSS feed URL for a YouTube URL, or None."""
        if "feeds/videos.xml" in url:
            return url

        match = CHANNEL_PATTERN.search(url)
        if match:
            return self.rss_url_for_channel(match.group(1))

        channel_id = None
        match = HANDLE_PATTERN.search(url)
        if match:
            channel_id = self.channel_id_for_handle(match.group(1))
        else:
            match = CUSTOM_PATTERN.search(url)
            if match:
                channel_id = self.channel_id_for_custom_name(match.group(1))

        if not channel_id:
            self.logger.warning(f"Could not resolve a channel ID for {url}")
            return None

        self.logger.info(f"Resolved {url} to channel {channel_id}")
        return self.rss_url_for_channel(channel_id)

    def channel_id_for_handle(self, handle: str) -> Optional[str]:
        strategies: List[Callable[[str], Optional[str]]] = [
            self._from_mirrors,
            self._from_channel_page,
            self._from_nocookie_domain,
            self._from_videos_page,
        ]
        for strategy in strategies:
            channel_id = strategy(handle)
            if channel_id:
                self.logger.debug(f"Channel ID for @{handle} found by {strategy.__name__}")
                return channel_id
        return None

    def channel_id_for_custom_name(self, name: str) -> Optional[str]:
        html = self._get_text(f"https://www.youtube.com/c/{quote(name)}")
        if html is None:
            return None
        return self.extract_channel_id(html)

    # Strategies

    def _from_mirrors(self, handle: str) -> Optional[str]:
        for instance in self.mirror_instances:
            api_url = f"{instance.rstrip('/')}/api/v1/channels/@{quote(handle)}"
            try:
                response = fetch(self.session, api_url, self.timeout)
                data = response.json()
            except (FeedError, ValueError) as e:
                self.logger.debug(f"Mirror {instance} failed for @{handle}: {e}")
                continue

            author_id = data.get("authorId") if isinstance(data, dict) else None
            if isinstance(author_id, str) and author_id:
                self.logger.info(f"Found channel ID for @{handle} via mirror {instance}")
                return author_id
        return None

    def _from_channel_page(self, handle: str) -> Optional[str]:
        page_url = f"https://www.youtube.com/@{quote(handle)}"
        headers = self._browser_headers()
        headers["Cookie"] = self.consent_cookie
        html = self._get_text(f"{page_url}?hl=en", headers=headers)
        if html is None:
            return None

        if CONSENT_MARKER in html:
            self.logger.warning(f"Consent page served for @{handle}, retrying without cookies")
            self._drop_youtube_cookies()
            retry = self._get_text(page_url, headers=self._browser_headers(minimal=True))
            if retry is not None:
                html = retry

        return self.extract_channel_id(html)

    def _from_nocookie_domain(self, handle: str) -> Optional[str]:
        html = self._get_text(f"https://www.youtube-nocookie.com/@{quote(handle)}")
        if html is None:
            return None
        match = SIMPLE_CHANNEL_ID_PATTERN.search(html)
        return match.group(1) if match else None

    def _from_videos_page(self, handle: str) -> Optional[str]:
        html = self._get_text(f"https://www.youtube.com/@{quote(handle)}/videos")
        if html is None:
            return None
        match = SIMPLE_CHANNEL_ID_PATTERN.search(html)
        return match.group(1) if match else None

    # Helpers

    def extract_channel_id(self, html: str) -> Optional[str]:
        """Search a channel page for its ID at every known embedding point."""
        for pattern in CHANNEL_ID_PAGE_PATTERNS:
            match = pattern.search(html)
            if match:
                return match.group(1)

        marker = INITIAL_DATA_MARKER.search(html)
        if marker:
            try:
                data, _ = json.JSONDecoder().raw_decode(html, marker.end())
            except ValueError as e:
                self.logger.debug(f"Could not decode ytInitialData: {e}")
                return None
            return extract_channel_id_from_initial_data(data)

        return None

    def _browser_headers(self, minimal: bool = False) -> dict:
        if minimal:
            return {
                "User-Agent": self.browser_user_agent,
                "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            }
        return {
            "User-Agent": self.browser_user_agent,
            "Accept": BROWSER_ACCEPT,
            "Accept-Language": "en-US,en;q=0.9",
            "Upgrade-Insecure-Requests": "1",
            "Sec-Fetch-Dest": "document",
            "Sec-Fetch-Mode": "navigate",
            "Sec-Fetch-Site": "none",
            "Sec-Fetch-User": "?1",
            "Cache-Control": "max-age=0",
        }

    def _drop_youtube_cookies(self) -> None:
        """Remove every youtube.com cookie the session picked up."""
        jar = self.session.cookies
        for cookie in list(jar):
            domain = cookie.domain.lstrip(".").lower()
            if domain == "youtube.com" or domain.endswith(".youtube.com"):
                jar.clear(cookie.domain, cookie.path, cookie.name)

    def _get_text(self, url: str, headers: Optional[dict] = None) -> Optional[str]:
        try:
            return fetch(self.session, url, self.timeout, headers=headers).text
        except FeedError as e:
            self.logger.debug(f"YouTube fetch failed for {url}: {e}")
            return None
