"""
HTTP Helpers
============

Thin layer over requests shared by discovery, YouTube resolution and the
thumbnail job. Every failure leaves this module as a classified FeedError.
"""

import posixpath
from typing import Dict, Optional
from urllib.parse import urlparse

import requests

from ..utils.exceptions import classify_request_exception, error_for_status

FEED_CONTENT_TYPES = (
    "application/rss+xml",
    "application/atom+xml",
    "application/xml",
    "text/xml",
)

DEFAULT_ACCEPT = "application/rss+xml, application/atom+xml, application/xml, text/xml, text/html;q=0.9, */*;q=0.8"


def build_session(user_agent: str, accept: Optional[str] = None) -> requests.Session:
    """Create a session with FeedTrak default headers."""
    session = requests.Session()
    session.headers.update(
        {
            "User-Agent": user_agent,
            "Accept": accept or DEFAULT_ACCEPT,
        }
    )
    return session


def fetch(
    session: requests.Session,
    url: str,
    timeout: float,
    headers: Optional[Dict[str, str]] = None,
    cookies: Optional[Dict[str, str]] = None,
) -> requests.Response:
    """GET a URL, following redirects.

    Returns:
        The successful (2xx) response

    Raises:
        TransportError: connection failure or timeout
        HttpClientError: 4xx status
        HttpServerError: 5xx status
        FeedError: any other requests failure
    """
    try:
        response = session.get(
            url,
            timeout=timeout,
            headers=headers,
            cookies=cookies,
            allow_redirects=True,
        )
    except requests.RequestException as e:
        raise classify_request_exception(e, url) from e

    if not 200 <= response.status_code < 300:
        raise error_for_status(response.status_code, url)

    return response


def is_feed_content_type(content_type: Optional[str]) -> bool:
    """Check whether a Content-Type header names an XML feed type."""
    if not content_type:
        return False
    content_type = content_type.lower()
    return any(feed_type in content_type for feed_type in FEED_CONTENT_TYPES)


def resolve_against_host(href: str, base_url: str) -> str:
    """Resolve a feed link against the scheme and host of ``base_url``.

    Absolute URLs are kept, ``//x`` takes the base scheme, ``/x`` and bare
    ``x`` are placed at the root of the base host.
    """
    href = href.strip()
    if href.startswith(("http://", "https://")):
        return href

    parsed = urlparse(base_url)
    scheme = parsed.scheme or "https"
    host = parsed.netloc

    if href.startswith("//"):
        return f"{scheme}:{href}"
    if href.startswith("/"):
        return f"{scheme}://{host}{href}"
    return f"{scheme}://{host}/{href}"


def resolve_against_page(url: str, page_url: str) -> str:
    """Resolve an image URL found in an article page.

    Like ``resolve_against_host`` except that bare relative paths stay in
    the directory of the page.
    """
    url = url.strip()
    if url.startswith(("http://", "https://")):
        return url

    parsed = urlparse(page_url)
    scheme = parsed.scheme or "https"
    host = parsed.netloc

    if url.startswith("//"):
        return f"{scheme}:{url}"
    if url.startswith("/"):
        return f"{scheme}://{host}{url}"

    base_path = posixpath.dirname(parsed.path).rstrip("/") if parsed.path else ""
    return f"{scheme}://{host}{base_path}/{url}"
