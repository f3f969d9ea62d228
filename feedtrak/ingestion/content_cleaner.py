"""
Content Cleaner
===============

Plain-text extraction for feed entry bodies. Entry content is stored raw;
only the excerpt is derived here.
"""

import re
import html
from typing import Optional

from bs4 import BeautifulSoup

from ..utils.logging import get_logger_for_component

WHITESPACE_PATTERN = re.compile(r"\s+")

# A tag cut in half by truncation, e.g. '<a href="ht'
DANGLING_TAG_PATTERN = re.compile(r"<[A-Za-z/!][^>]*$")

NON_CONTENT_ELEMENTS = ["script", "style", "noscript"]

logger = get_logger_for_component("content_cleaner")


def strip_tags(html_content: Optional[str]) -> str:
    """Return the text of an HTML fragment with whitespace collapsed."""
    if not html_content or not html_content.strip():
        return ""

    try:
        soup = BeautifulSoup(html_content, "html.parser")
        for element in soup(NON_CONTENT_ELEMENTS):
            element.decompose()
        text = soup.get_text(separator=" ", strip=True)
    except (ValueError, TypeError, AssertionError) as e:
        logger.warning(f"Failed to parse HTML, using regex fallback: {e}")
        text = html.unescape(re.sub(r"<[^>]+>", " ", html_content))

    return WHITESPACE_PATTERN.sub(" ", text).strip()


def make_excerpt(content: Optional[str], length: int = 300) -> str:
    """Truncate raw content to ``length`` characters, then strip tags.

    Truncating first keeps the cost bounded on huge bodies; a tag left
    incomplete by the cut is dropped.
    """
    if not content:
        return ""

    prefix = DANGLING_TAG_PATTERN.sub("", content[:length])
    return strip_tags(prefix)
