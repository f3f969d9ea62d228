"""
Namespace-aware lookups over lxml element trees.

Feed documents mix unqualified RSS elements with Atom, Dublin Core, Media
RSS and content-module elements. These helpers select children by local name
and an explicit set of allowed namespaces (``None`` meaning unqualified).
"""

from copy import deepcopy
from html import escape
from typing import Iterable, List, Optional

from lxml import etree

ATOM_NS = "http://www.w3.org/2005/Atom"
DC_NS = "http://purl.org/dc/elements/1.1/"
CONTENT_NS = "http://purl.org/rss/1.0/modules/content/"
XHTML_NS = "http://www.w3.org/1999/xhtml"
MEDIA_NS = ("http://search.yahoo.com/mrss/", "http://search.yahoo.com/mrss")

UNQUALIFIED = (None,)


def qualify(namespace: Optional[str], local: str) -> str:
    return f"{{{namespace}}}{local}" if namespace else local


def local_name(element: etree._Element) -> str:
    return etree.QName(element).localname


def namespace_of(element: etree._Element) -> Optional[str]:
    return etree.QName(element).namespace


def children(
    element: etree._Element,
    local: str,
    namespaces: Iterable[Optional[str]] = UNQUALIFIED,
) -> List[etree._Element]:
    """All direct children named ``local`` in one of ``namespaces``."""
    tags = {qualify(ns, local) for ns in namespaces}
    # Comments and processing instructions have non-string tags
    return [child for child in element if isinstance(child.tag, str) and child.tag in tags]


def first_child(
    element: etree._Element,
    local: str,
    namespaces: Iterable[Optional[str]] = UNQUALIFIED,
) -> Optional[etree._Element]:
    matches = children(element, local, namespaces)
    return matches[0] if matches else None


def text_of(element: Optional[etree._Element]) -> str:
    if element is None:
        return ""
    return "".join(element.itertext()).strip()


def markup_of(element: Optional[etree._Element]) -> str:
    """Inner markup of an element, serialized without namespace prefixes."""
    if element is None:
        return ""
    element = deepcopy(element)
    for node in element.iter():
        if isinstance(node.tag, str):
            node.tag = etree.QName(node).localname
    etree.cleanup_namespaces(element)
    parts = [escape(element.text or "", quote=False)]
    parts.extend(etree.tostring(child, encoding="unicode", with_tail=True) for child in element)
    return "".join(parts).strip()


def child_text(
    element: etree._Element,
    local: str,
    namespaces: Iterable[Optional[str]] = UNQUALIFIED,
) -> str:
    return text_of(first_child(element, local, namespaces))
