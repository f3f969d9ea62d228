"""
Tests for ThumbnailExtractor priority rules.
"""

import pytest
from lxml import etree

from feedtrak.ingestion.thumbnail_extractor import ThumbnailExtractor

MEDIA = 'xmlns:media="http://search.yahoo.com/mrss/"'


def item(body, namespaces=MEDIA):
    return etree.fromstring(f"<item {namespaces}>{body}</item>".encode("utf-8"))


@pytest.fixture
def extractor():
    return ThumbnailExtractor()


class TestThumbnailPriority:

    def test_media_thumbnail_beats_image_enclosure(self, extractor):
        node = item(
            '<enclosure url="https://e.com/enclosure.jpg" type="image/jpeg"/>'
            '<media:thumbnail url="https://e.com/thumb.jpg"/>'
        )
        assert extractor.extract(node, "https://e.com/post") == "https://e.com/thumb.jpg"

    def test_media_thumbnail_inside_group(self, extractor):
        node = item('<media:group><media:thumbnail url="https://e.com/group.jpg"/></media:group>')
        assert extractor.extract(node, "https://e.com/post") == "https://e.com/group.jpg"

    def test_image_enclosure(self, extractor):
        node = item(
            '<enclosure url="https://e.com/episode.mp3" type="audio/mpeg"/>'
            '<enclosure url="https://e.com/cover.png" type="image/png"/>'
        )
        assert extractor.extract(node, "https://e.com/post") == "https://e.com/cover.png"

    def test_youtube_img_in_description(self, extractor):
        node = item(
            "<description>&lt;img src=\"https://i.ytimg.com/vi/abc/youtube.jpg\"&gt;</description>"
        )
        assert extractor.extract(node, "https://e.com/post") == "https://i.ytimg.com/vi/abc/youtube.jpg"

    @pytest.mark.parametrize(
        "link",
        ["https://www.youtube.com/watch?v=dQw4w9WgXcQ", "https://youtu.be/dQw4w9WgXcQ"],
    )
    def test_youtube_link_maps_to_still(self, extractor, link):
        assert extractor.extract(item("<title>Video</title>"), link) == (
            "https://img.youtube.com/vi/dQw4w9WgXcQ/maxresdefault.jpg"
        )

    def test_youtube_heuristics_are_rss_only(self, extractor):
        node = item("<title>Video</title>")
        assert extractor.extract(node, "https://www.youtube.com/watch?v=abc", is_rss=False) is None

    def test_atom_enclosure_link(self, extractor):
        node = etree.fromstring(
            b'<entry xmlns="http://www.w3.org/2005/Atom">'
            b'<link rel="enclosure" type="image/jpeg" href="https://e.com/atom.jpg"/></entry>'
        )
        assert extractor.extract(node, "https://e.com/post", is_rss=False) == "https://e.com/atom.jpg"

    def test_no_match(self, extractor):
        assert extractor.extract(item("<title>Plain</title>"), "https://e.com/post") is None
