"""
Tests for Feed Normalizer
=========================

RSS 2.0 and Atom parsing into the canonical entry shape.
"""

from datetime import datetime, timedelta, timezone

import pytest

from feedtrak.database.models import FeedType
from feedtrak.ingestion.content_cleaner import make_excerpt, strip_tags
from feedtrak.ingestion.feed_normalizer import (
    FeedNormalizer,
    fallback_guid,
    parse_iso_date,
    parse_rss_date,
)

INGESTED_AT = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def normalizer():
    return FeedNormalizer(excerpt_length=300)


class TestRssParsing:
    """RSS 2.0 documents."""

    def test_single_item_with_link_and_pubdate(self, normalizer):
        document = (
            b"<rss version='2.0'><channel><title>Example</title>"
            b"<item><title>A</title><link>http://x/a</link>"
            b"<pubDate>Mon, 01 Jan 2024 00:00:00 GMT</pubDate></item>"
            b"</channel></rss>"
        )

        feed = normalizer.parse(document, "http://x/feed")

        assert feed.title == "Example"
        assert feed.type == FeedType.RSS
        assert feed.feed_url == "http://x/feed"
        assert len(feed.entries) == 1
        entry = feed.entries[0]
        assert entry.guid == "http://x/a"
        assert entry.url == "http://x/a"
        assert entry.published_at == datetime(2024, 1, 1, tzinfo=timezone.utc)

    def test_one_entry_per_item_in_document_order(self, normalizer, rss_document):
        feed = normalizer.parse(rss_document(5), "https://example.com/feed.xml")

        assert [entry.title for entry in feed.entries] == [f"Post {i}" for i in range(5)]
        assert all(entry.guid for entry in feed.entries)
        assert feed.url == "https://example.com/"
        assert feed.description == "Posts from Example Blog"

    def test_guid_element_wins_over_link(self, normalizer, rss_document):
        feed = normalizer.parse(rss_document(1), "https://example.com/feed.xml")
        assert feed.entries[0].guid == "post-0"

    def test_guid_falls_back_to_hash_without_guid_or_link(self, normalizer):
        document = (
            b"<rss><channel><title>T</title>"
            b"<item><title>Only title</title><description>Body</description></item>"
            b"</channel></rss>"
        )

        feed = normalizer.parse(document, "https://example.com/feed")

        guid = feed.entries[0].guid
        assert guid == fallback_guid("Only title", "Body")
        assert guid.startswith("urn:sha256:")

    def test_content_encoded_and_dc_fields(self, normalizer):
        document = b"""<rss xmlns:content="http://purl.org/rss/1.0/modules/content/"
                            xmlns:dc="http://purl.org/dc/elements/1.1/">
          <channel><title>T</title>
            <item>
              <title>Encoded</title>
              <link>https://example.com/e</link>
              <content:encoded><![CDATA[<p>Rich <b>body</b></p>]]></content:encoded>
              <dc:creator>Grace</dc:creator>
              <dc:date>2024-02-03T04:05:06Z</dc:date>
            </item>
          </channel></rss>"""

        entry = normalizer.parse(document, "https://example.com/feed").entries[0]

        assert entry.content == "<p>Rich <b>body</b></p>"
        assert entry.excerpt == "Rich body"
        assert entry.author == "Grace"
        assert entry.published_at == datetime(2024, 2, 3, 4, 5, 6, tzinfo=timezone.utc)

    def test_missing_dates_fall_back_to_ingestion_time_in_document_order(self, normalizer):
        document = (
            b"<rss><channel><title>T</title>"
            b"<item><title>First</title><link>https://e.com/1</link></item>"
            b"<item><title>Second</title><link>https://e.com/2</link></item>"
            b"</channel></rss>"
        )

        entries = normalizer.parse(document, "https://e.com/feed", ingested_at=INGESTED_AT).entries

        assert entries[0].published_at == INGESTED_AT
        assert entries[1].published_at == INGESTED_AT - timedelta(microseconds=1)
        assert entries[0].published_at > entries[1].published_at

    def test_channel_link_falls_back_to_source_url(self, normalizer):
        feed = normalizer.parse(b"<rss><channel><title>T</title></channel></rss>", "https://e.com/feed")
        assert feed.url == "https://e.com/feed"
        assert feed.entries == []

    def test_str_document_with_encoding_declaration(self, normalizer):
        document = (
            "<?xml version='1.0' encoding='ISO-8859-1'?>"
            "<rss><channel><title>Café</title></channel></rss>"
        )
        assert normalizer.parse(document, "https://e.com/feed").title == "Café"


class TestAtomParsing:
    """Atom 1.0 documents."""

    def test_feed_fields(self, normalizer, atom_document):
        feed = normalizer.parse(atom_document, "https://atom.example.org/feed.atom")

        assert feed.type == FeedType.ATOM
        assert feed.title == "Atom Example"
        assert feed.description == "An Atom feed"
        assert feed.url == "https://atom.example.org/"
        assert len(feed.entries) == 2

    def test_published_falls_back_to_updated(self, normalizer, atom_document):
        first, second = normalizer.parse(atom_document, "https://atom.example.org/feed.atom").entries

        assert first.published_at == datetime(2024, 2, 10, 8, 30, tzinfo=timezone.utc)
        # <published> wins over <updated> and is converted to UTC
        assert second.published_at == datetime(2024, 2, 9, 6, 30, tzinfo=timezone.utc)

    def test_entry_fields(self, normalizer, atom_document):
        first, second = normalizer.parse(atom_document, "https://atom.example.org/feed.atom").entries

        assert first.guid == "tag:atom.example.org,2024:1"
        assert first.url == "https://atom.example.org/1"
        assert first.author == "Ada"
        assert first.content == "Short summary"
        assert first.thumbnail_url == "https://atom.example.org/1.jpg"
        assert second.url == "https://atom.example.org/2"
        assert second.excerpt == "Full content"
        assert second.thumbnail_url is None

    def test_no_dates_defaults_to_ingestion_time(self, normalizer):
        document = (
            b"<feed xmlns='http://www.w3.org/2005/Atom'><title>T</title>"
            b"<entry><title>Undated</title><id>urn:1</id></entry></feed>"
        )
        entry = normalizer.parse(document, "https://e.com/atom", ingested_at=INGESTED_AT).entries[0]
        assert entry.published_at == INGESTED_AT

    def test_xhtml_content_keeps_markup(self, normalizer):
        document = b"""<feed xmlns="http://www.w3.org/2005/Atom"><title>T</title>
          <entry><title>Rich</title><id>urn:2</id>
            <content type="xhtml"><div xmlns="http://www.w3.org/1999/xhtml">Hello <b>bold</b>
              <img src="https://e.com/pic.jpg"/> 1 &lt; 2</div></content>
          </entry></feed>"""

        entry = normalizer.parse(document, "https://e.com/atom", ingested_at=INGESTED_AT).entries[0]

        assert entry.content.startswith("Hello <b>bold</b>")
        assert '<img src="https://e.com/pic.jpg"/>' in entry.content
        assert entry.content.endswith("1 &lt; 2")
        assert "xmlns" not in entry.content
        assert entry.excerpt == "Hello bold 1 < 2"

    def test_xhtml_summary_without_content(self, normalizer):
        document = (
            b"<feed xmlns='http://www.w3.org/2005/Atom'><title>T</title><entry><id>urn:3</id>"
            b"<summary type='xhtml'><div xmlns='http://www.w3.org/1999/xhtml'><p>Short</p></div></summary>"
            b"</entry></feed>"
        )
        entry = normalizer.parse(document, "https://e.com/atom", ingested_at=INGESTED_AT).entries[0]
        assert entry.content == "<p>Short</p>"


class TestRejectedDocuments:

    @pytest.mark.parametrize(
        "document",
        [
            b"",
            b"<rss><channel><title>Broken",
            b"<html><body>Not a feed</body></html>",
            b"<rdf:RDF xmlns:rdf='http://www.w3.org/1999/02/22-rdf-syntax-ns#'/>",
            b"<rss version='2.0'></rss>",
        ],
    )
    def test_returns_none(self, normalizer, document):
        assert normalizer.parse(document, "https://e.com/feed") is None

    def test_external_entities_are_not_resolved(self, normalizer, tmp_path):
        secret = tmp_path / "secret.txt"
        secret.write_text("top secret")
        document = (
            f'<?xml version="1.0"?><!DOCTYPE rss [<!ENTITY xxe SYSTEM "file://{secret}">]>'
            f"<rss><channel><title>&xxe;</title></channel></rss>"
        ).encode("utf-8")

        feed = normalizer.parse(document, "https://e.com/feed")

        assert feed is None or "top secret" not in feed.title


class TestDates:

    def test_rfc822(self):
        assert parse_rss_date("Tue, 02 Jan 2024 10:00:00 +0100") == datetime(2024, 1, 2, 9, 0, tzinfo=timezone.utc)

    def test_rss_date_accepts_iso(self):
        assert parse_rss_date("2024-01-02T10:00:00Z") == datetime(2024, 1, 2, 10, 0, tzinfo=timezone.utc)

    def test_unparseable(self):
        assert parse_rss_date("not a date") is None
        assert parse_iso_date("") is None


class TestContentCleaner:

    def test_strip_tags_drops_scripts(self):
        assert strip_tags("<p>Hello <script>alert(1)</script><b>world</b></p>") == "Hello world"

    def test_excerpt_truncates_before_stripping(self):
        content = "<p>" + "a" * 20 + '</p><a href="http://example.com/long">link</a>'
        assert make_excerpt(content, 30) == "a" * 20

    def test_literal_less_than_is_kept(self):
        assert make_excerpt("Benchmark: a < b holds for every input", 300) == (
            "Benchmark: a < b holds for every input"
        )

    def test_dangling_closing_tag_is_dropped(self):
        assert make_excerpt("<p>Twenty characters</p", 22) == "Twenty characters"

    def test_empty(self):
        assert make_excerpt(None) == ""
        assert strip_tags("   ") == ""
