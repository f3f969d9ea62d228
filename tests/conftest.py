"""
PyTest Configuration and Fixtures
=================================

Shared fixtures and configuration for FeedTrak tests.

- Every test gets its own file database under tmp_path
- HTTP is served by CannedSession; unknown URLs fail like a refused connection
- Settings are always passed explicitly, never loaded from the environment
"""

import pytest
import sys
from datetime import datetime, timedelta, timezone
from email.utils import format_datetime
from pathlib import Path

import requests

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))


# ============================================================================
# HTTP Fakes
# ============================================================================


def make_response(url, body=b"", status=200, content_type="application/rss+xml; charset=utf-8"):
    """Build a real requests.Response carrying a canned body."""
    response = requests.Response()
    response.status_code = status
    response.url = url
    response._content = body.encode("utf-8") if isinstance(body, str) else body
    response.headers["Content-Type"] = content_type
    response.encoding = "utf-8"
    return response


class CannedSession:
    """Stand-in for requests.Session that serves responses by exact URL."""

    def __init__(self):
        self.routes = {}
        self.calls = []
        self.sent_cookies = []
        self.headers = {}
        self.cookies = requests.cookies.RequestsCookieJar()

    def add(self, url, body=b"", status=200, content_type="application/rss+xml; charset=utf-8"):
        self.routes[url] = make_response(url, body, status, content_type)

    def add_html(self, url, body, status=200):
        self.add(url, body, status, content_type="text/html; charset=utf-8")

    def fail(self, url, exception):
        self.routes[url] = exception

    def get(self, url, headers=None, **kwargs):
        self.calls.append(url)
        self.sent_cookies.append((url, self.cookie_header(url, headers)))
        route = self.routes.get(url)
        if route is None:
            raise requests.ConnectionError(f"Connection refused: {url}")
        if isinstance(route, Exception):
            raise route
        return route

    def calls_to(self, url):
        return self.calls.count(url)

    def cookie_header(self, url, headers=None):
        """The Cookie header a real session would send: explicit, else from the jar."""
        if headers and headers.get("Cookie"):
            return headers["Cookie"]
        prepared = requests.Request("GET", url).prepare()
        return requests.cookies.get_cookie_header(self.cookies, prepared)


# ============================================================================
# Sample Documents
# ============================================================================


def build_rss(count, title="Example Blog", link="https://example.com/", newest=None, guid_prefix="post"):
    """RSS 2.0 document with ``count`` items, newest first, one hour apart."""
    newest = newest or datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
    items = []
    for index in range(count):
        published = format_datetime(newest - timedelta(hours=index), usegmt=True)
        items.append(
            f"""
            <item>
              <title>Post {index}</title>
              <link>{link}posts/{index}</link>
              <guid>{guid_prefix}-{index}</guid>
              <pubDate>{published}</pubDate>
              <description>&lt;p&gt;Body of post {index}&lt;/p&gt;</description>
            </item>"""
        )
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>{title}</title>
    <link>{link}</link>
    <description>Posts from {title}</description>{''.join(items)}
  </channel>
</rss>""".encode("utf-8")


SAMPLE_ATOM = b"""<?xml version="1.0" encoding="utf-8"?>
<feed xmlns="http://www.w3.org/2005/Atom" xmlns:media="http://search.yahoo.com/mrss/">
  <title>Atom Example</title>
  <subtitle>An Atom feed</subtitle>
  <link rel="self" href="https://atom.example.org/feed.atom"/>
  <link rel="alternate" href="https://atom.example.org/"/>
  <entry>
    <title>First entry</title>
    <id>tag:atom.example.org,2024:1</id>
    <link rel="alternate" href="https://atom.example.org/1"/>
    <updated>2024-02-10T08:30:00Z</updated>
    <author><name>Ada</name></author>
    <summary>Short summary</summary>
    <media:group>
      <media:thumbnail url="https://atom.example.org/1.jpg"/>
    </media:group>
  </entry>
  <entry>
    <title>Second entry</title>
    <id>tag:atom.example.org,2024:2</id>
    <link href="https://atom.example.org/2"/>
    <published>2024-02-09T08:30:00+02:00</published>
    <updated>2024-02-11T08:30:00Z</updated>
    <content type="html">&lt;p&gt;Full content&lt;/p&gt;</content>
  </entry>
</feed>
"""

SAMPLE_OPML = b"""<?xml version="1.0" encoding="UTF-8"?>
<opml version="2.0">
  <head><title>Subscriptions</title></head>
  <body>
    <outline text="Tech" title="Tech">
      <outline type="rss" text="Alpha" title="Alpha" xmlUrl="https://alpha.example.com/feed.xml" htmlUrl="https://alpha.example.com/"/>
      <outline type="rss" text="Beta" xmlUrl="https://beta.example.com/rss"/>
    </outline>
    <outline type="rss" text="Gamma" title="Gamma" xmlUrl="https://gamma.example.com/atom.xml"/>
  </body>
</opml>
"""


# ============================================================================
# Settings and Database Fixtures
# ============================================================================


@pytest.fixture
def test_settings(tmp_path):
    """Settings pointing at a per-test database with file logging disabled."""
    from feedtrak.config.settings import DatabaseSettings, FeedTrakSettings, LoggingSettings

    return FeedTrakSettings(
        database=DatabaseSettings(path=str(tmp_path / "feedtrak_test.db"), pool_size=2),
        logging=LoggingSettings(file_path=None),
    )


@pytest.fixture
def test_database(test_settings):
    """Create the schema and return the database path."""
    from feedtrak.database.schema import DatabaseSchema

    schema = DatabaseSchema(test_settings.database.path)
    schema.create_tables()
    return test_settings.database.path


@pytest.fixture
def db_connection(test_database):
    """Create a database connection manager for testing."""
    from feedtrak.database.connection import DatabaseConnection

    connection = DatabaseConnection(test_database, pool_size=2)
    yield connection

    # Cleanup connections
    connection.close_all_connections()


@pytest.fixture
def feed_repo(db_connection):
    from feedtrak.storage import FeedRepository
    return FeedRepository(db_connection)


@pytest.fixture
def entry_repo(db_connection):
    from feedtrak.storage import EntryRepository
    return EntryRepository(db_connection)


@pytest.fixture
def category_repo(db_connection):
    from feedtrak.storage import CategoryRepository
    return CategoryRepository(db_connection)


@pytest.fixture
def subscription_repo(db_connection):
    from feedtrak.storage import SubscriptionRepository
    return SubscriptionRepository(db_connection)


@pytest.fixture
def user_state_repo(db_connection):
    from feedtrak.storage import UserStateRepository
    return UserStateRepository(db_connection)


# ============================================================================
# Ingestion and Job Fixtures
# ============================================================================


@pytest.fixture
def canned_session():
    return CannedSession()


@pytest.fixture
def discovery(test_settings, canned_session):
    """Discovery service wired to the canned session."""
    from feedtrak.ingestion.feed_discovery import FeedDiscoveryService

    return FeedDiscoveryService(settings=test_settings, session=canned_session)


@pytest.fixture
def job_queue():
    from feedtrak.jobs.queue import InMemoryJobQueue
    return InMemoryJobQueue()


@pytest.fixture
def rss_document():
    """Factory for RSS documents, see build_rss."""
    return build_rss


@pytest.fixture
def make_canonical_feed():
    """Factory for CanonicalFeed objects with generated entries."""
    from feedtrak.ingestion.models import CanonicalEntry, CanonicalFeed

    def factory(feed_url="https://example.com/feed.xml", entry_count=3, title="Example Blog"):
        newest = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
        entries = [
            CanonicalEntry(
                title=f"Post {index}",
                content=f"<p>Body {index}</p>",
                excerpt=f"Body {index}",
                url=f"https://example.com/posts/{index}",
                guid=f"post-{index}",
                published_at=newest - timedelta(hours=index),
            )
            for index in range(entry_count)
        ]
        return CanonicalFeed(
            title=title,
            description="Example description",
            url="https://example.com/",
            feed_url=feed_url,
            entries=entries,
        )

    return factory


@pytest.fixture
def atom_document():
    return SAMPLE_ATOM


@pytest.fixture
def opml_document():
    return SAMPLE_OPML
