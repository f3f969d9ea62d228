"""
Tests for Repository Components
===============================

Test suite for the feed, entry, category, subscription and user-state
repositories: create-if-absent semantics, ownership scoping and unread
counting.
"""

from datetime import datetime, timedelta, timezone

import pytest

from feedtrak.ingestion.models import CanonicalEntry


def _entry(guid, hours_ago=0, title=None, url="https://example.com/x"):
    return CanonicalEntry(
        title=title or guid,
        content="<p>content</p>",
        excerpt="content",
        url=url,
        guid=guid,
        published_at=datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc) - timedelta(hours=hours_ago),
    )


@pytest.fixture
def stored_feed(feed_repo, make_canonical_feed):
    feed, _ = feed_repo.upsert(make_canonical_feed())
    return feed


class TestFeedRepository:
    """Test suite for FeedRepository."""

    def test_upsert_creates_then_reuses(self, feed_repo, make_canonical_feed):
        first_fetch = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
        feed, created = feed_repo.upsert(make_canonical_feed(title="Original"), fetched_at=first_fetch)

        assert created
        assert feed.id is not None
        assert feed.title == "Original"
        assert feed.last_fetched_at == first_fetch

        second_fetch = first_fetch + timedelta(minutes=30)
        again, created_again = feed_repo.upsert(make_canonical_feed(title="Renamed"), fetched_at=second_fetch)

        assert not created_again
        assert again.id == feed.id
        # Content fields are first-wins, only the fetch time moves
        assert again.title == "Original"
        assert again.last_fetched_at == second_fetch

        rows = feed_repo.db.execute_query("SELECT COUNT(*) FROM feeds")
        assert rows[0][0] == 1

    def test_untitled_feed_uses_feed_url(self, feed_repo, make_canonical_feed):
        canonical = make_canonical_feed(title="")
        feed, _ = feed_repo.upsert(canonical)
        assert feed.title == canonical.feed_url

    def test_lookup(self, feed_repo, stored_feed):
        assert feed_repo.exists(stored_feed.feed_url)
        assert not feed_repo.exists("https://nope.example.com/feed")
        assert feed_repo.get_by_id(stored_feed.id).feed_url == stored_feed.feed_url
        assert feed_repo.get_by_feed_url("https://nope.example.com/feed") is None

    def test_active_subscription_filters(self, feed_repo, subscription_repo, make_canonical_feed):
        followed, _ = feed_repo.upsert(make_canonical_feed(feed_url="https://a.example.com/feed"))
        paused, _ = feed_repo.upsert(make_canonical_feed(feed_url="https://b.example.com/feed"))
        feed_repo.upsert(make_canonical_feed(feed_url="https://c.example.com/feed"))
        subscription_repo.create_if_absent(1, followed.id)
        subscription_repo.create_if_absent(2, paused.id, is_active=False)

        assert [feed.id for feed in feed_repo.get_feeds_with_active_subscriptions()] == [followed.id]
        assert [feed.id for feed in feed_repo.get_feeds_for_user(2)] == [paused.id]
        assert feed_repo.get_feeds_for_user(2, active_only=True) == []

    def test_stale_feeds(self, feed_repo, subscription_repo, make_canonical_feed):
        now = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
        fresh, _ = feed_repo.upsert(make_canonical_feed(feed_url="https://fresh.example.com/feed"),
                                    fetched_at=now - timedelta(minutes=5))
        stale, _ = feed_repo.upsert(make_canonical_feed(feed_url="https://stale.example.com/feed"),
                                    fetched_at=now - timedelta(hours=2))
        for feed in (fresh, stale):
            subscription_repo.create_if_absent(1, feed.id)

        result = feed_repo.get_stale_feeds_for_user(1, now - timedelta(minutes=30))

        assert [feed.id for feed in result] == [stale.id]


class TestEntryRepository:
    """Test suite for EntryRepository."""

    def test_create_if_absent_is_idempotent(self, entry_repo, stored_feed):
        entry, created = entry_repo.create_if_absent(stored_feed.id, _entry("guid-1", title="First"))
        again, created_again = entry_repo.create_if_absent(stored_feed.id, _entry("guid-1", title="Changed"))

        assert created
        assert not created_again
        assert again.id == entry.id
        assert again.title == "First"
        assert entry_repo.count_for_feed(stored_feed.id) == 1

    def test_create_many_counts_only_new(self, entry_repo, stored_feed):
        assert entry_repo.create_many(stored_feed.id, [_entry("a"), _entry("b")]) == 2
        assert entry_repo.create_many(stored_feed.id, [_entry("b"), _entry("c")]) == 1
        assert entry_repo.count_for_feed(stored_feed.id) == 3

    def test_same_guid_in_different_feeds(self, entry_repo, feed_repo, make_canonical_feed):
        first, _ = feed_repo.upsert(make_canonical_feed(feed_url="https://a.example.com/feed"))
        second, _ = feed_repo.upsert(make_canonical_feed(feed_url="https://b.example.com/feed"))

        entry_repo.create_many(first.id, [_entry("shared")])
        entry_repo.create_many(second.id, [_entry("shared")])

        assert entry_repo.count_for_feed(first.id) == 1
        assert entry_repo.count_for_feed(second.id) == 1

    def test_most_recent_by_published_at(self, entry_repo, stored_feed):
        entry_repo.create_many(stored_feed.id, [_entry("old", hours_ago=5), _entry("new", hours_ago=0),
                                                _entry("mid", hours_ago=2)])

        recent = entry_repo.get_most_recent(stored_feed.id, 2)

        assert [entry.guid for entry in recent] == ["new", "mid"]

    def test_missing_thumbnails_require_url(self, entry_repo, stored_feed):
        entry_repo.create_many(stored_feed.id, [_entry("linked"), _entry("unlinked", url="")])

        missing = entry_repo.get_missing_thumbnails(10)

        assert [entry.guid for entry in missing] == ["linked"]

    def test_update_thumbnail_only_when_empty(self, entry_repo, stored_feed):
        entry, _ = entry_repo.create_if_absent(stored_feed.id, _entry("pic"))

        assert entry_repo.update_thumbnail(entry.id, "https://cdn.example.com/1.jpg")
        assert not entry_repo.update_thumbnail(entry.id, "https://cdn.example.com/2.jpg")
        assert entry_repo.get_by_id(entry.id).thumbnail_url == "https://cdn.example.com/1.jpg"

    def test_user_can_access(self, entry_repo, subscription_repo, stored_feed):
        entry, _ = entry_repo.create_if_absent(stored_feed.id, _entry("private"))
        subscription_repo.create_if_absent(1, stored_feed.id)

        assert entry_repo.user_can_access(1, entry.id)
        assert not entry_repo.user_can_access(2, entry.id)


class TestCategoryRepository:

    def test_sort_order_appends(self, category_repo):
        first = category_repo.create(1, "News")
        second = category_repo.create(1, "Tech")
        other_user = category_repo.create(2, "Misc")

        assert (first.sort_order, second.sort_order, other_user.sort_order) == (1, 2, 1)
        assert [c.name for c in category_repo.list_for_user(1)] == ["News", "Tech"]

    def test_scoped_to_owner(self, category_repo):
        category = category_repo.create(1, "News")

        assert category_repo.get(2, category.id) is None
        assert not category_repo.rename(2, category.id, "Stolen")
        assert not category_repo.delete(2, category.id)
        assert category_repo.get_by_name(1, "News").id == category.id
        assert category_repo.get_by_name(2, "News") is None

    def test_rename_keeps_color_unless_given(self, category_repo):
        category = category_repo.create(1, "News", color="#ff0000")

        category_repo.rename(1, category.id, "Headlines")
        assert category_repo.get(1, category.id).color == "#ff0000"

        category_repo.rename(1, category.id, "Headlines", color="#00ff00")
        assert category_repo.get(1, category.id).color == "#00ff00"

    def test_delete_uncategorizes_subscriptions(self, category_repo, subscription_repo, stored_feed):
        category = category_repo.create(1, "News")
        subscription_repo.create_if_absent(1, stored_feed.id, category.id)

        assert category_repo.delete(1, category.id)
        assert subscription_repo.get(1, stored_feed.id).category_id is None


class TestSubscriptionRepository:

    def test_create_if_absent_keeps_existing(self, subscription_repo, category_repo, stored_feed):
        category = category_repo.create(1, "News")
        subscription, created = subscription_repo.create_if_absent(1, stored_feed.id, category.id)
        again, created_again = subscription_repo.create_if_absent(1, stored_feed.id, None, is_active=False)

        assert created and not created_again
        assert again.id == subscription.id
        assert again.category_id == category.id
        assert again.is_active

    def test_following_matches_feed_or_site_url(self, subscription_repo, stored_feed):
        subscription_repo.create_if_absent(1, stored_feed.id)

        assert subscription_repo.is_following_url(1, stored_feed.feed_url)
        assert subscription_repo.is_following_url(1, stored_feed.url)
        assert not subscription_repo.is_following_url(2, stored_feed.feed_url)
        assert subscription_repo.get_subscribed_feed_urls(1) == {stored_feed.feed_url}

    def test_delete(self, subscription_repo, stored_feed):
        subscription_repo.create_if_absent(1, stored_feed.id)

        assert subscription_repo.delete(1, stored_feed.id)
        assert not subscription_repo.delete(1, stored_feed.id)
        assert subscription_repo.list_for_user(1) == []


class TestUserStateRepository:

    @pytest.fixture
    def entries(self, entry_repo, subscription_repo, stored_feed):
        entry_repo.create_many(stored_feed.id, [_entry(f"e{i}", hours_ago=i) for i in range(4)])
        subscription_repo.create_if_absent(1, stored_feed.id)
        return entry_repo.get_most_recent(stored_feed.id, 10)

    def test_entries_without_state_are_unread(self, user_state_repo, entries):
        assert user_state_repo.count_unread(1) == 4

    def test_seed_unread_is_idempotent_and_preserves_read(self, user_state_repo, entries):
        user_state_repo.mark_read(1, entries[0].id)

        seeded = user_state_repo.seed_unread(1, [entry.id for entry in entries])
        seeded_again = user_state_repo.seed_unread(1, [entry.id for entry in entries])

        assert seeded == 3
        assert seeded_again == 0
        assert user_state_repo.is_read(1, entries[0].id)
        assert user_state_repo.count_unread(1) == 3

    def test_mark_unread(self, user_state_repo, entries):
        assert not user_state_repo.mark_unread(1, entries[0].id)

        user_state_repo.mark_read(1, entries[0].id)
        assert user_state_repo.mark_unread(1, entries[0].id)
        assert not user_state_repo.is_read(1, entries[0].id)

    def test_mark_all_read(self, user_state_repo, entries, stored_feed):
        user_state_repo.mark_all_read(1)

        assert user_state_repo.count_unread(1) == 0
        # Another user's state is untouched
        assert not user_state_repo.is_read(2, entries[0].id)

    def test_unread_by_feed_ignores_inactive(self, user_state_repo, subscription_repo, feed_repo,
                                             entry_repo, make_canonical_feed, entries, stored_feed):
        paused, _ = feed_repo.upsert(make_canonical_feed(feed_url="https://paused.example.com/feed"))
        entry_repo.create_many(paused.id, [_entry("p1")])
        subscription_repo.create_if_absent(1, paused.id, is_active=False)

        counts = user_state_repo.count_unread_by_feed(1)

        assert [(count.feed_id, count.unread) for count in counts] == [(stored_feed.id, 4)]
        assert user_state_repo.count_unread(1) == 4

    def test_saved_items(self, user_state_repo, entries):
        assert user_state_repo.save_item(1, entries[1].id)
        assert not user_state_repo.save_item(1, entries[1].id)
        assert user_state_repo.is_saved(1, entries[1].id)
        assert [entry.id for entry in user_state_repo.list_saved(1)] == [entries[1].id]

        assert user_state_repo.unsave_item(1, entries[1].id)
        assert not user_state_repo.unsave_item(1, entries[1].id)

    def test_preferences(self, user_state_repo):
        assert user_state_repo.get_preference(1, "theme", "light") == "light"

        user_state_repo.set_preference(1, "theme", "dark")
        user_state_repo.set_preference(1, "theme", "solarized")

        assert user_state_repo.get_preference(1, "theme") == "solarized"
        assert user_state_repo.get_preference(2, "theme") is None
