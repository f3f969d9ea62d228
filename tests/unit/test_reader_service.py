"""
Tests for Reader Service
========================

User-scoped operations: following feeds, categories, read state, saved
items, preferences and OPML uploads.
"""

from datetime import datetime, timedelta, timezone

import pytest

from feedtrak.ingestion.opml_importer import ImportSummary
from feedtrak.jobs.queue import FETCH_FEED
from feedtrak.services import ReaderService, format_import_message
from feedtrak.services.reader_service import ALREADY_SUBSCRIBED_MESSAGE, FEED_PROCESSING_MESSAGE
from feedtrak.utils.exceptions import AccessDeniedError, ErrorCode, FeedTrakError, ValidationError

USER = 1
OTHER = 2


@pytest.fixture
def service(db_connection, job_queue, test_settings, discovery):
    return ReaderService(db_connection, job_queue, settings=test_settings, discovery=discovery)


@pytest.fixture
def followed(feed_repo, entry_repo, subscription_repo, make_canonical_feed):
    """A feed with three entries that USER follows, last fetched two hours ago."""
    canonical = make_canonical_feed(entry_count=3)
    feed, _ = feed_repo.upsert(canonical, fetched_at=datetime.now(timezone.utc) - timedelta(hours=2))
    entry_repo.create_many(feed.id, canonical.entries)
    subscription_repo.create_if_absent(USER, feed.id, None)
    return feed


def entry_ids(entry_repo, feed):
    return [entry.id for entry in entry_repo.get_most_recent(feed.id, 10)]


class TestAddFeed:

    def test_queues_fetch_with_user_and_category(self, service, job_queue, category_repo):
        category = category_repo.create(USER, "News")

        message = service.add_feed(USER, "  https://news.example.com/  ", category.id)

        assert message == FEED_PROCESSING_MESSAGE
        record = job_queue.pending()[0]
        assert record.spec.kind == FETCH_FEED
        assert record.spec.payload == {
            "feed_url": "https://news.example.com/",
            "user_id": USER,
            "category_id": category.id,
        }

    def test_duplicate_by_feed_url(self, service, followed, job_queue):
        with pytest.raises(ValidationError) as excinfo:
            service.add_feed(USER, followed.feed_url)

        assert excinfo.value.error_code == ErrorCode.VALIDATION_DUPLICATE
        assert excinfo.value.user_message == ALREADY_SUBSCRIBED_MESSAGE
        assert job_queue.pending_count() == 0

    def test_duplicate_by_site_url(self, service, followed):
        with pytest.raises(ValidationError):
            service.add_feed(USER, "https://example.com/")

    def test_other_user_may_follow_same_feed(self, service, followed, job_queue):
        assert service.add_feed(OTHER, followed.feed_url) == FEED_PROCESSING_MESSAGE
        assert job_queue.pending_count() == 1

    def test_foreign_category(self, service, category_repo):
        foreign = category_repo.create(OTHER, "Theirs")

        with pytest.raises(AccessDeniedError):
            service.add_feed(USER, "https://news.example.com/", foreign.id)

    @pytest.mark.parametrize("url", ["", "ftp://e.com/feed", "https://", "not a url"])
    def test_invalid_url(self, service, url):
        with pytest.raises(ValidationError):
            service.add_feed(USER, url)


class TestFeedManagement:

    def test_remove_feed(self, service, followed, subscription_repo):
        assert service.remove_feed(USER, followed.id) == "Feed removed successfully."
        assert subscription_repo.get(USER, followed.id) is None

    def test_remove_unfollowed_feed(self, service, followed):
        with pytest.raises(FeedTrakError) as excinfo:
            service.remove_feed(OTHER, followed.id)

        assert excinfo.value.error_code == ErrorCode.RESOURCE_NOT_FOUND
        assert excinfo.value.user_message == "Feed not found"

    def test_set_feed_category(self, service, followed, category_repo, subscription_repo):
        category = category_repo.create(USER, "Reading")

        assert service.set_feed_category(USER, followed.id, category.id) == "Feed category updated successfully."
        assert subscription_repo.get(USER, followed.id).category_id == category.id

        service.set_feed_category(USER, followed.id, None)
        assert subscription_repo.get(USER, followed.id).category_id is None

    def test_set_foreign_category(self, service, followed, category_repo):
        foreign = category_repo.create(OTHER, "Theirs")
        with pytest.raises(AccessDeniedError):
            service.set_feed_category(USER, followed.id, foreign.id)

    def test_refresh_feed(self, service, followed, job_queue):
        assert service.refresh_feed(USER, followed.id) == "Feed refresh has been queued."
        assert job_queue.pending()[0].spec.payload == {"feed_url": followed.feed_url}

    def test_refresh_all_message(self, service, followed, feed_repo):
        queued, skipped, message = service.refresh_all(USER)
        assert (queued, skipped) == (1, 0)
        assert message == "Queued 1 feed(s) for refresh."

        feed_repo.touch_last_fetched(followed.id)
        queued, skipped, message = service.refresh_all(USER)
        assert (queued, skipped) == (0, 1)
        assert message == "Queued 0 feed(s) for refresh. Skipped 1 recently updated feed(s)."

    def test_dashboard_load_refreshes_stale_feeds(self, service, followed, job_queue):
        assert service.on_dashboard_load(USER) == 1
        assert service.on_dashboard_load(OTHER) == 0


class TestCategories:

    def test_crud(self, service):
        created = service.create_category(USER, "  Science ")
        assert created.name == "Science"
        assert [c.name for c in service.list_categories(USER)] == ["Science"]

        assert service.rename_category(USER, created.id, "Physics", "#ff0000") == "Category updated successfully."
        renamed = service.list_categories(USER)[0]
        assert (renamed.name, renamed.color) == ("Physics", "#ff0000")

        assert service.delete_category(USER, created.id) == "Category deleted successfully."
        assert service.list_categories(USER) == []

    def test_blank_name(self, service):
        with pytest.raises(ValidationError):
            service.create_category(USER, "   ")

    def test_foreign_category_cannot_be_changed(self, service):
        theirs = service.create_category(OTHER, "Private")

        with pytest.raises(AccessDeniedError):
            service.rename_category(USER, theirs.id, "Mine")
        with pytest.raises(AccessDeniedError):
            service.delete_category(USER, theirs.id)
        assert service.list_categories(OTHER)[0].name == "Private"


class TestReadState:

    def test_mark_read_and_unread(self, service, followed, entry_repo, user_state_repo):
        first = entry_ids(entry_repo, followed)[0]

        service.mark_read(USER, first)
        assert user_state_repo.is_read(USER, first)

        assert service.mark_unread(USER, first) is True
        assert not user_state_repo.is_read(USER, first)

    def test_mark_unread_without_state_is_noop(self, service, followed, entry_repo):
        assert service.mark_unread(USER, entry_ids(entry_repo, followed)[0]) is False

    def test_mark_read_requires_subscription(self, service, followed, entry_repo):
        with pytest.raises(AccessDeniedError):
            service.mark_read(OTHER, entry_ids(entry_repo, followed)[0])

    def test_unread_counts(self, service, followed, entry_repo):
        assert service.count_unread(USER) == 3

        service.mark_read(USER, entry_ids(entry_repo, followed)[0])

        assert service.count_unread(USER) == 2
        counts = service.unread_by_feed(USER)
        assert [(c.feed_id, c.unread) for c in counts] == [(followed.id, 2)]

    def test_mark_feed_and_all_read(self, service, followed):
        assert service.mark_feed_read(USER, followed.id) == "All items marked as read."
        assert service.count_unread(USER) == 0

        assert service.mark_all_read(USER) == "All items marked as read."

    def test_mark_feed_read_requires_subscription(self, service, followed):
        with pytest.raises(FeedTrakError):
            service.mark_feed_read(OTHER, followed.id)


class TestSavedItems:

    def test_save_and_unsave(self, service, followed, entry_repo):
        entry_id = entry_ids(entry_repo, followed)[0]

        assert service.save_entry(USER, entry_id) is True
        assert service.save_entry(USER, entry_id) is False
        assert [entry.id for entry in service.list_saved(USER)] == [entry_id]

        assert service.unsave_entry(USER, entry_id) is True
        assert service.unsave_entry(USER, entry_id) is False
        assert service.list_saved(USER) == []

    def test_save_requires_subscription(self, service, followed, entry_repo):
        with pytest.raises(AccessDeniedError):
            service.save_entry(OTHER, entry_ids(entry_repo, followed)[0])


class TestPreferences:

    def test_round_trip_and_default(self, service):
        assert service.get_preference(USER, "theme", "light") == "light"

        service.set_preference(USER, " theme ", "dark")

        assert service.get_preference(USER, "theme") == "dark"
        assert service.get_preference(OTHER, "theme") is None

    def test_key_required(self, service):
        with pytest.raises(ValidationError) as excinfo:
            service.set_preference(USER, "  ", "x")
        assert excinfo.value.error_code == ErrorCode.VALIDATION_REQUIRED_FIELD


class TestOpmlUpload:

    def test_rejects_extension(self, service):
        result = service.import_opml_upload(USER, "feeds.txt", b"<opml/>")
        assert not result.ok
        assert result.message == "File must be one of: .xml, .opml"

    def test_rejects_empty_file(self, service):
        result = service.import_opml_upload(USER, "feeds.opml", b"  \n ")
        assert not result.ok
        assert result.message == "The uploaded file is empty"

    def test_structural_error(self, service):
        result = service.import_opml_upload(USER, "feeds.opml", b"<opml><head/></opml>")
        assert not result.ok
        assert result.message == "Invalid OPML: missing body element"

    def test_success_message(self, service, canned_session, rss_document, atom_document, opml_document):
        canned_session.add("https://alpha.example.com/feed.xml", rss_document(1))
        canned_session.add("https://gamma.example.com/atom.xml", atom_document)

        result = service.import_opml_upload(USER, "Subscriptions.OPML", opml_document)

        assert result.ok
        assert result.summary.feeds_imported == 2
        assert result.message == (
            "Import completed: 2 feeds imported, 1 categories created. "
            "Some errors occurred: Could not fetch feed: Beta"
        )


class TestFormatImportMessage:

    def test_clean_import(self):
        summary = ImportSummary(categories_created=2, feeds_imported=5)
        assert format_import_message(summary) == "Import completed: 5 feeds imported, 2 categories created"

    def test_skipped_feeds(self):
        summary = ImportSummary(feeds_imported=1, feeds_skipped=4)
        assert format_import_message(summary) == (
            "Import completed: 1 feeds imported, 0 categories created, "
            "4 feeds skipped (already subscribed)"
        )

    def test_only_three_errors_are_listed(self):
        summary = ImportSummary(errors=["e1", "e2", "e3", "e4", "e5"])
        assert format_import_message(summary) == (
            "Import completed: 0 feeds imported, 0 categories created. "
            "Some errors occurred: e1; e2; e3 and 2 more errors"
        )
