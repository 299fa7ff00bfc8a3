"""
Tests for feed aggregation and source management.
"""

import unittest
from datetime import timedelta

from common.batch_processing import BatchContext
from common.errors import BatchCancelledError, FetchError
from content.base import FeedEntry
from models.entities import MANUAL_SOURCE_ID, utcnow
from reader.aggregator import AggregateOptions, Aggregator
from reader.sources import SourceManager, normalize_url
from storage.sql_store import SQLStore

from fakes import FakeFetcher


def entries(prefix, count, published=None):
    return [FeedEntry(link=f"https://{prefix}.example.com/{i}", title=f"{prefix} story {i}", published=published)
            for i in range(count)]


class TestAggregator(unittest.TestCase):

    def setUp(self):
        self.store = SQLStore("sqlite://")
        self.manager = SourceManager(self.store)
        self.feeds = {}
        for name in ("alpha", "beta", "gamma"):
            url = f"https://{name}.example.com/feed"
            self.manager.add_source(url)
            self.feeds[url] = entries(name, 4)
        self.fetcher = FakeFetcher(self.feeds)
        self.aggregator = Aggregator(self.store, self.fetcher)
        self.options = AggregateOptions(max_concurrency=4)

    def test_first_pass_stores_every_entry(self):
        result = self.aggregator.aggregate(self.options)
        self.assertEqual(result.feeds_fetched, 3)
        self.assertEqual(result.new_articles, 12)
        self.assertEqual(result.errors, [])
        self.assertEqual(len(self.store.list_candidate_items()), 12)

    def test_feed_title_is_stored_on_success(self):
        url = "https://alpha.example.com/feed"
        self.fetcher.titles[url] = "Alpha Daily"
        self.aggregator.aggregate(self.options)
        titles = {s.url: s.title for s in self.store.list_sources()}
        self.assertEqual(titles[url], "Alpha Daily")
        self.assertEqual(titles["https://beta.example.com/feed"], "")

    def test_second_pass_is_idempotent(self):
        """Test that unchanged feeds are skipped through their validators."""
        self.aggregator.aggregate(self.options)
        result = self.aggregator.aggregate(self.options)
        self.assertEqual(result.feeds_skipped, 3)
        self.assertEqual(result.feeds_fetched, 0)
        self.assertEqual(result.new_articles, 0)
        self.assertEqual(len(self.store.list_candidate_items()), 12)

    def test_changed_feed_only_adds_new_links(self):
        self.aggregator.aggregate(self.options)
        self.fetcher.etag = "v2"
        self.feeds["https://alpha.example.com/feed"].append(
            FeedEntry(link="https://alpha.example.com/new", title="alpha new"))
        result = self.aggregator.aggregate(self.options)
        self.assertEqual(result.new_articles, 1)
        self.assertEqual(result.duplicate_articles, 12)

    def test_failing_source_is_isolated(self):
        self.fetcher.feeds["https://beta.example.com/feed"] = FetchError("HTTP 500", status_code=500)
        result = self.aggregator.aggregate(self.options)
        self.assertEqual(result.feeds_fetched, 2)
        self.assertEqual(result.feeds_failed, 1)
        self.assertEqual(result.new_articles, 8)
        self.assertEqual(len(result.errors), 1)
        self.assertIn("beta", result.errors[0])

        beta = self.store.get_source_by_url("https://beta.example.com/feed")
        self.assertEqual(beta.error_count, 1)

        # A later successful fetch resets the error count
        self.fetcher.feeds["https://beta.example.com/feed"] = entries("beta", 2)
        self.aggregator.aggregate(self.options)
        self.assertEqual(self.store.get_source(beta.id).error_count, 0)

    def test_unexpected_worker_error_counts_as_failure(self):
        self.fetcher.feeds["https://gamma.example.com/feed"] = RuntimeError("parser crashed")
        result = self.aggregator.aggregate(self.options)
        self.assertEqual(result.feeds_failed, 1)
        self.assertEqual(result.sources_processed, 3)

    def test_old_entries_are_skipped(self):
        old = utcnow() - timedelta(days=5)
        self.fetcher.feeds["https://alpha.example.com/feed"] = entries("alpha", 3, published=old)
        result = self.aggregator.aggregate(self.options)
        self.assertEqual(result.new_articles, 8)

    def test_max_items_per_source(self):
        result = self.aggregator.aggregate(AggregateOptions(max_items_per_source=2))
        self.assertEqual(result.new_articles, 6)

    def test_inactive_sources_are_not_fetched(self):
        self.manager.set_active("https://gamma.example.com/feed", False)
        self.aggregator.aggregate(self.options)
        self.assertNotIn("https://gamma.example.com/feed", self.fetcher.calls)

    def test_cancellation_carries_partial_result(self):
        self.fetcher.delay = 0.3
        context = BatchContext(timeout=0.1)
        with self.assertRaises(BatchCancelledError) as raised:
            self.aggregator.aggregate(AggregateOptions(max_concurrency=1), context)
        partial = raised.exception.partial
        self.assertIsNotNone(partial)
        self.assertLess(partial.sources_processed, 3)

    def test_invalid_options(self):
        from common.errors import ConfigurationError
        with self.assertRaises(ConfigurationError):
            self.aggregator.aggregate(AggregateOptions(max_concurrency=0))


class TestSourceManager(unittest.TestCase):

    def setUp(self):
        self.store = SQLStore("sqlite://")
        self.manager = SourceManager(self.store)

    def test_normalize_url(self):
        self.assertEqual(normalize_url("HTTPS://Example.COM/feed/#top"), "https://example.com/feed")
        with self.assertRaises(ValueError):
            normalize_url("example.com/feed")

    def test_duplicate_source(self):
        first = self.manager.add_source("https://example.com/feed/")
        second = self.manager.add_source("https://EXAMPLE.com/feed")
        self.assertEqual(first.id, second.id)
        self.assertEqual(len(self.manager.list_sources()), 1)

    def test_remove_source(self):
        self.manager.add_source("https://example.com/feed")
        self.assertTrue(self.manager.remove_source("https://example.com/feed"))
        self.assertFalse(self.manager.remove_source("https://example.com/feed"))

    def test_manual_url_queued_once(self):
        item = self.manager.submit_manual_url("https://example.com/story")
        self.assertEqual(item.source_id, MANUAL_SOURCE_ID)
        self.assertIsNone(self.manager.submit_manual_url("https://example.com/story"))
        self.assertEqual(self.manager.feed_stats()['unprocessed'], 1)
        # The manual source is never fetched
        self.assertEqual(self.store.list_sources(active_only=True), [])

    def test_seed_default_themes(self):
        added = self.manager.seed_default_themes()
        self.assertEqual(added, 5)
        self.assertEqual(self.manager.seed_default_themes(), 0)
        self.assertIsNotNone(self.store.get_theme_by_name("GenAI"))


if __name__ == "__main__":
    unittest.main()
