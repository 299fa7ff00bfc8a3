"""
Tests for the SQLAlchemy store using an in-memory sqlite database.
"""

import unittest
from datetime import timedelta

from models.entities import (
    Article, ArticleGroup, CandidateItem, Citation, Digest, DigestContent, KeyMoment, Source, Theme,
    STATUS_FAILED, STATUS_PENDING, STATUS_PROCESSED, utcnow,
)
from storage.sql_store import SQLStore


class TestSQLStore(unittest.TestCase):

    def setUp(self):
        self.store = SQLStore("sqlite://")
        self.source = self.store.add_source(Source(url="https://feeds.example.com/tech.xml", title="Tech"))

    def test_ping(self):
        self.store.ping()

    def test_source_url_is_unique(self):
        again = self.store.add_source(Source(url="https://feeds.example.com/tech.xml", title="Other"))
        self.assertEqual(again.id, self.source.id)
        self.assertEqual(len(self.store.list_sources()), 1)

    def test_fetch_bookkeeping(self):
        self.store.record_fetch_error(self.source.id, "timeout")
        self.store.record_fetch_error(self.source.id, "timeout")
        self.assertEqual(self.store.get_source(self.source.id).error_count, 2)

        fetched_at = utcnow()
        self.store.record_fetch_success(self.source.id, "Sun, 18 Oct 2026 10:00:00 GMT", '"abc"', fetched_at)
        source = self.store.get_source(self.source.id)
        self.assertEqual(source.error_count, 0)
        self.assertIsNone(source.last_error)
        self.assertEqual(source.etag, '"abc"')
        self.assertEqual(source.last_fetched.replace(microsecond=0), fetched_at.replace(microsecond=0))
        self.assertIsNotNone(source.last_fetched.tzinfo)

    def test_feed_metadata_fills_empty_fields_only(self):
        self.store.record_fetch_success(self.source.id, None, None, utcnow(),
                                        title="Tech Feed", description="Daily tech news")
        source = self.store.get_source(self.source.id)
        self.assertEqual(source.title, "Tech")
        self.assertEqual(source.description, "Daily tech news")

    def test_active_filter(self):
        other = self.store.add_source(Source(url="https://feeds.example.com/games.xml"))
        self.store.set_source_active(other.id, False)
        self.assertEqual([s.id for s in self.store.list_sources(active_only=True)], [self.source.id])

    def test_candidate_items_dedupe_on_link(self):
        items = [CandidateItem(source_id=self.source.id, link=f"https://example.com/{i}") for i in range(3)]
        self.assertEqual(self.store.add_candidate_items(items), (3, 0))
        again = items + [CandidateItem(source_id=self.source.id, link="https://example.com/new")]
        self.assertEqual(self.store.add_candidate_items(again), (1, 3))

    def test_processed_items_are_final(self):
        item = CandidateItem(source_id=self.source.id, link="https://example.com/a")
        self.store.add_candidate_items([item])
        self.assertTrue(self.store.set_item_status(item.id, STATUS_PROCESSED))
        self.assertFalse(self.store.set_item_status(item.id, STATUS_PENDING))
        self.assertTrue(self.store.get_candidate_item(item.id).processed)

    def test_item_stats(self):
        items = [CandidateItem(source_id=self.source.id, link=f"https://example.com/{i}") for i in range(3)]
        self.store.add_candidate_items(items)
        self.store.set_item_status(items[0].id, STATUS_PROCESSED)
        self.store.set_item_status(items[1].id, STATUS_FAILED)
        stats = self.store.item_stats()
        self.assertEqual(stats['total'], 3)
        self.assertEqual(stats['processed'], 1)
        self.assertEqual(stats['unprocessed'], 2)
        self.assertEqual(len(self.store.list_candidate_items(status=STATUS_PENDING)), 1)

    def test_list_items_by_date_range(self):
        now = utcnow()
        old = CandidateItem(source_id=self.source.id, link="https://example.com/old",
                            date_discovered=now - timedelta(days=3))
        new = CandidateItem(source_id=self.source.id, link="https://example.com/new", date_discovered=now)
        self.store.add_candidate_items([old, new])
        recent = self.store.list_candidate_items(since=now - timedelta(days=1))
        self.assertEqual([i.id for i in recent], [new.id])

    def test_article_embedding_round_trip(self):
        article = Article(id="a1", url="https://example.com/a1", title="A", cleaned_text="text")
        self.store.save_article(article)
        article.set_embedding([0.1, 0.2])
        self.store.update_article_embedding(article.id, article.embedding, article.embedding_hash)
        self.store.update_cluster_labels({"a1": "Topic"})
        loaded = self.store.get_article("a1")
        self.assertEqual(loaded.embedding, [0.1, 0.2])
        self.assertFalse(loaded.needs_embedding)
        self.assertEqual(loaded.cluster_label, "Topic")

    def test_themes(self):
        self.store.add_theme(Theme(name="AI", keywords=["ai"]))
        self.store.add_theme(Theme(name="ai"))
        themes = self.store.list_themes()
        self.assertEqual(len(themes), 1)
        self.store.set_theme_enabled(themes[0].id, False)
        self.assertEqual(self.store.list_themes(), [])
        self.assertEqual(len(self.store.list_themes(enabled_only=False)), 1)

    def test_digest_is_immutable_and_keeps_citations(self):
        digest = Digest(
            content=DigestContent(title="Digest", tldr_summary="Short", executive_summary="Body [1] [2].",
                                  key_moments=[KeyMoment(quote="Quote", citation_number=1)]),
            article_groups=[ArticleGroup(label="Topic", article_ids=["a1", "a2"])],
            citations=[Citation(number=1, article_id="a1", url="https://example.com/a1"),
                       Citation(number=2, article_id="a2", url="https://example.com/a2")],
        )
        self.store.save_digest(digest)
        with self.assertRaises(ValueError):
            self.store.save_digest(digest)

        loaded = self.store.get_digest(digest.id)
        self.assertEqual(loaded.article_count, 2)
        self.assertEqual(loaded.key_moments[0].citation_number, 1)
        self.assertEqual([c.number for c in self.store.list_citations(digest.id)], [1, 2])
        self.assertEqual(len(self.store.list_digests()), 1)


if __name__ == "__main__":
    unittest.main()
