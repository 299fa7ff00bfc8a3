"""
Tests for the memory, tiered and content caches.
"""

import shutil
import tempfile
import unittest

from cache.content_cache import ContentCache, theme_set_fingerprint
from cache.memory_cache import MemoryCache
from cache.tiered_cache import TieredCache
from models.entities import ArticleSummary, Theme, ThemeMatch


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class TestMemoryCache(unittest.TestCase):

    def setUp(self):
        self.clock = FakeClock()
        self.cache = MemoryCache(clock=self.clock)

    def test_missing_key(self):
        self.assertEqual(self.cache.get("nope", 60), (None, False))

    def test_hit_within_max_age(self):
        self.cache.put("k", "v")
        self.clock.advance(59)
        self.assertEqual(self.cache.get("k", 60), ("v", True))

    def test_expired_entry_reports_not_found(self):
        self.cache.put("k", "v")
        self.clock.advance(61)
        self.assertEqual(self.cache.get("k", 60), (None, False))

    def test_lookup_does_not_evict(self):
        """Test that an expired lookup leaves the entry for a more lenient caller."""
        self.cache.put("k", "v")
        self.clock.advance(120)
        self.cache.get("k", 60)
        self.assertIn("k", self.cache)
        self.assertEqual(self.cache.get("k", 300), ("v", True))
        self.assertEqual(self.cache.get("k"), ("v", True))

    def test_put_refreshes_write_time(self):
        self.cache.put("k", "old")
        self.clock.advance(100)
        self.cache.put("k", "new")
        self.assertEqual(self.cache.get("k", 60), ("new", True))

    def test_stats(self):
        self.cache.put("k", "v")
        self.cache.get("k", 60)
        self.cache.get("x", 60)
        stats = self.cache.get_stats()
        self.assertEqual(stats['hits'], 1)
        self.assertEqual(stats['misses'], 1)
        self.assertEqual(stats['size'], 1)


class TestTieredCache(unittest.TestCase):

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.clock = FakeClock()

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def test_survives_restart(self):
        """Test that a new instance reads entries written by a previous one."""
        TieredCache(self.temp_dir, clock=self.clock).put("k", {"a": 1})
        reopened = TieredCache(self.temp_dir, clock=self.clock)
        self.assertEqual(reopened.get("k", 60), ({"a": 1}, True))

    def test_disk_entry_keeps_original_age(self):
        TieredCache(self.temp_dir, clock=self.clock).put("k", "v")
        self.clock.advance(120)
        reopened = TieredCache(self.temp_dir, clock=self.clock)
        self.assertEqual(reopened.get("k", 60), (None, False))
        self.assertEqual(reopened.get("k", 600), ("v", True))

    def test_clear_removes_disk_entries(self):
        cache = TieredCache(self.temp_dir, clock=self.clock)
        cache.put("k", "v")
        cache.clear()
        self.assertEqual(TieredCache(self.temp_dir, clock=self.clock).get("k"), (None, False))


class TestContentCache(unittest.TestCase):

    def setUp(self):
        self.clock = FakeClock()
        self.cache = ContentCache(MemoryCache(clock=self.clock), article_ttl=3600, summary_ttl=7200)

    def test_empty_backend_is_kept(self):
        backend = MemoryCache()
        self.assertEqual(len(backend), 0)
        self.assertIs(ContentCache(backend).backend, backend)

    def test_article_body_ttl(self):
        self.cache.put_article_body("https://a.example/1", "body")
        self.assertEqual(self.cache.get_article_body("https://a.example/1"), "body")
        self.clock.advance(3601)
        self.assertIsNone(self.cache.get_article_body("https://a.example/1"))

    def test_summary_keyed_by_content_hash(self):
        """Test that changed content misses the cached summary."""
        summary = ArticleSummary(article_id="a", summary="short")
        self.cache.put_summary("https://a.example/1", "hash-1", summary)
        self.assertEqual(self.cache.get_summary("https://a.example/1", "hash-1"), summary)
        self.assertIsNone(self.cache.get_summary("https://a.example/1", "hash-2"))

    def test_theme_scores_keyed_by_theme_set(self):
        themes = [Theme(name="AI", keywords=["ai"])]
        scores = [ThemeMatch(theme_id=themes[0].id, theme_name="AI", relevance_score=0.5)]
        self.cache.put_theme_scores("h", themes, scores)
        self.assertEqual(self.cache.get_theme_scores("h", themes), scores)
        changed = [Theme(name="AI", keywords=["ai", "llm"])]
        self.assertIsNone(self.cache.get_theme_scores("h", changed))

    def test_fingerprint_ignores_theme_order(self):
        a = Theme(name="A", keywords=["x"])
        b = Theme(name="B", keywords=["y"])
        self.assertEqual(theme_set_fingerprint([a, b]), theme_set_fingerprint([b, a]))


if __name__ == "__main__":
    unittest.main()
