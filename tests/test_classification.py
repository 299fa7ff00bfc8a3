"""
Tests for theme classifiers and the classification runner.
"""

import unittest
from unittest.mock import MagicMock

from cache.content_cache import ContentCache
from classification.base import best_match
from classification.keyword_classifier import KeywordClassifier
from classification.llm_classifier import LLMClassifier
from classification.runner import ClassificationOptions, ClassificationRunner
from common.errors import ConfigurationError, GenerationError
from models.entities import (
    Article, CandidateItem, Source, Theme, ThemeMatch, STATUS_FAILED, STATUS_PENDING, STATUS_PROCESSED,
)
from storage.sql_store import SQLStore

from fakes import FakeClassifier, FakeFetcher, TOPIC_ARTICLES, topic_themes


def match(name, score):
    return ThemeMatch(theme_id=f"theme-{name.lower()}", theme_name=name, relevance_score=score)


class TestBestMatch(unittest.TestCase):

    def test_highest_score_wins(self):
        self.assertEqual(best_match([match("A", 0.5), match("B", 0.8)], 0.4).theme_name, "B")

    def test_tie_goes_to_first_theme(self):
        self.assertEqual(best_match([match("A", 0.7), match("B", 0.7)], 0.4).theme_name, "A")

    def test_below_threshold(self):
        self.assertIsNone(best_match([match("A", 0.3)], 0.4))

    def test_lower_threshold_never_loses_a_match(self):
        scores = [match("A", 0.35), match("B", 0.55)]
        accepted = []
        for threshold in (0.9, 0.7, 0.5, 0.3, 0.1):
            accepted.append(best_match(scores, threshold) is not None)
        # Once accepted, every lower threshold also accepts
        self.assertEqual(accepted, sorted(accepted))


class TestKeywordClassifier(unittest.TestCase):

    def setUp(self):
        self.classifier = KeywordClassifier()
        self.themes = topic_themes()

    def article(self, title, text):
        return Article(id="x", url="https://example.com/x", title=title, cleaned_text=text)

    def test_matching_theme_scores_highest(self):
        title, text = TOPIC_ARTICLES["Chips"][0]
        result = self.classifier.classify(self.article(title, text), self.themes, 0.2)
        self.assertEqual(result.theme_name, "Chips")

    def test_unrelated_article_scores_zero(self):
        scores = self.classifier.scores_for(self.article("Weather", "Rain expected on Tuesday."), self.themes)
        self.assertTrue(all(s.relevance_score == 0.0 for s in scores))

    def test_scores_are_deterministic(self):
        title, text = TOPIC_ARTICLES["Gaming"][1]
        article = self.article(title, text)
        first = self.classifier.scores_for(article, self.themes)
        second = self.classifier.scores_for(article, self.themes)
        self.assertEqual(first, second)

    def test_scores_within_bounds(self):
        for entries in TOPIC_ARTICLES.values():
            for title, text in entries:
                for score in self.classifier.scores_for(self.article(title, text), self.themes):
                    self.assertGreaterEqual(score.relevance_score, 0.0)
                    self.assertLessEqual(score.relevance_score, 1.0)

    def test_disabled_themes_are_ignored(self):
        themes = topic_themes()
        themes[0].enabled = False
        title, text = TOPIC_ARTICLES["Chips"][0]
        result = self.classifier.classify(self.article(title, text), themes, 0.0)
        self.assertNotEqual(result.theme_name, "Chips")

    def test_cached_scores_are_reused(self):
        classifier = FakeClassifier(cache=ContentCache())
        article = self.article("Nvidia GPU", "chip news")
        classifier.scores_for(article, self.themes)
        classifier.scores_for(article, self.themes)
        self.assertEqual(classifier.calls, 1)


class TestLLMClassifier(unittest.TestCase):

    def setUp(self):
        self.generator = MagicMock()
        self.classifier = LLMClassifier(self.generator)
        self.themes = topic_themes()
        self.article = Article(id="x", url="https://example.com/x", title="Nvidia GPU", cleaned_text="chip")

    def test_theme_names_match_case_insensitively(self):
        self.generator.generate_structured.return_value = {
            "classifications": [
                {"theme_name": "chips", "relevance_score": 0.92, "reasoning": "About GPUs"},
                {"theme_name": "Gaming", "relevance_score": 0.2, "reasoning": "Passing mention"},
            ],
            "reader_intent": "skim",
        }
        scores = self.classifier.scores_for(self.article, self.themes)
        by_name = {s.theme_name: s for s in scores}
        self.assertEqual(by_name["Chips"].relevance_score, 0.92)
        self.assertEqual(by_name["Chips"].reader_intent, "skim")
        self.assertEqual(by_name["Elections"].relevance_score, 0.0)

    def test_scores_are_clamped(self):
        self.generator.generate_structured.return_value = {
            "classifications": [{"theme_name": "Chips", "relevance_score": 1.7, "reasoning": ""}],
            "reader_intent": "unknown",
        }
        scores = self.classifier.scores_for(self.article, self.themes)
        self.assertEqual(scores[0].relevance_score, 1.0)
        self.assertIsNone(scores[0].reader_intent)

    def test_malformed_response(self):
        self.generator.generate_structured.return_value = {"reader_intent": "read"}
        with self.assertRaises(GenerationError):
            self.classifier.scores_for(self.article, self.themes)


class TestClassificationRunner(unittest.TestCase):

    def setUp(self):
        self.store = SQLStore("sqlite://")
        for theme in topic_themes():
            self.store.add_theme(theme)
        self.source = self.store.add_source(Source(url="https://feeds.example.com/all.xml"))
        self.items = []
        bodies = {}
        for topic, entries in TOPIC_ARTICLES.items():
            for index, (title, text) in enumerate(entries):
                link = f"https://news.example.com/{topic.lower()}/{index}"
                self.items.append(CandidateItem(source_id=self.source.id, link=link, title=title))
                bodies[link] = text
        self.items.append(CandidateItem(source_id=self.source.id, link="https://news.example.com/weather",
                                        title="Rain on Tuesday"))
        bodies["https://news.example.com/weather"] = "Forecasters expect rain."
        self.store.add_candidate_items(self.items)
        self.fetcher = FakeFetcher(bodies=bodies)
        self.runner = ClassificationRunner(self.store, self.fetcher, FakeClassifier())

    def test_classifies_and_marks_processed(self):
        result = self.runner.run(ClassificationOptions(max_concurrency=4))
        self.assertEqual(result.articles_processed, 13)
        self.assertEqual(result.articles_classified, 12)
        self.assertEqual(result.articles_filtered, 1)
        self.assertEqual(dict(result.theme_distribution), {"Chips": 4, "Elections": 4, "Gaming": 4})
        self.assertEqual(self.store.list_candidate_items(status=STATUS_PENDING), [])
        self.assertEqual(len(self.store.list_candidate_items(status=STATUS_PROCESSED)), 13)

        article = self.store.get_article(result.accepted_ids[0])
        self.assertIsNotNone(article.theme_id)
        self.assertEqual(article.relevance_score, 0.9)

    def test_second_run_finds_nothing_pending(self):
        self.runner.run()
        result = self.runner.run()
        self.assertEqual(result.articles_processed, 0)

    def test_theme_filter_counts_would_have_matched(self):
        result = self.runner.run(ClassificationOptions(theme_filter="gaming"))
        self.assertEqual(result.articles_classified, 4)
        self.assertEqual(result.articles_theme_filtered, 8)
        self.assertEqual(dict(result.would_have_matched), {"Chips": 4, "Elections": 4})

    def test_unknown_theme_filter(self):
        with self.assertRaises(ConfigurationError):
            self.runner.run(ClassificationOptions(theme_filter="Sports"))

    def test_no_themes_configured(self):
        runner = ClassificationRunner(SQLStore("sqlite://"), self.fetcher, FakeClassifier())
        with self.assertRaises(ConfigurationError):
            runner.run()

    def test_fetch_failure_marks_item_failed(self):
        broken = self.items[0]
        del self.fetcher.bodies[broken.link]
        result = self.runner.run()
        self.assertEqual(result.articles_failed, 1)
        self.assertEqual(len(result.errors), 1)
        self.assertEqual(self.store.get_candidate_item(broken.id).status, STATUS_FAILED)

    def test_long_description_stands_in_for_body(self):
        item = CandidateItem(source_id=self.source.id, link="https://news.example.com/paywalled",
                             title="Paywalled", description="Nintendo console game news. " * 10)
        self.store.add_candidate_items([item])
        result = self.runner.run(items=[item])
        self.assertEqual(result.articles_classified, 1)
        self.assertEqual(self.store.get_article(item.id).theme_name, "Gaming")

    def test_classifier_error_is_isolated(self):
        classifier = MagicMock()
        classifier.classify.side_effect = GenerationError("model unavailable")
        runner = ClassificationRunner(self.store, self.fetcher, classifier)
        result = runner.run()
        self.assertEqual(result.articles_failed, 13)
        self.assertEqual(result.articles_classified, 0)


if __name__ == "__main__":
    unittest.main()
