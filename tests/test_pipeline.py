"""
End-to-end tests for the digest pipeline over in-memory services.
"""

import unittest

from classification.runner import ClassificationOptions
from common.batch_processing import BatchContext
from common.config import PipelineConfig
from common.errors import BatchCancelledError, ConfigurationError
from content.base import FeedEntry
from reader.aggregator import AggregateOptions
from reader.base_reader import DigestReader, PipelineResult
from reader.sources import SourceManager
from storage.sql_store import SQLStore
from summarization.critique import CritiqueConfig, CritiqueState

from fakes import TOPIC_ARTICLES, FakeClassifier, FakeEmbedder, FakeFetcher, FakeGenerator, topic_themes


def feed_url(topic):
    return f"https://{topic.lower()}.example.com/feed"


def article_url(topic, index):
    return f"https://news.example.com/{topic.lower()}/{index}"


class PipelineTestCase(unittest.TestCase):

    def setUp(self):
        self.store = SQLStore("sqlite://")
        manager = SourceManager(self.store)
        feeds, bodies = {}, {}
        self.topic_of = {}
        for topic, entries in TOPIC_ARTICLES.items():
            manager.add_source(feed_url(topic))
            feeds[feed_url(topic)] = []
            for index, (title, text) in enumerate(entries):
                url = article_url(topic, index)
                feeds[feed_url(topic)].append(FeedEntry(link=url, title=title))
                bodies[url] = text
                self.topic_of[url] = topic
        for theme in topic_themes():
            self.store.add_theme(theme)
        self.fetcher = FakeFetcher(feeds, bodies)
        self.config = PipelineConfig(
            database_url="sqlite://",
            aggregate=AggregateOptions(max_concurrency=4),
            classification=ClassificationOptions(max_concurrency=4),
            critique=CritiqueConfig(max_rounds=2),
        )

    def reader(self, generator=None, embedder=None):
        return DigestReader(
            store=self.store,
            fetcher=self.fetcher,
            classifier=FakeClassifier(),
            embedder=embedder or FakeEmbedder(),
            generator=generator,
            config=self.config,
        )


class TestPipeline(PipelineTestCase):

    def test_full_pass_produces_graded_digest(self):
        result = self.reader(FakeGenerator(skip_in_draft=2)).run()

        self.assertEqual(result.stage, "done")
        self.assertEqual(result.aggregate.new_articles, 12)
        self.assertEqual(result.classification.articles_classified, 12)
        self.assertEqual(len(result.clusters), 3)
        for cluster in result.clusters:
            articles = [self.store.get_article(aid) for aid in cluster.article_ids]
            self.assertEqual(len({self.topic_of[a.url] for a in articles}), 1)

        self.assertEqual(result.digest.article_count, 12)
        self.assertEqual(result.critique.state, CritiqueState.DONE)
        self.assertGreaterEqual(result.critique.rounds, 1)
        self.assertGreaterEqual(result.quality.coverage, 0.8)
        self.assertIsNotNone(result.coherence)
        self.assertEqual(result.errors, [])
        for stage in ("aggregate", "classify", "summarize", "embed", "cluster", "synthesize", "evaluate"):
            self.assertIn(stage, result.timings)

        stored = self.store.get_digest(result.digest.id)
        self.assertEqual(stored.title, result.digest.title)
        self.assertEqual(len(self.store.list_citations(result.digest.id)), 12)

    def test_embeddings_and_labels_are_persisted(self):
        result = self.reader(FakeGenerator()).run()
        for cluster in result.clusters:
            for article_id in cluster.article_ids:
                article = self.store.get_article(article_id)
                self.assertIsNotNone(article.embedding)
                self.assertEqual(article.cluster_label, cluster.label)

    def test_second_pass_without_new_items_makes_no_digest(self):
        reader = self.reader(FakeGenerator())
        reader.run()
        result = reader.run()
        self.assertEqual(result.aggregate.feeds_skipped, 3)
        self.assertIsNone(result.digest)
        self.assertEqual(len(self.store.list_digests()), 1)

    def test_generation_outage_still_yields_digest(self):
        generator = FakeGenerator(fail_tasks={"article_summary", "cluster_narrative", "digest", "critique"})
        result = self.reader(generator).run()
        self.assertTrue(result.digest.content.templated)
        self.assertIsNone(result.critique)
        self.assertEqual(result.quality.coverage, 1.0)
        self.assertTrue(result.errors)
        self.assertIsNotNone(self.store.get_digest(result.digest.id))

    def test_summaries_use_their_own_model(self):
        class ModelRecordingGenerator(FakeGenerator):
            def __init__(self):
                super().__init__()
                self.models = {}

            def generate_structured(self, prompt, schema, options=None):
                with self.lock:
                    self.models.setdefault(options.task, set()).add(options.model)
                return super().generate_structured(prompt, schema, options)

        generator = ModelRecordingGenerator()
        self.reader(generator).run()
        self.assertEqual(generator.models["article_summary"], {None})
        self.assertEqual(generator.models["digest"], {"sonnet"})

        self.config.summary_model = "haiku"
        self.assertEqual(self.reader(FakeGenerator()).summarizer.model, "haiku")

    def test_without_generator_digest_is_templated(self):
        result = self.reader().run()
        self.assertEqual(result.stage, "done")
        self.assertTrue(result.digest.content.templated)
        self.assertEqual(result.digest.article_count, 12)

    def test_embedding_failure_clusters_by_theme(self):
        result = self.reader(FakeGenerator(), FakeEmbedder(fail=True)).run()
        self.assertEqual(sorted(c.label for c in result.clusters), ["Chips", "Elections", "Gaming"])
        self.assertIsNone(result.coherence)
        self.assertTrue(any(e.startswith("embedding") for e in result.errors))
        self.assertEqual(result.digest.article_count, 12)

    def test_only_relevant_articles_reach_the_digest(self):
        self.fetcher.feeds[feed_url("Chips")].append(
            FeedEntry(link="https://news.example.com/misc/0", title="Local bakery opens"))
        self.fetcher.bodies["https://news.example.com/misc/0"] = "A bakery opened downtown on Main Street."
        result = self.reader(FakeGenerator()).run()
        self.assertEqual(result.classification.articles_filtered, 1)
        self.assertEqual(result.digest.article_count, 12)

    def test_no_themes_is_a_configuration_error(self):
        for theme in self.store.list_themes():
            self.store.set_theme_enabled(theme.id, False)
        with self.assertRaises(ConfigurationError):
            self.reader().run()

    def test_cancelled_run_reports_partial_result(self):
        context = BatchContext()
        context.cancel("shutdown")
        with self.assertRaises(BatchCancelledError) as raised:
            self.reader().run(context)
        partial = raised.exception.partial
        self.assertIsInstance(partial, PipelineResult)
        self.assertEqual(partial.stage, "aggregate")
        self.assertIsNotNone(partial.aggregate)
        self.assertIn("cancelled during aggregate", partial.errors[-1])


class TestThemeClusters(unittest.TestCase):

    def test_unthemed_articles_group_under_other(self):
        from models.entities import Article
        articles = [
            Article(id="a", url="https://e.com/a", title="A", theme_name="Chips"),
            Article(id="b", url="https://e.com/b", title="B"),
            Article(id="c", url="https://e.com/c", title="C", theme_name="Chips"),
        ]
        clusters = DigestReader.theme_clusters(articles)
        self.assertEqual([c.label for c in clusters], ["Chips", "Other"])
        self.assertEqual(clusters[0].article_ids, ["a", "c"])
        self.assertIsNone(clusters[1].theme_name)
        self.assertEqual(articles[1].cluster_label, "Other")


if __name__ == "__main__":
    unittest.main()
