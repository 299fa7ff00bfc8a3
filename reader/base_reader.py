"""Pipeline orchestrator: one pass from feeds to a graded, stored digest."""

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from cache.content_cache import ContentCache
from classification.base import Classifier
from classification.keyword_classifier import KeywordClassifier
from classification.llm_classifier import LLMClassifier
from classification.runner import ClassificationOptions, ClassificationResult, ClassificationRunner
from clustering.base import TopicClusterer
from clustering.coherence import CoherenceMetrics, cluster_coherence
from common.batch_processing import BatchContext, BatchProcessor
from common.config import PipelineConfig
from common.errors import ApplicationError, BatchCancelledError
from common.logging import StructuredLogger
from common.performance import StageTimer, track_performance
from content.base import Fetcher
from content.fetcher import HTTPFetcher
from embedding.base import Embedder, embedding_text
from models.entities import Article, ArticleSummary, Digest, TopicCluster
from quality.evaluator import QualityEvaluator, QualityMetrics
from reader.aggregator import AggregateResult, Aggregator
from storage.base import Store
from summarization.article_summarizer import ArticleSummarizer
from summarization.base import Generator
from summarization.critique import CritiqueOutcome
from summarization.narrative import NarrativeSynthesizer

logger = logging.getLogger(__name__)

UNTHEMED_LABEL = "Other"


@dataclass
class PipelineResult:
    """Everything one pass produced, including partial results and errors."""
    aggregate: Optional[AggregateResult] = None
    classification: Optional[ClassificationResult] = None
    clusters: List[TopicCluster] = field(default_factory=list)
    coherence: Optional[CoherenceMetrics] = None
    critique: Optional[CritiqueOutcome] = None
    digest: Optional[Digest] = None
    quality: Optional[QualityMetrics] = None
    timings: Dict[str, float] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)
    stage: str = "start"

    def summary(self) -> str:
        parts = []
        if self.aggregate is not None:
            parts.append(f"aggregate[{self.aggregate.summary()}]")
        if self.classification is not None:
            parts.append(f"classify[{self.classification.summary()}]")
        if self.clusters:
            parts.append(f"clusters={len(self.clusters)}")
        if self.digest is not None:
            parts.append(f"digest='{self.digest.title}' articles={self.digest.article_count}")
        if self.quality is not None:
            parts.append(f"grade={self.quality.grade} coverage={self.quality.coverage:.2f}")
        parts.append(f"errors={len(self.errors)}")
        return " ".join(parts)


class DigestReader:
    """
    Runs aggregate -> classify -> summarize -> embed -> cluster -> synthesize
    -> evaluate and stores the resulting digest.

    Per-item and generation failures are collected in `PipelineResult.errors`;
    only configuration errors and cancellation escape `run`.
    """

    def __init__(self, store: Store, fetcher: Fetcher, classifier: Classifier, embedder: Embedder,
                 generator: Optional[Generator] = None, config: Optional[PipelineConfig] = None,
                 cache: Optional[ContentCache] = None, evaluator: Optional[QualityEvaluator] = None):
        self.config = config or PipelineConfig()
        self.store = store
        self.fetcher = fetcher
        self.embedder = embedder
        self.cache = cache if cache is not None else ContentCache()
        self.evaluator = evaluator or QualityEvaluator(self.config.quality)
        self.aggregator = Aggregator(store, fetcher)
        self.runner = ClassificationRunner(store, fetcher, classifier, self.cache)
        self.summarizer = ArticleSummarizer(generator, self.cache, model=self.config.summary_model)
        self.clusterer = TopicClusterer(self.config.clustering)
        self.synthesizer = NarrativeSynthesizer(
            generator,
            critique_config=self.config.critique,
            evaluator=self.evaluator,
            model=self.config.digest_model,
        )
        self.logger = StructuredLogger(__name__, stage="pipeline")

    @classmethod
    def from_config(cls, config: PipelineConfig, store: Store) -> "DigestReader":
        """Wire the production components: HTTP fetcher, Anthropic generator, sentence-transformers embedder."""
        # Imported here so tests can build a reader without loading torch
        from embedding.sentence_embedder import SentenceTransformerEmbedder
        from summarization.base import AnthropicGenerator

        cache = ContentCache.from_config(config.cache)
        generator = None
        if config.anthropic_api_key:
            generator = AnthropicGenerator(api_key=config.anthropic_api_key)
            classifier = LLMClassifier(generator, cache=cache, model=config.classifier_model)
        else:
            logger.warning("No ANTHROPIC_API_KEY; using keyword classification and templated narratives")
            classifier = KeywordClassifier(cache=cache)
        return cls(
            store=store,
            fetcher=HTTPFetcher(),
            classifier=classifier,
            embedder=SentenceTransformerEmbedder(config.embedding_model),
            generator=generator,
            config=config,
            cache=cache,
        )

    @track_performance(name="pipeline")
    def run(self, context: Optional[BatchContext] = None) -> PipelineResult:
        """
        Run one full pass.

        Raises:
            ConfigurationError: if no themes are configured
            BatchCancelledError: on cancel or deadline; `partial` is the PipelineResult so far
        """
        context = context or BatchContext()
        result = PipelineResult()
        try:
            result.stage = "aggregate"
            with StageTimer(result.timings, "aggregate"):
                result.aggregate = self.aggregator.aggregate(self.config.aggregate, context)
            result.errors.extend(result.aggregate.errors)

            result.stage = "classify"
            with StageTimer(result.timings, "classify"):
                result.classification = self.runner.run(self.config.classification, context)
            result.errors.extend(result.classification.errors)
        except BatchCancelledError as e:
            self._record_cancel(result, e)
            raise

        articles = [a for a in (self.store.get_article(i) for i in result.classification.accepted_ids) if a]
        if not articles:
            self.logger.info("No relevant articles this pass; no digest produced")
            result.stage = "done"
            return result

        self.build_digest(articles, context, result)
        self.logger.info(f"Pipeline pass complete: {result.summary()}", timings=result.timings)
        return result

    def build_digest(self, articles: Sequence[Article], context: Optional[BatchContext] = None,
                     result: Optional[PipelineResult] = None) -> PipelineResult:
        """
        Run the stages after classification for an explicit set of articles.

        Raises:
            ValueError: if `articles` is empty
            BatchCancelledError: on cancel or deadline; `partial` is the PipelineResult so far
        """
        if not articles:
            raise ValueError("build_digest needs at least one article")
        context = context or BatchContext()
        result = result or PipelineResult()
        articles = list(articles)
        try:
            result.stage = "summarize"
            with StageTimer(result.timings, "summarize"):
                summaries = self._summarize(articles, context, result)

            result.stage = "embed"
            with StageTimer(result.timings, "embed"):
                embedded = self._embed(articles, result)

            result.stage = "cluster"
            with StageTimer(result.timings, "cluster"):
                if embedded:
                    result.clusters = self.clusterer.cluster(articles)
                    result.coherence = cluster_coherence(result.clusters, {a.id: a for a in articles})
                else:
                    result.clusters = self.theme_clusters(articles)
                self.store.update_cluster_labels(
                    {aid: c.label for c in result.clusters for aid in c.article_ids}
                )

            result.stage = "synthesize"
            with StageTimer(result.timings, "synthesize"):
                synthesis = self.synthesizer.synthesize(result.clusters, articles, summaries, context)
            result.digest = synthesis.digest
            result.critique = synthesis.critique
            result.errors.extend(synthesis.errors)
        except BatchCancelledError as e:
            self._record_cancel(result, e)
            raise

        result.stage = "evaluate"
        with StageTimer(result.timings, "evaluate"):
            result.quality = self.evaluator.evaluate(result.digest, articles)
        for warning in result.quality.warnings:
            self.logger.warning(f"Quality: {warning}")

        self.store.save_digest(result.digest)
        result.stage = "done"
        self.logger.info(
            f"Digest {result.digest.id} saved: grade {result.quality.grade} ({result.quality.grade_label}), "
            f"coverage {result.quality.coverage:.0%}",
            articles=result.digest.article_count,
        )
        return result

    def _summarize(self, articles: List[Article], context: BatchContext,
                   result: PipelineResult) -> Dict[str, ArticleSummary]:
        summaries: Dict[str, ArticleSummary] = {}
        options = self.config.classification or ClassificationOptions()
        processor = BatchProcessor(max_workers=options.max_concurrency, name="summarize")
        for outcome in processor.process_batch(articles, self.summarizer.summarize, context=context):
            article = outcome['item']
            if outcome['success']:
                summaries[article.id] = outcome['result']
            else:
                result.errors.append(f"summary {article.url}: {outcome['error']}")
        return summaries

    def _embed(self, articles: List[Article], result: PipelineResult) -> bool:
        """Embed articles whose vector is missing or stale. Returns False if embedding failed."""
        pending = [a for a in articles if a.needs_embedding]
        if not pending:
            return True
        try:
            vectors = self.embedder.embed_batch([embedding_text(a) for a in pending])
        except ApplicationError as e:
            self.logger.error(f"Embedding failed, clustering by theme instead: {e}")
            result.errors.append(f"embedding: {e}")
            return False
        for article, vector in zip(pending, vectors):
            if article.set_embedding(vector):
                self.store.update_article_embedding(article.id, article.embedding, article.embedding_hash)
        self.logger.info(f"Embedded {len(pending)} of {len(articles)} articles")
        return True

    @staticmethod
    def theme_clusters(articles: Sequence[Article]) -> List[TopicCluster]:
        """One cluster per theme, largest first; used when embeddings are unavailable."""
        groups: "OrderedDict[str, List[Article]]" = OrderedDict()
        for article in articles:
            groups.setdefault(article.theme_name or UNTHEMED_LABEL, []).append(article)
        clusters = [
            TopicCluster(
                label=name,
                article_ids=[a.id for a in members],
                theme_name=None if name == UNTHEMED_LABEL else name,
                representative_id=members[0].id,
            )
            for name, members in groups.items()
        ]
        clusters.sort(key=lambda c: -len(c.article_ids))
        for cluster in clusters:
            for article in articles:
                if article.id in cluster.article_ids:
                    article.cluster_label = cluster.label
        return clusters

    def _record_cancel(self, result: PipelineResult, error: BatchCancelledError) -> None:
        partial = error.partial
        if isinstance(partial, AggregateResult):
            result.aggregate = partial
        elif isinstance(partial, ClassificationResult):
            result.classification = partial
        result.errors.append(f"cancelled during {result.stage}: {error.reason}")
        self.logger.warning(f"Pipeline cancelled during {result.stage}: {error.reason}")
        error.partial = result
