"""
Batch classification of pending candidate items.
"""

import logging
import threading
from collections import Counter
from dataclasses import dataclass, field
from typing import List, Optional

from cache.content_cache import ContentCache
from classification.base import Classifier
from common.batch_processing import BatchContext, BatchProcessor
from common.config import get_env_var, get_env_int, get_env_float, get_env_bool
from common.errors import ApplicationError, BatchCancelledError, ConfigurationError, FetchError
from common.logging import StructuredLogger
from content.base import Fetcher
from models.entities import (
    Article, CandidateItem, Theme, STATUS_FAILED, STATUS_PENDING, STATUS_PROCESSED, STATUS_PROCESSING,
)
from storage.base import Store

logger = logging.getLogger(__name__)


@dataclass
class ClassificationOptions:
    max_articles: int = 100
    min_relevance: float = 0.4
    theme_filter: Optional[str] = None
    max_concurrency: int = 5
    fetch_content: bool = True
    timeout: Optional[float] = 600
    # Feed descriptions at least this long stand in for a body that failed to fetch
    min_description_chars: int = 200

    @classmethod
    def from_env(cls) -> "ClassificationOptions":
        return cls(
            max_articles=get_env_int("CLASSIFY_MAX_ARTICLES", 100),
            min_relevance=get_env_float("CLASSIFY_MIN_RELEVANCE", 0.4),
            theme_filter=get_env_var("CLASSIFY_THEME_FILTER") or None,
            max_concurrency=get_env_int("CLASSIFY_MAX_CONCURRENCY", 5),
            fetch_content=get_env_bool("CLASSIFY_FETCH_CONTENT", True),
            timeout=get_env_float("CLASSIFY_TIMEOUT_SECONDS", 600),
        )

    def validate(self) -> None:
        if not 0.0 <= self.min_relevance <= 1.0:
            raise ConfigurationError("min_relevance must be between 0 and 1")
        if self.max_concurrency < 1:
            raise ConfigurationError("max_concurrency must be at least 1")


@dataclass
class ClassificationResult:
    articles_processed: int = 0
    articles_classified: int = 0
    articles_filtered: int = 0
    articles_theme_filtered: int = 0
    articles_failed: int = 0
    theme_distribution: Counter = field(default_factory=Counter)
    would_have_matched: Counter = field(default_factory=Counter)
    accepted_ids: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def merge(self, other: "ClassificationResult") -> None:
        with self._lock:
            self.articles_processed += other.articles_processed
            self.articles_classified += other.articles_classified
            self.articles_filtered += other.articles_filtered
            self.articles_theme_filtered += other.articles_theme_filtered
            self.articles_failed += other.articles_failed
            self.theme_distribution.update(other.theme_distribution)
            self.would_have_matched.update(other.would_have_matched)
            self.accepted_ids.extend(other.accepted_ids)
            self.errors.extend(other.errors)

    def summary(self) -> str:
        return (f"processed={self.articles_processed} classified={self.articles_classified} "
                f"filtered={self.articles_filtered} theme_filtered={self.articles_theme_filtered} "
                f"failed={self.articles_failed}")


class ClassificationRunner:
    """
    Turns pending candidate items into classified Articles.

    Each item is fetched (through the content cache), scored against every
    enabled theme, and either stored as an Article or recorded as filtered.
    """

    def __init__(self, store: Store, fetcher: Fetcher, classifier: Classifier,
                 cache: Optional[ContentCache] = None):
        self.store = store
        self.fetcher = fetcher
        self.classifier = classifier
        self.cache = cache if cache is not None else ContentCache()
        self.logger = StructuredLogger(__name__, stage="classify")

    def run(self, options: Optional[ClassificationOptions] = None,
            context: Optional[BatchContext] = None,
            items: Optional[List[CandidateItem]] = None) -> ClassificationResult:
        """
        Classify pending items.

        Raises:
            ConfigurationError: if no themes are enabled or the theme filter is unknown
            BatchCancelledError: on cancel or deadline, with the partial result attached
        """
        options = options or ClassificationOptions()
        options.validate()

        themes = self.store.list_themes(enabled_only=True)
        if not themes:
            raise ConfigurationError("No enabled themes to classify against")
        if options.theme_filter and options.theme_filter.lower() not in {t.name.lower() for t in themes}:
            raise ConfigurationError(f"Theme filter '{options.theme_filter}' matches no enabled theme")

        if items is None:
            items = self.store.list_candidate_items(status=STATUS_PENDING, limit=options.max_articles)

        accumulator = ClassificationResult()
        if not items:
            self.logger.info("No pending items to classify")
            return accumulator

        batch_context = context.child(options.timeout) if context else BatchContext(timeout=options.timeout)
        self.logger.info(f"Classifying {len(items)} items against {len(themes)} themes",
                         min_relevance=options.min_relevance, theme_filter=options.theme_filter)

        def on_result(outcome):
            if outcome['success']:
                accumulator.merge(outcome['result'])
                return
            item = outcome['item']
            self.logger.error(f"Unexpected classification error: {outcome['error']}", item=item.link)
            self.store.set_item_status(item.id, STATUS_FAILED)
            accumulator.merge(ClassificationResult(articles_processed=1, articles_failed=1,
                                                   errors=[f"{item.link}: {outcome['error']}"]))

        processor = BatchProcessor(max_workers=options.max_concurrency, name="classify")
        try:
            processor.process_batch(
                items,
                lambda item: self._classify_item(item, themes, options),
                context=batch_context,
                on_result=on_result,
            )
        except BatchCancelledError as e:
            e.partial = accumulator
            self.logger.warning(f"Classification cancelled: {e.reason}; partial {accumulator.summary()}")
            raise

        self.logger.info(f"Classification complete: {accumulator.summary()}")
        return accumulator

    def _article_text(self, item: CandidateItem, options: ClassificationOptions) -> str:
        if not options.fetch_content:
            return item.description

        cached = self.cache.get_article_body(item.link)
        if cached is not None:
            return cached

        try:
            text = self.fetcher.fetch_article_body(item.link)
        except FetchError:
            if len(item.description or "") >= options.min_description_chars:
                self.logger.debug("Body fetch failed, using feed description")
                return item.description
            raise
        self.cache.put_article_body(item.link, text)
        return text

    def _classify_item(self, item: CandidateItem, themes: List[Theme],
                       options: ClassificationOptions) -> ClassificationResult:
        result = ClassificationResult(articles_processed=1)
        with self.logger.bound(item=item.link):
            self.store.set_item_status(item.id, STATUS_PROCESSING)
            try:
                text = self._article_text(item, options)
                article = Article(
                    id=item.id, url=item.link, title=item.title, cleaned_text=text,
                    source_id=item.source_id, published=item.published,
                )
                match = self.classifier.classify(article, themes, options.min_relevance)
            except ApplicationError as e:
                self.logger.warning(f"Classification failed: {e}")
                self.store.set_item_status(item.id, STATUS_FAILED)
                result.articles_failed = 1
                result.errors.append(f"{item.link}: {e}")
                return result

            if match is None:
                result.articles_filtered = 1
            elif options.theme_filter and match.theme_name.lower() != options.theme_filter.lower():
                result.articles_theme_filtered = 1
                result.would_have_matched[match.theme_name] += 1
            else:
                article.theme_id = match.theme_id
                article.theme_name = match.theme_name
                article.relevance_score = match.relevance_score
                article.reasoning = match.reasoning
                self.store.save_article(article)
                result.articles_classified = 1
                result.theme_distribution[match.theme_name] += 1
                result.accepted_ids.append(article.id)

            self.store.set_item_status(item.id, STATUS_PROCESSED)
            return result
