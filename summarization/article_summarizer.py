"""
Per-article summaries used as input to cluster narratives.
"""

import logging
import threading
from typing import Optional

from cache.content_cache import ContentCache
from common.errors import ApplicationError
from models.entities import Article, ArticleSummary
from summarization.base import GenerationOptions, Generator
from summarization.prompts import ARTICLE_SUMMARY_SCHEMA, build_article_summary_prompt, get_system_prompt
from summarization.text_processing import as_list, clean_text, first_sentences

logger = logging.getLogger(__name__)

FALLBACK_SENTENCES = 2


class ArticleSummarizer:
    """
    Summarize accepted articles through a Generator.

    Results are cached by URL plus content hash, so an article whose text
    changes is summarized again. When generation fails the summary falls back
    to the article's opening sentences and is not cached.
    """

    def __init__(self, generator: Optional[Generator] = None, cache: Optional[ContentCache] = None,
                 model: Optional[str] = None):
        self.generator = generator
        self.cache = cache
        self.model = model
        self.stats = {'generated': 0, 'cached': 0, 'fallback': 0}
        self._lock = threading.Lock()

    def summarize(self, article: Article, force_refresh: bool = False) -> ArticleSummary:
        content_hash = article.content_hash
        if self.cache is not None and not force_refresh:
            cached = self.cache.get_summary(article.url, content_hash)
            if cached is not None:
                self._count('cached')
                return cached

        if self.generator is None:
            return self._fallback(article)

        try:
            payload = self.generator.generate_structured(
                build_article_summary_prompt(article),
                ARTICLE_SUMMARY_SCHEMA,
                GenerationOptions(task="article_summary", model=self.model, system=get_system_prompt()),
            )
        except ApplicationError as e:
            logger.warning(f"Summary generation failed for {article.url}: {e}")
            return self._fallback(article)

        text = clean_text(str(payload.get('summary') or ''))
        if not text:
            logger.warning(f"Empty summary returned for {article.url}")
            return self._fallback(article)

        summary = ArticleSummary(
            article_id=article.id,
            summary=text,
            key_points=[clean_text(str(p)) for p in as_list(payload.get('key_points')) if str(p).strip()][:5],
        )
        self._count('generated')
        if self.cache is not None:
            self.cache.put_summary(article.url, content_hash, summary)
        return summary

    def _fallback(self, article: Article) -> ArticleSummary:
        self._count('fallback')
        text = first_sentences(article.cleaned_text, FALLBACK_SENTENCES) or article.title
        return ArticleSummary(article_id=article.id, summary=text, generated=False)

    def _count(self, outcome: str) -> None:
        with self._lock:
            self.stats[outcome] += 1
