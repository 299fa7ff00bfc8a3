"""
Concurrent feed aggregation.

Runs the fetch gate over every active source on a bounded worker pool and
merges per-source outcomes into one AggregateResult.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from common.batch_processing import BatchContext, BatchProcessor
from common.config import get_env_int, get_env_float
from common.errors import BatchCancelledError, ConfigurationError, FetchError
from common.logging import StructuredLogger
from content.base import Fetcher, Validators
from models.entities import CandidateItem, Source, utcnow
from storage.base import Store

logger = logging.getLogger(__name__)


@dataclass
class AggregateOptions:
    max_items_per_source: int = 50
    max_concurrency: int = 5
    since: Optional[datetime] = None
    since_hours: float = 24
    timeout: Optional[float] = 600

    @classmethod
    def from_env(cls) -> "AggregateOptions":
        return cls(
            max_items_per_source=get_env_int("AGGREGATE_MAX_ITEMS_PER_SOURCE", 50),
            max_concurrency=get_env_int("AGGREGATE_MAX_CONCURRENCY", 5),
            since_hours=get_env_float("AGGREGATE_SINCE_HOURS", 24),
            timeout=get_env_float("AGGREGATE_TIMEOUT_SECONDS", 600),
        )

    def validate(self) -> None:
        if self.max_concurrency < 1:
            raise ConfigurationError("max_concurrency must be at least 1")
        if self.max_items_per_source < 1:
            raise ConfigurationError("max_items_per_source must be at least 1")

    def resolve_since(self, now: datetime) -> datetime:
        since = self.since or now - timedelta(hours=self.since_hours)
        if since.tzinfo is None:
            since = since.replace(tzinfo=timezone.utc)
        return since


@dataclass
class AggregateResult:
    """
    Running counters for one aggregation pass.

    Workers build a private result per source and `merge` it in; the lock is
    only held for the merge itself.
    """
    feeds_fetched: int = 0
    feeds_skipped: int = 0
    feeds_failed: int = 0
    new_articles: int = 0
    duplicate_articles: int = 0
    errors: List[str] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def merge(self, other: "AggregateResult") -> None:
        with self._lock:
            self.feeds_fetched += other.feeds_fetched
            self.feeds_skipped += other.feeds_skipped
            self.feeds_failed += other.feeds_failed
            self.new_articles += other.new_articles
            self.duplicate_articles += other.duplicate_articles
            self.errors.extend(other.errors)

    @property
    def sources_processed(self) -> int:
        return self.feeds_fetched + self.feeds_skipped + self.feeds_failed

    def summary(self) -> str:
        return (f"fetched={self.feeds_fetched} skipped={self.feeds_skipped} failed={self.feeds_failed} "
                f"new={self.new_articles} duplicates={self.duplicate_articles} errors={len(self.errors)}")


class Aggregator:
    """Fetches every active source and records new candidate items."""

    def __init__(self, store: Store, fetcher: Fetcher, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.fetcher = fetcher
        self.clock = clock
        self.logger = StructuredLogger(__name__, stage="aggregate")

    def aggregate(self, options: Optional[AggregateOptions] = None,
                  context: Optional[BatchContext] = None,
                  sources: Optional[List[Source]] = None) -> AggregateResult:
        """
        Run one aggregation pass.

        Args:
            options: Limits and window; defaults apply when omitted
            context: Parent cancellation context; the pass adds its own timeout
            sources: Sources to fetch; defaults to all active sources

        Returns:
            AggregateResult with counters and per-source errors

        Raises:
            BatchCancelledError: on cancel or deadline, with the partial
                result attached as `partial`
        """
        options = options or AggregateOptions()
        options.validate()
        if sources is None:
            sources = self.store.list_sources(active_only=True)
        since = options.resolve_since(self.clock())
        batch_context = context.child(options.timeout) if context else BatchContext(timeout=options.timeout)

        accumulator = AggregateResult()
        if not sources:
            self.logger.info("No active sources to aggregate")
            return accumulator

        self.logger.info(f"Aggregating {len(sources)} sources since {since.isoformat()}",
                         concurrency=options.max_concurrency)

        def on_result(outcome):
            if outcome['success']:
                accumulator.merge(outcome['result'])
                return
            # Unexpected failure inside the worker; isolate it like a fetch error
            source = outcome['item']
            message = f"{source.url}: {outcome['error']}"
            self.logger.error(f"Unexpected error aggregating source: {outcome['error']}", source=source.url)
            self.store.record_fetch_error(source.id, outcome['error'])
            accumulator.merge(AggregateResult(feeds_failed=1, errors=[message]))

        processor = BatchProcessor(max_workers=options.max_concurrency, name="aggregate")
        try:
            processor.process_batch(
                sources,
                lambda source: self._process_source(source, since, options.max_items_per_source),
                context=batch_context,
                on_result=on_result,
            )
        except BatchCancelledError as e:
            e.partial = accumulator
            self.logger.warning(f"Aggregation cancelled: {e.reason}; partial {accumulator.summary()}")
            raise

        self.logger.info(f"Aggregation complete: {accumulator.summary()}")
        return accumulator

    def _process_source(self, source: Source, since: datetime, max_items: int) -> AggregateResult:
        result = AggregateResult()
        with self.logger.bound(source=source.url):
            try:
                fetched = self.fetcher.fetch(source.url, Validators(source.last_modified, source.etag))
            except FetchError as e:
                self.logger.warning(f"Fetch failed: {e}")
                self.store.record_fetch_error(source.id, str(e))
                result.feeds_failed = 1
                result.errors.append(f"{source.url}: {e}")
                return result

            now = self.clock()
            if fetched.not_modified:
                self.logger.debug("Source not modified")
                self.store.record_fetch_success(source.id, source.last_modified, source.etag, now)
                result.feeds_skipped = 1
                return result

            items = []
            for entry in fetched.entries:
                # Entries without a date count as discovered now
                published = entry.published or now
                if published < since:
                    continue
                items.append(CandidateItem(
                    source_id=source.id,
                    link=entry.link,
                    title=entry.title,
                    description=entry.description,
                    published=entry.published,
                    guid=entry.guid,
                    date_discovered=now,
                ))
                if len(items) >= max_items:
                    break

            created, duplicates = self.store.add_candidate_items(items)
            self.store.record_fetch_success(source.id, fetched.validators.last_modified,
                                            fetched.validators.etag, now,
                                            title=fetched.feed_title, description=fetched.feed_description)
            result.feeds_fetched = 1
            result.new_articles = created
            result.duplicate_articles = duplicates
            self.logger.debug(f"Stored {created} new items ({duplicates} duplicates) of {len(fetched.entries)} entries")
            return result
