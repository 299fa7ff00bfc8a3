"""
SQLAlchemy-backed implementation of the Store interface.
"""

import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import create_engine, func, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from common.errors import ConfigurationError
from models.entities import (
    Article, ArticleGroup, CandidateItem, Citation, Digest, Source, Theme,
    STATUS_PROCESSED, ITEM_STATUSES, digest_content_from_dict,
)
from storage.base import Store
from storage.tables import Base, SourceRow, CandidateItemRow, ThemeRow, ArticleRow, DigestRow, CitationRow

logger = logging.getLogger(__name__)


def _to_db(dt: Optional[datetime]) -> Optional[datetime]:
    """Normalise to naive UTC for storage."""
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def _from_db(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


class SQLStore(Store):
    """
    Store backed by any SQLAlchemy database; sqlite by default.

    Access is serialised through one lock so a single sqlite connection can
    be shared by the fetch and classification worker pools.
    """

    def __init__(self, database_url: str = "sqlite:///digest.db", echo: bool = False):
        """
        Initialize the store and create tables if needed.

        Args:
            database_url: SQLAlchemy URL; "sqlite://" gives an in-memory database
            echo: Log SQL statements
        """
        self.database_url = database_url
        engine_kwargs = {'echo': echo}
        if database_url.startswith("sqlite"):
            engine_kwargs['connect_args'] = {'check_same_thread': False}
            if database_url in ("sqlite://", "sqlite:///:memory:"):
                engine_kwargs['poolclass'] = StaticPool

        try:
            self.engine = create_engine(database_url, **engine_kwargs)
            Base.metadata.create_all(self.engine)
        except SQLAlchemyError as e:
            raise ConfigurationError(f"Cannot open store at {database_url}: {e}") from e

        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)
        self._lock = threading.RLock()
        logger.info(f"Initialized SQLStore at {database_url}")

    @contextmanager
    def _session(self):
        with self._lock:
            session: Session = self.SessionLocal()
            try:
                yield session
                session.commit()
            except Exception:
                session.rollback()
                raise
            finally:
                session.close()

    def ping(self) -> None:
        try:
            with self.engine.connect() as connection:
                connection.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            raise ConfigurationError(f"Store unreachable at {self.database_url}: {e}") from e

    # Row conversion

    @staticmethod
    def _source(row: SourceRow) -> Source:
        return Source(
            id=row.id, url=row.url, title=row.title or "", description=row.description or "",
            active=bool(row.active), last_modified=row.last_modified, etag=row.etag,
            error_count=row.error_count or 0, last_error=row.last_error,
            last_fetched=_from_db(row.last_fetched), date_added=_from_db(row.date_added),
        )

    @staticmethod
    def _item(row: CandidateItemRow) -> CandidateItem:
        return CandidateItem(
            id=row.id, source_id=row.source_id, link=row.link, title=row.title or "",
            description=row.description or "", published=_from_db(row.published), guid=row.guid,
            status=row.status, date_discovered=_from_db(row.date_discovered),
        )

    @staticmethod
    def _theme(row: ThemeRow) -> Theme:
        return Theme(id=row.id, name=row.name, description=row.description or "",
                     keywords=list(row.keywords or []), enabled=bool(row.enabled))

    @staticmethod
    def _article(row: ArticleRow) -> Article:
        return Article(
            id=row.id, url=row.url, title=row.title or "", cleaned_text=row.cleaned_text or "",
            content_type=row.content_type or "html", source_id=row.source_id,
            published=_from_db(row.published), date_fetched=_from_db(row.date_fetched),
            theme_id=row.theme_id, theme_name=row.theme_name, relevance_score=row.relevance_score,
            reasoning=row.reasoning, embedding=list(row.embedding) if row.embedding is not None else None,
            embedding_hash=row.embedding_hash, cluster_label=row.cluster_label,
        )

    def _digest(self, session: Session, row: DigestRow) -> Digest:
        citations = session.query(CitationRow).filter(CitationRow.digest_id == row.id).order_by(CitationRow.number).all()
        return Digest(
            id=row.id,
            content=digest_content_from_dict(row.content, templated=bool(row.templated)),
            article_groups=[
                ArticleGroup(label=g.get('label', ''), article_ids=list(g.get('article_ids', [])),
                             theme_name=g.get('theme_name'), summary=g.get('summary', ''))
                for g in row.article_groups or []
            ],
            citations=[Citation(number=c.number, article_id=c.article_id, url=c.url, title=c.title or "") for c in citations],
            cluster_id=row.cluster_id,
            processed_date=_from_db(row.processed_date),
        )

    # Sources

    def add_source(self, source: Source) -> Source:
        with self._session() as session:
            existing = session.query(SourceRow).filter(SourceRow.url == source.url).first()
            if existing:
                logger.info(f"Source already registered: {source.url}")
                return self._source(existing)
            row = SourceRow(
                id=source.id, url=source.url, title=source.title, description=source.description,
                active=source.active, last_modified=source.last_modified, etag=source.etag,
                error_count=source.error_count, last_error=source.last_error,
                last_fetched=_to_db(source.last_fetched), date_added=_to_db(source.date_added),
            )
            session.add(row)
            return source

    def get_source(self, source_id: str) -> Optional[Source]:
        with self._session() as session:
            row = session.get(SourceRow, source_id)
            return self._source(row) if row else None

    def get_source_by_url(self, url: str) -> Optional[Source]:
        with self._session() as session:
            row = session.query(SourceRow).filter(SourceRow.url == url).first()
            return self._source(row) if row else None

    def list_sources(self, active_only: bool = False) -> List[Source]:
        with self._session() as session:
            query = session.query(SourceRow)
            if active_only:
                query = query.filter(SourceRow.active.is_(True))
            return [self._source(row) for row in query.order_by(SourceRow.date_added).all()]

    def set_source_active(self, source_id: str, active: bool) -> bool:
        with self._session() as session:
            row = session.get(SourceRow, source_id)
            if not row:
                return False
            row.active = active
            return True

    def delete_source(self, source_id: str) -> bool:
        with self._session() as session:
            row = session.get(SourceRow, source_id)
            if not row:
                return False
            session.query(CandidateItemRow).filter(CandidateItemRow.source_id == source_id).delete()
            session.delete(row)
            return True

    def record_fetch_success(self, source_id: str, last_modified: Optional[str],
                             etag: Optional[str], fetched_at: datetime,
                             title: str = "", description: str = "") -> None:
        with self._session() as session:
            row = session.get(SourceRow, source_id)
            if not row:
                return
            row.last_modified = last_modified
            row.etag = etag
            row.last_fetched = _to_db(fetched_at)
            row.error_count = 0
            row.last_error = None
            if title and not row.title:
                row.title = title
            if description and not row.description:
                row.description = description

    def record_fetch_error(self, source_id: str, error: str) -> None:
        with self._session() as session:
            row = session.get(SourceRow, source_id)
            if not row:
                return
            row.error_count = (row.error_count or 0) + 1
            row.last_error = error

    # Candidate items

    def add_candidate_items(self, items: Iterable[CandidateItem]) -> Tuple[int, int]:
        created = 0
        duplicates = 0
        with self._session() as session:
            seen = set()
            for item in items:
                key = (item.source_id, item.link)
                if key in seen:
                    duplicates += 1
                    continue
                seen.add(key)
                exists = session.query(CandidateItemRow.id).filter(
                    CandidateItemRow.source_id == item.source_id,
                    CandidateItemRow.link == item.link,
                ).first()
                if exists:
                    duplicates += 1
                    continue
                session.add(CandidateItemRow(
                    id=item.id, source_id=item.source_id, link=item.link, title=item.title,
                    description=item.description, published=_to_db(item.published), guid=item.guid,
                    status=item.status, date_discovered=_to_db(item.date_discovered),
                ))
                created += 1
        return created, duplicates

    def get_candidate_item(self, item_id: str) -> Optional[CandidateItem]:
        with self._session() as session:
            row = session.get(CandidateItemRow, item_id)
            return self._item(row) if row else None

    def list_candidate_items(self, status: Optional[str] = None, source_id: Optional[str] = None,
                             since: Optional[datetime] = None, until: Optional[datetime] = None,
                             limit: Optional[int] = None) -> List[CandidateItem]:
        with self._session() as session:
            query = session.query(CandidateItemRow)
            if status:
                query = query.filter(CandidateItemRow.status == status)
            if source_id:
                query = query.filter(CandidateItemRow.source_id == source_id)
            if since:
                query = query.filter(CandidateItemRow.date_discovered >= _to_db(since))
            if until:
                query = query.filter(CandidateItemRow.date_discovered <= _to_db(until))
            query = query.order_by(CandidateItemRow.date_discovered.desc(), CandidateItemRow.id)
            if limit:
                query = query.limit(limit)
            return [self._item(row) for row in query.all()]

    def set_item_status(self, item_id: str, status: str) -> bool:
        if status not in ITEM_STATUSES:
            raise ValueError(f"Unknown item status: {status}")
        with self._session() as session:
            row = session.get(CandidateItemRow, item_id)
            if not row or row.status == STATUS_PROCESSED:
                return False
            row.status = status
            return True

    def item_stats(self) -> Dict[str, object]:
        with self._session() as session:
            counts = dict(
                session.query(CandidateItemRow.status, func.count(CandidateItemRow.id))
                .group_by(CandidateItemRow.status).all()
            )
            latest, oldest = session.query(
                func.max(CandidateItemRow.date_discovered), func.min(CandidateItemRow.date_discovered)
            ).one()
        total = sum(counts.values())
        processed = counts.get(STATUS_PROCESSED, 0)
        return {
            'total': total,
            'processed': processed,
            'unprocessed': total - processed,
            'by_status': counts,
            'latest': _from_db(latest),
            'oldest': _from_db(oldest),
        }

    # Articles

    def save_article(self, article: Article) -> None:
        with self._session() as session:
            row = session.get(ArticleRow, article.id) or ArticleRow(id=article.id)
            row.url = article.url
            row.title = article.title
            row.cleaned_text = article.cleaned_text
            row.content_type = article.content_type
            row.source_id = article.source_id
            row.published = _to_db(article.published)
            row.date_fetched = _to_db(article.date_fetched)
            row.theme_id = article.theme_id
            row.theme_name = article.theme_name
            row.relevance_score = article.relevance_score
            row.reasoning = article.reasoning
            row.embedding = article.embedding
            row.embedding_hash = article.embedding_hash
            row.cluster_label = article.cluster_label
            session.add(row)

    def get_article(self, article_id: str) -> Optional[Article]:
        with self._session() as session:
            row = session.get(ArticleRow, article_id)
            return self._article(row) if row else None

    def list_articles(self, since: Optional[datetime] = None, until: Optional[datetime] = None,
                      theme_id: Optional[str] = None, limit: Optional[int] = None) -> List[Article]:
        with self._session() as session:
            query = session.query(ArticleRow)
            if since:
                query = query.filter(ArticleRow.date_fetched >= _to_db(since))
            if until:
                query = query.filter(ArticleRow.date_fetched <= _to_db(until))
            if theme_id:
                query = query.filter(ArticleRow.theme_id == theme_id)
            query = query.order_by(ArticleRow.date_fetched.desc(), ArticleRow.id)
            if limit:
                query = query.limit(limit)
            return [self._article(row) for row in query.all()]

    def update_article_embedding(self, article_id: str, embedding: List[float], embedding_hash: str) -> None:
        with self._session() as session:
            row = session.get(ArticleRow, article_id)
            if row:
                row.embedding = [float(v) for v in embedding]
                row.embedding_hash = embedding_hash

    def update_cluster_labels(self, labels: Dict[str, str]) -> None:
        with self._session() as session:
            for article_id, label in labels.items():
                row = session.get(ArticleRow, article_id)
                if row:
                    row.cluster_label = label

    # Themes

    def add_theme(self, theme: Theme) -> Theme:
        with self._session() as session:
            existing = session.query(ThemeRow).filter(func.lower(ThemeRow.name) == theme.name.lower()).first()
            if existing:
                return self._theme(existing)
            session.add(ThemeRow(id=theme.id, name=theme.name, description=theme.description,
                                 keywords=list(theme.keywords), enabled=theme.enabled))
            return theme

    def list_themes(self, enabled_only: bool = True) -> List[Theme]:
        with self._session() as session:
            query = session.query(ThemeRow)
            if enabled_only:
                query = query.filter(ThemeRow.enabled.is_(True))
            return [self._theme(row) for row in query.order_by(ThemeRow.name).all()]

    def get_theme_by_name(self, name: str) -> Optional[Theme]:
        with self._session() as session:
            row = session.query(ThemeRow).filter(func.lower(ThemeRow.name) == name.lower()).first()
            return self._theme(row) if row else None

    def set_theme_enabled(self, theme_id: str, enabled: bool) -> bool:
        with self._session() as session:
            row = session.get(ThemeRow, theme_id)
            if not row:
                return False
            row.enabled = enabled
            return True

    # Digests

    def save_digest(self, digest: Digest) -> None:
        with self._session() as session:
            if session.get(DigestRow, digest.id):
                raise ValueError(f"Digest {digest.id} is already stored")
            session.add(DigestRow(
                id=digest.id,
                title=digest.title,
                tldr_summary=digest.tldr,
                content=digest.content.to_dict(),
                article_groups=[
                    {'label': g.label, 'article_ids': list(g.article_ids),
                     'theme_name': g.theme_name, 'summary': g.summary}
                    for g in digest.article_groups
                ],
                cluster_id=digest.cluster_id,
                article_count=digest.article_count,
                templated=digest.content.templated,
                processed_date=_to_db(digest.processed_date),
            ))
            for citation in digest.citations:
                session.add(CitationRow(digest_id=digest.id, number=citation.number,
                                        article_id=citation.article_id, url=citation.url, title=citation.title))

    def get_digest(self, digest_id: str) -> Optional[Digest]:
        with self._session() as session:
            row = session.get(DigestRow, digest_id)
            return self._digest(session, row) if row else None

    def list_digests(self, since: Optional[datetime] = None, until: Optional[datetime] = None,
                     limit: Optional[int] = None) -> List[Digest]:
        with self._session() as session:
            query = session.query(DigestRow)
            if since:
                query = query.filter(DigestRow.processed_date >= _to_db(since))
            if until:
                query = query.filter(DigestRow.processed_date <= _to_db(until))
            query = query.order_by(DigestRow.processed_date.desc())
            if limit:
                query = query.limit(limit)
            return [self._digest(session, row) for row in query.all()]

    def list_citations(self, digest_id: str) -> List[Citation]:
        with self._session() as session:
            rows = session.query(CitationRow).filter(CitationRow.digest_id == digest_id).order_by(CitationRow.number).all()
            return [Citation(number=r.number, article_id=r.article_id, url=r.url, title=r.title or "") for r in rows]
