"""
SQLAlchemy table definitions for the digest store.
"""

from datetime import datetime

from sqlalchemy import Column, Integer, Float, String, Text, DateTime, Boolean, JSON, ForeignKey, UniqueConstraint, Index
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class SourceRow(Base):
    """A registered feed. Validator tokens are stored verbatim between passes."""
    __tablename__ = 'sources'

    id = Column(String(64), primary_key=True)
    url = Column(String(2048), unique=True, nullable=False, index=True)
    title = Column(String(500), default="")
    description = Column(Text, default="")
    active = Column(Boolean, default=True, index=True)
    last_modified = Column(String(255), nullable=True)
    etag = Column(String(255), nullable=True)
    error_count = Column(Integer, default=0)
    last_error = Column(Text, nullable=True)
    last_fetched = Column(DateTime, nullable=True)
    date_added = Column(DateTime, default=datetime.utcnow)


class CandidateItemRow(Base):
    __tablename__ = 'candidate_items'
    __table_args__ = (
        UniqueConstraint('source_id', 'link', name='uq_candidate_source_link'),
        Index('ix_candidate_status_discovered', 'status', 'date_discovered'),
    )

    id = Column(String(64), primary_key=True)
    source_id = Column(String(64), ForeignKey('sources.id', ondelete='CASCADE'), nullable=False, index=True)
    link = Column(String(2048), nullable=False)
    title = Column(String(1000), default="")
    description = Column(Text, default="")
    published = Column(DateTime, nullable=True, index=True)
    guid = Column(String(2048), nullable=True)
    status = Column(String(20), default='pending', nullable=False)
    date_discovered = Column(DateTime, default=datetime.utcnow)


class ThemeRow(Base):
    __tablename__ = 'themes'

    id = Column(String(64), primary_key=True)
    name = Column(String(200), unique=True, nullable=False)
    description = Column(Text, default="")
    keywords = Column(JSON, default=list)
    enabled = Column(Boolean, default=True, index=True)


class ArticleRow(Base):
    __tablename__ = 'articles'

    id = Column(String(64), primary_key=True)
    url = Column(String(2048), nullable=False, index=True)
    title = Column(String(1000), default="")
    cleaned_text = Column(Text, default="")
    content_type = Column(String(50), default="html")
    source_id = Column(String(64), nullable=True)
    published = Column(DateTime, nullable=True)
    date_fetched = Column(DateTime, default=datetime.utcnow, index=True)
    theme_id = Column(String(64), ForeignKey('themes.id', ondelete='SET NULL'), nullable=True, index=True)
    theme_name = Column(String(200), nullable=True)
    relevance_score = Column(Float, nullable=True)
    reasoning = Column(Text, nullable=True)
    embedding = Column(JSON, nullable=True)
    embedding_hash = Column(String(64), nullable=True)
    cluster_label = Column(String(500), nullable=True)


class DigestRow(Base):
    """A finished digest. Content and groups are stored as JSON and never updated."""
    __tablename__ = 'digests'

    id = Column(String(64), primary_key=True)
    title = Column(String(500), nullable=False)
    tldr_summary = Column(Text, default="")
    content = Column(JSON, nullable=False)
    article_groups = Column(JSON, nullable=False)
    cluster_id = Column(String(64), nullable=True)
    article_count = Column(Integer, default=0)
    templated = Column(Boolean, default=False)
    processed_date = Column(DateTime, default=datetime.utcnow, index=True)


class CitationRow(Base):
    __tablename__ = 'citations'
    __table_args__ = (
        UniqueConstraint('digest_id', 'number', name='uq_citation_digest_number'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    digest_id = Column(String(64), ForeignKey('digests.id', ondelete='CASCADE'), nullable=False, index=True)
    number = Column(Integer, nullable=False)
    article_id = Column(String(64), nullable=False)
    url = Column(String(2048), nullable=False)
    title = Column(String(1000), default="")
