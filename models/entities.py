"""
Domain entities for the digest pipeline.

Optional attributes are real Optionals: a relevance score of 0.0 is a valid
score, so "not classified yet" is always None, never 0.
"""

import hashlib
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

MANUAL_SOURCE_ID = "manual"
MANUAL_SOURCE_URL = "manual://submissions"

STATUS_PENDING = "pending"
STATUS_PROCESSING = "processing"
STATUS_PROCESSED = "processed"
STATUS_FAILED = "failed"
ITEM_STATUSES = (STATUS_PENDING, STATUS_PROCESSING, STATUS_PROCESSED, STATUS_FAILED)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def source_id_for(url: str) -> str:
    """Deterministic Source id derived from its URL."""
    return str(uuid.uuid5(uuid.NAMESPACE_URL, url))


def item_id_for(source_id: str, link: str) -> str:
    """Deterministic CandidateItem id; a link maps to one item per source."""
    return str(uuid.uuid5(uuid.NAMESPACE_URL, source_id + link))


def content_fingerprint(text: str) -> str:
    return hashlib.sha256((text or "").encode("utf-8")).hexdigest()


@dataclass
class Source:
    url: str
    title: str = ""
    description: str = ""
    id: str = ""
    active: bool = True
    last_modified: Optional[str] = None
    etag: Optional[str] = None
    error_count: int = 0
    last_error: Optional[str] = None
    last_fetched: Optional[datetime] = None
    date_added: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        if not self.id:
            self.id = source_id_for(self.url)

    @property
    def validators(self) -> Dict[str, Optional[str]]:
        return {'last_modified': self.last_modified, 'etag': self.etag}


@dataclass
class CandidateItem:
    source_id: str
    link: str
    title: str = ""
    description: str = ""
    published: Optional[datetime] = None
    guid: Optional[str] = None
    id: str = ""
    status: str = STATUS_PENDING
    date_discovered: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        if not self.id:
            self.id = item_id_for(self.source_id, self.link)

    @property
    def processed(self) -> bool:
        return self.status == STATUS_PROCESSED


@dataclass
class Theme:
    name: str
    description: str = ""
    keywords: List[str] = field(default_factory=list)
    enabled: bool = True
    id: str = ""

    def __post_init__(self):
        if not self.id:
            self.id = "theme-" + self.name.strip().lower().replace(" ", "-")


@dataclass
class ThemeMatch:
    """Score of one article against one theme."""
    theme_id: str
    theme_name: str
    relevance_score: float
    reasoning: str = ""
    reader_intent: Optional[str] = None  # skim | read | deep_dive


@dataclass
class Article:
    id: str
    url: str
    title: str
    cleaned_text: str = ""
    content_type: str = "html"
    source_id: Optional[str] = None
    published: Optional[datetime] = None
    date_fetched: datetime = field(default_factory=utcnow)
    theme_id: Optional[str] = None
    theme_name: Optional[str] = None
    relevance_score: Optional[float] = None
    reasoning: Optional[str] = None
    embedding: Optional[List[float]] = None
    embedding_hash: Optional[str] = None
    cluster_label: Optional[str] = None

    @property
    def content_hash(self) -> str:
        return content_fingerprint(self.cleaned_text)

    def set_embedding(self, vector: List[float]) -> bool:
        """
        Attach an embedding computed from the current text.

        An existing embedding is kept unless the text changed since it was
        computed. Returns True if the vector was stored.
        """
        current = self.content_hash
        if self.embedding is not None and self.embedding_hash == current:
            return False
        self.embedding = [float(v) for v in vector]
        self.embedding_hash = current
        return True

    @property
    def needs_embedding(self) -> bool:
        return self.embedding is None or self.embedding_hash != self.content_hash


@dataclass
class ArticleSummary:
    article_id: str
    summary: str
    key_points: List[str] = field(default_factory=list)
    generated: bool = True


@dataclass
class ClusterNarrative:
    title: str
    summary: str
    key_developments: List[str] = field(default_factory=list)
    key_stats: List[Dict[str, str]] = field(default_factory=list)
    article_refs: List[int] = field(default_factory=list)
    confidence: float = 0.0
    templated: bool = False


@dataclass
class TopicCluster:
    """One group of articles produced by a clustering run. Not persisted."""
    label: str
    article_ids: List[str]
    keywords: List[str] = field(default_factory=list)
    theme_name: Optional[str] = None
    representative_id: Optional[str] = None
    centroid: Optional[List[float]] = None
    narrative: Optional[ClusterNarrative] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self):
        if not self.article_ids:
            raise ValueError("TopicCluster requires at least one member article")


@dataclass
class KeyMoment:
    quote: str
    citation_number: int


@dataclass
class Perspective:
    type: str  # supporting | opposing
    summary: str
    citation_numbers: List[int] = field(default_factory=list)


@dataclass
class Statistic:
    stat: str
    context: str = ""


@dataclass
class DigestContent:
    """The generated body of a digest, before it is bound to articles."""
    title: str
    tldr_summary: str
    executive_summary: str
    key_moments: List[KeyMoment] = field(default_factory=list)
    perspectives: List[Perspective] = field(default_factory=list)
    top_developments: List[str] = field(default_factory=list)
    by_the_numbers: List[Statistic] = field(default_factory=list)
    why_it_matters: str = ""
    must_read: Optional[int] = None
    templated: bool = False

    def body_text(self) -> str:
        """All prose in the digest, with structured citations rendered as [n]."""
        parts = [self.title, self.tldr_summary, self.executive_summary]
        parts.extend(f"\"{m.quote}\" [{m.citation_number}]" for m in self.key_moments)
        for perspective in self.perspectives:
            refs = "".join(f"[{n}]" for n in perspective.citation_numbers)
            parts.append(f"{perspective.summary} {refs}".strip())
        parts.extend(self.top_developments)
        parts.extend(f"{s.stat}: {s.context}" for s in self.by_the_numbers)
        parts.append(self.why_it_matters)
        return "\n".join(p for p in parts if p)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'title': self.title,
            'tldr_summary': self.tldr_summary,
            'executive_summary': self.executive_summary,
            'key_moments': [{'quote': m.quote, 'citation_number': m.citation_number} for m in self.key_moments],
            'perspectives': [
                {'type': p.type, 'summary': p.summary, 'citation_numbers': list(p.citation_numbers)}
                for p in self.perspectives
            ],
            'top_developments': list(self.top_developments),
            'by_the_numbers': [{'stat': s.stat, 'context': s.context} for s in self.by_the_numbers],
            'why_it_matters': self.why_it_matters,
            'must_read': self.must_read,
        }


@dataclass
class ArticleGroup:
    label: str
    article_ids: List[str]
    theme_name: Optional[str] = None
    summary: str = ""


@dataclass
class Citation:
    number: int
    article_id: str
    url: str
    title: str = ""


@dataclass
class Digest:
    content: DigestContent
    article_groups: List[ArticleGroup]
    citations: List[Citation] = field(default_factory=list)
    cluster_id: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    processed_date: datetime = field(default_factory=utcnow)

    @property
    def title(self) -> str:
        return self.content.title

    @property
    def tldr(self) -> str:
        return self.content.tldr_summary

    @property
    def key_moments(self) -> List[KeyMoment]:
        return self.content.key_moments

    @property
    def perspectives(self) -> List[Perspective]:
        return self.content.perspectives

    @property
    def executive_summary(self) -> str:
        return self.content.executive_summary

    @property
    def article_count(self) -> int:
        return sum(len(group.article_ids) for group in self.article_groups)

    @property
    def article_ids(self) -> List[str]:
        return [article_id for group in self.article_groups for article_id in group.article_ids]

    def body_text(self) -> str:
        return self.content.body_text()


def _int_list(values) -> List[int]:
    result = []
    for value in values or []:
        try:
            result.append(int(value))
        except (TypeError, ValueError):
            continue
    return result


def _text(data: Dict[str, Any], *keys: str) -> str:
    """First non-empty value among `keys`, which must be a string."""
    for key in keys:
        value = data.get(key)
        if value is None or value == '':
            continue
        if not isinstance(value, str):
            raise ValueError(f"digest field '{key}' must be a string, got {type(value).__name__}")
        if value.strip():
            return value.strip()
    return ''


def _list(value) -> List[Any]:
    return value if isinstance(value, list) else []


def digest_content_from_dict(data: Dict[str, Any], templated: bool = False) -> DigestContent:
    """
    Build DigestContent from a generated or stored JSON payload.

    Missing optional sections become empty; malformed entries are skipped.

    Raises:
        ValueError: if the payload lacks a title or any summary text, or a text
            field is not a string
    """
    if not isinstance(data, dict):
        raise ValueError("digest payload must be an object")
    title = _text(data, 'title')
    tldr = _text(data, 'tldr_summary', 'tldr')
    executive = _text(data, 'executive_summary')
    why = _text(data, 'why_it_matters')
    if not title or not (tldr or executive):
        raise ValueError("digest payload is missing title or summary")

    key_moments = []
    for moment in _list(data.get('key_moments')):
        if isinstance(moment, dict) and moment.get('quote'):
            numbers = _int_list([moment.get('citation_number')])
            if numbers:
                key_moments.append(KeyMoment(quote=str(moment['quote']).strip(), citation_number=numbers[0]))

    perspectives = []
    for perspective in _list(data.get('perspectives')):
        if isinstance(perspective, dict) and perspective.get('summary'):
            kind = str(perspective.get('type') or 'supporting').lower()
            perspectives.append(Perspective(
                type='opposing' if kind.startswith('oppos') else 'supporting',
                summary=str(perspective['summary']).strip(),
                citation_numbers=_int_list(_list(perspective.get('citation_numbers'))),
            ))

    stats = []
    for stat in _list(data.get('by_the_numbers')):
        if isinstance(stat, dict) and stat.get('stat'):
            stats.append(Statistic(stat=str(stat['stat']).strip(), context=str(stat.get('context') or '').strip()))

    must_read = _int_list([data.get('must_read')])
    return DigestContent(
        title=title,
        tldr_summary=tldr,
        executive_summary=executive,
        key_moments=key_moments,
        perspectives=perspectives,
        top_developments=[str(d).strip() for d in _list(data.get('top_developments')) if str(d).strip()],
        by_the_numbers=stats,
        why_it_matters=why,
        must_read=must_read[0] if must_read else None,
        templated=templated,
    )
