"""
Digest quality evaluation.

`QualityEvaluator.evaluate` is a pure function of a digest and its source
articles; it touches no store, cache or network and can be run on its own
to regression-test prompt or algorithm changes.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from models.entities import Article, ClusterNarrative, Digest
from quality.metrics import (
    GRADE_LABELS, QualityThresholds, count_words, extract_citations, find_numbers,
    find_proper_nouns, find_vague_phrases, grade_rank, specificity_score,
)

logger = logging.getLogger(__name__)


@dataclass
class QualityMetrics:
    coverage: float
    cited_articles: int
    total_articles: int
    uncited_article_ids: List[str]
    uncited_numbers: List[int]
    vague_phrase_count: int
    vague_phrases: List[str]
    number_count: int
    proper_noun_count: int
    specificity: int
    citation_count: int
    citation_density: float
    word_count: int
    grade: str
    passed: bool
    warnings: List[str] = field(default_factory=list)
    deltas: List[str] = field(default_factory=list)

    @property
    def grade_label(self) -> str:
        return GRADE_LABELS.get(self.grade, self.grade)

    def to_dict(self) -> Dict[str, object]:
        return {
            'coverage': round(self.coverage, 4),
            'cited_articles': self.cited_articles,
            'total_articles': self.total_articles,
            'uncited_article_ids': list(self.uncited_article_ids),
            'vague_phrase_count': self.vague_phrase_count,
            'specificity': self.specificity,
            'citation_density': round(self.citation_density, 3),
            'word_count': self.word_count,
            'grade': self.grade,
            'passed': self.passed,
            'warnings': list(self.warnings),
            'deltas': list(self.deltas),
        }


@dataclass
class AuditReport:
    total_digests: int
    avg_coverage: float
    avg_vagueness: float
    avg_specificity: float
    grade_counts: Dict[str, int]
    recommendation: str
    metrics: List[QualityMetrics] = field(default_factory=list)


class QualityEvaluator:
    """Grades digests on coverage, vagueness, specificity and citation density."""

    def __init__(self, thresholds: Optional[QualityThresholds] = None):
        self.thresholds = thresholds or QualityThresholds()

    def evaluate(self, digest: Digest, articles: Sequence[Article]) -> QualityMetrics:
        """
        Grade a digest against the articles it was built from.

        Articles are matched to citations through the digest's citation list;
        when a digest carries none, articles are numbered 1..N in the order given.
        """
        numbering = {c.article_id: c.number for c in digest.citations}
        if not numbering:
            numbering = {article.id: index for index, article in enumerate(articles, start=1)}
        return self.evaluate_text(digest.body_text(), articles, numbering)

    def evaluate_text(self, text: str, articles: Sequence[Article],
                      numbering: Optional[Dict[str, int]] = None) -> QualityMetrics:
        """Grade arbitrary digest text; `numbering` maps article id to citation number."""
        if numbering is None:
            numbering = {article.id: index for index, article in enumerate(articles, start=1)}

        tokens = extract_citations(text)
        cited = set(tokens)
        uncited_ids = []
        uncited_numbers = []
        for article in articles:
            number = numbering.get(article.id)
            if article.id in cited or (number is not None and number in cited):
                continue
            uncited_ids.append(article.id)
            if number is not None:
                uncited_numbers.append(number)

        total = len(articles)
        covered = total - len(uncited_ids)
        coverage = covered / total if total else 0.0

        vague = find_vague_phrases(text)
        numbers = find_numbers(text)
        nouns = find_proper_nouns(text)
        specificity = specificity_score(len(numbers), len(nouns), len(vague))
        words = count_words(text)
        density = len(cited) * 100.0 / words if words else 0.0

        grade = self.thresholds.grade_for(coverage, len(vague), specificity, len(numbers), len(nouns))
        passed = grade_rank(grade) <= grade_rank(self.thresholds.pass_grade)

        warnings = []
        if not total:
            warnings.append("No source articles to evaluate against")
        if uncited_ids:
            warnings.append(f"{len(uncited_ids)} of {total} articles are never cited")
        if vague:
            warnings.append(f"Vague phrases: {', '.join(sorted(set(vague)))}")
        if words < self.thresholds.min_word_count:
            warnings.append(f"Too short: {words} words (min {self.thresholds.min_word_count})")
        elif words > self.thresholds.max_word_count:
            warnings.append(f"Too long: {words} words (max {self.thresholds.max_word_count})")
        if density < self.thresholds.min_citation_density:
            warnings.append(f"Citation density {density:.1f} per 100 words (min {self.thresholds.min_citation_density})")

        deltas = []
        target = self.thresholds.next_grade(grade)
        if target is not None:
            deltas = target.shortfalls(coverage, len(vague), specificity, len(numbers), len(nouns), total)
            deltas = [f"For {target.grade}: {delta}" for delta in deltas]

        return QualityMetrics(
            coverage=coverage,
            cited_articles=covered,
            total_articles=total,
            uncited_article_ids=uncited_ids,
            uncited_numbers=sorted(uncited_numbers),
            vague_phrase_count=len(vague),
            vague_phrases=vague,
            number_count=len(numbers),
            proper_noun_count=len(nouns),
            specificity=specificity,
            citation_count=len(tokens),
            citation_density=density,
            word_count=words,
            grade=grade,
            passed=passed,
            warnings=warnings,
            deltas=deltas,
        )

    def evaluate_cluster_narrative(self, narrative: ClusterNarrative, articles: Sequence[Article],
                                   numbering: Dict[str, int]) -> QualityMetrics:
        """Grade one cluster narrative against its member articles."""
        text = f"{narrative.title}\n{narrative.summary}\n" + "\n".join(narrative.key_developments)
        return self.evaluate_text(text, articles, numbering)

    def audit(self, records: Sequence[Tuple[Digest, Sequence[Article]]]) -> AuditReport:
        """Aggregate quality across many digests and recommend where to focus."""
        metrics = [self.evaluate(digest, articles) for digest, articles in records]
        count = len(metrics)
        grade_counts = {grade: 0 for grade in "ABCD"}
        for m in metrics:
            grade_counts[m.grade] += 1

        avg_coverage = sum(m.coverage for m in metrics) / count if count else 0.0
        avg_vagueness = sum(m.vague_phrase_count for m in metrics) / count if count else 0.0
        avg_specificity = sum(m.specificity for m in metrics) / count if count else 0.0

        if not count:
            recommendation = "No digests to audit"
        elif avg_coverage < 0.8:
            recommendation = "CRITICAL: Low coverage - cite every article in cluster narratives"
        elif avg_vagueness > 2.0:
            recommendation = "WARNING: High vagueness - improve specificity in prompts"
        elif avg_specificity < 50.0:
            recommendation = "WARNING: Low specificity - enforce fact extraction in prompts"
        else:
            recommendation = "GOOD: Current approach producing acceptable quality"

        return AuditReport(
            total_digests=count,
            avg_coverage=avg_coverage,
            avg_vagueness=avg_vagueness,
            avg_specificity=avg_specificity,
            grade_counts=grade_counts,
            recommendation=recommendation,
            metrics=metrics,
        )

    @staticmethod
    def compare(before: QualityMetrics, after: QualityMetrics) -> Dict[str, float]:
        """Per-metric change from `before` to `after`; positive grade_change means better."""
        return {
            'coverage': after.coverage - before.coverage,
            'vague_phrase_count': after.vague_phrase_count - before.vague_phrase_count,
            'specificity': after.specificity - before.specificity,
            'citation_density': after.citation_density - before.citation_density,
            'word_count': after.word_count - before.word_count,
            'grade_change': grade_rank(before.grade) - grade_rank(after.grade),
        }
