"""
Two-stage narrative synthesis.

Stage one writes one narrative per topic cluster from all of its member
articles. Stage two merges the cluster narratives into a single digest,
which the critique loop then refines. Either stage falls back to a templated
narrative built from titles and counts, so synthesis always produces a digest.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from common.batch_processing import BatchContext, BatchProcessor
from common.errors import ApplicationError, GenerationError
from common.logging import StructuredLogger
from common.performance import track_performance
from models.entities import (
    Article, ArticleGroup, ArticleSummary, Citation, ClusterNarrative, Digest, DigestContent,
    KeyMoment, TopicCluster, digest_content_from_dict,
)
from quality.evaluator import QualityEvaluator
from quality.metrics import extract_citations
from summarization.base import GenerationOptions, Generator
from summarization.critique import (
    CombinedCritic, Critic, Critique, CritiqueConfig, CritiqueLoop, CritiqueOutcome, LLMCritic, LocalCritic,
)
from summarization.prompts import (
    CLUSTER_NARRATIVE_SCHEMA, DIGEST_SCHEMA, build_cluster_narrative_prompt, build_digest_prompt,
    build_refine_prompt, get_system_prompt,
)
from summarization.text_processing import as_list, clean_text, first_sentence, truncate

logger = logging.getLogger(__name__)

DIGEST_TITLE_CHARS = 40
TLDR_CHARS = 75
MAX_KEY_MOMENTS = 5
FALLBACK_TITLE = "Daily Digest"

NumberedArticles = List[Tuple[int, Article]]


def _plural(count: int, word: str) -> str:
    return f"{count} {word}" if count == 1 else f"{count} {word}s"


@dataclass
class SynthesisResult:
    digest: Digest
    numbered: NumberedArticles
    critique: Optional[CritiqueOutcome] = None
    templated_clusters: int = 0
    templated_digest: bool = False
    errors: List[str] = field(default_factory=list)


class NarrativeSynthesizer:
    """
    Builds a Digest from topic clusters.

    Articles are numbered once, globally, in cluster order then member order;
    every narrative, critique and the final digest cite those numbers.
    """

    def __init__(self, generator: Optional[Generator] = None,
                 critique_config: Optional[CritiqueConfig] = None,
                 evaluator: Optional[QualityEvaluator] = None,
                 critic: Optional[Critic] = None,
                 model: Optional[str] = None,
                 max_workers: int = 3):
        """
        Args:
            generator: Text generator; without one every stage is templated
            critique_config: Round limit for the critique loop
            evaluator: Evaluator backing the local critic
            critic: Replaces the default local + LLM critic
            model: Model override for cluster narratives, digest and refine calls
            max_workers: Cluster narratives generated in parallel
        """
        self.generator = generator
        self.critique_config = critique_config or CritiqueConfig()
        self.model = model
        self.max_workers = max_workers
        if critic is None:
            critics: List[Critic] = [LocalCritic(evaluator)]
            if generator is not None:
                critics.append(LLMCritic(generator, model=model))
            critic = CombinedCritic(critics)
        self.critic = critic
        self.logger = StructuredLogger(__name__, stage="synthesize")

    @staticmethod
    def number_articles(clusters: Sequence[TopicCluster], articles_by_id: Dict[str, Article]) -> NumberedArticles:
        numbered = []
        for cluster in clusters:
            for article_id in cluster.article_ids:
                numbered.append((len(numbered) + 1, articles_by_id[article_id]))
        return numbered

    @track_performance(name="synthesize")
    def synthesize(self, clusters: Sequence[TopicCluster], articles: Sequence[Article],
                   summaries: Optional[Dict[str, ArticleSummary]] = None,
                   context: Optional[BatchContext] = None) -> SynthesisResult:
        """
        Run both stages and the critique loop.

        Raises:
            ValueError: if there are no clusters or a cluster member is not in `articles`
            BatchCancelledError: if the context is cancelled during stage one
        """
        if not clusters:
            raise ValueError("Cannot synthesize a digest from zero clusters")
        articles_by_id = {article.id: article for article in articles}
        unknown = [aid for c in clusters for aid in c.article_ids if aid not in articles_by_id]
        if unknown:
            raise ValueError(f"Cluster members without articles: {', '.join(unknown[:5])}")

        summaries = summaries or {}
        numbered = self.number_articles(clusters, articles_by_id)
        number_of = {article.id: number for number, article in numbered}
        errors: List[str] = []

        # Stage 1: one narrative per cluster
        def narrate(cluster):
            members = [(number_of[aid], articles_by_id[aid], summaries.get(aid)) for aid in cluster.article_ids]
            cluster.narrative = self.synthesize_cluster(cluster, members, errors)
            return cluster.narrative

        processor = BatchProcessor(max_workers=self.max_workers, name="narrative")
        for outcome in processor.process_batch(clusters, narrate, context=context):
            if not outcome['success']:
                cluster = outcome['item']
                errors.append(f"cluster '{cluster.label}': {outcome['error']}")
                members = [(number_of[aid], articles_by_id[aid], summaries.get(aid)) for aid in cluster.article_ids]
                cluster.narrative = self.templated_cluster_narrative(cluster, members)

        # Stage 2: unified digest, then critique
        draft = self.synthesize_digest(clusters, numbered, summaries, errors)
        outcome = None
        if draft.templated:
            self.logger.info("Skipping critique for templated digest")
        else:
            loop = CritiqueLoop(self.critic, lambda d, c: self.refine(d, c, clusters, numbered), self.critique_config)
            outcome = loop.run(draft, numbered)
            draft = outcome.draft
            errors.extend(outcome.errors)

        digest = self.build_digest(draft, clusters, numbered)
        templated_clusters = sum(1 for c in clusters if c.narrative is not None and c.narrative.templated)
        self.logger.info(
            f"Synthesized digest '{digest.title}' from {len(clusters)} clusters and "
            f"{digest.article_count} articles ({templated_clusters} templated narratives)"
        )
        return SynthesisResult(
            digest=digest,
            numbered=numbered,
            critique=outcome,
            templated_clusters=templated_clusters,
            templated_digest=draft.templated,
            errors=errors,
        )

    # Stage 1

    def synthesize_cluster(self, cluster: TopicCluster, members: Sequence[Tuple[int, Article, Optional[ArticleSummary]]],
                           errors: Optional[List[str]] = None) -> ClusterNarrative:
        """Narrative for one cluster; templated when generation fails. Never raises ApplicationError."""
        if self.generator is None:
            return self.templated_cluster_narrative(cluster, members)
        try:
            payload = self.generator.generate_structured(
                build_cluster_narrative_prompt(cluster, members),
                CLUSTER_NARRATIVE_SCHEMA,
                GenerationOptions(task="cluster_narrative", model=self.model, system=get_system_prompt()),
            )
            narrative = self._narrative_from_payload(cluster, payload, members)
        except ApplicationError as e:
            logger.warning(f"Cluster narrative failed for '{cluster.label}', using template: {e}")
            if errors is not None:
                errors.append(f"cluster '{cluster.label}': {e}")
            return self.templated_cluster_narrative(cluster, members)
        self.ensure_coverage(narrative, members)
        return narrative

    @staticmethod
    def _narrative_from_payload(cluster: TopicCluster, payload: Dict, members) -> ClusterNarrative:
        summary = clean_text(str(payload.get('summary') or ''))
        if not summary:
            raise GenerationError("cluster narrative has no summary")
        valid = {number for number, _, _ in members}
        refs = []
        for value in as_list(payload.get('article_refs')):
            try:
                number = int(value)
            except (TypeError, ValueError):
                continue
            if number in valid and number not in refs:
                refs.append(number)
        stats = [
            {'stat': str(s.get('stat')).strip(), 'context': str(s.get('context') or '').strip()}
            for s in as_list(payload.get('key_stats')) if isinstance(s, dict) and s.get('stat')
        ]
        try:
            confidence = float(payload.get('confidence', 0.0))
        except (TypeError, ValueError):
            confidence = 0.0
        return ClusterNarrative(
            title=clean_text(str(payload.get('title') or '')) or cluster.label,
            summary=summary,
            key_developments=[clean_text(str(d)) for d in as_list(payload.get('key_developments')) if str(d).strip()],
            key_stats=stats,
            article_refs=sorted(refs),
            confidence=max(0.0, min(1.0, confidence)),
        )

    @staticmethod
    def ensure_coverage(narrative: ClusterNarrative, members) -> List[int]:
        """
        Append an "Also covered:" sentence citing members the narrative skipped.

        Returns the citation numbers that had to be appended.
        """
        text = " ".join([narrative.summary] + list(narrative.key_developments))
        cited = set(extract_citations(text))
        missing = [(number, article) for number, article, _ in members if number not in cited]
        if missing:
            refs = "; ".join(f"{article.title} [{number}]" for number, article in missing)
            narrative.summary = f"{narrative.summary.rstrip()} Also covered: {refs}."
        narrative.article_refs = sorted({number for number, _, _ in members})
        return [number for number, _ in missing]

    @staticmethod
    def templated_cluster_narrative(cluster: TopicCluster, members) -> ClusterNarrative:
        listing = "; ".join(f"{article.title} [{number}]" for number, article, _ in members)
        developments = []
        for number, article, summary in members[:3]:
            sentence = first_sentence(summary.summary if summary else article.cleaned_text) or article.title
            developments.append(f"{sentence} [{number}]")
        return ClusterNarrative(
            title=cluster.label,
            summary=f"{_plural(len(members), 'article')} on {cluster.label}: {listing}.",
            key_developments=developments,
            article_refs=[number for number, _, _ in members],
            confidence=0.0,
            templated=True,
        )

    # Stage 2

    def synthesize_digest(self, clusters: Sequence[TopicCluster], numbered: NumberedArticles,
                          summaries: Optional[Dict[str, ArticleSummary]] = None,
                          errors: Optional[List[str]] = None) -> DigestContent:
        """First digest draft from the cluster narratives; templated when generation fails."""
        if self.generator is None:
            return self.templated_digest(clusters, numbered, summaries)
        self.fill_missing_narratives(clusters, numbered, summaries)
        try:
            payload = self.generator.generate_structured(
                build_digest_prompt(clusters, numbered),
                DIGEST_SCHEMA,
                GenerationOptions(task="digest", model=self.model, system=get_system_prompt()),
            )
            return self._content_from_payload(payload, numbered)
        except ApplicationError as e:
            logger.warning(f"Digest synthesis failed, using template: {e}")
            if errors is not None:
                errors.append(f"digest: {e}")
            return self.templated_digest(clusters, numbered, summaries)

    def fill_missing_narratives(self, clusters: Sequence[TopicCluster], numbered: NumberedArticles,
                                summaries: Optional[Dict[str, ArticleSummary]] = None) -> None:
        """Give a templated narrative to every cluster that has none yet."""
        summaries = summaries or {}
        number_of = {article.id: number for number, article in numbered}
        articles_by_id = {article.id: article for _, article in numbered}
        for cluster in clusters:
            if cluster.narrative is not None:
                continue
            members = [(number_of[aid], articles_by_id[aid], summaries.get(aid))
                       for aid in cluster.article_ids if aid in number_of]
            cluster.narrative = self.templated_cluster_narrative(cluster, members)

    def refine(self, draft: DigestContent, critique: Critique, clusters: Sequence[TopicCluster],
               numbered: NumberedArticles) -> DigestContent:
        """
        Regenerate a draft so it addresses the critique.

        Raises:
            GenerationError: (or an APIError) if no usable draft comes back
        """
        if self.generator is None:
            raise GenerationError("No generator configured for refinement")
        self.fill_missing_narratives(clusters, numbered)
        payload = self.generator.generate_structured(
            build_refine_prompt(draft, critique.notes(), clusters, numbered),
            DIGEST_SCHEMA,
            GenerationOptions(task="digest", model=self.model, system=get_system_prompt()),
        )
        return self._content_from_payload(payload, numbered)

    @staticmethod
    def _content_from_payload(payload: Dict, numbered: NumberedArticles) -> DigestContent:
        try:
            content = digest_content_from_dict(payload)
        except ValueError as e:
            raise GenerationError(f"Unusable digest payload: {e}") from e
        valid = {number for number, _ in numbered}
        content.title = truncate(content.title, DIGEST_TITLE_CHARS)
        content.tldr_summary = truncate(content.tldr_summary, TLDR_CHARS)
        content.key_moments = [m for m in content.key_moments if m.citation_number in valid]
        for perspective in content.perspectives:
            perspective.citation_numbers = [n for n in perspective.citation_numbers if n in valid]
        if content.must_read is not None and content.must_read not in valid:
            content.must_read = None
        return content

    @staticmethod
    def templated_digest(clusters: Sequence[TopicCluster], numbered: NumberedArticles,
                         summaries: Optional[Dict[str, ArticleSummary]] = None) -> DigestContent:
        summaries = summaries or {}
        number_of = {article.id: number for number, article in numbered}
        articles_by_id = {article.id: article for _, article in numbered}

        labels = [c.label for c in clusters[:3]]
        title = truncate(" & ".join(labels), DIGEST_TITLE_CHARS) if labels else FALLBACK_TITLE

        key_moments = []
        sentences = []
        for cluster in clusters:
            lead_id = cluster.representative_id if cluster.representative_id in number_of else cluster.article_ids[0]
            lead = articles_by_id[lead_id]
            if len(key_moments) < MAX_KEY_MOMENTS:
                summary = summaries.get(lead_id)
                quote = first_sentence(summary.summary if summary else lead.cleaned_text) or lead.title
                key_moments.append(KeyMoment(quote=quote, citation_number=number_of[lead_id]))
            refs = "; ".join(f"{articles_by_id[aid].title} [{number_of[aid]}]" for aid in cluster.article_ids)
            sentences.append(f"{cluster.label} ({_plural(len(cluster.article_ids), 'article')}): {refs}.")

        themes = Counter(c.theme_name for c in clusters if c.theme_name)
        why = ""
        if themes:
            why = f"Most coverage today falls under {themes.most_common(1)[0][0]}."
        return DigestContent(
            title=title,
            tldr_summary=(f"This digest covers {_plural(len(numbered), 'article')} "
                          f"across {_plural(len(clusters), 'topic')}"),
            executive_summary=" ".join(sentences),
            key_moments=key_moments,
            perspectives=[],
            top_developments=[c.label for c in clusters[:5]],
            why_it_matters=why,
            templated=True,
        )

    @staticmethod
    def build_digest(content: DigestContent, clusters: Sequence[TopicCluster], numbered: NumberedArticles) -> Digest:
        groups = [
            ArticleGroup(
                label=cluster.label,
                article_ids=list(cluster.article_ids),
                theme_name=cluster.theme_name,
                summary=cluster.narrative.summary if cluster.narrative else "",
            )
            for cluster in clusters
        ]
        citations = [Citation(number=n, article_id=a.id, url=a.url, title=a.title) for n, a in numbered]
        return Digest(
            content=content,
            article_groups=groups,
            citations=citations,
            cluster_id=clusters[0].id if len(clusters) == 1 else None,
        )
