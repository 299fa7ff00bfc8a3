"""
Prompt builders and output schemas for summaries, narratives, digests and critique.
"""

import json
from typing import Dict, List, Sequence, Tuple

from models.entities import Article, ArticleSummary, ClusterNarrative, DigestContent, TopicCluster
from summarization.text_processing import extract_source_from_url, truncate

ARTICLE_TEXT_CHARS = 6000
MEMBER_TEXT_CHARS = 600

# (citation number, article, summary or None)
NumberedArticle = Tuple[int, Article, object]


def get_system_prompt() -> str:
    return (
        "You are an editor writing a daily technology news digest. "
        "Be concrete: name companies, people and products, and keep every number, amount and date "
        "from the sources. Never use filler words like 'several', 'various', 'many' or 'some'. "
        "Cite sources with bracketed numbers such as [3] exactly as provided, and never invent a citation."
    )


ARTICLE_SUMMARY_SCHEMA = {
    "type": "object",
    "properties": {
        "summary": {"type": "string", "description": "2-3 sentence factual summary"},
        "key_points": {"type": "array", "items": {"type": "string"}, "maxItems": 5},
    },
    "required": ["summary", "key_points"],
}


def build_article_summary_prompt(article: Article) -> str:
    source = extract_source_from_url(article.url)
    return (
        f"Summarize this article from {source} in 2-3 sentences, keeping concrete facts, "
        "numbers and names. Then list up to 5 key points.\n\n"
        f"TITLE: {article.title}\n"
        f"URL: {article.url}\n\n"
        f"TEXT:\n{truncate(article.cleaned_text, ARTICLE_TEXT_CHARS)}"
    )


CLUSTER_NARRATIVE_SCHEMA = {
    "type": "object",
    "properties": {
        "title": {"type": "string", "description": "Headline for this topic, at most 60 characters"},
        "summary": {"type": "string", "description": "Narrative citing every article as [n]"},
        "key_developments": {"type": "array", "items": {"type": "string"}},
        "key_stats": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {"stat": {"type": "string"}, "context": {"type": "string"}},
                "required": ["stat", "context"],
            },
        },
        "article_refs": {"type": "array", "items": {"type": "integer"}},
        "confidence": {"type": "number", "minimum": 0, "maximum": 1},
    },
    "required": ["title", "summary", "key_developments", "article_refs", "confidence"],
}


def _format_member(number: int, article: Article, summary) -> str:
    lines = [f"[{number}] {article.title} ({extract_source_from_url(article.url)})"]
    if summary is not None and summary.summary:
        lines.append(f"    Summary: {summary.summary}")
        for point in summary.key_points[:5]:
            lines.append(f"    - {point}")
    else:
        lines.append(f"    Excerpt: {truncate(article.cleaned_text, MEMBER_TEXT_CHARS)}")
    return "\n".join(lines)


def build_cluster_narrative_prompt(cluster: TopicCluster, members: Sequence[NumberedArticle]) -> str:
    numbers = ", ".join(f"[{number}]" for number, _, _ in members)
    article_block = "\n\n".join(_format_member(n, a, s) for n, a, s in members)
    keywords = f"Keywords: {', '.join(cluster.keywords)}\n" if cluster.keywords else ""
    return (
        f"These {len(members)} articles were grouped into one topic: \"{cluster.label}\".\n"
        f"{keywords}\n"
        f"ARTICLES:\n{article_block}\n\n"
        "Write a narrative for this topic that:\n"
        f"- covers EVERY article above and cites each one at least once: {numbers}\n"
        "- leads with the most significant development\n"
        "- keeps specific numbers, dates, companies and people\n"
        "- explains how the articles relate to each other\n"
        "List the citation numbers you used in article_refs and give your confidence that the "
        "articles belong to one coherent topic."
    )


DIGEST_SCHEMA = {
    "type": "object",
    "properties": {
        "title": {"type": "string", "description": "Headline, at most 40 characters"},
        "tldr_summary": {"type": "string", "description": "One sentence, at most 75 characters"},
        "must_read": {"type": "integer", "description": "Citation number of the single most important article"},
        "top_developments": {"type": "array", "items": {"type": "string"}, "maxItems": 5},
        "by_the_numbers": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {"stat": {"type": "string"}, "context": {"type": "string"}},
                "required": ["stat", "context"],
            },
            "maxItems": 5,
        },
        "why_it_matters": {"type": "string"},
        "key_moments": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {"quote": {"type": "string"}, "citation_number": {"type": "integer"}},
                "required": ["quote", "citation_number"],
            },
        },
        "perspectives": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "type": {"type": "string", "enum": ["supporting", "opposing"]},
                    "summary": {"type": "string"},
                    "citation_numbers": {"type": "array", "items": {"type": "integer"}},
                },
                "required": ["type", "summary", "citation_numbers"],
            },
        },
        "executive_summary": {"type": "string", "description": "150-400 words citing every article"},
    },
    "required": ["title", "tldr_summary", "key_moments", "perspectives", "executive_summary"],
}


def format_article_index(articles: Sequence[Tuple[int, Article]]) -> str:
    return "\n".join(f"[{n}] {a.title} ({extract_source_from_url(a.url)})" for n, a in articles)


def format_cluster_narratives(clusters: Sequence[TopicCluster]) -> str:
    blocks = []
    for index, cluster in enumerate(clusters, start=1):
        narrative: ClusterNarrative = cluster.narrative
        lines = [f"TOPIC {index}: {narrative.title} ({len(cluster.article_ids)} articles)", narrative.summary]
        for development in narrative.key_developments:
            lines.append(f"- {development}")
        for stat in narrative.key_stats:
            lines.append(f"* {stat.get('stat', '')}: {stat.get('context', '')}")
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)


def build_digest_prompt(clusters: Sequence[TopicCluster], articles: Sequence[Tuple[int, Article]]) -> str:
    return (
        f"Combine these {len(clusters)} topic narratives into one digest covering "
        f"{len(articles)} articles.\n\n"
        f"{format_cluster_narratives(clusters)}\n\n"
        f"ARTICLE INDEX:\n{format_article_index(articles)}\n\n"
        "Requirements:\n"
        "- executive_summary cites EVERY article number in the index at least once\n"
        "- key_moments are short factual quotes or facts, each with the citation number it came from\n"
        "- perspectives give supporting and opposing viewpoints where the sources disagree; "
        "leave the list empty if they do not\n"
        "- by_the_numbers only uses figures that appear in the narratives\n"
        "- title at most 40 characters, tldr_summary at most 75 characters"
    )


CRITIQUE_SCHEMA = {
    "type": "object",
    "properties": {
        "articles_missing": {"type": "array", "items": {"type": "integer"}},
        "vague_phrases": {"type": "array", "items": {"type": "string"}},
        "quote_accuracy_issues": {"type": "array", "items": {"type": "string"}},
        "tldr_quality": {"type": "string"},
        "overall_issues": {"type": "array", "items": {"type": "string"}},
        "specificity_score": {"type": "integer", "minimum": 0, "maximum": 100},
    },
    "required": ["articles_missing", "vague_phrases", "overall_issues", "specificity_score"],
}


def build_critique_prompt(draft: DigestContent, articles: Sequence[Tuple[int, Article]]) -> str:
    return (
        "Critique this news digest draft strictly.\n\n"
        f"DRAFT:\n{json.dumps(draft.to_dict(), indent=2)}\n\n"
        f"ARTICLE INDEX:\n{format_article_index(articles)}\n\n"
        "Report:\n"
        "- articles_missing: citation numbers from the index never cited in the draft\n"
        "- vague_phrases: filler wording that should be replaced with specifics\n"
        "- quote_accuracy_issues: key moments that do not match their cited article\n"
        "- tldr_quality: one sentence on the TL;DR\n"
        "- overall_issues: anything else that must change; leave empty if the draft is ready\n"
        "- specificity_score: 0-100, how concrete the draft is"
    )


def build_refine_prompt(draft: DigestContent, critique_notes: List[str],
                        clusters: Sequence[TopicCluster], articles: Sequence[Tuple[int, Article]]) -> str:
    notes = "\n".join(f"- {note}" for note in critique_notes)
    return (
        "Revise this news digest so that every critique point is fixed. Keep everything that is "
        "already specific and correct.\n\n"
        f"CURRENT DRAFT:\n{json.dumps(draft.to_dict(), indent=2)}\n\n"
        f"CRITIQUE:\n{notes}\n\n"
        f"TOPIC NARRATIVES:\n{format_cluster_narratives(clusters)}\n\n"
        f"ARTICLE INDEX:\n{format_article_index(articles)}\n\n"
        "Return the complete revised digest."
    )
