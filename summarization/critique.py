"""
Critique-refine loop for digest drafts.

The loop is an explicit state machine so round limits and termination can be
tested without a generation service:

    DRAFT -> CRITIQUE -> (no issues) DONE
                      -> (rounds left) REFINE -> CRITIQUE
                      -> (no rounds left) MAX_ROUNDS_REACHED

A failed refine keeps the previous draft and ends in DONE.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from common.config import get_env_bool, get_env_int
from common.errors import ApplicationError, ConfigurationError, GenerationError
from models.entities import Article, DigestContent
from quality.evaluator import QualityEvaluator
from summarization.base import GenerationOptions, Generator
from summarization.prompts import CRITIQUE_SCHEMA, build_critique_prompt, get_system_prompt
from summarization.text_processing import as_list

logger = logging.getLogger(__name__)

NumberedArticles = Sequence[Tuple[int, Article]]


class CritiqueState(str, Enum):
    DRAFT = "draft"
    CRITIQUE = "critique"
    REFINE = "refine"
    DONE = "done"
    MAX_ROUNDS_REACHED = "max_rounds_reached"


@dataclass
class CritiqueConfig:
    max_rounds: int = 2
    enabled: bool = True

    @classmethod
    def from_env(cls) -> "CritiqueConfig":
        return cls(
            max_rounds=get_env_int("CRITIQUE_MAX_ROUNDS", 2),
            enabled=get_env_bool("CRITIQUE_ENABLED", True),
        )

    def validate(self) -> None:
        if self.max_rounds < 0:
            raise ConfigurationError("CRITIQUE_MAX_ROUNDS cannot be negative")

    @property
    def effective_rounds(self) -> int:
        return self.max_rounds if self.enabled else 0


@dataclass
class Critique:
    articles_missing: List[int] = field(default_factory=list)
    vague_phrases: List[str] = field(default_factory=list)
    quote_accuracy_issues: List[str] = field(default_factory=list)
    overall_issues: List[str] = field(default_factory=list)
    tldr_quality: str = ""
    specificity_score: Optional[int] = None
    sources: List[str] = field(default_factory=list)

    @property
    def has_issues(self) -> bool:
        return bool(self.articles_missing or self.vague_phrases
                    or self.quote_accuracy_issues or self.overall_issues)

    def merge(self, other: "Critique") -> "Critique":
        """Union of both critiques; order of first appearance is kept."""
        def union(a, b):
            return list(dict.fromkeys(list(a) + list(b)))

        scores = [s for s in (self.specificity_score, other.specificity_score) if s is not None]
        return Critique(
            articles_missing=sorted(set(self.articles_missing) | set(other.articles_missing)),
            vague_phrases=union(self.vague_phrases, other.vague_phrases),
            quote_accuracy_issues=union(self.quote_accuracy_issues, other.quote_accuracy_issues),
            overall_issues=union(self.overall_issues, other.overall_issues),
            tldr_quality=self.tldr_quality or other.tldr_quality,
            specificity_score=min(scores) if scores else None,
            sources=union(self.sources, other.sources),
        )

    def notes(self) -> List[str]:
        """Critique as instructions for the refine prompt."""
        notes = []
        if self.articles_missing:
            refs = ", ".join(f"[{n}]" for n in self.articles_missing)
            notes.append(f"Cite these uncited articles: {refs}")
        if self.vague_phrases:
            notes.append("Replace vague wording with specifics: " + ", ".join(f"'{p}'" for p in self.vague_phrases))
        notes.extend(f"Quote accuracy: {issue}" for issue in self.quote_accuracy_issues)
        notes.extend(self.overall_issues)
        if self.tldr_quality and self.has_issues:
            notes.append(f"TL;DR: {self.tldr_quality}")
        return notes


class Critic(ABC):
    name = "critic"

    @abstractmethod
    def critique(self, draft: DigestContent, articles: NumberedArticles) -> Critique:
        """
        Raises:
            GenerationError: when the critique cannot be produced
        """


class LocalCritic(Critic):
    """Deterministic critic built on the quality detectors; never calls a service."""
    name = "local"

    def __init__(self, evaluator: Optional[QualityEvaluator] = None):
        self.evaluator = evaluator or QualityEvaluator()

    def critique(self, draft: DigestContent, articles: NumberedArticles) -> Critique:
        numbering = {article.id: number for number, article in articles}
        metrics = self.evaluator.evaluate_text(draft.body_text(), [a for _, a in articles], numbering)
        issues = []
        if metrics.number_count == 0:
            issues.append("Add concrete figures (amounts, percentages, dates) from the sources")
        return Critique(
            articles_missing=sorted(metrics.uncited_numbers),
            vague_phrases=list(dict.fromkeys(metrics.vague_phrases)),
            overall_issues=issues,
            specificity_score=metrics.specificity,
            sources=[self.name],
        )


class LLMCritic(Critic):
    name = "llm"

    def __init__(self, generator: Generator, model: Optional[str] = None):
        self.generator = generator
        self.model = model

    def critique(self, draft: DigestContent, articles: NumberedArticles) -> Critique:
        payload = self.generator.generate_structured(
            build_critique_prompt(draft, articles),
            CRITIQUE_SCHEMA,
            GenerationOptions(task="critique", model=self.model, temperature=0.0, system=get_system_prompt()),
        )
        valid_numbers = {number for number, _ in articles}
        missing = []
        for value in as_list(payload.get('articles_missing')):
            try:
                number = int(value)
            except (TypeError, ValueError):
                continue
            if number in valid_numbers:
                missing.append(number)
        score = payload.get('specificity_score')
        return Critique(
            articles_missing=sorted(set(missing)),
            vague_phrases=[str(p) for p in as_list(payload.get('vague_phrases')) if str(p).strip()],
            quote_accuracy_issues=[str(i) for i in as_list(payload.get('quote_accuracy_issues')) if str(i).strip()],
            overall_issues=[str(i) for i in as_list(payload.get('overall_issues')) if str(i).strip()],
            tldr_quality=str(payload.get('tldr_quality') or ''),
            specificity_score=int(score) if isinstance(score, (int, float)) else None,
            sources=[self.name],
        )


class CombinedCritic(Critic):
    """
    Merge several critics. A failing critic is skipped and logged; the
    combined critique fails only when every critic fails.
    """
    name = "combined"

    def __init__(self, critics: Sequence[Critic]):
        if not critics:
            raise ValueError("CombinedCritic needs at least one critic")
        self.critics = list(critics)
        self.last_errors: List[str] = []

    def critique(self, draft: DigestContent, articles: NumberedArticles) -> Critique:
        merged = None
        self.last_errors = []
        for critic in self.critics:
            try:
                result = critic.critique(draft, articles)
            except ApplicationError as e:
                logger.warning(f"{critic.name} critique failed: {e}")
                self.last_errors.append(f"{critic.name} critique failed: {e}")
                continue
            merged = result if merged is None else merged.merge(result)
        if merged is None:
            raise GenerationError("; ".join(self.last_errors) or "no critique produced")
        return merged


Refiner = Callable[[DigestContent, Critique], DigestContent]


@dataclass
class CritiqueOutcome:
    draft: DigestContent
    state: CritiqueState
    rounds: int = 0
    critiques: List[Critique] = field(default_factory=list)
    transitions: List[CritiqueState] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return {
            'state': self.state.value,
            'rounds': self.rounds,
            'critiques': len(self.critiques),
            'errors': list(self.errors),
        }


class CritiqueLoop:
    """Drives a draft through critique and refinement until it settles."""

    def __init__(self, critic: Critic, refiner: Refiner, config: Optional[CritiqueConfig] = None):
        self.critic = critic
        self.refiner = refiner
        self.config = config or CritiqueConfig()

    def run(self, draft: DigestContent, articles: NumberedArticles) -> CritiqueOutcome:
        outcome = CritiqueOutcome(draft=draft, state=CritiqueState.DRAFT, transitions=[CritiqueState.DRAFT])
        max_rounds = self.config.effective_rounds
        if max_rounds <= 0:
            self._move(outcome, CritiqueState.DONE)
            return outcome

        self._move(outcome, CritiqueState.CRITIQUE)
        critique = None
        while outcome.state not in (CritiqueState.DONE, CritiqueState.MAX_ROUNDS_REACHED):
            if outcome.state == CritiqueState.CRITIQUE:
                try:
                    critique = self.critic.critique(outcome.draft, articles)
                except ApplicationError as e:
                    logger.warning(f"Critique failed, keeping current draft: {e}")
                    outcome.errors.append(f"critique: {e}")
                    self._move(outcome, CritiqueState.DONE)
                    continue
                # partial failures inside a CombinedCritic
                outcome.errors.extend(f"critique: {e}" for e in getattr(self.critic, 'last_errors', []))
                outcome.critiques.append(critique)
                if not critique.has_issues:
                    self._move(outcome, CritiqueState.DONE)
                elif outcome.rounds >= max_rounds:
                    self._move(outcome, CritiqueState.MAX_ROUNDS_REACHED)
                else:
                    self._move(outcome, CritiqueState.REFINE)

            elif outcome.state == CritiqueState.REFINE:
                try:
                    outcome.draft = self.refiner(outcome.draft, critique)
                except ApplicationError as e:
                    logger.warning(f"Refine round {outcome.rounds + 1} failed, keeping previous draft: {e}")
                    outcome.errors.append(f"refine: {e}")
                    self._move(outcome, CritiqueState.DONE)
                    continue
                outcome.rounds += 1
                self._move(outcome, CritiqueState.CRITIQUE)

        logger.info(f"Critique loop finished in state {outcome.state.value} after {outcome.rounds} round(s)")
        return outcome

    @staticmethod
    def _move(outcome: CritiqueOutcome, state: CritiqueState) -> None:
        outcome.state = state
        outcome.transitions.append(state)
