"""
Detectors and thresholds used to grade digest text.

Every function here is pure and works on plain strings.
"""

import math
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple, Union

from common.config import load_json_env
from common.errors import ConfigurationError

VAGUE_PHRASES = [
    "a number of", "a couple of", "a few", "several", "various", "multiple", "many",
    "some", "numerous", "different", "certain",
]

# Capitalised words that are not names
COMMON_WORDS = {
    "The", "This", "That", "These", "Those", "There", "Their", "They", "With", "From", "When",
    "What", "Where", "Which", "While", "After", "Before", "About", "Also", "And", "But", "For",
    "Its", "Our", "Why", "How", "Here", "Now", "New", "All", "One", "Two", "Three", "Key",
    "Top", "Meanwhile", "However", "Today", "Week", "This Week", "TL", "DR", "Also", "Both",
    "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday", "Why It Matters",
}

GRADE_LABELS = {"A": "A - EXCELLENT", "B": "B - GOOD", "C": "C - FAIR", "D": "D - POOR"}

_CITATION_RE = re.compile(r"\[([^\[\]\n]{1,80})\]")
_NUMBER_RE = re.compile(
    r"\$\d[\d,]*(?:\.\d+)?\s?(?:[BMK]\b|billion|million|thousand|trillion)?"
    r"|\d[\d,]*(?:\.\d+)?\s?(?:%|x\b|percent\b)?"
)
_DATE_RE = re.compile(
    r"\b(?:Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Sept|Oct|Nov|Dec)[a-z]*\.?\s+\d{1,2}\b"
    r"|\b\d{4}-\d{2}-\d{2}\b"
)
_MULTI_NOUN_RE = re.compile(r"\b[A-Z][a-zA-Z0-9]+(?:\s+[A-Z][a-zA-Z0-9]+)+\b")
_SINGLE_NOUN_RE = re.compile(r"\b[A-Z][a-zA-Z0-9]{2,}\b")
_WORD_RE = re.compile(r"\b[\w'’-]+\b")
_VAGUE_RES = [(phrase, re.compile(r"\b" + re.escape(phrase) + r"\b", re.IGNORECASE)) for phrase in VAGUE_PHRASES]

CitationToken = Union[int, str]


def strip_citations(text: str) -> str:
    return _CITATION_RE.sub(" ", text or "")


def extract_citations(text: str) -> List[CitationToken]:
    """
    Citation references in order of appearance.

    Accepts [3], [1, 2] and [article-id]; numeric tokens come back as ints.
    """
    tokens: List[CitationToken] = []
    for match in _CITATION_RE.finditer(text or ""):
        for part in match.group(1).split(","):
            part = part.strip()
            if not part:
                continue
            if part.isdigit():
                tokens.append(int(part))
            elif re.fullmatch(r"[\w\-:.]+", part):
                tokens.append(part)
    return tokens


def find_vague_phrases(text: str) -> List[str]:
    """Every occurrence of a filler phrase, whole words only, case-insensitive."""
    found = []
    remaining = text or ""
    for phrase, pattern in _VAGUE_RES:
        hits = pattern.findall(remaining)
        found.extend(phrase for _ in hits)
        # Longer phrases go first; blank them so "a few" is not also counted as "few"
        remaining = pattern.sub(" ", remaining)
    return found


def find_numbers(text: str) -> List[str]:
    """Numbers, money, percentages, multipliers and dates, ignoring citation markers."""
    stripped = strip_citations(text)
    found = [m.group(0).strip() for m in _DATE_RE.finditer(stripped)]
    without_dates = _DATE_RE.sub(" ", stripped)
    found.extend(m.group(0).strip() for m in _NUMBER_RE.finditer(without_dates) if any(c.isdigit() for c in m.group(0)))
    return found


def find_proper_nouns(text: str) -> Set[str]:
    """Distinct capitalised names and multi-word proper phrases."""
    stripped = strip_citations(text)
    nouns = set()
    for match in _MULTI_NOUN_RE.finditer(stripped):
        phrase = match.group(0)
        words = [w for w in phrase.split() if w not in COMMON_WORDS]
        if len(words) >= 2:
            nouns.add(" ".join(words))
    for match in _SINGLE_NOUN_RE.finditer(stripped):
        word = match.group(0)
        if word not in COMMON_WORDS:
            nouns.add(word)
    return nouns


def count_words(text: str) -> int:
    return len(_WORD_RE.findall(strip_citations(text)))


def specificity_score(number_count: int, proper_noun_count: int, vague_count: int) -> int:
    """0-100: up to 40 points for numbers, 40 for names, minus 10 per vague phrase."""
    score = min(number_count * 10, 40) + min(proper_noun_count * 8, 40) - vague_count * 10
    return max(0, min(100, score))


@dataclass
class GradeThreshold:
    grade: str
    min_coverage: float
    max_vague: int
    min_specificity: int
    require_numbers: bool = False
    require_names: bool = False

    def met_by(self, coverage: float, vague: int, specificity: int, numbers: int, names: int) -> bool:
        return (coverage >= self.min_coverage
                and vague <= self.max_vague
                and specificity >= self.min_specificity
                and (numbers > 0 or not self.require_numbers)
                and (names > 0 or not self.require_names))

    def shortfalls(self, coverage: float, vague: int, specificity: int, numbers: int, names: int,
                   total_articles: int) -> List[str]:
        """Concrete changes needed to reach this grade."""
        deltas = []
        if coverage < self.min_coverage:
            needed = max(1, math.ceil(self.min_coverage * total_articles - 1e-9) - int(round(coverage * total_articles)))
            deltas.append(f"Cite {needed} more article(s) to reach {self.min_coverage:.0%} coverage")
        if vague > self.max_vague:
            deltas.append(f"Remove {vague - self.max_vague} vague phrase(s) (max {self.max_vague})")
        if specificity < self.min_specificity:
            deltas.append(f"Raise specificity by {self.min_specificity - specificity} points with concrete numbers and names")
        if self.require_numbers and numbers == 0:
            deltas.append("Include at least one concrete number, amount or date")
        if self.require_names and names == 0:
            deltas.append("Name the companies, people or products involved")
        return deltas


DEFAULT_GRADES = [
    GradeThreshold("A", min_coverage=0.80, max_vague=2, min_specificity=50, require_numbers=True, require_names=True),
    GradeThreshold("B", min_coverage=0.60, max_vague=3, min_specificity=35, require_numbers=True),
    GradeThreshold("C", min_coverage=0.40, max_vague=5, min_specificity=20),
]


@dataclass
class QualityThresholds:
    """
    Grade cutoffs and soft targets.

    Grades are checked best first; a digest failing every cutoff is a D.
    """
    grades: List[GradeThreshold] = field(default_factory=lambda: [GradeThreshold(**vars(g)) for g in DEFAULT_GRADES])
    min_word_count: int = 150
    max_word_count: int = 400
    min_citation_density: float = 2.0
    pass_grade: str = "B"

    @classmethod
    def from_env(cls) -> "QualityThresholds":
        """Defaults, overridden by QUALITY_GRADE_THRESHOLDS, e.g. {"A": {"min_coverage": 0.9}}."""
        thresholds = cls()
        overrides = load_json_env("QUALITY_GRADE_THRESHOLDS")
        if overrides:
            thresholds.apply_overrides(overrides)
        return thresholds

    def apply_overrides(self, overrides: Dict[str, Dict[str, object]]) -> None:
        by_grade = {g.grade: g for g in self.grades}
        for grade, values in overrides.items():
            if grade in ("min_word_count", "max_word_count", "min_citation_density", "pass_grade"):
                setattr(self, grade, values)
                continue
            threshold = by_grade.get(grade)
            if threshold is None or not isinstance(values, dict):
                raise ConfigurationError(f"Unknown grade threshold override: {grade}")
            for key, value in values.items():
                if not hasattr(threshold, key) or key == "grade":
                    raise ConfigurationError(f"Unknown field {key!r} for grade {grade}")
                setattr(threshold, key, value)

    def grade_for(self, coverage: float, vague: int, specificity: int, numbers: int, names: int) -> str:
        for threshold in self.grades:
            if threshold.met_by(coverage, vague, specificity, numbers, names):
                return threshold.grade
        return "D"

    def next_grade(self, grade: str) -> Optional[GradeThreshold]:
        """Threshold one step above `grade`, or None at the top."""
        order = [g.grade for g in self.grades]
        if grade not in order:
            return self.grades[-1] if self.grades else None
        index = order.index(grade)
        return self.grades[index - 1] if index > 0 else None

    def threshold(self, grade: str) -> Optional[GradeThreshold]:
        for threshold in self.grades:
            if threshold.grade == grade:
                return threshold
        return None


def grade_rank(grade: str) -> int:
    """Lower is better: A=0 ... D=3."""
    return "ABCD".index(grade) if grade in "ABCD" else 3
