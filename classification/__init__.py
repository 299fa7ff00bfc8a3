"""Theme relevance classification."""

from classification.base import Classifier, best_match
from classification.keyword_classifier import KeywordClassifier
from classification.llm_classifier import LLMClassifier
from classification.runner import ClassificationOptions, ClassificationResult, ClassificationRunner

__all__ = [
    'Classifier', 'best_match', 'KeywordClassifier', 'LLMClassifier',
    'ClassificationOptions', 'ClassificationResult', 'ClassificationRunner',
]
