"""
Text generation, per-article summaries and digest narrative synthesis.
"""

from summarization.article_summarizer import ArticleSummarizer
from summarization.base import AnthropicGenerator, GenerationOptions, Generator
from summarization.critique import (
    CombinedCritic, Critic, Critique, CritiqueConfig, CritiqueLoop, CritiqueOutcome, CritiqueState,
    LLMCritic, LocalCritic,
)
from summarization.narrative import NarrativeSynthesizer, SynthesisResult

__all__ = [
    'ArticleSummarizer',
    'AnthropicGenerator', 'GenerationOptions', 'Generator',
    'CombinedCritic', 'Critic', 'Critique', 'CritiqueConfig', 'CritiqueLoop', 'CritiqueOutcome',
    'CritiqueState', 'LLMCritic', 'LocalCritic',
    'NarrativeSynthesizer', 'SynthesisResult',
]
