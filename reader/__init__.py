"""
Feed reading and the digest pipeline.

Aggregation of sources into candidate items, source management, and the
DigestReader orchestrator that turns one pass into a stored digest.
"""

from reader.aggregator import AggregateOptions, AggregateResult, Aggregator
from reader.base_reader import DigestReader, PipelineResult
from reader.sources import DEFAULT_THEMES, SourceManager, normalize_url

__all__ = [
    'AggregateOptions', 'AggregateResult', 'Aggregator',
    'DigestReader', 'PipelineResult',
    'DEFAULT_THEMES', 'SourceManager', 'normalize_url',
]
