"""Automated grading of finished digests."""

from quality.evaluator import AuditReport, QualityEvaluator, QualityMetrics
from quality.metrics import GradeThreshold, QualityThresholds

__all__ = ['AuditReport', 'QualityEvaluator', 'QualityMetrics', 'GradeThreshold', 'QualityThresholds']
