"""
Shared utilities for the digest pipeline.

- config: Environment variable management and top-level pipeline config
- errors: Error taxonomy shared by every stage
- http: HTTP session creation
- logging: Structured logging utilities
- performance: Stage timing decorators
- batch_processing: Bounded worker pools with cancellation
"""

from .config import get_env_var, PipelineConfig, CacheConfig
from .http import create_http_session
from .logging import configure_logging, StructuredLogger
from .performance import track_performance, StageTimer
from .batch_processing import BatchContext, BatchProcessor
from .errors import (
    ApplicationError,
    APIError,
    RateLimitError,
    AuthenticationError,
    ConnectionError,
    FetchError,
    GenerationError,
    ProcessingError,
    ConfigurationError,
    BatchCancelledError,
)

__all__ = [
    'get_env_var',
    'PipelineConfig',
    'CacheConfig',
    'create_http_session',
    'configure_logging',
    'StructuredLogger',
    'track_performance',
    'StageTimer',
    'BatchContext',
    'BatchProcessor',
    'ApplicationError',
    'APIError',
    'RateLimitError',
    'AuthenticationError',
    'ConnectionError',
    'FetchError',
    'GenerationError',
    'ProcessingError',
    'ConfigurationError',
    'BatchCancelledError',
]
