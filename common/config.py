"""Configuration utilities for the digest pipeline."""

import json
import os
import logging
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

from common.errors import ConfigurationError

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)


def get_env_var(name, default=None):
    """
    Get an environment variable or return a default value.

    Args:
        name: Name of the environment variable
        default: Default value if not found

    Returns:
        Value of the environment variable or default
    """
    value = os.environ.get(name, default)
    if value is None:
        logger.debug(f"Environment variable {name} not found")
    return value


def get_env_int(name, default):
    value = get_env_var(name)
    if value in (None, ""):
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")


def get_env_float(name, default):
    value = get_env_var(name)
    if value in (None, ""):
        return default
    try:
        return float(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {value!r}")


def get_env_bool(name, default):
    value = get_env_var(name)
    if value in (None, ""):
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class CacheConfig:
    """Content cache location and lifetimes."""
    cache_dir: str = ".cache/digest"
    article_ttl: float = 24 * 3600
    summary_ttl: float = 7 * 24 * 3600
    memory_size: Optional[int] = None

    @classmethod
    def from_env(cls) -> "CacheConfig":
        return cls(
            cache_dir=get_env_var("CACHE_DIR", ".cache/digest"),
            article_ttl=get_env_float("CACHE_ARTICLE_TTL_HOURS", 24) * 3600,
            summary_ttl=get_env_float("CACHE_SUMMARY_TTL_HOURS", 168) * 3600,
        )


@dataclass
class PipelineConfig:
    """
    Top-level configuration for one digest run.

    Every stage keeps its own options object; this class only gathers them
    together with the credentials and model names shared across stages.
    """
    database_url: str = "sqlite:///digest.db"
    anthropic_api_key: Optional[str] = None
    digest_model: str = "sonnet"
    summary_model: Optional[str] = None
    classifier_model: str = "haiku"
    embedding_model: str = "all-MiniLM-L6-v2"
    aggregate: "object" = None
    classification: "object" = None
    clustering: "object" = None
    critique: "object" = None
    quality: "object" = None
    cache: CacheConfig = field(default_factory=CacheConfig)

    @classmethod
    def from_env(cls) -> "PipelineConfig":
        # Imported here to keep common free of import cycles with stage packages
        from reader.aggregator import AggregateOptions
        from classification.runner import ClassificationOptions
        from clustering.base import ClusteringConfig
        from summarization.critique import CritiqueConfig
        from quality.metrics import QualityThresholds

        config = cls(
            database_url=get_env_var("DATABASE_URL", "sqlite:///digest.db"),
            anthropic_api_key=get_env_var("ANTHROPIC_API_KEY"),
            digest_model=get_env_var("DIGEST_MODEL", "sonnet"),
            summary_model=get_env_var("SUMMARY_MODEL"),
            classifier_model=get_env_var("CLASSIFIER_MODEL", "haiku"),
            embedding_model=get_env_var("EMBEDDING_MODEL", "all-MiniLM-L6-v2"),
            aggregate=AggregateOptions.from_env(),
            classification=ClassificationOptions.from_env(),
            clustering=ClusteringConfig.from_env(),
            critique=CritiqueConfig.from_env(),
            quality=QualityThresholds.from_env(),
            cache=CacheConfig.from_env(),
        )
        return config

    def validate(self, require_generator: bool = True) -> None:
        """
        Check the configuration before any work starts.

        Raises:
            ConfigurationError: if a credential is missing or a value is out of range
        """
        if require_generator and not self.anthropic_api_key:
            raise ConfigurationError("ANTHROPIC_API_KEY is not set")
        if not self.database_url:
            raise ConfigurationError("DATABASE_URL is not set")
        for options in (self.aggregate, self.classification, self.clustering, self.critique):
            if options is not None and hasattr(options, "validate"):
                options.validate()


def load_json_env(name):
    """Parse a JSON document stored in an environment variable, or return None."""
    raw = get_env_var(name)
    if not raw:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"{name} is not valid JSON: {e}")
