"""
Model selection helpers.
"""

import logging
from typing import Optional

from models.config import (
    MODEL_IDENTIFIERS, MODEL_PROPERTIES, DEFAULT_MODEL, SHORTHAND_MAPPING,
    TASK_MODELS, TASK_MAX_TOKENS,
)

logger = logging.getLogger(__name__)


def get_model_identifier(model_name: Optional[str] = None) -> str:
    """
    Get the full API model identifier from a model name or shorthand.

    Args:
        model_name: Model name, shorthand, or full identifier

    Returns:
        Full API model identifier
    """
    if not model_name:
        return MODEL_IDENTIFIERS[DEFAULT_MODEL]

    if model_name in MODEL_IDENTIFIERS.values():
        return model_name

    if model_name in MODEL_IDENTIFIERS:
        return MODEL_IDENTIFIERS[model_name]

    if model_name in SHORTHAND_MAPPING:
        return MODEL_IDENTIFIERS[SHORTHAND_MAPPING[model_name]]

    # Unknown names are passed through so newer model ids work without a registry change
    logger.warning(f"Unknown model '{model_name}', passing it through unchanged")
    return model_name


def get_task_model(task: str, override: Optional[str] = None) -> str:
    """Resolve the model identifier for a generation task."""
    if override:
        return get_model_identifier(override)
    return get_model_identifier(TASK_MODELS.get(task, DEFAULT_MODEL))


def get_task_max_tokens(task: str, model_id: Optional[str] = None) -> int:
    """Token budget for a task, capped by the model's output limit."""
    budget = TASK_MAX_TOKENS.get(task, 1024)
    for name, identifier in MODEL_IDENTIFIERS.items():
        if identifier == model_id:
            return min(budget, MODEL_PROPERTIES[name]["max_output_tokens"])
    return budget
