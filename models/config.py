"""
Centralized configuration for Claude models used by the pipeline.
"""

# Complete model identifiers for API calls
MODEL_IDENTIFIERS = {
    "claude-sonnet-4.5": "claude-sonnet-4-5",
    "claude-haiku-4.5": "claude-haiku-4-5",
}

# Per-model output limits used when a caller does not set max_tokens
MODEL_PROPERTIES = {
    "claude-sonnet-4.5": {
        "name": "Claude 4.5 Sonnet",
        "max_output_tokens": 8192,
        "recommended_for": ["cluster narratives", "digest synthesis", "critique"],
    },
    "claude-haiku-4.5": {
        "name": "Claude 4.5 Haiku",
        "max_output_tokens": 4096,
        "recommended_for": ["theme classification", "article summaries"],
    },
}

DEFAULT_MODEL = "claude-sonnet-4.5"

# Mapping from shorthand names to full model names
SHORTHAND_MAPPING = {
    "sonnet-4.5": "claude-sonnet-4.5",
    "sonnet": "claude-sonnet-4.5",
    "haiku-4.5": "claude-haiku-4.5",
    "haiku": "claude-haiku-4.5",
}

# Which model each generation task uses unless configured otherwise
TASK_MODELS = {
    "classification": "claude-haiku-4.5",
    "article_summary": "claude-haiku-4.5",
    "cluster_narrative": "claude-sonnet-4.5",
    "digest": "claude-sonnet-4.5",
    "critique": "claude-sonnet-4.5",
}

# Token budgets per task
TASK_MAX_TOKENS = {
    "classification": 1024,
    "article_summary": 600,
    "cluster_narrative": 2048,
    "digest": 4096,
    "critique": 2048,
}
