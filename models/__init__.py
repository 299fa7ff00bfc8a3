"""Domain entities and model registry."""
