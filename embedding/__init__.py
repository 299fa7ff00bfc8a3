"""Embedding service adapters."""

from embedding.base import Embedder, embedding_text

__all__ = ['Embedder', 'embedding_text']
