"""
Embedding service interface.
"""

from abc import ABC, abstractmethod
from typing import List, Sequence

from models.entities import Article
from summarization.text_processing import truncate

# Title plus the opening of the body carries the topic; the tail adds noise
EMBEDDING_TEXT_CHARS = 1500


def embedding_text(article: Article) -> str:
    body = truncate(article.cleaned_text, EMBEDDING_TEXT_CHARS)
    return f"{article.title}\n\n{body}".strip()


class Embedder(ABC):
    """Produces fixed-length float vectors for text."""

    @property
    @abstractmethod
    def dimension(self) -> int:
        """Length of every vector this embedder returns."""

    @abstractmethod
    def embed(self, text: str) -> List[float]:
        """
        Embed one text.

        Raises:
            GenerationError: if the embedding service fails
        """

    def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        return [self.embed(text) for text in texts]
