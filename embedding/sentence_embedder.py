"""
Embedder backed by a local sentence-transformers model.
"""

import logging
import threading
from typing import List, Optional, Sequence

import numpy as np
import torch

from common.errors import ConfigurationError, GenerationError
from embedding.base import Embedder

logger = logging.getLogger(__name__)


class SentenceTransformerEmbedder(Embedder):
    """
    Wraps a SentenceTransformer model.

    The model loads on first use so that constructing a pipeline stays cheap
    and configuration errors surface only when embeddings are needed.
    """

    def __init__(self, model_name: str = "all-MiniLM-L6-v2", device: Optional[str] = None,
                 batch_size: int = 32, normalize: bool = True):
        self.model_name = model_name
        self.device = device or ("cuda" if torch.cuda.is_available() else "cpu")
        self.batch_size = batch_size
        self.normalize = normalize
        self._model = None
        self._lock = threading.Lock()

    @property
    def model(self):
        with self._lock:
            if self._model is None:
                from sentence_transformers import SentenceTransformer
                try:
                    self._model = SentenceTransformer(self.model_name, device=self.device)
                except OSError as e:
                    raise ConfigurationError(f"Cannot load embedding model {self.model_name}: {e}") from e
                logger.info(f"Loaded embedding model {self.model_name} on {self.device}")
            return self._model

    @property
    def dimension(self) -> int:
        return int(self.model.get_sentence_embedding_dimension())

    def embed(self, text: str) -> List[float]:
        return self.embed_batch([text])[0]

    def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        if not texts:
            return []
        try:
            vectors = self.model.encode(
                list(texts),
                batch_size=self.batch_size,
                convert_to_numpy=True,
                normalize_embeddings=self.normalize,
                show_progress_bar=False,
            )
        except RuntimeError as e:
            raise GenerationError(f"Embedding failed: {e}") from e
        return np.asarray(vectors, dtype=float).tolist()
