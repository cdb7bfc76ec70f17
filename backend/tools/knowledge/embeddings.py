"""
Knowledge Embeddings - sentence-transformers embedding engine

Produces unit-normalized vectors, so Euclidean distance between two
embeddings maps onto cosine similarity (see retriever.distance_to_similarity).

The model is loaded lazily through initialize(), normally in a worker thread
during app startup. Until it has loaded, embed() raises EmbeddingUnavailable
instead of blocking the caller.
"""

import asyncio
import logging
import os
import time
from functools import lru_cache
from typing import List, Optional, Tuple

from config import runtime_config
from errors import EmbeddingFailure, EmbeddingUnavailable

logger = logging.getLogger(__name__)

# Cache config - 2,000 entries ~3MB for 384-dim embeddings
QUERY_CACHE_SIZE = int(os.environ.get("EMBED_QUERY_CACHE_SIZE", "2000"))


class EmbeddingService:
    """
    Wraps a SentenceTransformer model behind an explicit readiness flag.

    Features:
    - Lazy model load (initialize / initialize_async)
    - Normalized embeddings
    - LRU cache keyed on exact text (identical text -> identical vector)
    """

    def __init__(self, model_name: str = None, device: str = None):
        self.model_name = model_name or runtime_config.embedding_model
        self.device = device or runtime_config.embedding_device
        self._model = None
        self._dimension = None

    @property
    def ready(self) -> bool:
        return self._model is not None

    @property
    def dimension(self) -> Optional[int]:
        """Embedding dimension (None until loaded)"""
        return self._dimension

    def initialize(self) -> None:
        """Load the model. Safe to call more than once."""
        if self._model is not None:
            return

        from sentence_transformers import SentenceTransformer

        start = time.time()
        logger.info(f"Loading embedding model: {self.model_name} (device={self.device})")
        model = SentenceTransformer(self.model_name, device=self.device)
        test_emb = model.encode("test", normalize_embeddings=True, show_progress_bar=False)
        self._dimension = len(test_emb)
        self._model = model
        logger.info(f"Embedder loaded: {self._dimension} dimensions in {time.time() - start:.1f}s")

    async def initialize_async(self) -> None:
        """Load the model without blocking the event loop."""
        await asyncio.to_thread(self.initialize)

    @property
    def cache_stats(self) -> dict:
        """Get cache hit/miss statistics from lru_cache"""
        info = self._embed_cached.cache_info()
        total = info.hits + info.misses
        hit_rate = info.hits / total if total > 0 else 0
        return {
            "hits": info.hits,
            "misses": info.misses,
            "size": info.currsize,
            "maxsize": info.maxsize,
            "hit_rate": f"{hit_rate:.1%}",
        }

    @lru_cache(maxsize=QUERY_CACHE_SIZE)
    def _embed_cached(self, text: str) -> Tuple[float, ...]:
        """
        Internal cached embedding method.
        Returns tuple for hashability in cache.
        """
        embedding = self._model.encode(text, normalize_embeddings=True, show_progress_bar=False)
        return tuple(embedding.tolist())

    def embed_sync(self, text: str) -> List[float]:
        """Embed text on the calling thread."""
        if self._model is None:
            raise EmbeddingUnavailable(
                "Embedding model is not loaded yet",
                details="Retry once startup has finished",
                model=self.model_name,
            )
        try:
            result = self._embed_cached(text)
        except Exception as e:
            raise EmbeddingFailure("Embedding failed", details=str(e), model=self.model_name) from e
        return list(result)  # Return new list to prevent mutation

    async def embed(self, text: str) -> List[float]:
        """Embed text in a worker thread."""
        if self._model is None:
            raise EmbeddingUnavailable(
                "Embedding model is not loaded yet",
                details="Retry once startup has finished",
                model=self.model_name,
            )
        return await asyncio.to_thread(self.embed_sync, text)


_embedder: Optional[EmbeddingService] = None


def get_embedder() -> EmbeddingService:
    """Get or create the process-wide embedding service."""
    global _embedder
    if _embedder is None:
        _embedder = EmbeddingService()
    return _embedder
