"""
Knowledge Retriever - the gateway between the agent and the vector store

Embeds queries, runs nearest-neighbor search, turns Euclidean distance into a
bounded similarity score and applies the similarity floor. Writes go through
upsert (delete-by-id, then insert) and remove.

Similarity is derived for unit-normalized embeddings:

    similarity = max(0, 1 - distance**2 / 2)

which is cosine similarity clamped at zero. similarity_threshold values are
tuned against this conversion; changing the metric means re-tuning them.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from errors import StoreNotReady
from logging_config import log_tool

from .embeddings import EmbeddingService, get_embedder
from .vectorstore import KnowledgeVectorStore, VectorRecord, get_vector_store

logger = logging.getLogger(__name__)


def distance_to_similarity(distance: float) -> float:
    """Euclidean distance between unit vectors -> similarity in [0, 1]."""
    return min(1.0, max(0.0, 1.0 - (distance * distance) / 2.0))


@dataclass
class SearchResult:
    """A retrieved document with its similarity to the query"""

    id: str
    text: str
    similarity: float
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def title(self) -> str:
        return self.metadata.get("title") or "Untitled"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "similarity": round(self.similarity, 4),
            "metadata": self.metadata,
        }


class KnowledgeRetriever:
    """
    Retrieval gateway over the embedding service and the vector store.

    All store operations fail fast with StoreNotReady while the store is not
    connected. Embedding calls fail with EmbeddingUnavailable while the model
    is still loading.
    """

    def __init__(
        self,
        embedder: Optional[EmbeddingService] = None,
        store: Optional[KnowledgeVectorStore] = None,
    ):
        self.embedder = embedder or get_embedder()
        self.store = store or get_vector_store()

    @property
    def ready(self) -> bool:
        return self.store.ready and self.embedder.ready

    def _require_store(self) -> None:
        if not self.store.ready:
            raise StoreNotReady(
                "Vector store is not initialized",
                details="Retry once startup has finished",
                collection=self.store.collection,
            )

    async def embed(self, text: str) -> List[float]:
        return await self.embedder.embed(text)

    async def search(self, query: str, limit: int, min_similarity: float = 0.0) -> List[SearchResult]:
        """
        Nearest documents to query with similarity >= min_similarity.

        Args:
            query: Search text
            limit: Number of candidates requested from the store
            min_similarity: Similarity floor (0-1)

        Returns:
            SearchResults, nearest first
        """
        self._require_store()
        start = time.time()
        log_tool(logger, "knowledge_search", "start", query=repr(query[:60]), limit=limit)

        vector = await self.embed(query)
        hits = await asyncio.to_thread(self.store.search, vector, limit)

        results = []
        for record, distance in hits:
            similarity = distance_to_similarity(distance)
            if similarity < min_similarity:
                continue
            metadata = dict(record.metadata)
            metadata.update({
                "title": record.title,
                "created_at": record.created_at,
                "updated_at": record.updated_at,
            })
            results.append(SearchResult(id=record.id, text=record.text, similarity=similarity, metadata=metadata))

        log_tool(
            logger,
            "knowledge_search",
            "end",
            candidates=len(hits),
            kept=len(results),
            duration=f"{time.time() - start:.2f}s",
        )
        return results

    async def upsert(self, doc_id: str, text: str, metadata: Dict[str, Any]) -> None:
        """
        Embed text and store it under doc_id, replacing any previous version.

        metadata must carry title, created_at and updated_at; remaining keys
        are stored as flat metadata fields.
        """
        self._require_store()
        vector = await self.embed(text)

        extra = {k: v for k, v in metadata.items() if k not in ("title", "created_at", "updated_at")}
        record = VectorRecord(
            id=doc_id,
            text=text,
            title=metadata.get("title", ""),
            created_at=int(metadata.get("created_at", 0)),
            updated_at=int(metadata.get("updated_at", 0)),
            vector=vector,
            metadata=extra,
        )

        await asyncio.to_thread(self.store.delete_where, doc_id)
        await asyncio.to_thread(self.store.upsert, record)
        log_tool(logger, "knowledge_upsert", "end", id=doc_id, chars=len(text))

    async def remove(self, doc_id: str) -> None:
        """Delete doc_id; deleting a missing id is not an error."""
        self._require_store()
        await asyncio.to_thread(self.store.delete_where, doc_id)
        log_tool(logger, "knowledge_remove", "end", id=doc_id)

    async def get(self, doc_id: str) -> Optional[VectorRecord]:
        self._require_store()
        return await asyncio.to_thread(self.store.get, doc_id)

    async def scan(self, limit: int = 1000) -> List[VectorRecord]:
        self._require_store()
        return await asyncio.to_thread(self.store.scan, limit)


_retriever: Optional[KnowledgeRetriever] = None


def get_retriever() -> KnowledgeRetriever:
    """Get or create the process-wide retriever."""
    global _retriever
    if _retriever is None:
        _retriever = KnowledgeRetriever()
    return _retriever


def set_retriever(retriever: Optional[KnowledgeRetriever]) -> None:
    """Replace the process-wide retriever (startup wiring, tests)."""
    global _retriever
    _retriever = retriever
