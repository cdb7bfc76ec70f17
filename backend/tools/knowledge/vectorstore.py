"""
Knowledge Vector Store - Qdrant-based document storage

One point per knowledge document. The collection uses Euclidean distance over
unit-normalized embeddings and is created on the first insert, sized to that
vector. Point ids are derived from document ids (uuid5), and every point also
carries the document id in its payload so deletes can go through a filter.

Connection order: QDRANT_URL (server), then QDRANT_PATH (embedded, on disk),
else an in-memory instance.
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
from qdrant_client import QdrantClient
from qdrant_client.models import (
    Distance,
    FieldCondition,
    Filter,
    FilterSelector,
    MatchValue,
    PayloadSchemaType,
    PointStruct,
    VectorParams,
)

from config import runtime_config
from errors import StoreNotReady

logger = logging.getLogger(__name__)

# Namespace for deriving point ids from document ids
POINT_NAMESPACE = uuid.UUID("6f1c2e0a-5d7b-4b8e-9a3c-2f4d8e6b1a90")

# Payload fields owned by the store; metadata keys with these names are dropped
RESERVED_FIELDS = ("doc_id", "text", "title", "created_at", "updated_at")


def doc_id_to_point_id(doc_id: str) -> str:
    """Qdrant point ids must be unsigned ints or UUIDs."""
    return str(uuid.uuid5(POINT_NAMESPACE, doc_id))


def get_qdrant_client() -> QdrantClient:
    """Get Qdrant client from config (server, local path, or in-memory)."""
    if runtime_config.qdrant_url:
        return QdrantClient(url=runtime_config.qdrant_url)
    if runtime_config.qdrant_path:
        return QdrantClient(path=runtime_config.qdrant_path)
    return QdrantClient(location=":memory:")


@dataclass
class VectorRecord:
    """A stored document: id, vector, text, title, timestamps, flat metadata."""

    id: str
    text: str
    title: str
    created_at: int
    updated_at: int
    vector: Optional[List[float]] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        payload = {k: v for k, v in self.metadata.items() if k not in RESERVED_FIELDS}
        payload.update({
            "doc_id": self.id,
            "text": self.text,
            "title": self.title,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        })
        return payload

    @classmethod
    def from_payload(cls, payload: Dict[str, Any], vector: Optional[List[float]] = None) -> "VectorRecord":
        payload = payload or {}
        return cls(
            id=payload.get("doc_id", ""),
            text=payload.get("text", ""),
            title=payload.get("title", ""),
            created_at=int(payload.get("created_at", 0)),
            updated_at=int(payload.get("updated_at", 0)),
            vector=list(vector) if vector is not None else None,
            metadata={k: v for k, v in payload.items() if k not in RESERVED_FIELDS},
        )


class KnowledgeVectorStore:
    """Nearest-neighbor store for knowledge documents."""

    def __init__(self, client: Optional[QdrantClient] = None, collection: Optional[str] = None):
        self.collection = collection or runtime_config.qdrant_collection
        self.client = client
        self._ready = False
        self._has_collection = False

    @property
    def ready(self) -> bool:
        return self._ready

    def connect(self) -> None:
        """Open the client and pick up an existing collection."""
        if self.client is None:
            self.client = get_qdrant_client()
        self._has_collection = self.client.collection_exists(self.collection)
        self._ready = True
        if self._has_collection:
            logger.info(f"Vector store ready: collection={self.collection} ({self.count()} documents)")
        else:
            logger.info(f"Vector store ready: collection={self.collection} (created on first insert)")

    def _require_ready(self) -> None:
        if not self._ready:
            raise StoreNotReady(
                "Vector store is not initialized",
                details="Retry once startup has finished",
                collection=self.collection,
            )

    def _ensure_collection(self, dim: int) -> None:
        if self._has_collection:
            return
        if not self.client.collection_exists(self.collection):
            logger.info(f"Creating collection {self.collection} ({dim} dims, euclidean)")
            self.client.create_collection(
                collection_name=self.collection,
                vectors_config=VectorParams(size=dim, distance=Distance.EUCLID),
            )
            try:
                self.client.create_payload_index(
                    collection_name=self.collection,
                    field_name="doc_id",
                    field_schema=PayloadSchemaType.KEYWORD,
                )
            except Exception as e:
                # Local mode has no payload indexes
                logger.debug(f"Payload index doc_id not created: {e}")
        self._has_collection = True

    @staticmethod
    def _doc_filter(doc_id: str) -> Filter:
        return Filter(must=[FieldCondition(key="doc_id", match=MatchValue(value=doc_id))])

    def search(self, vector: List[float], limit: int) -> List[Tuple[VectorRecord, float]]:
        """
        Nearest neighbors of vector.

        Returns:
            (record, euclidean_distance) pairs, nearest first
        """
        self._require_ready()
        if not self._has_collection or limit < 1:
            return []

        response = self.client.query_points(
            collection_name=self.collection,
            query=vector,
            limit=limit,
            with_payload=True,
            with_vectors=True,
        )

        # Distances are recomputed from the returned vectors so the value does
        # not depend on how the backend signs Euclidean scores
        query = np.asarray(vector, dtype=np.float64)
        results = []
        for hit in response.points:
            hit_vector = hit.vector if isinstance(hit.vector, list) else None
            if hit_vector is not None:
                distance = float(np.linalg.norm(query - np.asarray(hit_vector, dtype=np.float64)))
            else:
                distance = abs(float(hit.score))
            results.append((VectorRecord.from_payload(hit.payload, hit_vector), distance))

        results.sort(key=lambda pair: pair[1])
        return results

    def upsert(self, record: VectorRecord) -> None:
        """Write one record (overwrites a point with the same id)."""
        self._require_ready()
        if record.vector is None:
            raise ValueError(f"Record {record.id} has no vector")
        self._ensure_collection(len(record.vector))
        self.client.upsert(
            collection_name=self.collection,
            points=[
                PointStruct(
                    id=doc_id_to_point_id(record.id),
                    vector=list(record.vector),
                    payload=record.to_payload(),
                )
            ],
        )

    def delete_where(self, doc_id: str) -> None:
        """Delete every point whose doc_id equals doc_id (no-op if none)."""
        self._require_ready()
        if not self._has_collection:
            return
        self.client.delete(
            collection_name=self.collection,
            points_selector=FilterSelector(filter=self._doc_filter(doc_id)),
        )

    def scan(self, limit: int = 1000) -> List[VectorRecord]:
        """All records (without vectors), up to limit."""
        self._require_ready()
        if not self._has_collection:
            return []

        records: List[VectorRecord] = []
        offset = None
        while len(records) < limit:
            points, offset = self.client.scroll(
                collection_name=self.collection,
                limit=min(256, limit - len(records)),
                offset=offset,
                with_payload=True,
                with_vectors=False,
            )
            records.extend(VectorRecord.from_payload(p.payload) for p in points)
            if offset is None:
                break
        return records

    def get(self, doc_id: str) -> Optional[VectorRecord]:
        """Fetch one record by document id."""
        self._require_ready()
        if not self._has_collection:
            return None
        points, _ = self.client.scroll(
            collection_name=self.collection,
            scroll_filter=self._doc_filter(doc_id),
            limit=1,
            with_payload=True,
            with_vectors=False,
        )
        if not points:
            return None
        return VectorRecord.from_payload(points[0].payload)

    def count(self) -> int:
        """Number of stored documents"""
        if not self._ready or not self._has_collection:
            return 0
        return self.client.count(collection_name=self.collection).count


_store: Optional[KnowledgeVectorStore] = None


def get_vector_store() -> KnowledgeVectorStore:
    """Get or create the process-wide vector store (not connected)."""
    global _store
    if _store is None:
        _store = KnowledgeVectorStore()
    return _store
