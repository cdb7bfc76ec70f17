"""
Knowledge documents - create, read, update and delete for the knowledge base.

Every write goes through the retriever's upsert, so an update is a full
replace of the stored record (delete-by-id, then insert). The partial fields
accepted by update() are merged here, in the service, before the replace.
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from errors import NotFoundError, ValidationError

from .retriever import KnowledgeRetriever, get_retriever
from .vectorstore import RESERVED_FIELDS, VectorRecord

logger = logging.getLogger(__name__)

_SCALAR_TYPES = (str, int, float, bool)


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class KnowledgeDocument:
    id: str
    title: str
    content: str
    created_at: int
    updated_at: int
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_record(cls, record: VectorRecord) -> "KnowledgeDocument":
        return cls(
            id=record.id,
            title=record.title or "Untitled",
            content=record.text,
            created_at=record.created_at,
            updated_at=record.updated_at,
            metadata=dict(record.metadata),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "metadata": self.metadata,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


def _clean_text(value: Any, name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(
            f"{name.capitalize()} is required and must be a non-empty string",
            parameter=name,
        )
    return value.strip()


def _clean_metadata(metadata: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Flat scalar metadata only; store-owned keys are dropped."""
    if metadata is None:
        return {}
    if not isinstance(metadata, dict):
        raise ValidationError(
            "Metadata must be an object",
            parameter="metadata",
            received=type(metadata).__name__,
        )
    cleaned = {}
    for key, value in metadata.items():
        if key in RESERVED_FIELDS or key == "id":
            continue
        if value is not None and not isinstance(value, _SCALAR_TYPES):
            raise ValidationError(
                f"Metadata field '{key}' must be a string, number or boolean",
                parameter=f"metadata.{key}",
                received=type(value).__name__,
            )
        cleaned[key] = value
    return cleaned


class KnowledgeDocumentService:
    """Document-level operations on top of the retriever."""

    def __init__(self, retriever: Optional[KnowledgeRetriever] = None):
        self._retriever = retriever

    @property
    def retriever(self) -> KnowledgeRetriever:
        return self._retriever or get_retriever()

    async def ingest(self, title: str, content: str, metadata: Optional[Dict[str, Any]] = None) -> str:
        """Add a new document and return its generated id."""
        title = _clean_text(title, "title")
        content = _clean_text(content, "content")
        extra = _clean_metadata(metadata)

        doc_id = str(uuid.uuid4())
        now = now_ms()
        await self.retriever.upsert(
            doc_id,
            content,
            {**extra, "title": title, "created_at": now, "updated_at": now},
        )
        logger.info(f"Knowledge document added: {doc_id} - {title!r}")
        return doc_id

    async def get(self, doc_id: str) -> Optional[KnowledgeDocument]:
        record = await self.retriever.get(doc_id)
        return KnowledgeDocument.from_record(record) if record else None

    async def list(self, limit: int = 1000) -> List[KnowledgeDocument]:
        """All documents, newest first."""
        records = await self.retriever.scan(limit)
        documents = [KnowledgeDocument.from_record(r) for r in records]
        documents.sort(key=lambda d: d.created_at, reverse=True)
        return documents

    async def update(
        self,
        doc_id: str,
        title: Optional[str] = None,
        content: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> KnowledgeDocument:
        """
        Replace a document, keeping id and created_at.

        Omitted or blank title/content keep their current values; metadata
        keys are merged over the current metadata. updated_at always moves
        forward, even when two updates land in the same millisecond.

        Raises:
            NotFoundError: no document with doc_id
            ValidationError: malformed metadata
        """
        existing = await self.get(doc_id)
        if existing is None:
            raise NotFoundError("Document not found", resource_type="document", resource_id=doc_id)

        new_title = title.strip() if isinstance(title, str) and title.strip() else existing.title
        new_content = content.strip() if isinstance(content, str) and content.strip() else existing.content
        new_metadata = {**existing.metadata, **_clean_metadata(metadata)}
        updated_at = max(now_ms(), existing.updated_at + 1)

        await self.retriever.upsert(
            doc_id,
            new_content,
            {**new_metadata, "title": new_title, "created_at": existing.created_at, "updated_at": updated_at},
        )
        logger.info(f"Knowledge document updated: {doc_id}")

        return KnowledgeDocument(
            id=doc_id,
            title=new_title,
            content=new_content,
            created_at=existing.created_at,
            updated_at=updated_at,
            metadata=new_metadata,
        )

    async def delete(self, doc_id: str) -> None:
        """
        Raises:
            NotFoundError: no document with doc_id
        """
        existing = await self.retriever.get(doc_id)
        if existing is None:
            raise NotFoundError("Document not found", resource_type="document", resource_id=doc_id)
        await self.retriever.remove(doc_id)
        logger.info(f"Knowledge document deleted: {doc_id}")


_documents: Optional[KnowledgeDocumentService] = None


def get_document_service() -> KnowledgeDocumentService:
    """Get or create the process-wide document service."""
    global _documents
    if _documents is None:
        _documents = KnowledgeDocumentService()
    return _documents
