"""
Zenbot Knowledge Router
Document management and configuration for the knowledge base

Documents live in the vector store (one point per document). Every endpoint
that touches the store answers 503 while it is still starting up.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Query
from pydantic import BaseModel

from config import runtime_config
from errors import NotFoundError, ValidationError
from tools.knowledge import get_document_service, get_retriever

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/knowledge", tags=["knowledge"])

# Accepted request keys for PUT /config -> KnowledgeConfig field
_CONFIG_KEYS = {
    "max_documents": "max_documents",
    "maxDocuments": "max_documents",
    "similarity_threshold": "similarity_threshold",
    "similarityThreshold": "similarity_threshold",
    "max_context_length": "max_context_length",
    "maxContextLength": "max_context_length",
}


class IngestRequest(BaseModel):
    title: Any = None
    content: Any = None
    metadata: Optional[Dict[str, Any]] = None


class UpdateRequest(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


@router.post("/ingest")
async def ingest_document(request: IngestRequest):
    """Add a new document to the knowledge base"""
    doc_id = await get_document_service().ingest(request.title, request.content, request.metadata)
    return {"id": doc_id, "message": "Document added successfully"}


@router.get("/documents")
async def list_documents():
    """All documents, newest first"""
    documents = await get_document_service().list()
    return {"documents": [doc.to_dict() for doc in documents]}


@router.get("/documents/{doc_id}")
async def get_document(doc_id: str):
    document = await get_document_service().get(doc_id)
    if document is None:
        raise NotFoundError("Document not found", resource_type="document", resource_id=doc_id)
    return document.to_dict()


@router.put("/documents/{doc_id}")
async def update_document(doc_id: str, request: UpdateRequest):
    """Replace a document; blank fields keep their current values"""
    document = await get_document_service().update(
        doc_id,
        title=request.title,
        content=request.content,
        metadata=request.metadata,
    )
    return {"id": doc_id, "document": document.to_dict(), "message": "Document updated successfully"}


@router.delete("/documents/{doc_id}")
async def delete_document(doc_id: str):
    await get_document_service().delete(doc_id)
    return {"message": "Document deleted successfully"}


@router.get("/search")
async def search_documents(
    q: Optional[str] = Query(None),
    limit: int = Query(5, ge=1, le=50),
):
    """Similarity search using the configured threshold"""
    if not q or not q.strip():
        raise ValidationError("Query parameter 'q' is required", parameter="q")

    kb = runtime_config.knowledge_config()
    results = await get_retriever().search(q.strip(), limit=limit, min_similarity=kb.similarity_threshold)
    return {"results": [r.to_dict() for r in results]}


@router.get("/config")
async def get_knowledge_config():
    return runtime_config.knowledge_config().to_dict()


@router.put("/config")
async def update_knowledge_config(body: Dict[str, Any] = Body(...)):
    """Validate and apply a partial config update, then persist it"""
    partial = {}
    for key, value in body.items():
        if key not in _CONFIG_KEYS:
            raise ValidationError(
                f"Unknown knowledge config field: {key}",
                parameter=key,
                expected=", ".join(sorted(set(_CONFIG_KEYS.values()))),
            )
        partial[_CONFIG_KEYS[key]] = value

    config = runtime_config.update_knowledge_config(**partial)
    runtime_config.save_overrides()
    logger.info(f"[Knowledge] Updated config: {config.to_dict()}")
    return {"config": config.to_dict(), "message": "Configuration updated successfully"}
