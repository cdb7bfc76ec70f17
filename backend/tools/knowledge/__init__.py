"""
Knowledge - vector-backed knowledge base for grounded answers

Usage:
    from tools.knowledge import get_retriever, assemble_context

    results = await get_retriever().search("Zenlise features", limit=3, min_similarity=0.7)
    assembled = assemble_context(results, max_context_length=2000)
    print(assembled.context)
    print(assembled.sources)

Documents:
    from tools.knowledge import get_document_service

    doc_id = await get_document_service().ingest("Zenlise", "Zenlise is ...")
"""

from .embeddings import (
    EmbeddingService,
    get_embedder,
)
from .vectorstore import (
    KnowledgeVectorStore,
    VectorRecord,
    get_vector_store,
)
from .retriever import (
    KnowledgeRetriever,
    SearchResult,
    distance_to_similarity,
    get_retriever,
    set_retriever,
)
from .assembler import (
    AssembledContext,
    assemble_context,
)
from .documents import (
    KnowledgeDocument,
    KnowledgeDocumentService,
    get_document_service,
)

__all__ = [
    "EmbeddingService",
    "get_embedder",
    "KnowledgeVectorStore",
    "VectorRecord",
    "get_vector_store",
    "KnowledgeRetriever",
    "SearchResult",
    "distance_to_similarity",
    "get_retriever",
    "set_retriever",
    "AssembledContext",
    "assemble_context",
    "KnowledgeDocument",
    "KnowledgeDocumentService",
    "get_document_service",
]
