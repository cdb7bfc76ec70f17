"""
Shared pytest fixtures for Zenbot tests.

Provides:
- FakeGenerationService: scripted invoke replies and stream tokens, call log
- FakeEmbedder: deterministic bag-of-words unit vectors (no model download)
- Real Qdrant client in :memory: mode behind the vector store
- Config isolation: knowledge settings restored and overrides written to tmp
"""

import asyncio
import re
import zlib
from typing import Any, Dict, List, Optional

import numpy as np
import pytest
from qdrant_client import QdrantClient

from config import runtime_config
from errors import EmbeddingUnavailable
from tools.knowledge import KnowledgeDocumentService, KnowledgeRetriever, KnowledgeVectorStore

EMBED_DIM = 256
_WORD_RE = re.compile(r"[a-z0-9]+")

# Runtime config fields tests are allowed to change
_CONFIG_FIELDS = (
    "kb_max_documents",
    "kb_similarity_threshold",
    "kb_max_context_length",
    "domain_keywords",
    "history_window",
    "assistant_name",
    "domain_topics",
)


def bag_of_words_vector(text: str) -> List[float]:
    """Hash each lowercase word into one of EMBED_DIM buckets, then normalize."""
    vec = np.zeros(EMBED_DIM, dtype=np.float64)
    for word in _WORD_RE.findall(text.lower()):
        vec[zlib.crc32(word.encode("utf-8")) % EMBED_DIM] += 1.0
    norm = np.linalg.norm(vec)
    if norm == 0:
        vec[0] = 1.0
        norm = 1.0
    return (vec / norm).tolist()


class FakeEmbedder:
    """Stands in for EmbeddingService."""

    model_name = "fake-bag-of-words"
    dimension = EMBED_DIM

    def __init__(self, ready: bool = True):
        self.ready = ready
        self.calls: List[str] = []

    async def embed(self, text: str) -> List[float]:
        if not self.ready:
            raise EmbeddingUnavailable("Embedding model is not loaded yet", model=self.model_name)
        self.calls.append(text)
        return bag_of_words_vector(text)


class FakeGenerationService:
    """
    Stands in for GenerationService.

    Args:
        replies: invoke() results in call order (str, or an Exception to raise)
        streams: stream() scripts in call order; each is a list of tokens,
            where an Exception item is raised at that point
    """

    model = "fake-model"

    def __init__(self, replies: Optional[List[Any]] = None, streams: Optional[List[List[Any]]] = None):
        self.replies = list(replies or [])
        self.streams = list(streams or [])
        self.calls: List[Dict[str, Any]] = []
        self.tokens_pulled = 0
        self.stream_closed = False

    @property
    def busy(self) -> bool:
        return False

    def calls_of(self, kind: str) -> List[Dict[str, Any]]:
        return [c for c in self.calls if c["kind"] == kind]

    async def invoke(self, messages, max_tokens=None, temperature=None) -> str:
        self.calls.append({"kind": "invoke", "messages": list(messages), "max_tokens": max_tokens})
        reply = self.replies.pop(0) if self.replies else ""
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def stream(self, messages, cancel_event=None, max_tokens=None, temperature=None):
        self.calls.append({"kind": "stream", "messages": list(messages), "max_tokens": max_tokens})
        script = self.streams.pop(0) if self.streams else ["OK"]
        try:
            for token in script:
                if isinstance(token, Exception):
                    raise token
                if cancel_event is not None and cancel_event.is_set():
                    break
                self.tokens_pulled += 1
                yield token
                await asyncio.sleep(0)
        finally:
            self.stream_closed = True

    async def is_healthy(self, timeout: float = 3.0) -> bool:
        return True

    async def close(self) -> None:
        pass


@pytest.fixture(autouse=True)
def isolated_config(tmp_path):
    """Keep config changes (and the overrides file) local to one test."""
    saved = {name: getattr(runtime_config, name) for name in _CONFIG_FIELDS}
    saved_path = runtime_config._overrides_path
    runtime_config._overrides_path = tmp_path / "config_overrides.json"
    yield runtime_config
    for name, value in saved.items():
        setattr(runtime_config, name, value)
    runtime_config._overrides_path = saved_path


@pytest.fixture
def fake_embedder():
    return FakeEmbedder()


@pytest.fixture
def vector_store():
    """Connected store over an in-memory Qdrant instance."""
    store = KnowledgeVectorStore(client=QdrantClient(location=":memory:"), collection="test_knowledge")
    store.connect()
    yield store
    store.client.close()


@pytest.fixture
def retriever(fake_embedder, vector_store):
    return KnowledgeRetriever(embedder=fake_embedder, store=vector_store)


@pytest.fixture
def documents(retriever):
    return KnowledgeDocumentService(retriever=retriever)


@pytest.fixture
def seeded_documents(documents):
    """Two documents: one about Zenlise, one unrelated."""
    ids = {
        "zenlise": asyncio.run(documents.ingest(
            "Zenlise",
            "Zenlise is a workflow platform built by Hasinthaka",
            {"category": "product"},
        )),
        "bananas": asyncio.run(documents.ingest(
            "Bananas",
            "Bananas are yellow tropical fruit rich in potassium",
        )),
    }
    return ids
