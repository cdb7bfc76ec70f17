"""
Zenbot - Retrieval-augmented domain chat agent
FastAPI Backend with LLM + Knowledge Base
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass, field
import logging
import asyncio
import uuid

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from routers import chat, knowledge
from logging_config import setup_logging
from config import runtime_config
from errors import register_error_handlers
from services.chat_store import get_message_store
from services.llm_client import get_generation_service
from tools.knowledge import get_embedder, get_vector_store

setup_logging()
logger = logging.getLogger(__name__)


@dataclass
class StartupHealth:
    """Tracks component health through startup phases."""
    phase: str = "initializing"
    chat_store: str = "pending"
    vector_store: str = "pending"
    embeddings: str = "pending"
    background_tasks: dict = field(default_factory=dict)
    startup_complete: bool = False


_startup_health = StartupHealth()

# Instance ID - changes on every startup, used by frontend to detect restarts
INSTANCE_ID = str(uuid.uuid4())


async def _warm_embeddings():
    """Load the embedding model without blocking startup."""
    _startup_health.background_tasks["embeddings"] = "running"
    try:
        await get_embedder().initialize_async()
        _startup_health.embeddings = "ready"
        _startup_health.background_tasks["embeddings"] = "done"
    except Exception as e:
        _startup_health.embeddings = "failed"
        _startup_health.background_tasks["embeddings"] = "failed"
        logger.warning(f"Embedding model failed to load: {e} - knowledge search disabled")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown events"""
    # Startup
    _startup_health.phase = "stores"
    try:
        store = get_message_store()
        _startup_health.chat_store = "ready"
        logger.info(f"Chat store ready ({store.db_path})")
    except Exception as e:
        _startup_health.chat_store = "failed"
        logger.error(f"Chat store initialization failed: {e}")
        raise

    try:
        await asyncio.to_thread(get_vector_store().connect)
        _startup_health.vector_store = "ready"
    except Exception as e:
        # Knowledge endpoints answer 503 until the store is connected
        _startup_health.vector_store = "failed"
        logger.warning(f"Vector store unavailable: {e} - Zenbot will answer without knowledge")

    _startup_health.phase = "warming"
    embeddings_task = asyncio.create_task(_warm_embeddings())

    _startup_health.phase = "ready"
    _startup_health.startup_complete = True
    logger.info(f"{runtime_config.assistant_name} ready (model={runtime_config.model_chat})")

    yield

    # Shutdown
    if not embeddings_task.done():
        embeddings_task.cancel()

    try:
        await get_generation_service().close()
        logger.info("LLM client closed")
    except Exception as e:
        logger.debug(f"LLM client close error: {e}")

    logger.info(f"{runtime_config.assistant_name} signing off")


app = FastAPI(
    title="Zenbot",
    description="Domain chat agent grounded in a curated knowledge base",
    version="1.0.0",
    lifespan=lifespan,
)


# Security Headers Middleware
class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        return response


MAX_BODY_SIZE_API = 1 * 1024 * 1024  # 1MB


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """Reject requests with bodies exceeding the size limit."""

    async def dispatch(self, request: Request, call_next):
        content_length = request.headers.get("content-length")
        if content_length and content_length.isdigit():
            size = int(content_length)
            if size > MAX_BODY_SIZE_API:
                return JSONResponse(
                    status_code=413,
                    content={"detail": f"Request body too large ({size} bytes, limit {MAX_BODY_SIZE_API} bytes)"},
                )
        return await call_next(request)


app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestSizeLimitMiddleware)

# CORS - localhost and private network origins (cookies need credentials)
app.add_middleware(
    CORSMiddleware,
    allow_origin_regex=r"^https?://(localhost|127\.0\.0\.1|192\.168\.\d+\.\d+|[a-zA-Z][a-zA-Z0-9\-]*)(:\d+)?$",
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

# API Routers (each carries its own /api/... prefix)
app.include_router(chat.router)
app.include_router(knowledge.router)


@app.get("/health")
async def health():
    """Health check - pings dependencies."""
    checks = {
        "llm": "ok" if await get_generation_service().is_healthy() else "down",
        "vector_store": "ok" if get_vector_store().ready else "down",
        "embeddings": "ok" if get_embedder().ready else "loading",
        "chat_store": "ok" if _startup_health.chat_store == "ready" else "down",
    }

    all_ok = all(v == "ok" for v in checks.values())
    return {
        "status": "healthy" if all_ok else "degraded",
        "service": runtime_config.assistant_name,
        "checks": checks,
        "startup_phase": _startup_health.phase,
        "startup_complete": _startup_health.startup_complete,
        "background_tasks": _startup_health.background_tasks,
    }


@app.get("/api/instance")
async def get_instance():
    """Return instance ID - changes on each startup."""
    return {"instance_id": INSTANCE_ID}


@app.get("/api/status")
async def status():
    """System status"""
    generation = get_generation_service()
    vector_store = get_vector_store()
    embedder = get_embedder()

    llm_ok = await generation.is_healthy()
    knowledge_ok = vector_store.ready and embedder.ready

    return {
        "status": "healthy" if (llm_ok and knowledge_ok) else "degraded",
        "model": generation.model if llm_ok else "Offline",
        "components": {
            "llm": "connected" if llm_ok else "unavailable",
            "vector_store": "ready" if vector_store.ready else "unavailable",
            "embeddings": "ready" if embedder.ready else "loading",
        },
        "knowledge": {
            "documents": vector_store.count(),
            "config": runtime_config.knowledge_config().to_dict(),
            "embedding_model": runtime_config.embedding_model,
            "embedding_cache": embedder.cache_stats,
        },
        "generation_busy": generation.busy,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000)
