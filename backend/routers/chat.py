"""
Zenbot Chat Router

Cookie-scoped chat sessions over HTTP:
- GET    /api/chat          message history for the session
- DELETE /api/chat/history  archive the session's messages (cookie is kept)
- POST   /api/chat          run one turn, reply with both messages as JSON
- POST   /api/chat/stream   run one turn, stream it as Server-Sent Events

Stream events: {"type": "user"}, {"type": "chunk", "content"}...,
then {"type": "done", ...} or {"type": "error"}.
"""

import asyncio
import logging
import uuid
from typing import Any, Dict, List, Optional, Tuple

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel

from config import runtime_config
from errors import ValidationError
from services.chat_store import Message, get_message_store

from .chat_orchestration import AgentMode, get_orchestrator, parse_think_content
from .chat_streaming import SSE_HEADERS, build_final_response, sse_event, stream_turn_events

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/chat", tags=["chat"])

COOKIE_NAME = "chat_session"
COOKIE_MAX_AGE_S = 365 * 24 * 60 * 60


class ChatRequest(BaseModel):
    content: Any = None
    mode: Optional[str] = AgentMode.THINKING.value


def _session_id(request: Request) -> Tuple[str, bool]:
    """(session id, whether it was just created)"""
    existing = request.cookies.get(COOKIE_NAME)
    if existing:
        return existing, False
    return str(uuid.uuid4()), True


def _set_session_cookie(response: Response, session_id: str) -> None:
    response.set_cookie(
        COOKIE_NAME,
        session_id,
        max_age=COOKIE_MAX_AGE_S,
        path="/",
        httponly=True,
        samesite="lax",
    )


def _clean_content(body: ChatRequest) -> str:
    content = body.content.strip() if isinstance(body.content, str) else ""
    if not content:
        raise ValidationError("Missing or empty content", parameter="content")
    return content


def _mode(body: ChatRequest) -> AgentMode:
    return AgentMode.FAST if body.mode == AgentMode.FAST.value else AgentMode.THINKING


def _history_for_model(messages: List[Message]) -> List[Dict[str, str]]:
    """Stored messages as model history; reasoning is stripped from replies."""
    history = []
    for msg in messages:
        content = msg.content
        if msg.role == "assistant":
            content = parse_think_content(content).answer.strip()
        history.append({"role": msg.role, "content": content})
    return history


async def _run_and_store(
    session_id: str,
    content: str,
    mode: AgentMode,
    history: List[Dict[str, str]],
    sink,
    cancel_event: Optional[asyncio.Event] = None,
) -> Dict[str, Any]:
    """Run one turn and persist the assistant message (full stream)."""
    turn = await get_orchestrator().run(content, history, mode=mode, sink=sink, cancel_event=cancel_event)
    assistant_msg = Message.create("assistant", turn.output)
    await asyncio.to_thread(get_message_store().append, session_id, assistant_msg)
    return build_final_response(assistant_msg, turn)


@router.get("")
async def get_history(request: Request):
    session_id, is_new = _session_id(request)
    messages = await asyncio.to_thread(get_message_store().list, session_id, runtime_config.history_limit_api)
    response = JSONResponse({"messages": [m.to_dict() for m in messages]})
    if is_new:
        _set_session_cookie(response, session_id)
    return response


@router.delete("/history")
async def clear_history(request: Request):
    """Archive the session's messages; the session id itself survives."""
    session_id = request.cookies.get(COOKIE_NAME)
    archived = 0
    if session_id:
        archived = await asyncio.to_thread(get_message_store().archive, session_id)
    else:
        logger.warning("Clear history requested without a session cookie")
    return {"success": True, "archived": archived}


@router.post("")
async def chat(body: ChatRequest, request: Request):
    """Run one turn and return the user and assistant messages."""
    content = _clean_content(body)
    mode = _mode(body)
    session_id, is_new = _session_id(request)
    store = get_message_store()

    stored = await asyncio.to_thread(store.list, session_id, runtime_config.history_limit_model)
    history = _history_for_model(stored)
    user_msg = Message.create("user", content)
    await asyncio.to_thread(store.append, session_id, user_msg)

    final = await _run_and_store(session_id, content, mode, history, sink=None)

    response = JSONResponse(
        status_code=201,
        content={
            "messages": [user_msg.to_dict(), final["message"]],
            "answer": final["answer"],
            "reasoning": final["reasoning"],
            "sources": final["sources"],
            "intent": final["intent"],
            "state": final["state"],
        },
    )
    if is_new:
        _set_session_cookie(response, session_id)
    return response


@router.post("/stream")
async def chat_stream(body: ChatRequest, request: Request):
    """Run one turn, streaming tokens as Server-Sent Events."""
    content = _clean_content(body)
    mode = _mode(body)
    session_id, is_new = _session_id(request)
    store = get_message_store()

    stored = await asyncio.to_thread(store.list, session_id, runtime_config.history_limit_model)
    history = _history_for_model(stored)
    user_msg = Message.create("user", content)
    await asyncio.to_thread(store.append, session_id, user_msg)
    logger.info(f"[chat/stream] session={session_id[:8]} mode={mode.value}")

    async def run_turn(sink, cancel_event):
        return await _run_and_store(session_id, content, mode, history, sink, cancel_event)

    async def events():
        yield sse_event({"type": "user", "message": user_msg.to_dict()})
        async for event in stream_turn_events(run_turn):
            yield event

    response = StreamingResponse(events(), media_type="text/event-stream", headers=SSE_HEADERS)
    if is_new:
        _set_session_cookie(response, session_id)
    return response
