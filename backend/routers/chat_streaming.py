"""
Zenbot Chat Streaming - Server-Sent Events helpers

Helper functions for framing SSE events, pumping agent tokens out of a
turn running in its own task, and building the final "done" payload.
"""

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional, Set

from services.chat_store import Message

from .chat_orchestration.think_parser import parse_think_content
from .chat_orchestration.turn import AgentTurn

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

# Turns keep running (and get persisted) after their client goes away
_running_turns: Set[asyncio.Task] = set()

_END = object()


def sse_event(data: Dict[str, Any]) -> str:
    """Frame one SSE data event."""
    return f"data: {json.dumps(data, ensure_ascii=False)}\n\n"


def build_final_response(message: Message, turn: AgentTurn) -> Dict[str, Any]:
    """Build the final "done" payload for a finished turn.

    Args:
        message: The persisted assistant message (content = full stream)
        turn: The finished turn

    Returns:
        Dict with the stored message, the visible answer, reasoning text
        (segments joined with a separator), sources and turn outcome
    """
    parsed = parse_think_content(message.content)
    return {
        "type": "done",
        "message": message.to_dict(),
        "answer": parsed.answer.strip(),
        "reasoning": parsed.display_reasoning(),
        "has_reasoning": parsed.has_reasoning,
        "sources": turn.sources,
        "intent": turn.intent.value if turn.intent else None,
        "mode": turn.mode.value,
        "state": turn.state.value,
    }


async def stream_turn_events(
    run_turn: Callable[[Callable[[str], None], asyncio.Event], Awaitable[Dict[str, Any]]],
    cancel_event: Optional[asyncio.Event] = None,
) -> AsyncIterator[str]:
    """
    Run a turn in its own task and yield its tokens as SSE chunk events.

    run_turn receives a token sink and a cancel event and returns the final
    payload. If the consumer stops iterating (client disconnect), the cancel
    event is set and the task is left to wind down on its own.
    """
    cancel_event = cancel_event or asyncio.Event()
    queue: asyncio.Queue = asyncio.Queue()

    async def _runner() -> Dict[str, Any]:
        try:
            return await run_turn(queue.put_nowait, cancel_event)
        finally:
            queue.put_nowait(_END)

    task = asyncio.create_task(_runner())
    _running_turns.add(task)
    task.add_done_callback(_running_turns.discard)

    finished = False
    try:
        while True:
            token = await queue.get()
            if token is _END:
                break
            yield sse_event({"type": "chunk", "content": token})

        try:
            final = await task
        except Exception as e:
            logger.error(f"[STREAM] turn failed: {e}", exc_info=True)
            yield sse_event({"type": "error", "error": str(e)})
        else:
            yield sse_event(final)
        finished = True
    finally:
        if not finished and not task.done():
            logger.info("[STREAM] client disconnected, cancelling generation")
            cancel_event.set()
