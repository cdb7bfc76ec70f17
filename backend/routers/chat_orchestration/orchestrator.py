"""
Zenbot Agent Orchestrator - routes a turn and streams the reply

Turn flow:
    fast:      START -> RETRIEVE -> ASSEMBLE -> GENERATE -> DONE
    thinking:  START -> INTENT -> GREETING  -> GENERATE -> DONE
                              -> OFF_TOPIC -> GENERATE -> DONE
                              -> KNOWLEDGE -> REFINE -> RETRIEVE -> ASSEMBLE -> GENERATE -> DONE
    any state -> ERROR

In thinking mode every step narrates itself into a reasoning trace wrapped in
<think>...</think>, emitted as it happens. The close marker goes out right
before the first answer token.

Failure handling:
- Intent routing and query refinement never raise (see their modules)
- Retrieval problems (store not ready, embedding errors) mean "no context"
- Anything else, generation failures included, is caught once here: the
  trace is closed if still open, the apology becomes the answer, and the
  turn ends in ERROR. Nothing is retried.
"""

import asyncio
import logging
import time
from contextlib import aclosing
from typing import Callable, Dict, List, Optional, Sequence

from config import RuntimeConfig, runtime_config
from errors import ValidationError, log_error
from logging_config import log_message_in, log_message_out, log_thinking
from services.llm_client import GenerationService, get_generation_service
from tools.knowledge import AssembledContext, KnowledgeRetriever, assemble_context, get_retriever

from ..chat_prompts import (
    APOLOGY_MESSAGE,
    build_response_prompt,
    get_greeting_prompt,
    get_refuse_prompt,
)
from .intent_router import IntentRouter, get_intent_router
from .query_refiner import QueryRefiner, get_query_refiner
from .think_parser import THINK_CLOSE, THINK_OPEN
from .turn import AgentMode, AgentTurn, Intent, TurnState, recent_history

logger = logging.getLogger(__name__)

TokenSink = Callable[[str], None]

# Emitted between the reasoning trace and the answer
REASONING_CLOSE = THINK_CLOSE + "\n\n"


class _TurnEmitter:
    """Writes tokens to the caller's sink and records them on the turn.

    A sink that raises is treated as a gone caller: the turn's cancel event
    is set and nothing more is written to it.
    """

    def __init__(self, sink: Optional[TokenSink], turn: AgentTurn, cancel_event: asyncio.Event):
        self._sink = sink
        self._turn = turn
        self._cancel = cancel_event
        self._dead = False
        self.reasoning_open = False
        self._reasoning_chars = 0

    def _emit(self, token: str) -> None:
        if not token:
            return
        self._turn.output += token
        if self._dead or self._sink is None:
            return
        try:
            self._sink(token)
        except Exception as e:
            self._dead = True
            self._cancel.set()
            logger.warning(f"Token sink failed, cancelling turn output: {e}")

    def open_reasoning(self) -> None:
        self.reasoning_open = True
        log_thinking(logger, "start")
        self._emit(THINK_OPEN)

    def reason(self, text: str) -> None:
        self._turn.reasoning.append(text)
        self._reasoning_chars += len(text)
        self._emit(text)

    def close_reasoning(self) -> None:
        if not self.reasoning_open:
            return
        self.reasoning_open = False
        log_thinking(logger, "end", chars=self._reasoning_chars)
        self._emit(REASONING_CLOSE)

    def answer(self, token: str) -> None:
        self._turn.answer += token
        self._emit(token)


class AgentOrchestrator:
    """Sequences routing, refinement, retrieval and generation for one turn."""

    def __init__(
        self,
        generation: Optional[GenerationService] = None,
        retriever: Optional[KnowledgeRetriever] = None,
        router: Optional[IntentRouter] = None,
        refiner: Optional[QueryRefiner] = None,
        config: Optional[RuntimeConfig] = None,
    ):
        self._generation = generation
        self._retriever = retriever
        self._router = router
        self._refiner = refiner
        self.config = config or runtime_config

    @property
    def generation(self) -> GenerationService:
        return self._generation or get_generation_service()

    @property
    def retriever(self) -> KnowledgeRetriever:
        return self._retriever or get_retriever()

    @property
    def router(self) -> IntentRouter:
        if self._router is None:
            self._router = IntentRouter(generation=self._generation) if self._generation else get_intent_router()
        return self._router

    @property
    def refiner(self) -> QueryRefiner:
        if self._refiner is None:
            self._refiner = QueryRefiner(generation=self._generation) if self._generation else get_query_refiner()
        return self._refiner

    async def run(
        self,
        query: str,
        history: Optional[Sequence[Dict[str, str]]] = None,
        mode: AgentMode | str = AgentMode.THINKING,
        sink: Optional[TokenSink] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> AgentTurn:
        """
        Run one turn, streaming every token through sink.

        Args:
            query: User utterance (must be non-empty)
            history: Prior messages, oldest first, as {"role", "content"} dicts
            mode: "fast" or "thinking"
            sink: Called synchronously with each token
            cancel_event: Set by the caller to stop generation early

        Returns:
            The finished AgentTurn (state DONE or ERROR)

        Raises:
            ValidationError: empty query or unknown mode, before any work starts
        """
        if not isinstance(query, str) or not query.strip():
            raise ValidationError("Message content is required", parameter="content")
        try:
            mode = AgentMode(mode)
        except ValueError:
            raise ValidationError(
                f"Unknown mode: {mode}",
                parameter="mode",
                expected="fast, thinking",
                received=str(mode),
            ) from None

        cancel_event = cancel_event or asyncio.Event()
        turn = AgentTurn(
            query=query,
            mode=mode,
            history=recent_history(history, self.config.history_window),
        )
        emitter = _TurnEmitter(sink, turn, cancel_event)
        start = time.time()
        log_message_in(logger, query, mode=mode.value, history=len(turn.history))

        try:
            if mode is AgentMode.FAST:
                await self._run_fast(turn, emitter, cancel_event)
            else:
                await self._run_thinking(turn, emitter, cancel_event)
            turn.transition(TurnState.DONE)
        except Exception as e:
            log_error(logger, e, context=f"Agent/{turn.state.value}")
            if emitter.reasoning_open:
                emitter.reason(" Error processing request.")
                emitter.close_reasoning()
            turn.answer = ""
            emitter.answer(APOLOGY_MESSAGE)
            turn.error = str(e)
            turn.transition(TurnState.ERROR)

        log_message_out(
            logger,
            intent=turn.intent.value if turn.intent else "",
            sources=len(turn.sources),
            state=f"{turn.state.value} in {time.time() - start:.1f}s",
        )
        return turn

    async def _run_fast(self, turn: AgentTurn, emitter: _TurnEmitter, cancel_event: asyncio.Event) -> None:
        turn.refined_query = turn.query
        turn.transition(TurnState.RETRIEVE)
        assembled = await self._retrieve(turn, turn.query)
        await self._generate(turn, emitter, self._answer_messages(turn.query, assembled.context), cancel_event)

    async def _run_thinking(self, turn: AgentTurn, emitter: _TurnEmitter, cancel_event: asyncio.Event) -> None:
        emitter.open_reasoning()
        emitter.reason("Analyzing user intent...")

        turn.transition(TurnState.INTENT)
        turn.intent = await self.router.classify(turn.query, turn.history)
        emitter.reason(f" Intent identified: {turn.intent.value}.")

        if turn.intent is Intent.GREETING:
            turn.transition(TurnState.GREETING)
            emitter.reason(" User is greeting. Preparing response...")
            emitter.close_reasoning()
            await self._generate(turn, emitter, self._direct_messages(get_greeting_prompt(), turn.query), cancel_event)
            return

        if turn.intent is Intent.OFF_TOPIC:
            turn.transition(TurnState.OFF_TOPIC)
            emitter.reason(" User is off-topic. Refusing...")
            emitter.close_reasoning()
            await self._generate(turn, emitter, self._direct_messages(get_refuse_prompt(), turn.query), cancel_event)
            return

        turn.transition(TurnState.KNOWLEDGE)
        emitter.reason(" Refining search query...")
        turn.transition(TurnState.REFINE)
        turn.refined_query = await self.refiner.refine(turn.query, turn.history)
        emitter.reason(f' Query: "{turn.refined_query}"...')

        emitter.reason(" Searching...")
        turn.transition(TurnState.RETRIEVE)
        assembled = await self._retrieve(turn, turn.refined_query)
        if assembled.is_empty:
            emitter.reason(" No relevant info found.")
        else:
            emitter.reason(" Found relevant information.")
        emitter.close_reasoning()

        await self._generate(turn, emitter, self._answer_messages(turn.query, assembled.context), cancel_event)

    async def _retrieve(self, turn: AgentTurn, search_query: str) -> AssembledContext:
        """RETRIEVE + ASSEMBLE. Retrieval problems yield an empty context."""
        kb = self.config.knowledge_config()
        try:
            results = await self.retriever.search(
                search_query,
                limit=kb.max_documents,
                min_similarity=kb.similarity_threshold,
            )
        except Exception as e:
            log_error(logger, e, context="Agent/RETRIEVE", include_traceback=False)
            results = []

        turn.transition(TurnState.ASSEMBLE)
        assembled = assemble_context(results, kb.max_context_length)
        turn.sources = assembled.sources
        return assembled

    @staticmethod
    def _direct_messages(system_prompt: str, query: str) -> List[Dict[str, str]]:
        return [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": query},
        ]

    def _answer_messages(self, query: str, context: str) -> List[Dict[str, str]]:
        return self._direct_messages(build_response_prompt(context, query), query)

    async def _generate(
        self,
        turn: AgentTurn,
        emitter: _TurnEmitter,
        messages: List[Dict[str, str]],
        cancel_event: asyncio.Event,
    ) -> None:
        turn.transition(TurnState.GENERATE)
        async with aclosing(self.generation.stream(messages, cancel_event=cancel_event)) as tokens:
            async for token in tokens:
                if cancel_event.is_set():
                    turn.cancelled = True
                    logger.info("Caller went away, stopping generation")
                    break
                emitter.answer(token)
        if cancel_event.is_set():
            turn.cancelled = True


_orchestrator: Optional[AgentOrchestrator] = None


def get_orchestrator() -> AgentOrchestrator:
    """Get or create the process-wide orchestrator."""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = AgentOrchestrator()
    return _orchestrator
