"""
Zenbot Chat Orchestration - the agent behind the chat endpoints

Components:
- AgentOrchestrator: Runs one turn (fast or thinking mode) and streams it
- IntentRouter: Classifies a message as GREETING, KNOWLEDGE or OFF_TOPIC
- QueryRefiner: Rewrites a message into a standalone search query
- AgentTurn: Per-turn state, filled in as the turn progresses
- parse_think_content: Splits streamed text into answer and reasoning

Routing fallback:
    1. Classifier output matches no label -> OFF_TOPIC
    2. Classifier call fails             -> OFF_TOPIC
    3. Message names a domain keyword    -> KNOWLEDGE, whatever the classifier said
"""

from .turn import AgentMode, AgentTurn, Intent, TurnState, recent_history
from .think_parser import (
    REASONING_SEPARATOR,
    THINK_CLOSE,
    THINK_OPEN,
    ThinkParseResult,
    parse_think_content,
)
from .intent_router import IntentDecision, IntentRouter, get_intent_router, parse_intent_label
from .query_refiner import QueryRefiner, clean_search_query, get_query_refiner
from .orchestrator import AgentOrchestrator, TokenSink, get_orchestrator

__all__ = [
    "AgentMode",
    "AgentTurn",
    "Intent",
    "TurnState",
    "recent_history",
    "REASONING_SEPARATOR",
    "THINK_CLOSE",
    "THINK_OPEN",
    "ThinkParseResult",
    "parse_think_content",
    "IntentDecision",
    "IntentRouter",
    "get_intent_router",
    "parse_intent_label",
    "QueryRefiner",
    "clean_search_query",
    "get_query_refiner",
    "AgentOrchestrator",
    "TokenSink",
    "get_orchestrator",
]
