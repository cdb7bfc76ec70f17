"""
Agent turn state - one request/response cycle of the orchestrator.

AgentTurn is created per request, filled in as the turn moves through its
states, and handed back to the caller once the turn is DONE or in ERROR.
It is never persisted.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence


class AgentMode(str, Enum):
    """fast skips intent routing and query refinement; thinking runs the full chain."""

    FAST = "fast"
    THINKING = "thinking"


class Intent(str, Enum):
    GREETING = "GREETING"
    KNOWLEDGE = "KNOWLEDGE"
    OFF_TOPIC = "OFF_TOPIC"


class TurnState(str, Enum):
    START = "START"
    INTENT = "INTENT"
    GREETING = "GREETING"
    OFF_TOPIC = "OFF_TOPIC"
    KNOWLEDGE = "KNOWLEDGE"
    REFINE = "REFINE"
    RETRIEVE = "RETRIEVE"
    ASSEMBLE = "ASSEMBLE"
    GENERATE = "GENERATE"
    DONE = "DONE"
    ERROR = "ERROR"


# Legal forward moves; ERROR is reachable from every non-terminal state
_TRANSITIONS = {
    TurnState.START: {TurnState.INTENT, TurnState.RETRIEVE},
    TurnState.INTENT: {TurnState.GREETING, TurnState.OFF_TOPIC, TurnState.KNOWLEDGE},
    TurnState.GREETING: {TurnState.GENERATE},
    TurnState.OFF_TOPIC: {TurnState.GENERATE},
    TurnState.KNOWLEDGE: {TurnState.REFINE},
    TurnState.REFINE: {TurnState.RETRIEVE},
    TurnState.RETRIEVE: {TurnState.ASSEMBLE},
    TurnState.ASSEMBLE: {TurnState.GENERATE},
    TurnState.GENERATE: {TurnState.DONE},
    TurnState.DONE: set(),
    TurnState.ERROR: set(),
}


def recent_history(history: Optional[Sequence[Dict[str, Any]]], window: int) -> List[Dict[str, str]]:
    """Last `window` messages as {"role", "content"} dicts."""
    if not history or window <= 0:
        return []
    return [
        {"role": msg["role"], "content": msg["content"]}
        for msg in list(history)[-window:]
        if msg.get("role") in ("user", "assistant") and msg.get("content") is not None
    ]


@dataclass
class AgentTurn:
    """Everything one turn produced.

    Attributes:
        query: Raw user utterance
        mode: fast or thinking
        history: History window fed to the router and refiner
        intent: Routed intent (None in fast mode)
        refined_query: Search query actually used for retrieval
        sources: Included documents (id, title, similarity), rank order
        reasoning: Reasoning trace updates, in emission order
        answer: Visible answer text as streamed (the apology after a failure)
        output: Everything emitted, markers included, in order
        state: Current state; DONE or ERROR once run() returns
        states: Every state visited, in order
        error: Error message when state is ERROR
        cancelled: True if the caller went away before generation finished
    """

    query: str
    mode: AgentMode = AgentMode.THINKING
    history: List[Dict[str, str]] = field(default_factory=list)
    intent: Optional[Intent] = None
    refined_query: Optional[str] = None
    sources: List[Dict[str, Any]] = field(default_factory=list)
    reasoning: List[str] = field(default_factory=list)
    answer: str = ""
    output: str = ""
    state: TurnState = TurnState.START
    states: List[TurnState] = field(default_factory=lambda: [TurnState.START])
    error: Optional[str] = None
    cancelled: bool = False

    @property
    def finished(self) -> bool:
        return self.state in (TurnState.DONE, TurnState.ERROR)

    def transition(self, new_state: TurnState) -> None:
        """Move to new_state, rejecting moves the state machine does not allow."""
        if new_state is not TurnState.ERROR and new_state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal turn transition {self.state.value} -> {new_state.value}")
        if new_state is TurnState.ERROR and self.finished:
            raise RuntimeError(f"Turn already finished in {self.state.value}")
        self.state = new_state
        self.states.append(new_state)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "query": self.query,
            "mode": self.mode.value,
            "intent": self.intent.value if self.intent else None,
            "refined_query": self.refined_query,
            "sources": self.sources,
            "reasoning": "".join(self.reasoning),
            "answer": self.answer,
            "output": self.output,
            "state": self.state.value,
            "error": self.error,
            "cancelled": self.cancelled,
        }
