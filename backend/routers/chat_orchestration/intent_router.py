"""
Intent Router - classifies a user turn as GREETING, KNOWLEDGE or OFF_TOPIC.

Primary path: one short completion from the chat model, mapped onto a label
by case-insensitive substring match. Output naming no label falls back to
OFF_TOPIC, as does a failed model call.

Keyword guard: if the raw query mentions any configured domain keyword, the
result is KNOWLEDGE whatever the model said (or failed to say). The guard
only ever upgrades to KNOWLEDGE; it never turns KNOWLEDGE into something else.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from config import runtime_config
from errors import ClassificationAmbiguous
from logging_config import log_intent
from services.llm_client import GenerationService, get_generation_service

from ..chat_prompts import get_router_prompt
from .think_parser import parse_think_content
from .turn import Intent

logger = logging.getLogger(__name__)


def parse_intent_label(text: str) -> Intent:
    """
    Map raw model output onto an Intent.

    Raises:
        ClassificationAmbiguous: output names none of the labels
    """
    visible = parse_think_content(text or "").answer.strip().upper()
    if "GREETING" in visible:
        return Intent.GREETING
    if "KNOWLEDGE" in visible:
        return Intent.KNOWLEDGE
    if "OFF_TOPIC" in visible or "OFF-TOPIC" in visible or "OFF TOPIC" in visible:
        return Intent.OFF_TOPIC
    raise ClassificationAmbiguous("Intent output names no known label", raw_output=text or "")


@dataclass
class IntentDecision:
    """Routed intent and what decided it (model, keyword, default)."""

    intent: Intent
    source: str
    raw_output: Optional[str] = None


class IntentRouter:
    """Classifies queries with the chat model plus a keyword guard."""

    def __init__(
        self,
        generation: Optional[GenerationService] = None,
        keywords: Optional[Sequence[str]] = None,
    ):
        self._generation = generation
        self._keywords = [k.lower() for k in keywords] if keywords is not None else None

    @property
    def generation(self) -> GenerationService:
        return self._generation or get_generation_service()

    @property
    def keywords(self) -> List[str]:
        if self._keywords is not None:
            return self._keywords
        return runtime_config.get_domain_keywords()

    def matches_keyword(self, query: str) -> bool:
        lowered = query.lower()
        return any(k in lowered for k in self.keywords)

    async def decide(self, query: str, history: Sequence[Dict[str, str]]) -> IntentDecision:
        messages = [{"role": "system", "content": get_router_prompt()}]
        messages.extend(history)
        messages.append({"role": "user", "content": query})

        raw = None
        try:
            raw = await self.generation.invoke(
                messages,
                max_tokens=runtime_config.helper_max_tokens,
                temperature=0.0,
            )
            decision = IntentDecision(parse_intent_label(raw), "model", raw)
        except ClassificationAmbiguous as e:
            logger.info(f"Intent output unrecognized, defaulting to OFF_TOPIC: {e.context}")
            decision = IntentDecision(Intent.OFF_TOPIC, "default", raw)
        except Exception as e:
            logger.warning(f"Intent classification failed, defaulting to OFF_TOPIC: {e}")
            decision = IntentDecision(Intent.OFF_TOPIC, "default", raw)

        if decision.intent is not Intent.KNOWLEDGE and self.matches_keyword(query):
            decision = IntentDecision(Intent.KNOWLEDGE, "keyword", raw)

        log_intent(logger, decision.intent.value, decision.source)
        return decision

    async def classify(self, query: str, history: Sequence[Dict[str, str]]) -> Intent:
        """Route one query; never raises for model problems."""
        return (await self.decide(query, history)).intent


_router: Optional[IntentRouter] = None


def get_intent_router() -> IntentRouter:
    """Get or create the singleton router instance."""
    global _router
    if _router is None:
        _router = IntentRouter()
    return _router
