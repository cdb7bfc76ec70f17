"""
Query Refiner - rewrites a follow-up into a self-contained search query.

"How does it work?" after a turn about Zenlise becomes something like
"Zenlise workflow functionality". Any failure returns the original query.
"""

import logging
import re
from typing import Dict, Optional, Sequence

from config import runtime_config
from services.llm_client import GenerationService, get_generation_service

from ..chat_prompts import get_search_query_prompt
from .think_parser import parse_think_content

logger = logging.getLogger(__name__)

_PREFIX_RE = re.compile(r"^(search\s+)?query\s*:\s*", re.IGNORECASE)
_QUOTES = "\"'`“”‘’"


def clean_search_query(text: str) -> str:
    """First non-empty line of model output, without label prefix or quotes."""
    visible = parse_think_content(text or "").answer
    for line in visible.splitlines():
        line = _PREFIX_RE.sub("", line.strip()).strip().strip(_QUOTES).strip()
        if line:
            return line
    return ""


class QueryRefiner:
    def __init__(self, generation: Optional[GenerationService] = None):
        self._generation = generation

    @property
    def generation(self) -> GenerationService:
        return self._generation or get_generation_service()

    async def refine(self, query: str, history: Sequence[Dict[str, str]]) -> str:
        messages = [{"role": "system", "content": get_search_query_prompt()}]
        messages.extend(history)
        messages.append({"role": "user", "content": query})

        try:
            raw = await self.generation.invoke(
                messages,
                max_tokens=runtime_config.helper_max_tokens,
                temperature=0.0,
            )
        except Exception as e:
            logger.warning(f"Query refinement failed, using original query: {e}")
            return query

        refined = clean_search_query(raw)
        if not refined:
            logger.info("Query refinement returned nothing, using original query")
            return query
        logger.info(f"Refined query: {query[:60]!r} -> {refined[:60]!r}")
        return refined


_refiner: Optional[QueryRefiner] = None


def get_query_refiner() -> QueryRefiner:
    global _refiner
    if _refiner is None:
        _refiner = QueryRefiner()
    return _refiner
