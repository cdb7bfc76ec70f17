"""
Context assembly for grounded answers.

Turns ranked search results into a single context block that fits a
character budget, plus the list of sources that made it in.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence

from .retriever import SearchResult

BLOCK_SEPARATOR = "\n\n---\n\n"


def format_block(result: SearchResult) -> str:
    return f"[Title: {result.title}]\nContent: {result.text}"


@dataclass
class AssembledContext:
    """Context string for the prompt and the sources it was built from"""

    context: str = ""
    sources: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.context


def assemble_context(results: Sequence[SearchResult], max_context_length: int) -> AssembledContext:
    """
    Greedily join result blocks in rank order while the joined text fits.

    Stops at the first block that would push the joined length past
    max_context_length. Blocks are never cut, so a single oversized first
    result yields an empty context.
    """
    blocks: List[str] = []
    sources: List[Dict[str, Any]] = []
    length = 0

    for result in results:
        block = format_block(result)
        added = len(block) + (len(BLOCK_SEPARATOR) if blocks else 0)
        if length + added > max_context_length:
            break
        blocks.append(block)
        length += added
        sources.append({
            "id": result.id,
            "title": result.title,
            "similarity": result.similarity,
        })

    return AssembledContext(context=BLOCK_SEPARATOR.join(blocks), sources=sources)
