"""
Think-tag parser - splits assistant text into visible answer and reasoning.

The agent wraps its reasoning trace in <think>...</think>. The parser is a
pure function of the text, so callers can re-parse the whole buffer after
every token instead of keeping parser state.

    >>> r = parse_think_content("<think>Analyzing...</think>\\n\\nHello!")
    >>> r.answer, r.reasoning, r.inside_reasoning
    ('\\n\\nHello!', ('Analyzing...',), False)
"""

from dataclasses import dataclass
from typing import Optional, Tuple

THINK_OPEN = "<think>"
THINK_CLOSE = "</think>"

# Shown between reasoning segments when several appear in one message
REASONING_SEPARATOR = "\n\n---\n\n"


@dataclass(frozen=True)
class ThinkParseResult:
    """Parsed view of an assistant buffer.

    Attributes:
        answer: Text outside reasoning blocks, in order, untrimmed
        reasoning: Finalized (closed) reasoning segments in document order;
            empty segments are kept
        partial_reasoning: Text of a trailing unterminated segment, or None
        inside_reasoning: True iff the buffer ends inside an open block
    """

    answer: str
    reasoning: Tuple[str, ...]
    partial_reasoning: Optional[str]
    inside_reasoning: bool

    @property
    def has_reasoning(self) -> bool:
        """True if any reasoning block was opened, even an empty one."""
        return bool(self.reasoning) or self.partial_reasoning is not None

    def display_reasoning(self, include_partial: bool = True) -> str:
        """Reasoning segments joined for display, separator between them."""
        parts = list(self.reasoning)
        if include_partial and self.partial_reasoning is not None:
            parts.append(self.partial_reasoning)
        return REASONING_SEPARATOR.join(p.strip() for p in parts)


def _trailing_marker_prefix(text: str, marker: str) -> int:
    """Length of the longest proper prefix of marker that ends text."""
    for size in range(min(len(marker) - 1, len(text)), 0, -1):
        if text.endswith(marker[:size]):
            return size
    return 0


def parse_think_content(text: str, hold_partial_marker: bool = False) -> ThinkParseResult:
    """
    Split text into visible answer and reasoning segments.

    Args:
        text: Full buffer produced so far
        hold_partial_marker: Leave a trailing, incomplete marker (e.g. "<thi")
            out of the answer and partial reasoning. Useful while streaming;
            off by default so the answer is exactly the non-reasoning text.

    Returns:
        ThinkParseResult
    """
    answer_parts = []
    segments = []
    partial = None
    pos = 0

    while True:
        open_idx = text.find(THINK_OPEN, pos)
        if open_idx == -1:
            answer_parts.append(text[pos:])
            break
        answer_parts.append(text[pos:open_idx])

        start = open_idx + len(THINK_OPEN)
        close_idx = text.find(THINK_CLOSE, start)
        if close_idx == -1:
            partial = text[start:]
            break
        segments.append(text[start:close_idx])
        pos = close_idx + len(THINK_CLOSE)

    answer = "".join(answer_parts)
    if hold_partial_marker:
        if partial is None:
            cut = _trailing_marker_prefix(answer, THINK_OPEN)
            answer = answer[:len(answer) - cut]
        else:
            cut = _trailing_marker_prefix(partial, THINK_CLOSE)
            partial = partial[:len(partial) - cut]

    return ThinkParseResult(
        answer=answer,
        reasoning=tuple(segments),
        partial_reasoning=partial,
        inside_reasoning=partial is not None,
    )
