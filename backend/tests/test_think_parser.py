"""
Tests for the think-tag parser.

Tests:
- Answer/reasoning split for closed, multiple, empty and unterminated blocks
- Re-parsing a growing buffer (streaming)
- Display joining of several segments
"""

import pytest

from routers.chat_orchestration.think_parser import (
    REASONING_SEPARATOR,
    THINK_CLOSE,
    THINK_OPEN,
    parse_think_content,
)


class TestClosedBlocks:
    """Buffers whose reasoning blocks are all closed."""

    def test_plain_text_has_no_reasoning(self):
        result = parse_think_content("Hello there")
        assert result.answer == "Hello there"
        assert result.reasoning == ()
        assert result.partial_reasoning is None
        assert result.inside_reasoning is False
        assert result.has_reasoning is False

    def test_single_block(self):
        result = parse_think_content("<think>Analyzing...</think>\n\nHello!")
        assert result.answer == "\n\nHello!"
        assert result.reasoning == ("Analyzing...",)
        assert result.inside_reasoning is False

    def test_multiple_blocks_kept_in_order(self):
        text = "<think>first</think>A<think>second</think>B"
        result = parse_think_content(text)
        assert result.reasoning == ("first", "second")
        assert result.answer == "AB"

    def test_empty_block_is_kept(self):
        """An empty block still signals that reasoning happened."""
        result = parse_think_content("<think></think>Answer")
        assert result.reasoning == ("",)
        assert result.has_reasoning is True
        assert result.answer == "Answer"

    @pytest.mark.parametrize("text", [
        "before<think>r1</think>middle<think>r2</think>after",
        "<think>only reasoning</think>",
        "no markers at all",
        "<think></think><think>x</think>tail",
    ])
    def test_answer_is_text_outside_blocks(self, text):
        """Removing every closed block from the input leaves exactly the answer."""
        result = parse_think_content(text)
        rebuilt = text
        for segment in result.reasoning:
            rebuilt = rebuilt.replace(f"{THINK_OPEN}{segment}{THINK_CLOSE}", "", 1)
        assert result.answer == rebuilt
        assert len(result.reasoning) == text.count(THINK_CLOSE)


class TestUnterminatedBlocks:
    """Buffers that end inside a reasoning block."""

    def test_open_block_is_partial(self):
        result = parse_think_content("<think>Searching")
        assert result.inside_reasoning is True
        assert result.reasoning == ()
        assert result.partial_reasoning == "Searching"
        assert result.answer == ""

    def test_partial_after_closed_block(self):
        result = parse_think_content("<think>done</think>text<think>still going")
        assert result.reasoning == ("done",)
        assert result.partial_reasoning == "still going"
        assert result.inside_reasoning is True
        assert result.answer == "text"

    def test_partial_excluded_from_display_on_request(self):
        result = parse_think_content("<think>a</think><think>b")
        assert result.display_reasoning() == f"a{REASONING_SEPARATOR}b"
        assert result.display_reasoning(include_partial=False) == "a"


class TestStreaming:
    """Re-parsing a strictly growing buffer."""

    def test_reparse_every_prefix(self):
        full = "<think>Analyzing user intent... Intent identified: GREETING.</think>\n\nHi!"
        was_inside = False
        for i in range(1, len(full) + 1):
            result = parse_think_content(full[:i])
            if result.inside_reasoning:
                was_inside = True
            # Once the block closes, the segment stays finalized
            if i >= full.index(THINK_CLOSE) + len(THINK_CLOSE):
                assert result.reasoning == ("Analyzing user intent... Intent identified: GREETING.",)
                assert result.inside_reasoning is False
        assert was_inside

    def test_same_input_same_output(self):
        text = "<think>x</think>y<think>z"
        assert parse_think_content(text) == parse_think_content(text)

    def test_hold_partial_open_marker(self):
        result = parse_think_content("Hello <thi", hold_partial_marker=True)
        assert result.answer == "Hello "

    def test_hold_partial_close_marker(self):
        result = parse_think_content("<think>reasoning</thi", hold_partial_marker=True)
        assert result.partial_reasoning == "reasoning"
        assert result.inside_reasoning is True

    def test_partial_marker_kept_by_default(self):
        result = parse_think_content("Hello <thi")
        assert result.answer == "Hello <thi"


class TestDisplay:
    def test_segments_joined_with_separator(self):
        result = parse_think_content("<think> one </think><think>two</think>")
        assert result.display_reasoning() == f"one{REASONING_SEPARATOR}two"

    def test_no_reasoning_displays_empty(self):
        assert parse_think_content("plain").display_reasoning() == ""
