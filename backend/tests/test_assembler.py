"""
Tests for context assembly (character budget, source list).
"""

import pytest

from tools.knowledge.assembler import BLOCK_SEPARATOR, assemble_context, format_block
from tools.knowledge.retriever import SearchResult


def _result(doc_id: str, title: str, text: str, similarity: float = 0.9) -> SearchResult:
    return SearchResult(id=doc_id, text=text, similarity=similarity, metadata={"title": title})


@pytest.fixture
def ranked_results():
    return [
        _result("a", "Zenlise", "Zenlise is a workflow platform.", 0.95),
        _result("b", "Hasinthaka", "Hasinthaka builds developer tools.", 0.85),
        _result("c", "Pricing", "Zenlise has a free tier and a team plan.", 0.75),
    ]


class TestAssembleContext:
    def test_empty_input_is_empty_context(self):
        assembled = assemble_context([], 2000)
        assert assembled.context == ""
        assert assembled.sources == []
        assert assembled.is_empty

    def test_all_fit(self, ranked_results):
        assembled = assemble_context(ranked_results, 2000)
        assert assembled.context == BLOCK_SEPARATOR.join(format_block(r) for r in ranked_results)
        assert [s["id"] for s in assembled.sources] == ["a", "b", "c"]

    def test_block_format(self):
        block = format_block(_result("a", "Zenlise", "Body text"))
        assert block == "[Title: Zenlise]\nContent: Body text"

    def test_missing_title_is_untitled(self):
        result = SearchResult(id="x", text="Body", similarity=0.8, metadata={})
        assert format_block(result).startswith("[Title: Untitled]")

    def test_sources_carry_title_and_similarity(self, ranked_results):
        assembled = assemble_context(ranked_results, 2000)
        assert assembled.sources[0] == {"id": "a", "title": "Zenlise", "similarity": 0.95}

    def test_stops_at_first_overflow(self, ranked_results):
        """Earlier blocks are kept; later ones are not considered once one overflows."""
        first = format_block(ranked_results[0])
        budget = len(first) + len(BLOCK_SEPARATOR) + 5
        assembled = assemble_context(ranked_results, budget)
        assert assembled.context == first
        assert [s["id"] for s in assembled.sources] == ["a"]

    def test_no_later_small_block_after_overflow(self):
        results = [
            _result("a", "A", "short"),
            _result("b", "B", "x" * 500),
            _result("c", "C", "tiny"),
        ]
        assembled = assemble_context(results, 200)
        assert [s["id"] for s in assembled.sources] == ["a"]

    def test_oversized_first_block_gives_empty_context(self, ranked_results):
        assembled = assemble_context(ranked_results, 10)
        assert assembled.context == ""
        assert assembled.sources == []

    @pytest.mark.parametrize("budget", [1, 40, 60, 100, 150, 1000])
    def test_context_never_exceeds_budget(self, ranked_results, budget):
        assembled = assemble_context(ranked_results, budget)
        assert len(assembled.context) <= budget

    def test_exact_budget_fits(self, ranked_results):
        first = format_block(ranked_results[0])
        assembled = assemble_context(ranked_results[:1], len(first))
        assert assembled.context == first
