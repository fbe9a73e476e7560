"""Tests for candidate lookup.

Verifies:
- A 2-character fragment occurring 20 times yields at most 10 candidates
- A 10-character fragment occurring 20 times yields at most 5 candidates
- Candidates come back in document order with the first match index
- Results are cached per (text, page url) and can be forgotten
- Detached leaves are never returned
"""

from __future__ import annotations

from anchorlight.anchoring.node_index import ALL_TEXT_NODES_KEY
from tests.helpers.pages import PAGE_URL, Pipeline, leaf_containing, make_page


def _repeated_page(count: int = 20) -> Pipeline:
    body = "".join(f"<p>ab repeated! item {i}</p>" for i in range(count))
    return Pipeline(make_page(body))


class TestFindCandidates:
    """FragmentLocator.find_candidates."""

    def test_short_text_capped_at_ten(self) -> None:
        pipeline = _repeated_page()
        assert len(pipeline.locator.find_candidates("ab")) == 10

    def test_long_text_capped_at_five(self) -> None:
        pipeline = _repeated_page()
        candidates = pipeline.locator.find_candidates("repeated! ")
        assert len(candidates) == 5

    def test_document_order_and_match_index(self) -> None:
        pipeline = _repeated_page(3)

        candidates = pipeline.locator.find_candidates("item")

        assert [c.leaf.data for c in candidates] == [
            "ab repeated! item 0",
            "ab repeated! item 1",
            "ab repeated! item 2",
        ]
        assert all(c.match_index == 13 for c in candidates)

    def test_short_text_does_not_build_index(self) -> None:
        """Short fragments walk the tree directly instead of the cached index."""
        pipeline = _repeated_page(3)
        pipeline.locator.find_candidates("ab")
        assert pipeline.store.get(ALL_TEXT_NODES_KEY) is None

    def test_empty_text(self) -> None:
        assert _repeated_page(1).locator.find_candidates("") == []

    def test_no_match(self) -> None:
        assert _repeated_page(2).locator.find_candidates("absent text") == []

    def test_skips_script_text(self) -> None:
        pipeline = Pipeline(make_page("<script>var needle = 1;</script><p>a needle here</p>"))

        candidates = pipeline.locator.find_candidates("needle")

        assert len(candidates) == 1
        assert candidates[0].leaf.data == "a needle here"

    def test_skips_detached_leaves(self) -> None:
        """A leaf removed after indexing is not offered as a candidate."""
        pipeline = Pipeline(make_page("<p>target one</p><p>target two</p>"))
        pipeline.index.all_leaves()
        leaf_containing(pipeline.document.body, "one").remove()

        candidates = pipeline.locator.find_candidates("target")

        assert [c.leaf.data for c in candidates] == ["target two"]


class TestCandidateCache:
    """Caching of candidate lists."""

    def test_cache_key_includes_page_url(self) -> None:
        pipeline = _repeated_page(1)
        assert pipeline.locator.cache_key("item") == f"item_{PAGE_URL}"

    def test_second_lookup_is_cached(self) -> None:
        pipeline = _repeated_page(2)
        first = pipeline.locator.find_candidates("item")

        assert pipeline.locator.find_candidates("item") is first

    def test_forget_drops_entry(self) -> None:
        pipeline = _repeated_page(2)
        first = pipeline.locator.find_candidates("item")

        pipeline.locator.forget("item")

        assert pipeline.locator.find_candidates("item") is not first

    def test_cache_expires_with_node_lifetime(self) -> None:
        pipeline = _repeated_page(2)
        first = pipeline.locator.find_candidates("item")

        pipeline.clock.advance(30_001)

        assert pipeline.locator.find_candidates("item") is not first
