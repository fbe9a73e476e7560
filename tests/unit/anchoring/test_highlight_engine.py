"""Tests for the page-scoped HighlightEngine.

Verifies:
- Selections are captured with trimmed text, context, position and page data
- Saving persists the capture and marks it; store failures and timeouts
  are reported without marking
- Re-rendering marks only this page's fragments and is idempotent
- Navigation and close drop every page-scoped structure
"""

from __future__ import annotations

import asyncio

import pytest

from anchorlight.anchoring.engine import HighlightEngine
from anchorlight.anchoring.models import Fragment, MaterializeState, Position, is_marker
from anchorlight.config import SchedulerConfig, SelectionConfig, Settings, StorageConfig
from anchorlight.dom.range import Range
from anchorlight.store import MemoryFragmentStore
from anchorlight.summary import SummaryContext
from tests.conftest import RecordingSleep
from tests.helpers.pages import PAGE_URL, leaf_containing, make_page

SENTENCE = "<p>The quick brown fox jumps</p>"


def _settings(**overrides: object) -> Settings:
    values: dict[str, object] = {
        "scheduler": SchedulerConfig(yield_seconds=0),
        "selection": SelectionConfig(throttle_seconds=0.0, debounce_seconds=0.01),
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)  # type: ignore[arg-type]


def _engine(
    body: str = SENTENCE,
    store: MemoryFragmentStore | None = None,
    **kwargs: object,
) -> HighlightEngine:
    settings = kwargs.pop("settings", None) or _settings()
    return HighlightEngine(
        make_page(body),
        store if store is not None else MemoryFragmentStore(),
        page_url=PAGE_URL,
        settings=settings,  # type: ignore[arg-type]
        sleep=RecordingSleep(),
        **kwargs,  # type: ignore[arg-type]
    )


def _select(engine: HighlightEngine, needle: str, offset: int, length: int) -> Range:
    leaf = leaf_containing(engine.document.body, needle)
    return Range.in_text(leaf, offset, length)


class FailingStore(MemoryFragmentStore):
    async def save(self, fragment: Fragment) -> bool:
        raise ConnectionError("database unavailable")

    async def load(self) -> list[Fragment]:
        raise ConnectionError("database unavailable")


class RefusingStore(MemoryFragmentStore):
    async def save(self, fragment: Fragment) -> bool:
        return False


class SlowStore(MemoryFragmentStore):
    async def save(self, fragment: Fragment) -> bool:
        await asyncio.sleep(1)
        return True


class EchoSummariser:
    def __init__(self) -> None:
        self.calls = 0

    async def summarise(self, text: str, context: SummaryContext) -> str:
        self.calls += 1
        return f"About {text}."


class TestCaptureSelection:
    """HighlightEngine.capture_selection."""

    def test_captures_trimmed_text_and_page_data(self) -> None:
        engine = _engine()

        pending = engine.capture_selection(_select(engine, "quick", 3, 7))

        assert pending is not None
        fragment = pending.fragment
        assert fragment.text == "quick"
        assert fragment.context_text == "The quick brown fox jumps..."
        assert fragment.approx_position == Position(top=0.0, left=32.0, width=40.0, height=20.0)
        assert fragment.url == PAGE_URL
        assert fragment.title == "Test page"
        assert fragment.domain == "example.com"
        assert (pending.descriptor.start_offset, pending.descriptor.end_offset) == (4, 9)

    def test_whitespace_selection_clears_pending(self) -> None:
        engine = _engine()
        engine.capture_selection(_select(engine, "quick", 4, 5))

        assert engine.capture_selection(_select(engine, "quick", 3, 1)) is None
        assert engine.pending is None

    def test_over_long_selection_ignored(self) -> None:
        engine = _engine("<p>" + "word " * 250 + "</p>")

        assert engine.capture_selection(_select(engine, "word", 0, 1100)) is None
        assert engine.pending is None

    def test_context_truncated(self) -> None:
        engine = _engine("<p>" + "a" * 300 + " target</p>")

        pending = engine.capture_selection(_select(engine, "target", 301, 6))

        assert pending is not None
        assert pending.fragment.context_text == "a" * 200 + "..."

    def test_element_boundary_selection_trimmed_into_text(self) -> None:
        """A selection starting on an element boundary before whitespace is stored trimmed."""
        engine = _engine("<p>  <b>alpha</b> beta</p>")
        paragraph = engine.document.body.children[0]
        alpha = leaf_containing(engine.document.body, "alpha")
        beta = leaf_containing(engine.document.body, "beta")

        pending = engine.capture_selection(Range(paragraph, 0, beta, len(beta.data)))

        assert pending is not None
        assert pending.fragment.text == "alpha beta"
        descriptor = pending.descriptor
        assert (descriptor.start_container, descriptor.start_offset) == (alpha, 0)
        assert pending.descriptor.to_range().to_string() == "alpha beta"

    @pytest.mark.asyncio
    async def test_selection_change_is_debounced(self) -> None:
        engine = _engine()

        assert engine.on_selection_change(_select(engine, "quick", 4, 5))
        await asyncio.sleep(0.05)

        assert engine.pending is not None
        assert engine.pending.fragment.text == "quick"
        assert engine.on_selection_change(None) is False
        assert engine.selection is None


class TestSavePending:
    """HighlightEngine.save_pending."""

    @pytest.mark.asyncio
    async def test_save_marks_the_selection(self) -> None:
        store = MemoryFragmentStore()
        engine = _engine(store=store)
        range_ = _select(engine, "quick", 4, 5)
        engine.on_selection_change(range_)
        engine.debouncer.cancel()
        engine.capture_selection(range_)

        result = await engine.save_pending()

        assert result.success
        assert result.materialized is not None
        assert result.materialized.state is MaterializeState.REPLAY
        assert len(store) == 1
        assert engine.pending is None
        assert engine.selection is None
        assert result.fragment is not None
        assert engine.find_marker(result.fragment.id) is result.materialized.marker
        assert engine.document.body.text_content == "The quick brown fox jumps"

    @pytest.mark.asyncio
    async def test_marker_holds_exactly_the_saved_text(self) -> None:
        engine = _engine("<p>  <b>alpha</b> beta</p>")
        paragraph = engine.document.body.children[0]
        beta = leaf_containing(engine.document.body, "beta")
        engine.capture_selection(Range(paragraph, 0, beta, len(beta.data)))

        result = await engine.save_pending()

        assert result.materialized is not None
        assert result.materialized.state is not MaterializeState.REMARK
        assert result.materialized.marker is not None
        assert result.materialized.marker.text_content == "alpha beta"

    @pytest.mark.asyncio
    async def test_nothing_pending(self) -> None:
        result = await _engine().save_pending()
        assert result.error == "NoSelection"

    @pytest.mark.asyncio
    async def test_store_failure_reported(self) -> None:
        engine = _engine(store=FailingStore())
        engine.capture_selection(_select(engine, "quick", 4, 5))

        result = await engine.save_pending()

        assert not result.success
        assert result.error == "CollaboratorFailure: database unavailable"
        assert engine.pending is not None
        assert engine.document.body.find_all(is_marker) == []

    @pytest.mark.asyncio
    async def test_store_refusal_reported(self) -> None:
        engine = _engine(store=RefusingStore())
        engine.capture_selection(_select(engine, "quick", 4, 5))

        result = await engine.save_pending()

        assert result.error == "CollaboratorFailure: store refused"

    @pytest.mark.asyncio
    async def test_store_timeout_reported(self) -> None:
        settings = _settings(storage=StorageConfig(save_timeout_seconds=0.01))
        engine = _engine(store=SlowStore(), settings=settings)
        engine.capture_selection(_select(engine, "quick", 4, 5))

        result = await engine.save_pending()

        assert result.error == "CollaboratorFailure: save timed out"


class TestRenderPageHighlights:
    """load and render_page_highlights."""

    @staticmethod
    def _store() -> MemoryFragmentStore:
        return MemoryFragmentStore(
            [
                Fragment(id="a", text="brown", url=PAGE_URL),
                Fragment(id="b", text="jumps", url=PAGE_URL),
                Fragment(id="c", text="fox", url="https://other.example/x"),
            ]
        )

    @pytest.mark.asyncio
    async def test_marks_only_this_page(self) -> None:
        engine = _engine(store=self._store())

        loaded = await engine.load()
        report = await engine.render_page_highlights()

        assert loaded.success
        assert loaded.count == 3
        assert report.processed == 2
        assert all(result.success for result in report.results)
        assert sorted(engine.markers) == ["a", "b"]

    @pytest.mark.asyncio
    async def test_rerender_is_idempotent(self) -> None:
        engine = _engine(store=self._store())
        await engine.load()
        await engine.render_page_highlights()
        first = engine.to_html()

        await engine.render_page_highlights()

        assert engine.to_html() == first
        assert len(engine.document.find_all(is_marker)) == 2

    @pytest.mark.asyncio
    async def test_load_failure(self) -> None:
        engine = _engine(store=FailingStore())

        result = await engine.load()

        assert not result.success
        assert result.error == "CollaboratorFailure: database unavailable"

    @pytest.mark.asyncio
    async def test_visibility(self) -> None:
        engine = _engine(store=self._store())
        await engine.load()

        assert await engine.on_visibility_change(hidden=True) is None
        report = await engine.on_visibility_change(hidden=False)

        assert report is not None
        assert report.processed == 2


class TestMarkers:
    """mark, unmark, find_marker and prune_markers."""

    def test_mark_replaces_existing_marker(self) -> None:
        engine = _engine()
        fragment = Fragment(id="f", text="fox")

        engine.mark(fragment)
        engine.mark(fragment)

        assert len(engine.document.find_all(is_marker)) == 1

    def test_unmark(self) -> None:
        engine = _engine()
        engine.mark(Fragment(id="f", text="fox"))

        assert engine.unmark("f") is True
        assert engine.unmark("f") is False
        assert engine.find_marker("f") is None

    def test_prune_detached(self) -> None:
        engine = _engine()
        engine.mark(Fragment(id="f", text="fox"))
        engine.document.body.children[0].remove()

        assert engine.prune_markers() == 1
        assert engine.markers == {}


class TestSummarise:
    """HighlightEngine.summarise."""

    @pytest.mark.asyncio
    async def test_without_summariser(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("LLM__API_KEY", raising=False)
        result = await _engine().summarise(Fragment(text="fox"))
        assert result.error == "CollaboratorFailure: no summariser configured"

    @pytest.mark.asyncio
    async def test_nothing_pending(self) -> None:
        result = await _engine(summariser=EchoSummariser()).summarise()
        assert result.error == "NoSelection"

    @pytest.mark.asyncio
    async def test_summarises_pending_capture(self) -> None:
        summariser = EchoSummariser()
        engine = _engine(summariser=summariser)
        engine.capture_selection(_select(engine, "quick", 4, 5))

        first = await engine.summarise()
        second = await engine.summarise()

        assert first.summary == "About quick."
        assert second.cached
        assert summariser.calls == 1


class TestLifecycle:
    """Context manager, navigate and close."""

    @pytest.mark.asyncio
    async def test_context_manager_runs_sweep(self) -> None:
        engine = _engine()

        async with engine:
            assert engine.cache.running

        assert not engine.cache.running

    def test_navigate_resets_page_state(self) -> None:
        engine = _engine()
        engine.capture_selection(_select(engine, "quick", 4, 5))
        engine.mark(Fragment(id="f", text="fox"))
        engine.locator.find_candidates("brown")
        new_document = make_page("<p>Another page</p>")

        engine.navigate(new_document, "https://example.com/two")

        assert engine.pending is None
        assert engine.markers == {}
        assert len(engine.cache.nodes) == 0
        assert engine.index.document is new_document
        assert engine.locator.page_url == "https://example.com/two"
        assert engine.mark(Fragment(id="g", text="Another")).success

    @pytest.mark.asyncio
    async def test_close_clears_state(self) -> None:
        engine = _engine()
        engine.start()
        engine.capture_selection(_select(engine, "quick", 4, 5))

        await engine.close()

        assert engine.pending is None
        assert not engine.cache.running
