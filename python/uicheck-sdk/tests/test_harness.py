"""Tests for uicheck.harness -- the facade lifecycle."""

from __future__ import annotations

import pytest

from uicheck.component import component, use_effect, use_state, use_timers
from uicheck.errors import RenderError
from uicheck.harness import Harness
from uicheck.matchers import expect
from uicheck.nodes import h


@component
def Ticker() -> object:
    ticks, set_ticks = use_state(0)
    timers = use_timers()

    def start() -> object:
        handle = timers.set_interval(lambda: set_ticks(lambda t: t + 1), 100)
        return lambda: timers.clear(handle)

    use_effect(start, [])
    return h("span", f"ticks={ticks}", data_testid="ticks")


@component
def Broken() -> object:
    raise ValueError("boom")


class TestRender:
    """Mounting through the facade."""

    def test_render_attaches_container(self, harness: Harness) -> None:
        result = harness.render(h("p", "hello"))
        assert result.container.parent is harness.document
        expect(result.get_by_text("hello")).to_be_in_the_document()

    def test_failed_render_leaves_no_container(self, harness: Harness) -> None:
        with pytest.raises(RenderError, match="boom"):
            harness.render(Broken())
        assert harness.document.children == []

    def test_rerender_and_update(self, harness: Harness) -> None:
        @component
        def Label(*, text: str) -> object:
            return h("p", text, data_testid="label")

        result = harness.render(Label(text="a"))
        node = result.get_by_test_id("label")

        result.rerender(Label(text="b"))
        expect(node).to_have_text_content("b", exact=True)

        result.update(text="c")
        expect(node).to_have_text_content("c", exact=True)

    def test_unmount_detaches(self, harness: Harness) -> None:
        result = harness.render(h("p", "bye"))
        node = result.get_by_text("bye")
        result.unmount()
        expect(node).not_.to_be_in_the_document()


class TestTimers:
    """Timer helpers fire timers and then settle."""

    def test_advance(self, harness: Harness) -> None:
        harness.render(Ticker())
        assert harness.advance(350) == 3
        expect(harness.screen.get_by_test_id("ticks")).to_have_text_content("ticks=3")

    def test_run_only_pending(self, harness: Harness) -> None:
        harness.render(Ticker())
        assert harness.run_only_pending_timers() == 1
        assert harness.clock.now_ms == 100.0
        expect(harness.screen.get_by_test_id("ticks")).to_have_text_content("ticks=1")

    def test_run_all_with_finite_timers(self, harness: Harness) -> None:
        fired: list[float] = []
        harness.clock.set_timeout(lambda: fired.append(harness.clock.now_ms), 30)
        harness.clock.set_timeout(lambda: fired.append(harness.clock.now_ms), 10)
        assert harness.run_all_timers() == 2
        assert fired == [10.0, 30.0]


class TestMocks:
    def test_mocks_use_harness_clock(self, harness: Harness) -> None:
        fn = harness.mock_fn("cb")
        harness.advance(40)
        fn()
        assert fn.calls[0].timestamp_ms == 40.0


class TestCleanup:
    """Teardown and isolation."""

    def test_cleanup_is_idempotent(self) -> None:
        harness = Harness()
        harness.render(Ticker())
        harness.cleanup()
        harness.cleanup()
        assert harness.document.children == []
        assert harness.clock.pending_count == 0
        assert harness.runner.closed

    def test_render_after_cleanup(self) -> None:
        harness = Harness()
        harness.cleanup()
        with pytest.raises(RuntimeError, match="cleaned up"):
            harness.render(h("p", "late"))

    def test_context_manager_cleans_up(self) -> None:
        with Harness() as harness:
            harness.render(Ticker())
        assert harness.runner.closed

    def test_harnesses_are_isolated(self) -> None:
        with Harness() as first, Harness() as second:
            first.render(Ticker())
            second.render(Ticker())
            first.advance(200)

            expect(first.screen.get_by_test_id("ticks")).to_have_text_content("ticks=2")
            expect(second.screen.get_by_test_id("ticks")).to_have_text_content("ticks=0")
            assert second.clock.now_ms == 0.0
