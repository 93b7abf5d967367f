"""Tests for uicheck.events -- synthetic dispatch and FireEvent helpers."""

from __future__ import annotations

from typing import Any

import pytest

from uicheck.component import component, use_state
from uicheck.events import SyntheticEvent
from uicheck.harness import Harness
from uicheck.nodes import h


class TestDispatch:
    """Handler resolution and bubbling."""

    def test_handler_receives_event(self, harness: Harness) -> None:
        seen: list[SyntheticEvent] = []
        harness.render(h("button", "Go", on_click=seen.append))
        button = harness.screen.get_by_text("Go")

        event = harness.fire_event.click(button)

        assert seen == [event]
        assert event.type == "click"
        assert event.target is button
        assert event["button"] == 0
        assert event.current_target is None

    def test_no_handler_is_noop(self, harness: Harness) -> None:
        harness.render(h("p", "quiet"))
        event = harness.fire_event.click(harness.screen.get_by_text("quiet"))
        assert event.handled_by == []

    def test_bubbles_to_ancestors(self, harness: Harness) -> None:
        order: list[str] = []
        harness.render(h(
            "div",
            h("span", "inner", on_click=lambda e: order.append(f"span:{e.current_target.tag}")),
            on_click=lambda e: order.append(f"div:{e.current_target.tag}"),
        ))
        harness.fire_event.click(harness.screen.get_by_text("inner"))
        assert order == ["span:span", "div:div"]

    def test_stop_propagation(self, harness: Harness) -> None:
        order: list[str] = []

        def inner(event: SyntheticEvent) -> None:
            order.append("inner")
            event.stop_propagation()

        harness.render(h("div", h("span", "x", on_click=inner), on_click=lambda e: order.append("outer")))
        harness.fire_event.click(harness.screen.get_by_text("x"))
        assert order == ["inner"]

    def test_focus_does_not_bubble(self, harness: Harness) -> None:
        order: list[str] = []
        harness.render(h(
            "div",
            h("input", data_testid="field", on_focus=lambda e: order.append("input")),
            on_focus=lambda e: order.append("div"),
        ))
        event = harness.fire_event.focus(harness.screen.get_by_test_id("field"))
        assert order == ["input"]
        assert not event.bubbles

    def test_non_callable_handler(self, harness: Harness) -> None:
        harness.render(h("button", "Bad", on_click="not a function"))
        with pytest.raises(TypeError, match="to be callable"):
            harness.fire_event.click(harness.screen.get_by_text("Bad"))

    def test_state_set_before_handler_raises_is_rendered(self, harness: Harness) -> None:
        @component
        def Fragile() -> object:
            count, set_count = use_state(0)

            def on_click(event: SyntheticEvent) -> None:
                set_count(count + 1)
                raise ValueError("after update")

            return h("button", f"n={count}", on_click=on_click)

        harness.render(Fragile())
        button = harness.screen.get_by_role("button")

        with pytest.raises(ValueError, match="after update"):
            harness.fire_event.click(button)

        assert button.text_content == "n=1"

    def test_detached_node_is_noop(self, harness: Harness) -> None:
        calls: list[int] = []
        result = harness.render(h("button", "Once", on_click=lambda e: calls.append(1)))
        button = harness.screen.get_by_text("Once")
        result.unmount()

        harness.fire_event.click(button)
        assert calls == []


class TestHandlerFreshness:
    """Dispatch always reaches the latest render's closures."""

    def test_latest_closure_runs(self, harness: Harness) -> None:
        seen: list[int] = []

        @component
        def Clicker() -> object:
            count, set_count = use_state(0)

            def on_click(event: SyntheticEvent) -> None:
                seen.append(count)
                set_count(count + 1)

            return h("button", f"clicked {count}", on_click=on_click)

        harness.render(Clicker())
        button = harness.screen.get_by_role("button")
        for _ in range(3):
            harness.fire_event.click(button)

        assert seen == [0, 1, 2]
        assert button.text_content == "clicked 3"

    def test_handlers_of_one_dispatch_share_a_batch(self, harness: Harness) -> None:
        """State set by a child and a parent handler renders once."""
        renders: list[int] = []

        @component
        def Nested() -> object:
            a, set_a = use_state(0)
            b, set_b = use_state(0)
            renders.append(a + b)
            return h(
                "div",
                h("button", "go", on_click=lambda e: set_a(a + 1)),
                on_click=lambda e: set_b(b + 1),
            )

        harness.render(Nested())
        harness.fire_event.click(harness.screen.get_by_text("go"))
        assert renders == [0, 2]


class TestFireEventHelpers:
    """Convenience wrappers."""

    def test_change_sets_value(self, harness: Harness) -> None:
        values: list[Any] = []
        harness.render(h("input", data_testid="name", on_change=lambda e: values.append(e.value)))
        field = harness.screen.get_by_test_id("name")

        harness.fire_event.change(field, "Ada")

        assert values == ["Ada"]
        assert field.attributes["value"] == "Ada"

    def test_key_down_and_generic(self, harness: Harness) -> None:
        keys: list[object] = []
        harness.render(h(
            "input",
            data_testid="k",
            on_key_down=lambda e: keys.append(e["key"]),
            on_double_click=lambda e: keys.append("dbl"),
            on_submit=lambda e: e.prevent_default(),
        ))
        node = harness.screen.get_by_test_id("k")

        harness.fire_event.key_down(node, "Enter")
        harness.fire_event.double_click(node)
        submitted = harness.fire_event.submit(node)
        custom = harness.fire_event(node, "KeyDown", key="Escape")

        assert keys == ["Enter", "dbl", "Escape"]
        assert submitted.default_prevented
        assert custom.get("key") == "Escape"
        assert custom.get("missing", "default") == "default"
