"""Catalog of components that each exhibit one stateful-UI bug.

Every case pairs a buggy and a fixed variant of the same component with a
single behavioral scenario. The scenario fails against the buggy variant
and passes against the fixed one::

    case = get_case("counter_interval")
    with Harness() as harness:
        case.scenario(harness, case.fixed)     # passes
    with Harness() as harness:
        case.scenario(harness, case.buggy)     # raises WaitTimeoutError

The components are deliberately tiny so that the bug is the only thing
they do.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

from uicheck.component import ComponentDef, component, use_effect, use_state, use_timers
from uicheck.harness import Harness
from uicheck.matchers import expect
from uicheck.mocks import MockFetch
from uicheck.nodes import h

logger = logging.getLogger(__name__)

COUNTER_INTERVAL_MS = 1000


def _todo_style(todo: dict[str, Any]) -> dict[str, str]:
    return {"text_decoration": "line-through" if todo["completed"] else "none"}


# ---------------------------------------------------------------------------
# Mutation of state in place
# ---------------------------------------------------------------------------

def _todo_list_view(todos: list[dict[str, Any]], toggle: Callable[[object], None]) -> object:
    return h("ul", [
        h("li", todo["text"], key=todo["id"], style=_todo_style(todo),
          on_click=lambda event, todo_id=todo["id"]: toggle(todo_id))
        for todo in todos
    ])


@component(name="TodoList")
def BuggyTodoList(*, initial_todos: Sequence[dict[str, Any]] = ()) -> object:
    todos, set_todos = use_state(lambda: list(initial_todos))

    def toggle(todo_id: object) -> None:
        todo = next(t for t in todos if t["id"] == todo_id)
        todo["completed"] = not todo["completed"]
        set_todos(todos)

    return _todo_list_view(todos, toggle)


@component(name="TodoList")
def FixedTodoList(*, initial_todos: Sequence[dict[str, Any]] = ()) -> object:
    todos, set_todos = use_state(lambda: list(initial_todos))

    def toggle(todo_id: object) -> None:
        set_todos(lambda prev: [
            {**t, "completed": not t["completed"]} if t["id"] == todo_id else t
            for t in prev
        ])

    return _todo_list_view(todos, toggle)


def todo_toggle_scenario(harness: Harness, todo_list: ComponentDef) -> None:
    todos = [
        {"id": 1, "text": "Learn React", "completed": False},
        {"id": 2, "text": "Build app", "completed": False},
    ]
    harness.render(todo_list(initial_todos=todos))

    first = harness.screen.get_by_text("Learn React")
    second = harness.screen.get_by_text("Build app")
    expect(first).not_.to_have_style("text-decoration: line-through")

    harness.fire_event.click(first)

    expect(first).to_have_style("text-decoration: line-through")
    expect(second).not_.to_have_style("text-decoration: line-through")


# ---------------------------------------------------------------------------
# Stale closure over an interval callback
# ---------------------------------------------------------------------------

@component(name="Counter")
def BuggyCounter(*, interval_ms: float = COUNTER_INTERVAL_MS) -> object:
    count, set_count = use_state(0)
    timers = use_timers()

    def start() -> Callable[[], None]:
        # Captures the first render's count forever.
        handle = timers.set_interval(lambda: set_count(count + 1), interval_ms)
        return lambda: timers.clear(handle)

    use_effect(start, [])
    return h("div", f"Count: {count}", data_testid="counter")


@component(name="Counter")
def FixedCounter(*, interval_ms: float = COUNTER_INTERVAL_MS) -> object:
    count, set_count = use_state(0)
    timers = use_timers()

    def start() -> Callable[[], None]:
        handle = timers.set_interval(lambda: set_count(lambda c: c + 1), interval_ms)
        return lambda: timers.clear(handle)

    use_effect(start, [])
    return h("div", f"Count: {count}", data_testid="counter")


def counter_interval_scenario(harness: Harness, counter: ComponentDef) -> None:
    harness.render(counter())
    node = harness.screen.get_by_test_id("counter")

    harness.advance(5 * COUNTER_INTERVAL_MS)

    harness.wait_for(lambda: expect(node).to_have_text_content("Count: 5"))


# ---------------------------------------------------------------------------
# Event handler invoked during render
# ---------------------------------------------------------------------------

@component(name="TodoItem")
def BuggyTodoItem(*, todo: dict[str, Any], on_toggle: Callable[..., object],
                  on_delete: Callable[..., object]) -> object:
    return h(
        "div",
        h("span", todo["text"], on_click=on_toggle(todo["id"]), style=_todo_style(todo)),
        h("button", "Delete", on_click=on_delete(todo["id"])),
    )


@component(name="TodoItem")
def FixedTodoItem(*, todo: dict[str, Any], on_toggle: Callable[..., object],
                  on_delete: Callable[..., object]) -> object:
    return h(
        "div",
        h("span", todo["text"], on_click=lambda event: on_toggle(todo["id"]),
          style=_todo_style(todo)),
        h("button", "Delete", on_click=lambda event: on_delete(todo["id"])),
    )


def handler_at_render_scenario(harness: Harness, todo_item: ComponentDef) -> None:
    on_toggle = harness.mock_fn("on_toggle")
    on_delete = harness.mock_fn("on_delete")
    todo = {"id": 1, "text": "Test todo", "completed": False}

    harness.render(todo_item(todo=todo, on_toggle=on_toggle, on_delete=on_delete))

    expect(on_toggle).not_.to_have_been_called()
    expect(on_delete).not_.to_have_been_called()

    span = harness.screen.get_by_text("Test todo")
    delete_button = harness.screen.get_by_text("Delete")

    harness.fire_event.click(span)
    expect(on_toggle).to_have_been_called_times(1)
    expect(on_toggle).to_have_been_called_with(1)
    expect(on_delete).not_.to_have_been_called()

    on_toggle.mock_clear()
    harness.fire_event.click(delete_button)
    expect(on_delete).to_have_been_called_times(1)
    expect(on_delete).to_have_been_called_with(1)
    expect(on_toggle).not_.to_have_been_called()


# ---------------------------------------------------------------------------
# Prop-to-state desynchronization
# ---------------------------------------------------------------------------

@component(name="UserCard")
def BuggyUserCard(*, user: dict[str, Any]) -> object:
    # Both slots are seeded once and never follow later props.
    display_name = use_state(user["name"])[0]
    avatar, set_avatar = use_state(user["avatar"])
    return h(
        "div",
        h("img", src=avatar, alt=display_name, data_testid="user-avatar"),
        h("h3", display_name, data_testid="user-name"),
        h("button", "Change Avatar", on_click=lambda event: set_avatar("new-avatar.jpg")),
    )


@component(name="UserCardBody")
def _UserCardBody(*, user: dict[str, Any]) -> object:
    avatar, set_avatar = use_state(user["avatar"])
    return h(
        "div",
        h("img", src=avatar, alt=user["name"], data_testid="user-avatar"),
        h("h3", user["name"], data_testid="user-name"),
        h("button", "Change Avatar", on_click=lambda event: set_avatar("new-avatar.jpg")),
    )


@component(name="UserCard")
def FixedUserCard(*, user: dict[str, Any]) -> object:
    # A new user id is a new identity, so the body remounts with fresh state.
    return _UserCardBody(user=user, key=user["id"])


def props_not_syncing_scenario(harness: Harness, user_card: ComponentDef) -> None:
    alice = {"id": 1, "name": "Alice", "avatar": "alice.jpg"}
    bob = {"id": 2, "name": "Bob", "avatar": "bob.jpg"}

    result = harness.render(user_card(user=alice))
    expect(result.get_by_test_id("user-name")).to_have_text_content("Alice")
    expect(result.get_by_test_id("user-avatar")).to_have_attribute("src", "alice.jpg")

    result.update(user=bob)

    name = result.get_by_test_id("user-name")
    avatar = result.get_by_test_id("user-avatar")
    expect(name).to_have_text_content("Bob", exact=True)
    expect(avatar).to_have_attribute("src", "bob.jpg")
    expect(avatar).to_have_attribute("alt", "Bob")


# ---------------------------------------------------------------------------
# Dereference of data that has not loaded yet
# ---------------------------------------------------------------------------

def _use_post(post_id: object, fetch: MockFetch) -> tuple[Any, list[dict[str, Any]]]:
    post, set_post = use_state(None)
    comments, set_comments = use_state(list)

    async def load() -> None:
        async def get_json(url: str) -> Any:
            response = await fetch(url)
            return await response.json()

        post_data, comments_data = await asyncio.gather(
            get_json(f"/api/posts/{post_id}"),
            get_json(f"/api/posts/{post_id}/comments"),
        )
        set_post(post_data)
        set_comments(comments_data)

    use_effect(load, [post_id])
    return post, comments


def _comments_view(comments: list[dict[str, Any]]) -> object:
    return h(
        "div",
        h("h3", f"Comments ({len(comments)})"),
        [h("div", comment["text"], key=comment["id"]) for comment in comments],
    )


@component(name="BlogPost")
def BuggyBlogPost(*, post_id: object, fetch: MockFetch) -> object:
    post, comments = _use_post(post_id, fetch)
    return h(
        "article",
        h("h1", post["title"]),
        h("p", post["content"]),
        _comments_view(comments),
    )


@component(name="BlogPost")
def FixedBlogPost(*, post_id: object, fetch: MockFetch) -> object:
    post, comments = _use_post(post_id, fetch)
    if post is None:
        return h("article", h("p", "Loading...", data_testid="loading"))
    return h(
        "article",
        h("h1", post["title"]),
        h("p", post["content"]),
        _comments_view(comments),
    )


def null_reference_scenario(harness: Harness, blog_post: ComponentDef) -> None:
    fetch = harness.mock_fetch()
    fetch.respond_with_json({"id": 1, "title": "Test Post", "content": "Test content"})
    fetch.respond_with_json([{"id": 1, "text": "Great post!"}])

    harness.render(blog_post(post_id=1, fetch=fetch))

    harness.wait_for(
        lambda: expect(harness.screen.get_by_role("heading", name="Test Post")).to_be_in_the_document()
    )
    expect(harness.screen.get_by_text("Comments (1)")).to_be_in_the_document()
    expect(harness.screen.get_by_text("Great post!")).to_be_in_the_document()
    expect(fetch).to_have_been_called_times(2)
    expect(fetch).to_have_been_nth_called_with(1, "/api/posts/1")
    expect(fetch).to_have_been_nth_called_with(2, "/api/posts/1/comments")


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------

Scenario = Callable[[Harness, ComponentDef], None]


@dataclass(frozen=True)
class BugCase:
    """One catalog entry.

    Attributes:
        name: Stable identifier, e.g. ``"todo_toggle"``.
        bug_class: The class of stateful-UI bug the buggy variant exhibits.
        description: One sentence on what goes wrong.
        buggy: Component exhibiting the bug.
        fixed: The same component with the bug removed.
        scenario: Behavioral check; raises on failure.
    """
    name: str
    bug_class: str
    description: str
    buggy: ComponentDef
    fixed: ComponentDef
    scenario: Scenario

    def variant(self, which: str) -> ComponentDef:
        if which == "buggy":
            return self.buggy
        if which == "fixed":
            return self.fixed
        raise ValueError(f"unknown variant {which!r}; expected 'buggy' or 'fixed'")


CATALOG: tuple[BugCase, ...] = (
    BugCase(
        name="todo_toggle",
        bug_class="mutation of state in place",
        description="Toggling mutates the current list and sets it again, so nothing re-renders.",
        buggy=BuggyTodoList,
        fixed=FixedTodoList,
        scenario=todo_toggle_scenario,
    ),
    BugCase(
        name="counter_interval",
        bug_class="stale closure over an interval callback",
        description="The interval keeps setting count to the first render's value plus one.",
        buggy=BuggyCounter,
        fixed=FixedCounter,
        scenario=counter_interval_scenario,
    ),
    BugCase(
        name="handler_at_render",
        bug_class="event handler invoked during render",
        description="The handlers are called while rendering and their return value is bound.",
        buggy=BuggyTodoItem,
        fixed=FixedTodoItem,
        scenario=handler_at_render_scenario,
    ),
    BugCase(
        name="props_not_syncing",
        bug_class="prop-to-state desynchronization",
        description="State seeded from props keeps showing the first user after the prop changes.",
        buggy=BuggyUserCard,
        fixed=FixedUserCard,
        scenario=props_not_syncing_scenario,
    ),
    BugCase(
        name="null_reference",
        bug_class="premature dereference of asynchronously-loaded data",
        description="The first render reads fields of a post that has not been fetched yet.",
        buggy=BuggyBlogPost,
        fixed=FixedBlogPost,
        scenario=null_reference_scenario,
    ),
)


def get_case(name: str) -> BugCase:
    """Look up a catalog entry by name.

    Raises:
        KeyError: If no case has that name.
    """
    for case in CATALOG:
        if case.name == name:
            return case
    known = ", ".join(c.name for c in CATALOG)
    raise KeyError(f"unknown catalog case {name!r}; known cases: {known}")
