"""Render engine: mounts element trees and keeps the output tree in sync.

The renderer keeps an internal fiber tree that mirrors the element tree
(host tags, text, and component instances) and projects it onto
:class:`~uicheck.nodes.RenderedNode` objects under a container.

Batching
--------
State setters never render directly. They mark the instance dirty and ask
for a flush. Inside a batch (:meth:`Renderer.batch`, used by event
dispatch, timer callbacks and settlement rounds) the flush is deferred to
the end of the outermost batch, so any number of updates issued by one
callback collapse into a single render pass. Outside a batch the flush
happens immediately.

Diff identity
-------------
Children are matched by explicit ``key`` when one is given and by
position among siblings otherwise. The positional fallback is a known
source of identity bugs: inserting an unkeyed child at the front shifts
every sibling onto the wrong instance.
"""

from __future__ import annotations

import contextlib
import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Callable, TypeVar

from uicheck.clock import LogicalClock
from uicheck.component import ComponentDef, ComponentInstance
from uicheck.config import HarnessConfig
from uicheck.errors import HarnessError, RenderError, UnknownHandleError
from uicheck.nodes import Element, RenderedNode, normalize_children, split_props

if TYPE_CHECKING:
    import asyncio

logger = logging.getLogger(__name__)

R = TypeVar("R")


# ---------------------------------------------------------------------------
# Commit log
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PatchOp:
    """A single DOM mutation applied during a render pass.

    Attributes:
        op: One of ``create``, ``insert``, ``remove``, ``reorder``,
            ``set_attribute``, ``remove_attribute``, ``set_style``,
            ``remove_style``, ``set_text``.
        tag: Tag of the node the operation applies to.
        name: Attribute or style property name, when relevant.
        value: New value, when relevant.
    """
    op: str
    tag: str
    name: str = ""
    value: str | None = None

    def to_dict(self) -> dict[str, object]:
        return {"op": self.op, "tag": self.tag, "name": self.name, "value": self.value}

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> PatchOp:
        raw_value = data.get("value")
        return cls(
            op=str(data["op"]),
            tag=str(data["tag"]),
            name=str(data.get("name", "")),
            value=None if raw_value is None else str(raw_value),
        )


@dataclass(frozen=True)
class Commit:
    """The DOM changes of one render pass."""
    index: int
    ops: tuple[PatchOp, ...]
    rendered: tuple[str, ...] = field(default=())

    def ops_of(self, op: str) -> list[PatchOp]:
        return [o for o in self.ops if o.op == op]

    def to_dict(self) -> dict[str, object]:
        return {
            "index": self.index,
            "ops": [o.to_dict() for o in self.ops],
            "rendered": list(self.rendered),
        }


# ---------------------------------------------------------------------------
# Fibers
# ---------------------------------------------------------------------------

class _Fiber:
    """Internal tree node: one host tag, text run, component, or mount root."""

    def __init__(
        self,
        kind: str,
        element: Element | str | None,
        key: tuple[str, object],
        parent: _Fiber | None,
    ) -> None:
        self.kind = kind  # "root" | "host" | "text" | "component"
        self.element = element
        self.key = key
        self.parent = parent
        self.depth = parent.depth + 1 if parent is not None else 0
        self.children: list[_Fiber] = []
        self.node: RenderedNode | None = None
        self.instance: ComponentInstance | None = None

    def host_nodes(self) -> list[RenderedNode]:
        if self.node is not None:
            return [self.node]
        out: list[RenderedNode] = []
        for child in self.children:
            out.extend(child.host_nodes())
        return out

    def host_parent(self) -> _Fiber:
        fiber = self.parent
        while fiber is not None and fiber.node is None:
            fiber = fiber.parent
        if fiber is None:
            raise HarnessError("fiber has no host ancestor")
        return fiber


def _kind(child: Element | str) -> str:
    if isinstance(child, str):
        return "text"
    if isinstance(child.type, str):
        return "host"
    if isinstance(child.type, ComponentDef):
        return "component"
    raise TypeError(f"element type must be a tag name or a component, got {child.type!r}")


def _identity(child: Element | str, index: int) -> tuple[str, object]:
    if isinstance(child, Element) and child.key is not None:
        return ("key", child.key)
    return ("index", index)


def _same_type(fiber: _Fiber, child: Element | str) -> bool:
    kind = _kind(child)
    if kind != fiber.kind:
        return False
    if kind == "text":
        return True
    assert isinstance(fiber.element, Element) and isinstance(child, Element)
    return fiber.element.type is child.type


# ---------------------------------------------------------------------------
# MountHandle
# ---------------------------------------------------------------------------

class MountHandle:
    """Handle on one mounted root, for simulating parent-driven changes."""

    def __init__(self, renderer: Renderer, root: _Fiber, element: Element) -> None:
        self._renderer = renderer
        self._root = root
        self._element = element

    @property
    def mounted(self) -> bool:
        return self._root.node is not None

    @property
    def container(self) -> RenderedNode:
        self._require_mounted()
        assert self._root.node is not None
        return self._root.node

    @property
    def element(self) -> Element:
        return self._element

    @property
    def instance(self) -> ComponentInstance | None:
        """The root component instance, if the root element is a component."""
        self._require_mounted()
        if self._root.children and self._root.children[0].instance is not None:
            return self._root.children[0].instance
        return None

    def update(self, **props: object) -> None:
        """Re-render the root element with new external inputs.

        The new inputs replace the old ones entirely.
        """
        element = self._element
        self.rerender(Element(element.type, MappingProxyType(props), element.children, element.key))

    def rerender(self, element: Element) -> None:
        """Re-render the root with a new element description."""
        self._require_mounted()
        self._element = element
        self._renderer._update_root(self._root, element)

    def unmount(self) -> None:
        """Unmount the tree, cancelling every timer and task it owns."""
        self._require_mounted()
        self._renderer._unmount_root(self._root)

    def _require_mounted(self) -> None:
        if self._root.node is None:
            raise UnknownHandleError("this root has already been unmounted")


# ---------------------------------------------------------------------------
# Renderer
# ---------------------------------------------------------------------------

class Renderer:
    """Mounts components and re-renders them when their state changes.

    Usage::

        renderer = Renderer(LogicalClock())
        handle = renderer.mount(TodoList(initial_todos=todos), container)
        handle.update(initial_todos=[])
        handle.unmount()
    """

    def __init__(
        self,
        clock: LogicalClock,
        config: HarnessConfig | None = None,
        *,
        spawn: Callable[..., asyncio.Task[Any]] | None = None,
    ) -> None:
        self.clock = clock
        self.config = config or HarnessConfig()
        self._spawn = spawn
        self._dirty: dict[int, ComponentInstance] = {}
        self._effects: list[ComponentInstance] = []
        self._fibers: dict[int, _Fiber] = {}
        self._batch_depth = 0
        self._flushing = False
        self._ops: list[PatchOp] = []
        self._rendered: list[str] = []
        self.commits: list[Commit] = []

    # -- Public API ------------------------------------------------------------

    def mount(self, element: Element, container: RenderedNode) -> MountHandle:
        """Render ``element`` into ``container`` and return a handle.

        Raises:
            RenderError: If any component fails during the initial render or
                its effects. The partially mounted tree is torn down first.
        """
        if container.children:
            raise HarnessError("mount container must be empty")
        root = _Fiber("root", None, ("root", id(container)), None)
        root.node = container
        existing = set(self._fibers)
        try:
            with self._deferred():
                root.children = self._reconcile(root, [], [element])
                self._sync_children(root)
        except Exception:
            logger.debug("Initial render of %s failed; tearing down partial tree", element.type_name)
            self._teardown(root)
            for instance_id in set(self._fibers) - existing:
                fiber = self._fibers.pop(instance_id)
                if fiber.instance is not None:
                    fiber.instance.unmount()
                    self._dirty.pop(instance_id, None)
            self._effects = [i for i in self._effects if i.mounted]
            self._ops = []
            self._rendered = []
            raise
        logger.debug("Mounted %s", element.type_name)
        return MountHandle(self, root, element)

    @property
    def in_batch(self) -> bool:
        return self._batch_depth > 0

    @contextlib.contextmanager
    def batch(self) -> Iterator[None]:
        """Defer flushing until the outermost batch exits.

        The flush also runs when the body raises, so state updates made by a
        callback before it failed still reach the DOM.
        """
        self._batch_depth += 1
        try:
            yield
        finally:
            self._batch_depth -= 1
            if self._batch_depth == 0:
                self.flush()

    @contextlib.contextmanager
    def _deferred(self) -> Iterator[None]:
        # Tree operations flush only on success; a failed mount or update
        # must not commit its partial output.
        self._batch_depth += 1
        try:
            yield
        finally:
            self._batch_depth -= 1
        if self._batch_depth == 0:
            self.flush()

    def batched(self, fn: Callable[..., R], *args: object) -> R:
        """Call ``fn`` inside a batch and flush afterwards."""
        with self.batch():
            return fn(*args)

    def schedule(self, instance: ComponentInstance) -> None:
        """Mark ``instance`` for re-render; flush now unless batching."""
        instance.dirty = True
        self._dirty[instance.id] = instance
        if self._batch_depth == 0 and not self._flushing:
            self.flush()

    def spawn(self, coro: Any, *, name: str | None = None) -> asyncio.Task[Any]:
        if self._spawn is None:
            coro.close()
            raise HarnessError("async effects need a renderer created with an event-loop spawner")
        return self._spawn(coro, name=name)

    def flush(self) -> None:
        """Render every dirty instance, commit, then run effects, until quiet.

        Raises:
            RenderError: If a component fails, or if renders keep scheduling
                more renders beyond ``max_render_passes``.
        """
        if self._flushing:
            return
        self._flushing = True
        try:
            passes = 0
            while self._dirty or self._effects or self._ops:
                passes += 1
                if passes > self.config.max_render_passes:
                    stuck = ", ".join(i.label for i in self._dirty.values())
                    self._dirty.clear()
                    self._effects.clear()
                    msg = (
                        f"too many re-renders (more than {self.config.max_render_passes} "
                        f"passes); still dirty: {stuck or 'none'}"
                    )
                    raise RenderError(msg)
                dirty = sorted(self._dirty.values(), key=lambda i: i.depth)
                self._dirty.clear()
                for instance in dirty:
                    if instance.mounted and instance.dirty:
                        self._rerender(instance)
                self._commit()
                self._run_effects()
        finally:
            self._flushing = False

    # -- Root operations -------------------------------------------------------

    def _update_root(self, root: _Fiber, element: Element) -> None:
        with self._deferred():
            root.children = self._reconcile(root, root.children, [element])
            self._sync_children(root)

    def _unmount_root(self, root: _Fiber) -> None:
        with self._deferred():
            self._teardown(root)

    def _teardown(self, root: _Fiber) -> None:
        for child in root.children:
            self._unmount(child)
        root.children = []
        if root.node is not None:
            self._sync_children(root)
        root.node = None

    # -- Reconciliation --------------------------------------------------------

    def _reconcile(
        self,
        parent: _Fiber,
        old_children: list[_Fiber],
        raw_children: object,
    ) -> list[_Fiber]:
        new_children = normalize_children(raw_children)
        by_key: dict[tuple[str, object], _Fiber] = {}
        leftovers: list[_Fiber] = []
        for fiber in old_children:
            if fiber.key in by_key:
                leftovers.append(fiber)
            else:
                by_key[fiber.key] = fiber

        result: list[_Fiber] = []
        seen: set[tuple[str, object]] = set()
        for index, child in enumerate(new_children):
            key = _identity(child, index)
            if key in seen:
                logger.warning(
                    "Duplicate key %r among children of %s; the duplicate is mounted fresh",
                    key[1], _describe(parent),
                )
                result.append(self._mount(child, parent, ("duplicate", index)))
                continue
            seen.add(key)
            old = by_key.pop(key, None)
            if old is not None and _same_type(old, child):
                self._update(old, child)
                result.append(old)
            else:
                if old is not None:
                    self._unmount(old)
                result.append(self._mount(child, parent, key))

        for fiber in [*by_key.values(), *leftovers]:
            self._unmount(fiber)
        return result

    def _mount(self, child: Element | str, parent: _Fiber, key: tuple[str, object]) -> _Fiber:
        kind = _kind(child)
        fiber = _Fiber(kind, child, key, parent)
        if kind == "text":
            assert isinstance(child, str)
            fiber.node = RenderedNode.text_node(child)
            self._ops.append(PatchOp("create", fiber.node.tag, value=child))
            return fiber

        assert isinstance(child, Element)
        if kind == "host":
            node = RenderedNode(child.type)
            fiber.node = node
            self._ops.append(PatchOp("create", node.tag))
            self._apply_props(node, child.props, record=False)
            fiber.children = self._reconcile(fiber, [], child.children)
            self._sync_children(fiber, record=False)
            return fiber

        instance = ComponentInstance(child.type, child.props, self, fiber.depth)
        fiber.instance = instance
        self._fibers[instance.id] = fiber
        self._render_instance(fiber)
        return fiber

    def _update(self, fiber: _Fiber, child: Element | str) -> None:
        previous = fiber.element
        fiber.element = child
        if fiber.kind == "text":
            assert fiber.node is not None and isinstance(child, str)
            if previous != child:
                fiber.node.text = child
                self._ops.append(PatchOp("set_text", fiber.node.tag, value=child))
            return

        assert isinstance(child, Element)
        if fiber.kind == "host":
            assert fiber.node is not None
            self._apply_props(fiber.node, child.props)
            fiber.children = self._reconcile(fiber, fiber.children, child.children)
            self._sync_children(fiber)
            return

        instance = fiber.instance
        assert instance is not None
        instance.props = child.props
        self._render_instance(fiber)

    def _render_instance(self, fiber: _Fiber) -> None:
        instance = fiber.instance
        assert instance is not None
        output = instance.render()
        self._rendered.append(instance.label)
        fiber.children = self._reconcile(fiber, fiber.children, output)
        self._effects.append(instance)

    def _rerender(self, instance: ComponentInstance) -> None:
        fiber = self._fibers.get(instance.id)
        if fiber is None:
            return
        self._render_instance(fiber)
        self._sync_children(fiber.host_parent())

    def _unmount(self, fiber: _Fiber) -> None:
        if fiber.instance is not None:
            fiber.instance.unmount()
            self._dirty.pop(fiber.instance.id, None)
            self._fibers.pop(fiber.instance.id, None)
        for child in fiber.children:
            self._unmount(child)

    # -- DOM projection --------------------------------------------------------

    def _apply_props(self, node: RenderedNode, props: Mapping[str, object], *, record: bool = True) -> None:
        desired = split_props(props)
        for name in [n for n in node.attributes if n not in desired.attributes]:
            del node.attributes[name]
            if record:
                self._ops.append(PatchOp("remove_attribute", node.tag, name))
        for name, value in desired.attributes.items():
            if node.attributes.get(name) != value:
                node.attributes[name] = value
                if record:
                    self._ops.append(PatchOp("set_attribute", node.tag, name, value))
        for prop in [p for p in node.style if p not in desired.style]:
            del node.style[prop]
            if record:
                self._ops.append(PatchOp("remove_style", node.tag, prop))
        for prop, value in desired.style.items():
            if node.style.get(prop) != value:
                node.style[prop] = value
                if record:
                    self._ops.append(PatchOp("set_style", node.tag, prop, value))
        # Handlers are rebound on every render so dispatch always sees the
        # closures of the latest render.
        node.handlers = desired.handlers

    def _sync_children(self, fiber: _Fiber, *, record: bool = True) -> None:
        node = fiber.node
        assert node is not None
        wanted = [n for child in fiber.children for n in child.host_nodes()]
        current = node.children
        if len(wanted) == len(current) and all(a is b for a, b in zip(wanted, current)):
            return
        wanted_ids = {id(n) for n in wanted}
        current_ids = {id(n) for n in current}
        for old in current:
            if id(old) not in wanted_ids:
                old.parent = None
                if record:
                    self._ops.append(PatchOp("remove", old.tag))
        for new in wanted:
            if id(new) not in current_ids and record:
                self._ops.append(PatchOp("insert", new.tag))
        survivors_before = [n for n in current if id(n) in wanted_ids]
        survivors_after = [n for n in wanted if id(n) in current_ids]
        if record and any(a is not b for a, b in zip(survivors_before, survivors_after)):
            self._ops.append(PatchOp("reorder", node.tag))
        node.children = list(wanted)
        for child in wanted:
            child.parent = node

    # -- Commit / effects ------------------------------------------------------

    def _commit(self) -> None:
        if self._ops:
            commit = Commit(len(self.commits), tuple(self._ops), tuple(self._rendered))
            self.commits.append(commit)
            logger.debug(
                "Commit %d: %d op(s), rendered %s",
                commit.index, len(commit.ops), ", ".join(commit.rendered) or "nothing",
            )
        self._ops = []
        self._rendered = []

    def _run_effects(self) -> None:
        pending, self._effects = self._effects, []
        seen: set[int] = set()
        ordered = []
        for instance in pending:
            if instance.id not in seen and instance.mounted:
                seen.add(instance.id)
                ordered.append(instance)
        for instance in ordered:
            instance.run_effect_cleanups()
        for instance in ordered:
            instance.run_pending_effects()


def _describe(fiber: _Fiber) -> str:
    if fiber.instance is not None:
        return fiber.instance.label
    if fiber.node is not None:
        return f"<{fiber.node.tag}>"
    return "<root>"
