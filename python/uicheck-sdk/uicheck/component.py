"""Components, mounted instances and hooks.

A component is a plain function decorated with :func:`component`. It is
called with its external inputs as keyword arguments and returns an
element tree. Per-instance state lives in hook slots::

    @component
    def Counter(*, step=1):
        count, set_count = use_state(0)
        return h("button", f"Count: {count}",
                 on_click=lambda event: set_count(lambda c: c + step))

Hooks resolve their instance through a context variable that is set only
while that instance renders; calling a hook anywhere else is an error.
"""

from __future__ import annotations

import contextvars
import functools
import inspect
import itertools
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Callable, Generic, TypeVar

from uicheck.clock import LogicalClock, TimerHandle
from uicheck.errors import HarnessError, RenderError
from uicheck.nodes import Element

if TYPE_CHECKING:
    import asyncio

    from uicheck.render import Renderer

logger = logging.getLogger(__name__)

T = TypeVar("T")

_rendering: contextvars.ContextVar[ComponentInstance | None] = contextvars.ContextVar(
    "uicheck_rendering", default=None,
)
_instance_ids = itertools.count(1)


# ---------------------------------------------------------------------------
# ComponentDef
# ---------------------------------------------------------------------------

class ComponentDef:
    """A component description: a render function plus a display name.

    Calling it produces an :class:`~uicheck.nodes.Element`, not a render::

        TodoList(initial_todos=todos)          # -> Element
        TodoItem(todo=t, key=t["id"])          # keyed Element
    """

    def __init__(self, fn: Callable[..., object], name: str | None = None) -> None:
        self.fn = fn
        self.name = name or fn.__name__
        functools.update_wrapper(self, fn)

    def __call__(self, *children: object, key: object = None, **props: object) -> Element:
        if children:
            props["children"] = tuple(children)
        return Element(self, MappingProxyType(dict(props)), (), key)

    def __repr__(self) -> str:
        return f"<component {self.name}>"

    def render(self, props: Mapping[str, object]) -> object:
        return self.fn(**props)


def component(fn: Callable[..., object] | None = None, *, name: str | None = None) -> Any:
    """Decorate a render function as a component.

    Usable bare (``@component``) or with a display name
    (``@component(name="TodoList")``).
    """
    if fn is None:
        return lambda f: ComponentDef(f, name)
    return ComponentDef(fn, name)


# ---------------------------------------------------------------------------
# Hook slots
# ---------------------------------------------------------------------------

@dataclass
class StateSlot:
    """One ``use_state`` slot. ``setter`` keeps its identity across renders."""
    value: Any
    setter: Callable[[Any], None]


@dataclass
class EffectSlot:
    """One ``use_effect`` slot."""
    fn: Callable[[], object]
    deps: tuple[object, ...] | None
    pending: bool = True
    cleanup: Callable[[], object] | None = None
    task: asyncio.Task[Any] | None = None


class Ref(Generic[T]):
    """A mutable box that survives re-renders without triggering them."""

    def __init__(self, current: T) -> None:
        self.current = current

    def __repr__(self) -> str:
        return f"Ref({self.current!r})"


# ---------------------------------------------------------------------------
# ComponentInstance
# ---------------------------------------------------------------------------

class ComponentInstance:
    """A component bound to a live position in the rendered tree.

    Owns its hook slots, its timer registrations and any coroutine tasks
    spawned by its effects. All of them are released by :meth:`unmount`.
    """

    def __init__(
        self,
        definition: ComponentDef,
        props: Mapping[str, object],
        renderer: Renderer,
        depth: int,
    ) -> None:
        self.id = next(_instance_ids)
        self.definition = definition
        self.props: Mapping[str, object] = MappingProxyType(dict(props))
        self.renderer = renderer
        self.depth = depth
        self.mounted = True
        self.dirty = False
        self.render_count = 0
        self.timer_handles: set[TimerHandle] = set()
        self.tasks: set[asyncio.Task[Any]] = set()
        self._slots: list[tuple[str, Any]] = []
        self._cursor = 0

    def __repr__(self) -> str:
        return f"<{self.label}>"

    @property
    def label(self) -> str:
        return f"{self.definition.name}#{self.id}"

    # -- Rendering -----------------------------------------------------------

    def render(self) -> object:
        """Evaluate the component description against current props and state.

        Raises:
            RenderError: If the render function raises, or if the hook
                sequence differs from the previous render.
        """
        self.dirty = False
        self._cursor = 0
        token = _rendering.set(self)
        try:
            output = self.definition.render(self.props)
        except RenderError:
            raise
        except Exception as exc:
            msg = f"{self.definition.name} failed to render: {type(exc).__name__}: {exc}"
            raise RenderError(msg, component=self.definition.name) from exc
        finally:
            _rendering.reset(token)
        if self.render_count > 0 and self._cursor != len(self._slots):
            msg = (
                f"{self.definition.name} rendered {self._cursor} hook(s) but the previous "
                f"render used {len(self._slots)}; hooks must run in the same order every render"
            )
            raise RenderError(msg, component=self.definition.name)
        self.render_count += 1
        return output

    def _slot(self, kind: str, create: Callable[[], Any]) -> Any:
        index = self._cursor
        self._cursor += 1
        if index < len(self._slots):
            existing_kind, slot = self._slots[index]
            if existing_kind != kind:
                msg = (
                    f"{self.definition.name} called {kind} where the previous render "
                    f"called {existing_kind} (hook #{index})"
                )
                raise RenderError(msg, component=self.definition.name)
            return slot
        if self.render_count > 0:
            msg = f"{self.definition.name} rendered more hooks than during the previous render"
            raise RenderError(msg, component=self.definition.name)
        slot = create()
        self._slots.append((kind, slot))
        return slot

    def request_render(self) -> None:
        """Ask the renderer to re-render this instance."""
        if not self.mounted:
            logger.warning(
                "Ignoring state update on unmounted component %s", self.label,
            )
            return
        self.renderer.schedule(self)

    # -- Effects -------------------------------------------------------------

    def effect_slots(self) -> list[EffectSlot]:
        return [slot for kind, slot in self._slots if kind == "effect"]

    def run_effect_cleanups(self) -> None:
        """Run cleanups for effects about to re-run."""
        for slot in self.effect_slots():
            if slot.pending:
                self._cleanup_effect(slot)

    def run_pending_effects(self) -> None:
        for slot in self.effect_slots():
            if not slot.pending or not self.mounted:
                continue
            slot.pending = False
            try:
                result = slot.fn()
            except Exception as exc:
                msg = f"effect in {self.definition.name} failed: {type(exc).__name__}: {exc}"
                raise RenderError(msg, component=self.definition.name) from exc
            if inspect.iscoroutine(result):
                slot.task = self.spawn(result)
            elif callable(result):
                slot.cleanup = result
            elif result is not None:
                msg = (
                    f"effect in {self.definition.name} returned {type(result).__name__}; "
                    "an effect must return None, a cleanup callable or be a coroutine"
                )
                raise RenderError(msg, component=self.definition.name)

    def _cleanup_effect(self, slot: EffectSlot) -> None:
        if slot.task is not None:
            slot.task.cancel()
            slot.task = None
        cleanup, slot.cleanup = slot.cleanup, None
        if cleanup is None:
            return
        try:
            cleanup()
        except Exception as exc:
            msg = f"effect cleanup in {self.definition.name} failed: {type(exc).__name__}: {exc}"
            raise RenderError(msg, component=self.definition.name) from exc

    def spawn(self, coro: Any) -> asyncio.Task[Any]:
        """Run a coroutine on the harness event loop, owned by this instance."""
        task = self.renderer.spawn(coro, name=f"{self.label}:effect")
        self.tasks.add(task)
        task.add_done_callback(self.tasks.discard)
        return task

    # -- Unmount -------------------------------------------------------------

    def unmount(self) -> None:
        """Release everything this instance owns. Idempotent."""
        if not self.mounted:
            return
        self.mounted = False
        self.dirty = False
        clock = self.renderer.clock
        for handle in list(self.timer_handles):
            clock.cancel(handle)
        self.timer_handles.clear()
        for task in list(self.tasks):
            task.cancel()
        for slot in self.effect_slots():
            self._cleanup_effect(slot)
        logger.debug("Unmounted %s", self.label)


# ---------------------------------------------------------------------------
# Hooks
# ---------------------------------------------------------------------------

def current_instance() -> ComponentInstance:
    """Return the instance currently rendering.

    Raises:
        HarnessError: When called outside a component render.
    """
    instance = _rendering.get()
    if instance is None:
        raise HarnessError("hooks can only be called while a component is rendering")
    return instance


def use_state(initial: T | Callable[[], T]) -> tuple[T, Callable[[Any], None]]:
    """Declare a state slot.

    Returns ``(value, set_value)``. ``set_value`` accepts a new value or an
    updater ``fn(previous) -> new``. A new value that *is* the current
    value (identity, not equality) is ignored, so mutating the current
    value in place and setting it again does not re-render.
    """
    instance = current_instance()

    def create() -> StateSlot:
        value = initial() if callable(initial) else initial
        slot = StateSlot(value=value, setter=lambda new: None)

        def set_value(new: Any) -> None:
            value = new(slot.value) if callable(new) else new
            if value is slot.value:
                logger.debug("State bail-out in %s: value unchanged by identity", instance.label)
                return
            slot.value = value
            instance.request_render()

        slot.setter = set_value
        return slot

    slot: StateSlot = instance._slot("state", create)
    return slot.value, slot.setter


def _same_dep(a: object, b: object) -> bool:
    if a is b:
        return True
    scalar = (int, float, str, bytes, bool, type(None))
    return isinstance(a, scalar) and type(a) is type(b) and a == b


def use_effect(fn: Callable[[], object], deps: Sequence[object] | None = None) -> None:
    """Run ``fn`` after commit when ``deps`` changed (every commit if ``None``).

    ``fn`` may return a cleanup callable, or be an ``async def`` function;
    its coroutine then runs on the harness event loop and is cancelled when
    the effect re-runs or the instance unmounts.
    """
    instance = current_instance()
    new_deps = tuple(deps) if deps is not None else None
    slot: EffectSlot = instance._slot("effect", lambda: EffectSlot(fn=fn, deps=new_deps))
    if instance.render_count == 0:
        return
    changed = (
        new_deps is None
        or slot.deps is None
        or len(new_deps) != len(slot.deps)
        or not all(_same_dep(a, b) for a, b in zip(new_deps, slot.deps))
    )
    if changed:
        slot.fn = fn
        slot.deps = new_deps
        slot.pending = True


def use_ref(initial: T = None) -> Ref[T]:  # type: ignore[assignment]
    """Declare a :class:`Ref` that persists for the instance's lifetime."""
    instance = current_instance()
    return instance._slot("ref", lambda: Ref(initial))


class InstanceTimers:
    """Timers owned by one component instance.

    Callbacks run inside a render batch, and every timer still pending when
    the instance unmounts is cancelled.
    """

    def __init__(self, instance: ComponentInstance) -> None:
        self._instance = instance

    @property
    def clock(self) -> LogicalClock:
        return self._instance.renderer.clock

    def set_timeout(self, callback: Callable[..., object], delay_ms: float = 0.0, *args: object) -> TimerHandle:
        return self._register(callback, delay_ms, False, args)

    def set_interval(self, callback: Callable[..., object], delay_ms: float, *args: object) -> TimerHandle:
        return self._register(callback, delay_ms, True, args)

    def clear(self, handle: TimerHandle | None) -> None:
        if handle is None:
            return
        self.clock.cancel(handle)
        self._instance.timer_handles.discard(handle)

    async def sleep(self, delay_ms: float) -> None:
        await self.clock.sleep(delay_ms)

    def _register(
        self,
        callback: Callable[..., object],
        delay_ms: float,
        repeat: bool,
        args: tuple[object, ...],
    ) -> TimerHandle:
        instance = self._instance
        if not instance.mounted:
            raise HarnessError(f"cannot start a timer from unmounted component {instance.label}")
        renderer = instance.renderer
        handle = self.clock.register(
            delay_ms, repeat, lambda: renderer.batched(callback, *args), owner=instance.label,
        )
        instance.timer_handles.add(handle)
        return handle


def use_timers() -> InstanceTimers:
    """Return the timer API of the rendering instance."""
    instance = current_instance()
    return instance._slot("timers", lambda: InstanceTimers(instance))
