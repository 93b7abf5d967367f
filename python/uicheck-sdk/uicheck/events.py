"""Synthetic event dispatch.

Handlers are looked up on each node at dispatch time, never at render
time, so a dispatch after a re-render always reaches the closures bound by
that latest render. The dispatcher calls whatever value is bound as the
handler and nothing else: if a component bound the *result* of calling a
handler factory, that result is what runs (or nothing, if it was ``None``).
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from uicheck.nodes import RenderedNode
from uicheck.render import Renderer

logger = logging.getLogger(__name__)

NON_BUBBLING = frozenset({"focus", "blur", "mouseenter", "mouseleave", "load", "error", "scroll"})


@dataclass
class SyntheticEvent:
    """A programmatically constructed user-interaction event.

    Attributes:
        type: Event type, e.g. ``"click"``.
        target: The node the event was dispatched against.
        payload: Extra event data (``value``, ``key``, ...), read-only.
        current_target: The node whose handler is currently running.
        bubbles: Whether the event propagates to ancestors.
    """
    type: str
    target: RenderedNode
    payload: Mapping[str, object] = field(default_factory=lambda: MappingProxyType({}))
    current_target: RenderedNode | None = None
    bubbles: bool = True
    default_prevented: bool = False
    propagation_stopped: bool = False
    handled_by: list[RenderedNode] = field(default_factory=list)

    def stop_propagation(self) -> None:
        self.propagation_stopped = True

    def prevent_default(self) -> None:
        self.default_prevented = True

    def __getitem__(self, name: str) -> object:
        return self.payload[name]

    def get(self, name: str, default: object = None) -> object:
        return self.payload.get(name, default)

    @property
    def value(self) -> object:
        """Shortcut for ``payload["value"]`` (``None`` if absent)."""
        return self.payload.get("value")


class EventDispatcher:
    """Delivers synthetic events through the rendered tree.

    All handlers invoked by one dispatch run inside a single render batch,
    so the state updates they request produce one re-render after the last
    handler returns.
    """

    def __init__(self, renderer: Renderer) -> None:
        self.renderer = renderer

    def dispatch(
        self,
        node: RenderedNode,
        event_name: str,
        payload: Mapping[str, object] | None = None,
    ) -> SyntheticEvent:
        """Dispatch ``event_name`` at ``node``, bubbling to the document root.

        Dispatching to a node that is no longer attached is a no-op.

        Raises:
            TypeError: If a bound handler is not callable.
            RenderError: If a re-render triggered by a handler fails.
        """
        event_type = event_name.lower()
        event = SyntheticEvent(
            type=event_type,
            target=node,
            payload=MappingProxyType(dict(payload or {})),
            bubbles=event_type not in NON_BUBBLING,
        )
        if not node.connected:
            logger.debug("Ignoring %s dispatched at detached node %r", event_type, node)
            return event

        path = [node, *node.ancestors()] if event.bubbles else [node]
        with self.renderer.batch():
            for current in path:
                handler: Any = current.handlers.get(event_type)
                if handler is None:
                    continue
                if not callable(handler):
                    msg = (
                        f"Expected the {event_type!r} handler on {current!r} to be callable, "
                        f"got {type(handler).__name__} ({handler!r})"
                    )
                    raise TypeError(msg)
                event.current_target = current
                event.handled_by.append(current)
                handler(event)
                if event.propagation_stopped:
                    break
        event.current_target = None
        logger.debug(
            "Dispatched %s at %r: %d handler(s) ran", event_type, node, len(event.handled_by),
        )
        return event


class FireEvent:
    """Convenience helpers mirroring common user interactions.

    Usage::

        fire = FireEvent(dispatcher)
        fire.click(button)
        fire.change(input_node, "hello")
    """

    def __init__(self, dispatcher: EventDispatcher) -> None:
        self._dispatcher = dispatcher

    def __call__(self, node: RenderedNode, event_name: str, **payload: object) -> SyntheticEvent:
        return self._dispatcher.dispatch(node, event_name, payload)

    def click(self, node: RenderedNode, **payload: object) -> SyntheticEvent:
        return self._dispatcher.dispatch(node, "click", {"button": 0, **payload})

    def double_click(self, node: RenderedNode, **payload: object) -> SyntheticEvent:
        return self._dispatcher.dispatch(node, "dblclick", payload)

    def change(self, node: RenderedNode, value: object, **payload: object) -> SyntheticEvent:
        """Set the node's ``value`` attribute, then dispatch ``change``."""
        node.attributes["value"] = str(value)
        return self._dispatcher.dispatch(node, "change", {"value": value, **payload})

    def input(self, node: RenderedNode, value: object, **payload: object) -> SyntheticEvent:
        """Set the node's ``value`` attribute, then dispatch ``input``."""
        node.attributes["value"] = str(value)
        return self._dispatcher.dispatch(node, "input", {"value": value, **payload})

    def submit(self, node: RenderedNode, **payload: object) -> SyntheticEvent:
        return self._dispatcher.dispatch(node, "submit", payload)

    def key_down(self, node: RenderedNode, key: str, **payload: object) -> SyntheticEvent:
        return self._dispatcher.dispatch(node, "keydown", {"key": key, **payload})

    def focus(self, node: RenderedNode) -> SyntheticEvent:
        return self._dispatcher.dispatch(node, "focus")

    def blur(self, node: RenderedNode) -> SyntheticEvent:
        return self._dispatcher.dispatch(node, "blur")

    def mouse_enter(self, node: RenderedNode) -> SyntheticEvent:
        return self._dispatcher.dispatch(node, "mouseenter")

    def mouse_leave(self, node: RenderedNode) -> SyntheticEvent:
        return self._dispatcher.dispatch(node, "mouseleave")
