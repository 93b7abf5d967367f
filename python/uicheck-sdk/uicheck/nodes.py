"""Element descriptions and the rendered node tree.

Two layers live here:

- :class:`Element` is the immutable *description* a component returns.
  Build them with :func:`h`::

      h("li", todo["text"], key=todo["id"], on_click=handler,
        style={"text_decoration": "none"})

- :class:`RenderedNode` is the live output tree the renderer keeps in sync
  with those descriptions. Nodes are updated in place across renders, so a
  reference obtained from a query stays valid for as long as its position
  in the tree survives.

Prop naming conventions
-----------------------
- ``on_<event>`` props bind event handlers (``on_click`` -> ``"click"``,
  ``on_key_down`` -> ``"keydown"``).
- ``style`` takes a mapping; keys may be ``snake_case``, ``camelCase`` or
  ``kebab-case`` and are stored as kebab-case CSS properties.
- ``class_name`` maps to ``class`` and ``html_for`` to ``for``; any other
  underscore becomes a hyphen (``data_testid`` -> ``data-testid``).
- ``True`` renders an empty attribute, ``False``/``None`` removes it, and
  everything else is stringified.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Iterator, Self

logger = logging.getLogger(__name__)

TEXT_TAG = "#text"

_ATTRIBUTE_ALIASES = {
    "class_name": "class",
    "className": "class",
    "html_for": "for",
    "htmlFor": "for",
}

_EVENT_ALIASES = {"doubleclick": "dblclick"}

# CSS properties that take bare numbers; everything else gets "px".
_UNITLESS_STYLES = frozenset({
    "flex", "flex-grow", "flex-shrink", "font-weight", "line-height",
    "opacity", "order", "orphans", "widows", "z-index", "zoom",
})

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])([A-Z])")
_WHITESPACE = re.compile(r"\s+")


# ---------------------------------------------------------------------------
# Element
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Element:
    """An immutable description of one piece of UI.

    Attributes:
        type: A tag name (``"div"``) or a :class:`~uicheck.component.ComponentDef`.
        props: Read-only mapping of props (attributes, handlers, style, or
            a component's external inputs).
        children: Child descriptions, not yet normalized.
        key: Optional identity used by the tree diff instead of position.
    """
    type: Any
    props: Mapping[str, object] = field(default_factory=lambda: MappingProxyType({}))
    children: tuple[object, ...] = ()
    key: object = None

    @property
    def is_host(self) -> bool:
        """True for tag elements, False for component elements."""
        return isinstance(self.type, str)

    @property
    def type_name(self) -> str:
        if isinstance(self.type, str):
            return self.type
        return getattr(self.type, "name", None) or getattr(self.type, "__name__", repr(self.type))


def h(type_: Any, *children: object, key: object = None, **props: object) -> Element:
    """Create an :class:`Element`.

    Positional arguments are children; keyword arguments are props.
    """
    if isinstance(type_, str):
        return Element(type_, MappingProxyType(dict(props)), tuple(children), key)
    if children:
        props["children"] = tuple(children)
    return Element(type_, MappingProxyType(dict(props)), (), key)


def normalize_children(raw: object) -> list[Element | str]:
    """Flatten nested child sequences and drop empty values.

    ``None`` and booleans render nothing; numbers and strings become text.
    """
    out: list[Element | str] = []
    _flatten(raw, out)
    return out


def _flatten(value: object, out: list[Element | str]) -> None:
    if value is None or isinstance(value, bool):
        return
    if isinstance(value, Element):
        out.append(value)
    elif isinstance(value, str):
        out.append(value)
    elif isinstance(value, (int, float)):
        out.append(str(value))
    elif isinstance(value, Iterable):
        for item in value:
            _flatten(item, out)
    else:
        msg = (
            f"Objects of type {type(value).__name__} are not valid as a child; "
            "render a string, a number, an Element or a sequence of them"
        )
        raise TypeError(msg)


# ---------------------------------------------------------------------------
# Prop normalization
# ---------------------------------------------------------------------------

def attribute_name(prop: str) -> str:
    """Map a prop name to the DOM attribute name it renders as."""
    if prop in _ATTRIBUTE_ALIASES:
        return _ATTRIBUTE_ALIASES[prop]
    return prop.replace("_", "-")


def event_type(prop: str) -> str | None:
    """Return the event type bound by a handler prop, or ``None``.

    ``on_click`` and ``onClick`` both bind ``"click"``.
    """
    if prop.startswith("on_"):
        name = prop[3:].replace("_", "").lower()
    elif len(prop) > 2 and prop.startswith("on") and prop[2].isupper():
        name = prop[2:].lower()
    else:
        return None
    return _EVENT_ALIASES.get(name, name)


def style_property(name: str) -> str:
    """Normalize a style key to its kebab-case CSS property name."""
    name = _CAMEL_BOUNDARY.sub(r"-\1", name)
    return name.replace("_", "-").lower()


def style_value(prop: str, value: object) -> str:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if prop in _UNITLESS_STYLES or value == 0:
            return f"{value:g}"
        return f"{value:g}px"
    return str(value).strip()


def parse_css(declarations: str) -> dict[str, str]:
    """Parse ``"a: b; c: d"`` into ``{"a": "b", "c": "d"}``."""
    parsed: dict[str, str] = {}
    for decl in declarations.split(";"):
        if not decl.strip():
            continue
        prop, sep, value = decl.partition(":")
        if not sep:
            raise ValueError(f"invalid CSS declaration: {decl.strip()!r}")
        parsed[style_property(prop.strip())] = _WHITESPACE.sub(" ", value.strip())
    return parsed


@dataclass(frozen=True)
class HostProps:
    """Props of a host element split into what the DOM node stores."""
    attributes: dict[str, str]
    style: dict[str, str]
    handlers: dict[str, Callable[..., object]]


def split_props(props: Mapping[str, object]) -> HostProps:
    """Split host element props into attributes, inline style and handlers."""
    attributes: dict[str, str] = {}
    style: dict[str, str] = {}
    handlers: dict[str, Any] = {}
    for name, value in props.items():
        if name == "children":
            continue
        event = event_type(name)
        if event is not None:
            if value is not None:
                handlers[event] = value
            continue
        if name == "style":
            if value is None:
                continue
            if isinstance(value, str):
                style.update(parse_css(value))
                continue
            if not isinstance(value, Mapping):
                raise TypeError(f"style must be a mapping or a CSS string, got {type(value).__name__}")
            for key, raw in value.items():
                if raw is None or raw == "":
                    continue
                prop = style_property(str(key))
                style[prop] = style_value(prop, raw)
            continue
        if value is None or value is False:
            continue
        attributes[attribute_name(name)] = "" if value is True else str(value)
    return HostProps(attributes, style, handlers)


def normalize_text(text: str) -> str:
    """Collapse whitespace runs and trim, the way text matchers compare."""
    return _WHITESPACE.sub(" ", text).strip()


# ---------------------------------------------------------------------------
# RenderedNode
# ---------------------------------------------------------------------------

class RenderedNode:
    """One node of the rendered output tree.

    Text nodes have ``tag == "#text"`` and carry their content in ``text``.
    Element nodes carry string ``attributes``, an inline ``style`` mapping
    and ``handlers`` keyed by event type.
    """

    def __init__(self, tag: str, *, text: str | None = None, is_document: bool = False) -> None:
        self.tag = tag
        self.text = text
        self.attributes: dict[str, str] = {}
        self.style: dict[str, str] = {}
        self.handlers: dict[str, Any] = {}
        self.children: list[RenderedNode] = []
        self.parent: RenderedNode | None = None
        self.is_document = is_document

    @classmethod
    def text_node(cls, text: str) -> Self:
        return cls(TEXT_TAG, text=text)

    def __repr__(self) -> str:
        if self.is_text:
            return f"<#text {self.text!r}>"
        attrs = "".join(f" {k}={v!r}" for k, v in self.attributes.items())
        return f"<{self.tag}{attrs}>"

    # -- Structure -----------------------------------------------------------

    @property
    def is_text(self) -> bool:
        return self.tag == TEXT_TAG

    @property
    def connected(self) -> bool:
        """True while the node is attached under a document root."""
        node: RenderedNode | None = self
        while node is not None:
            if node.is_document:
                return True
            node = node.parent
        return False

    def append_child(self, child: RenderedNode) -> None:
        if child.parent is not None:
            child.parent.children.remove(child)
        child.parent = self
        self.children.append(child)

    def remove_child(self, child: RenderedNode) -> None:
        self.children.remove(child)
        child.parent = None

    def iter_descendants(self) -> Iterator[RenderedNode]:
        """Yield every descendant in document order (not including self)."""
        for child in self.children:
            yield child
            yield from child.iter_descendants()

    def ancestors(self) -> Iterator[RenderedNode]:
        node = self.parent
        while node is not None:
            yield node
            node = node.parent

    def contains(self, other: RenderedNode) -> bool:
        return other is self or any(a is self for a in other.ancestors())

    # -- Content -------------------------------------------------------------

    @property
    def text_content(self) -> str:
        """Concatenated text of every descendant text node."""
        if self.is_text:
            return self.text or ""
        return "".join(child.text_content for child in self.children)

    @property
    def own_text(self) -> str:
        """Concatenated text of the direct text children only."""
        return "".join(c.text or "" for c in self.children if c.is_text)

    def get_attribute(self, name: str) -> str | None:
        return self.attributes.get(attribute_name(name))

    def has_attribute(self, name: str) -> bool:
        return attribute_name(name) in self.attributes

    def computed_style(self, prop: str) -> str:
        """Value of an inline style property, ``""`` when unset."""
        return self.style.get(style_property(prop), "")

    # -- Snapshots -----------------------------------------------------------

    def to_dict(self) -> dict[str, object]:
        """Serialize the subtree. Handlers are listed by event type only."""
        if self.is_text:
            return {"tag": TEXT_TAG, "text": self.text}
        return {
            "tag": self.tag,
            "attributes": dict(self.attributes),
            "style": dict(self.style),
            "events": sorted(self.handlers),
            "children": [c.to_dict() for c in self.children],
        }

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> Self:
        """Rebuild a detached subtree from :meth:`to_dict` output (no handlers)."""
        tag = str(data["tag"])
        if tag == TEXT_TAG:
            return cls.text_node(str(data.get("text", "")))
        node = cls(tag)
        raw_attrs = data.get("attributes", {})
        if isinstance(raw_attrs, dict):
            node.attributes = {str(k): str(v) for k, v in raw_attrs.items()}
        raw_style = data.get("style", {})
        if isinstance(raw_style, dict):
            node.style = {str(k): str(v) for k, v in raw_style.items()}
        raw_children = data.get("children", [])
        if isinstance(raw_children, list):
            for raw in raw_children:
                node.append_child(cls.from_dict(raw))
        return node

    def pretty(self, indent: int = 0) -> str:
        """Render the subtree as indented HTML-like markup for error messages."""
        pad = "  " * indent
        if self.is_text:
            return f"{pad}{self.text}"
        attrs = dict(self.attributes)
        if self.style:
            attrs["style"] = "; ".join(f"{k}: {v}" for k, v in self.style.items())
        rendered_attrs = "".join(f' {k}="{v}"' for k, v in attrs.items())
        if not self.children:
            return f"{pad}<{self.tag}{rendered_attrs} />"
        inner = "\n".join(c.pretty(indent + 1) for c in self.children)
        return f"{pad}<{self.tag}{rendered_attrs}>\n{inner}\n{pad}</{self.tag}>"
