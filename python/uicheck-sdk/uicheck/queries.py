"""DOM queries over a rendered subtree.

Four variants per selector, following one convention:

- ``get_by_*``: exactly one match, else :class:`~uicheck.errors.QueryError`.
- ``query_by_*``: one match or ``None``; several matches is still an error.
- ``get_all_by_*``: one or more matches, else ``QueryError``.
- ``query_all_by_*``: any number of matches, possibly none.

Text matching normalizes whitespace. A ``str`` matches exactly unless
``exact=False`` (case-insensitive substring); a compiled pattern is
searched.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable

from uicheck.errors import QueryError
from uicheck.nodes import RenderedNode, normalize_text

logger = logging.getLogger(__name__)

Matcher = str | re.Pattern[str]

# Implicit roles of the tags this harness cares about.
_IMPLICIT_ROLES = {
    "a": "link",
    "article": "article",
    "button": "button",
    "h1": "heading", "h2": "heading", "h3": "heading",
    "h4": "heading", "h5": "heading", "h6": "heading",
    "img": "img",
    "input": "textbox",
    "li": "listitem",
    "nav": "navigation",
    "ol": "list",
    "p": "paragraph",
    "textarea": "textbox",
    "ul": "list",
}

_SNAPSHOT_LIMIT = 4000


def _text_matches(actual: str, wanted: Matcher, exact: bool) -> bool:
    actual = normalize_text(actual)
    if isinstance(wanted, re.Pattern):
        return wanted.search(actual) is not None
    wanted = normalize_text(wanted)
    if exact:
        return actual == wanted
    return wanted.lower() in actual.lower()


def role_of(node: RenderedNode) -> str | None:
    """Explicit ``role`` attribute, else the tag's implicit role."""
    return node.attributes.get("role") or _IMPLICIT_ROLES.get(node.tag)


def accessible_name(node: RenderedNode) -> str:
    for attr in ("aria-label", "alt", "title"):
        if node.attributes.get(attr):
            return node.attributes[attr]
    return normalize_text(node.text_content)


class Queries:
    """Query helpers bound to one root node."""

    def __init__(self, root: RenderedNode, *, test_id_attribute: str = "data-testid") -> None:
        self.root = root
        self.test_id_attribute = test_id_attribute

    # -- Core ----------------------------------------------------------------

    def _elements(self) -> list[RenderedNode]:
        return [n for n in self.root.iter_descendants() if not n.is_text]

    def _find(self, predicate: Callable[[RenderedNode], bool]) -> list[RenderedNode]:
        return [n for n in self._elements() if predicate(n)]

    def _snapshot(self) -> str:
        text = self.root.pretty()
        if len(text) > _SNAPSHOT_LIMIT:
            text = text[:_SNAPSHOT_LIMIT] + "\n..."
        return text

    def _one(self, found: list[RenderedNode], what: str, *, required: bool) -> RenderedNode | None:
        if len(found) > 1:
            raise QueryError(f"Found multiple elements {what}\n\n{self._snapshot()}")
        if not found:
            if required:
                raise QueryError(f"Unable to find an element {what}\n\n{self._snapshot()}")
            return None
        return found[0]

    def _all(self, found: list[RenderedNode], what: str) -> list[RenderedNode]:
        if not found:
            raise QueryError(f"Unable to find any element {what}\n\n{self._snapshot()}")
        return found

    # -- By text -------------------------------------------------------------

    def query_all_by_text(self, text: Matcher, *, exact: bool = True) -> list[RenderedNode]:
        """Elements whose own text children match ``text``."""
        return self._find(lambda n: bool(n.own_text) and _text_matches(n.own_text, text, exact))

    def query_by_text(self, text: Matcher, *, exact: bool = True) -> RenderedNode | None:
        return self._one(self.query_all_by_text(text, exact=exact), f"with the text: {text}", required=False)

    def get_by_text(self, text: Matcher, *, exact: bool = True) -> RenderedNode:
        node = self._one(self.query_all_by_text(text, exact=exact), f"with the text: {text}", required=True)
        assert node is not None
        return node

    def get_all_by_text(self, text: Matcher, *, exact: bool = True) -> list[RenderedNode]:
        return self._all(self.query_all_by_text(text, exact=exact), f"with the text: {text}")

    # -- By test id ----------------------------------------------------------

    def query_all_by_test_id(self, test_id: Matcher, *, exact: bool = True) -> list[RenderedNode]:
        attr = self.test_id_attribute
        return self._find(
            lambda n: attr in n.attributes and _text_matches(n.attributes[attr], test_id, exact)
        )

    def query_by_test_id(self, test_id: Matcher, *, exact: bool = True) -> RenderedNode | None:
        what = f"by [{self.test_id_attribute}={test_id}]"
        return self._one(self.query_all_by_test_id(test_id, exact=exact), what, required=False)

    def get_by_test_id(self, test_id: Matcher, *, exact: bool = True) -> RenderedNode:
        what = f"by [{self.test_id_attribute}={test_id}]"
        node = self._one(self.query_all_by_test_id(test_id, exact=exact), what, required=True)
        assert node is not None
        return node

    def get_all_by_test_id(self, test_id: Matcher, *, exact: bool = True) -> list[RenderedNode]:
        what = f"by [{self.test_id_attribute}={test_id}]"
        return self._all(self.query_all_by_test_id(test_id, exact=exact), what)

    # -- By role -------------------------------------------------------------

    def query_all_by_role(self, role: str, *, name: Matcher | None = None) -> list[RenderedNode]:
        return self._find(
            lambda n: role_of(n) == role
            and (name is None or _text_matches(accessible_name(n), name, True))
        )

    def query_by_role(self, role: str, *, name: Matcher | None = None) -> RenderedNode | None:
        what = _role_description(role, name)
        return self._one(self.query_all_by_role(role, name=name), what, required=False)

    def get_by_role(self, role: str, *, name: Matcher | None = None) -> RenderedNode:
        node = self._one(self.query_all_by_role(role, name=name), _role_description(role, name), required=True)
        assert node is not None
        return node

    def get_all_by_role(self, role: str, *, name: Matcher | None = None) -> list[RenderedNode]:
        return self._all(self.query_all_by_role(role, name=name), _role_description(role, name))

    # -- By alt text ---------------------------------------------------------

    def query_all_by_alt_text(self, alt: Matcher, *, exact: bool = True) -> list[RenderedNode]:
        return self._find(lambda n: "alt" in n.attributes and _text_matches(n.attributes["alt"], alt, exact))

    def query_by_alt_text(self, alt: Matcher, *, exact: bool = True) -> RenderedNode | None:
        return self._one(self.query_all_by_alt_text(alt, exact=exact), f"with the alt text: {alt}", required=False)

    def get_by_alt_text(self, alt: Matcher, *, exact: bool = True) -> RenderedNode:
        node = self._one(self.query_all_by_alt_text(alt, exact=exact), f"with the alt text: {alt}", required=True)
        assert node is not None
        return node

    # -- Debug ---------------------------------------------------------------

    def debug(self) -> str:
        """Pretty-printed markup of the bound subtree."""
        return self.root.pretty()


def _role_description(role: str, name: Matcher | None) -> str:
    if name is None:
        return f"with the role {role!r}"
    return f"with the role {role!r} and name {name!r}"
