"""Tests for uicheck.nodes -- element descriptions, prop normalization, node tree."""

from __future__ import annotations

import pytest

from uicheck.component import component
from uicheck.nodes import (
    RenderedNode,
    attribute_name,
    event_type,
    h,
    normalize_children,
    normalize_text,
    parse_css,
    split_props,
    style_property,
    style_value,
)


class TestElements:
    """h() and child normalization."""

    def test_host_element(self) -> None:
        """Host elements keep children separate from props."""
        el = h("li", "text", key=3, class_name="item")
        assert el.is_host
        assert el.type_name == "li"
        assert el.children == ("text",)
        assert el.key == 3
        assert dict(el.props) == {"class_name": "item"}

    def test_props_are_read_only(self) -> None:
        """Element props cannot be mutated by a component."""
        el = h("div", id="x")
        with pytest.raises(TypeError):
            el.props["id"] = "y"  # type: ignore[index]

    def test_component_children_become_a_prop(self) -> None:
        """Children passed to a component element land in props['children']."""

        @component
        def Box(*, children: object = ()) -> object:
            return h("div", children)

        el = h(Box, "a", "b")
        assert not el.is_host
        assert el.type_name == "Box"
        assert el.props["children"] == ("a", "b")

    def test_normalize_children(self) -> None:
        """Nested sequences flatten; None and booleans vanish; numbers become text."""
        inner = h("span")
        assert normalize_children(["a", None, [1, True, [inner]], False, 2.5]) == ["a", "1", inner, "2.5"]

    def test_invalid_child(self) -> None:
        """Arbitrary objects are rejected as children."""
        with pytest.raises(TypeError, match="not valid as a child"):
            normalize_children([object()])


class TestPropNormalization:
    """Attribute, event and style naming."""

    def test_attribute_names(self) -> None:
        assert attribute_name("class_name") == "class"
        assert attribute_name("className") == "class"
        assert attribute_name("html_for") == "for"
        assert attribute_name("data_testid") == "data-testid"
        assert attribute_name("src") == "src"

    def test_event_types(self) -> None:
        assert event_type("on_click") == "click"
        assert event_type("onClick") == "click"
        assert event_type("on_key_down") == "keydown"
        assert event_type("onDoubleClick") == "dblclick"
        assert event_type("one") is None
        assert event_type("title") is None

    def test_style_properties(self) -> None:
        assert style_property("text_decoration") == "text-decoration"
        assert style_property("textDecoration") == "text-decoration"
        assert style_property("text-decoration") == "text-decoration"

    def test_style_values(self) -> None:
        assert style_value("width", 10) == "10px"
        assert style_value("width", 0) == "0"
        assert style_value("opacity", 0.5) == "0.5"
        assert style_value("color", " red ") == "red"

    def test_parse_css(self) -> None:
        assert parse_css("text-decoration: line-through; color:  dark   red;") == {
            "text-decoration": "line-through",
            "color": "dark red",
        }

    def test_parse_css_rejects_garbage(self) -> None:
        with pytest.raises(ValueError, match="invalid CSS"):
            parse_css("no colon here")

    def test_split_props(self) -> None:
        """Props split into attributes, style and handlers."""

        def handler(event: object) -> None:
            return None

        split = split_props({
            "id": "x",
            "disabled": True,
            "hidden": False,
            "title": None,
            "tab_index": 2,
            "style": {"textDecoration": "none", "width": 4, "color": None},
            "on_click": handler,
            "on_change": None,
            "children": ("ignored",),
        })
        assert split.attributes == {"id": "x", "disabled": "", "tab-index": "2"}
        assert split.style == {"text-decoration": "none", "width": "4px"}
        assert split.handlers == {"click": handler}

    def test_style_must_be_mapping_or_css(self) -> None:
        with pytest.raises(TypeError, match="style must be"):
            split_props({"style": 42})

    def test_normalize_text(self) -> None:
        assert normalize_text("  Count:\n   5 ") == "Count: 5"


def _tree() -> RenderedNode:
    doc = RenderedNode("body", is_document=True)
    ul = RenderedNode("ul")
    doc.append_child(ul)
    for text in ("one", "two"):
        li = RenderedNode("li")
        li.attributes["class"] = "item"
        li.append_child(RenderedNode.text_node(text))
        ul.append_child(li)
    return doc


class TestRenderedNode:
    """Tree structure, text and snapshots."""

    def test_text_content(self) -> None:
        doc = _tree()
        assert doc.text_content == "onetwo"
        ul = doc.children[0]
        assert ul.own_text == ""
        assert ul.children[0].own_text == "one"

    def test_connected(self) -> None:
        doc = _tree()
        li = doc.children[0].children[0]
        assert li.connected
        doc.children[0].remove_child(li)
        assert not li.connected
        assert li.parent is None

    def test_append_moves_node(self) -> None:
        """Appending a node that already has a parent detaches it first."""
        doc = _tree()
        ul = doc.children[0]
        first = ul.children[0]
        ul.append_child(first)
        assert [c.text_content for c in ul.children] == ["two", "one"]

    def test_ancestry(self) -> None:
        doc = _tree()
        li = doc.children[0].children[1]
        assert [a.tag for a in li.ancestors()] == ["ul", "body"]
        assert doc.contains(li)
        assert not li.contains(doc)
        assert [n.tag for n in doc.iter_descendants()] == ["ul", "li", "#text", "li", "#text"]

    def test_attribute_and_style_access(self) -> None:
        node = RenderedNode("div")
        node.attributes["data-testid"] = "x"
        node.style["text-decoration"] = "none"
        assert node.get_attribute("data_testid") == "x"
        assert node.has_attribute("data-testid")
        assert node.computed_style("textDecoration") == "none"
        assert node.computed_style("color") == ""

    def test_snapshot_round_trip(self) -> None:
        """to_dict / from_dict preserve structure, attributes and style."""
        doc = _tree()
        doc.children[0].style["color"] = "red"
        doc.children[0].handlers["click"] = lambda event: None
        data = doc.children[0].to_dict()
        assert data["events"] == ["click"]

        rebuilt = RenderedNode.from_dict(data)
        assert rebuilt.to_dict() == {**data, "events": []}
        assert rebuilt.pretty() == doc.children[0].pretty()

    def test_pretty(self) -> None:
        node = RenderedNode("p")
        node.attributes["id"] = "x"
        assert node.pretty() == '<p id="x" />'
        node.append_child(RenderedNode.text_node("hi"))
        assert node.pretty() == '<p id="x">\n  hi\n</p>'
