"""In-memory ``TextTree`` for hosts that are not HTML documents.

A deliberately small node model: elements with a tag, attributes and an
ordered child list, and text nodes holding a string. Useful for rope-like
content, non-interactive rendering, and tests that must not depend on a
particular HTML parser's whitespace handling.
"""

from __future__ import annotations

import html as html_module
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from passagemark.text_tree.protocol import MARK_IDS_ATTR, MARK_ID_ATTR, MARK_TAG, Mark

if TYPE_CHECKING:
    from collections.abc import Sequence

_VOID_TAGS = frozenset(("br", "hr", "img", "input", "meta", "link", "wbr"))


@dataclass(eq=False)
class TextNode:
    """A leaf text segment."""

    data: str
    parent: Element | None = None


@dataclass(eq=False)
class Element:
    """An element with ordered children."""

    tag: str
    attributes: dict[str, str] = field(default_factory=dict)
    children: list[Element | TextNode] = field(default_factory=list)
    parent: Element | None = None

    def append(self, child: Element | TextNode) -> Element | TextNode:
        child.parent = self
        self.children.append(child)
        return child

    def find(self, **attrs: str) -> Element | None:
        """Depth-first search for the first element with matching attributes."""
        for child in self.children:
            if not isinstance(child, Element):
                continue
            wanted = {k.replace("_", "-"): v for k, v in attrs.items()}
            if all(child.attributes.get(k) == v for k, v in wanted.items()):
                return child
            found = child.find(**attrs)
            if found is not None:
                return found
        return None

    def to_html(self) -> str:
        """Serialise children (not the element itself) to HTML."""
        return "".join(_serialise(child) for child in self.children)


def element(tag: str, *children: Element | TextNode | str, **attrs: str) -> Element:
    """Build an element; ``str`` children become text nodes.

    Attribute keyword names use ``_`` for ``-`` (``data_highlight_container``).
    """
    attributes = {k.replace("_", "-"): v for k, v in attrs.items()}
    node = Element(tag=tag, attributes=attributes)
    for child in children:
        node.append(TextNode(child) if isinstance(child, str) else child)
    return node


def _serialise(node: Element | TextNode) -> str:
    if isinstance(node, TextNode):
        return html_module.escape(node.data, quote=False)
    attrs = "".join(
        f' {name}="{html_module.escape(value)}"'
        for name, value in node.attributes.items()
    )
    if node.tag in _VOID_TAGS:
        return f"<{node.tag}{attrs}>"
    inner = "".join(_serialise(child) for child in node.children)
    return f"<{node.tag}{attrs}>{inner}</{node.tag}>"


class PlainTree:
    """``TextTree`` over ``Element`` / ``TextNode`` instances."""

    def children(self, node: Element | TextNode) -> list[Element | TextNode]:
        if isinstance(node, TextNode):
            return []
        return list(node.children)

    def parent(self, node: Element | TextNode) -> Element | None:
        return node.parent

    def is_text(self, node: Element | TextNode) -> bool:
        return isinstance(node, TextNode)

    def text(self, node: Element | TextNode) -> str:
        if isinstance(node, TextNode):
            return node.data
        return "".join(self.text(child) for child in node.children)

    def tag(self, node: Element | TextNode) -> str:
        if isinstance(node, TextNode):
            return ""
        return node.tag.lower()

    def attribute(self, node: Element | TextNode, name: str) -> str | None:
        if isinstance(node, TextNode):
            return None
        return node.attributes.get(name)

    def same_node(self, a: Element | TextNode, b: Element | TextNode) -> bool:
        return a is b

    def replace(
        self, node: Element | TextNode, pieces: Sequence[str | Mark]
    ) -> None:
        parent = node.parent
        if parent is None:
            msg = "Cannot replace a detached node"
            raise ValueError(msg)
        index = next(i for i, child in enumerate(parent.children) if child is node)
        new_nodes = [self._build(piece) for piece in pieces]
        for new in new_nodes:
            new.parent = parent
        parent.children[index : index + 1] = new_nodes
        node.parent = None

    @staticmethod
    def _build(piece: str | Mark) -> Element | TextNode:
        if isinstance(piece, str):
            return TextNode(piece)
        return element(
            MARK_TAG,
            piece.text,
            **{
                "class": piece.css_class,
                MARK_ID_ATTR: piece.annotation_id,
                MARK_IDS_ATTR: " ".join(piece.annotation_ids),
            },
        )
