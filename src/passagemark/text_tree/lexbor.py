"""``TextTree`` implementation over selectolax's lexbor backend.

Walks via ``node.child`` / ``node.next`` (which exposes text nodes, unlike
``iter()``), and splices pieces in with ``insert_before`` / ``replace_with``.
Mark spans are built by parsing their serialised HTML in a scratch parser;
lexbor imports the node into the target document on insertion.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from selectolax.lexbor import LexborHTMLParser, LexborNode

from passagemark.text_tree.protocol import MARK_TAG, Mark

if TYPE_CHECKING:
    from collections.abc import Sequence

# selectolax reports text nodes with this pseudo tag
_TEXT_TAG = "-text"


def parse_document(html: str) -> LexborHTMLParser:
    """Parse *html* (fragment or full document) into a detached tree."""
    return LexborHTMLParser(html or "")


def document_root(tree: LexborHTMLParser) -> LexborNode | None:
    """Return the ``<body>`` of a parsed document, or its root element."""
    body = tree.body
    return body if body is not None else tree.root


class LexborTree:
    """Adapter exposing a selectolax document through ``TextTree``."""

    def children(self, node: LexborNode) -> list[LexborNode]:
        result: list[LexborNode] = []
        child = node.child
        while child is not None:
            result.append(child)
            child = child.next
        return result

    def parent(self, node: LexborNode) -> LexborNode | None:
        return node.parent

    def is_text(self, node: LexborNode) -> bool:
        return node.tag == _TEXT_TAG

    def text(self, node: LexborNode) -> str:
        if node.tag == _TEXT_TAG:
            return node.text_content or ""
        return node.text(deep=True) or ""

    def tag(self, node: LexborNode) -> str:
        if node.tag == _TEXT_TAG:
            return ""
        return (node.tag or "").lower()

    def attribute(self, node: LexborNode, name: str) -> str | None:
        if node.tag == _TEXT_TAG:
            return None
        return node.attributes.get(name)

    def same_node(self, a: LexborNode, b: LexborNode) -> bool:
        return a.mem_id == b.mem_id

    def replace(self, node: LexborNode, pieces: Sequence[str | Mark]) -> None:
        values = [self._to_value(piece) for piece in pieces]
        if not values:
            node.decompose()
            return
        for value in values[:-1]:
            node.insert_before(value)
        node.replace_with(values[-1])

    @staticmethod
    def _to_value(piece: str | Mark) -> str | LexborNode:
        if isinstance(piece, str):
            return piece
        scratch = LexborHTMLParser(piece.to_html())
        span = scratch.css_first(MARK_TAG)
        if span is None:  # pragma: no cover - the markup above always parses
            msg = f"Could not build highlight span for {piece.annotation_id}"
            raise ValueError(msg)
        return span
