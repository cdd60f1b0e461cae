"""Shared fixtures for unit tests."""

from __future__ import annotations

import pytest

from passagemark.models import Annotation, HighlightColor
from passagemark.persistence import MemoryStorage
from passagemark.store import AnnotationStore
from passagemark.text_tree import Element, PlainTree, TextNode, element


def make_annotation(
    start: int,
    end: int,
    color: HighlightColor | str = HighlightColor.YELLOW,
    *,
    id: str | None = None,
    container_id: str = "passage",
    text: str = "",
) -> Annotation:
    """Build an annotation with a predictable id."""
    return Annotation(
        id=id or f"hl-{color}-{start}-{end}",
        container_id=container_id,
        start_offset=start,
        end_offset=end,
        color=HighlightColor(color),
        text=text,
    )


def collect_marks(node: Element) -> list[Element]:
    """Highlight spans under *node*, in document order."""
    found: list[Element] = []
    for child in node.children:
        if isinstance(child, TextNode):
            continue
        if "note-highlight" in child.attributes.get("class", "").split():
            found.append(child)
        else:
            found.extend(collect_marks(child))
    return found


def text_nodes(node: Element) -> list[TextNode]:
    """Text nodes under *node*, in document order."""
    found: list[TextNode] = []
    for child in node.children:
        if isinstance(child, TextNode):
            found.append(child)
        else:
            found.extend(text_nodes(child))
    return found


@pytest.fixture
def tree() -> PlainTree:
    return PlainTree()


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def store(storage: MemoryStorage) -> AnnotationStore:
    return AnnotationStore("attempt-42", storage)


@pytest.fixture
def quick_fox() -> Element:
    """``<div><p>The <b>quick</b> fox</p></div>`` (flattened: "The quick fox")."""
    return element("div", element("p", "The ", element("b", "quick"), " fox"))
