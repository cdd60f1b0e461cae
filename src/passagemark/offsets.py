"""Offset mapping between tree selections and flattened-text coordinates.

A container's flattened text is the in-order concatenation of its text
nodes (raw, like DOM ``textContent``; ``script``/``style``/``noscript``/
``template`` subtrees are skipped). Highlights are stored as
``[start, end)`` offsets into that string, which survives any re-render
that keeps the text identical.
"""

# Pattern: Functional Core (pure functions over the TextTree capability)

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Generic, TypeVar

from passagemark.text_tree.protocol import SKIP_TAGS

if TYPE_CHECKING:
    from collections.abc import Iterator

    from passagemark.text_tree.protocol import TextTree

logger = logging.getLogger(__name__)

N = TypeVar("N")


@dataclass(frozen=True)
class TextPoint(Generic[N]):
    """A selection boundary, with DOM Range semantics.

    When *node* is a text node, *offset* is a character index into it.
    When *node* is an element, *offset* is a child index (the boundary sits
    before that child; ``len(children)`` means after the last child).
    """

    node: N
    offset: int


@dataclass(frozen=True)
class TextRange(Generic[N]):
    """A selection between two boundary points."""

    start: TextPoint[N]
    end: TextPoint[N]


@dataclass(frozen=True)
class SelectionOffsets:
    """A selection mapped into flattened-text coordinates."""

    start_offset: int
    end_offset: int
    text: str


@dataclass(frozen=True)
class SegmentSlice(Generic[N]):
    """The part of one text node covered by an offset range.

    Attributes:
        node: The text node.
        local_start: Start index within the node's text.
        local_end: End index within the node's text (exclusive).
        segment_start: Flattened offset of the node's first character.
    """

    node: N
    local_start: int
    local_end: int
    segment_start: int


def iter_text_segments(tree: TextTree[N], container: N) -> Iterator[N]:
    """Yield the container's text nodes in document order."""
    for child in tree.children(container):
        if tree.is_text(child):
            yield child
        elif tree.tag(child) not in SKIP_TAGS:
            yield from iter_text_segments(tree, child)


def flatten_text(tree: TextTree[N], container: N) -> str:
    """Return the container's flattened text."""
    return "".join(tree.text(node) for node in iter_text_segments(tree, container))


def contains(tree: TextTree[N], container: N, node: N) -> bool:
    """Whether *node* is *container* or one of its descendants."""
    current: N | None = node
    while current is not None:
        if tree.same_node(current, container):
            return True
        current = tree.parent(current)
    return False


def _first_text(tree: TextTree[N], node: N) -> N | None:
    if tree.is_text(node):
        return node
    return next(iter_text_segments(tree, node), None)


def _last_text(tree: TextTree[N], node: N) -> N | None:
    last = None
    for last in iter_text_segments(tree, node):  # noqa: B007
        pass
    return last


def _resolve_boundary(tree: TextTree[N], point: TextPoint[N]) -> TextPoint[N] | None:
    """Turn an element-relative boundary into a text-node boundary.

    A point before child *k* resolves to the start of that child's first text
    node; a point past the last child (or before a child with no text)
    resolves to the end of the element's last text node.
    """
    if tree.is_text(point.node):
        return point

    children = tree.children(point.node)
    if 0 <= point.offset < len(children):
        target = _first_text(tree, children[point.offset])
        if target is not None:
            return TextPoint(target, 0)

    last = _last_text(tree, point.node)
    if last is None:
        return None
    return TextPoint(last, len(tree.text(last)))


def map_selection_to_offsets(
    tree: TextTree[N],
    container: N,
    selection: TextRange[N],
) -> SelectionOffsets | None:
    """Convert a tree selection into ``(start, end, text)`` offsets.

    Args:
        tree: Tree capability for the container's document.
        container: The container node offsets are relative to.
        selection: The selection to map.

    Returns:
        The mapped offsets, or None when either boundary lies outside the
        container, cannot be resolved to text, or the selection is empty or
        collapsed (``start >= end``).
    """
    start_point = _resolve_boundary(tree, selection.start)
    end_point = _resolve_boundary(tree, selection.end)
    if start_point is None or end_point is None:
        logger.debug("Selection boundary did not resolve to a text node")
        return None

    if not contains(tree, container, start_point.node) or not contains(
        tree, container, end_point.node
    ):
        logger.debug("Selection lies outside the container")
        return None

    counter = 0
    start_offset = -1
    end_offset = -1
    chunks: list[str] = []

    for node in iter_text_segments(tree, container):
        text = tree.text(node)
        length = len(text)
        if tree.same_node(node, start_point.node):
            start_offset = counter + max(0, min(start_point.offset, length))
        if tree.same_node(node, end_point.node):
            end_offset = counter + max(0, min(end_point.offset, length))
        chunks.append(text)
        counter += length

    if start_offset < 0 or end_offset < 0:
        # Anchors inside a skipped subtree (e.g. <script>) never map
        logger.debug("Selection anchors are not part of the flattened text")
        return None

    if start_offset >= end_offset:
        return None

    flattened = "".join(chunks)
    return SelectionOffsets(
        start_offset=start_offset,
        end_offset=end_offset,
        text=flattened[start_offset:end_offset],
    )


def locate_offsets_in_container(
    tree: TextTree[N],
    container: N,
    start_offset: int,
    end_offset: int,
) -> list[SegmentSlice[N]]:
    """Find the text nodes covered (even partially) by ``[start, end)``.

    Returns slices in document order; empty when the range is empty or lies
    beyond the container's text.
    """
    slices: list[SegmentSlice[N]] = []
    if start_offset >= end_offset:
        return slices

    counter = 0
    for node in iter_text_segments(tree, container):
        length = len(tree.text(node))
        node_start = counter
        node_end = counter + length
        counter = node_end

        if node_end > start_offset and node_start < end_offset:
            slices.append(
                SegmentSlice(
                    node=node,
                    local_start=max(0, start_offset - node_start),
                    local_end=min(length, end_offset - node_start),
                    segment_start=node_start,
                )
            )
        elif node_start >= end_offset:
            break

    return slices


def text_point_at(
    tree: TextTree[N],
    container: N,
    segment_index: int,
    offset: int,
) -> TextPoint[N] | None:
    """Build a boundary from a (text-node index, local offset) pair.

    Browsers can report a selection this way without sending node handles;
    replaying it over a server-parsed copy of the same markup yields a
    ``TextPoint`` usable with ``map_selection_to_offsets``.
    """
    if segment_index < 0:
        return None
    for index, node in enumerate(iter_text_segments(tree, container)):
        if index == segment_index:
            return TextPoint(node, max(0, min(offset, len(tree.text(node)))))
    return None
