"""Protocol defining the tree capability the highlight engine needs.

Both ``LexborTree`` (selectolax documents) and ``PlainTree`` (in-memory
nodes) implement this protocol, so offset mapping and reconciliation run
unchanged over either.
"""

from __future__ import annotations

import html as html_module
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, TypeVar

if TYPE_CHECKING:
    from collections.abc import Sequence

    from passagemark.models import HighlightColor

N = TypeVar("N")

# CSS class carried by every highlight span; also how stale spans are found.
MARK_CLASS = "note-highlight"
MARK_TAG = "span"
MARK_ID_ATTR = "data-highlight-id"
MARK_IDS_ATTR = "data-highlight-ids"

# Subtrees that never contribute to the flattened text
SKIP_TAGS = frozenset(("script", "style", "noscript", "template"))


@dataclass(frozen=True)
class Mark:
    """A highlight span piece to splice into the tree.

    Attributes:
        text: The covered text (becomes the span's only child).
        annotation_id: Id of the annotation whose colour is shown.
        annotation_ids: All annotation ids active over this text.
        color: Colour shown for this piece.
    """

    text: str
    annotation_id: str
    annotation_ids: tuple[str, ...]
    color: HighlightColor

    @property
    def css_class(self) -> str:
        return f"{MARK_CLASS} {MARK_CLASS}-{self.color.value}"

    def to_html(self) -> str:
        """Serialise as a ``<span>`` element."""
        ids = " ".join(self.annotation_ids)
        return (
            f'<{MARK_TAG} class="{self.css_class}" '
            f'{MARK_ID_ATTR}="{html_module.escape(self.annotation_id)}" '
            f'{MARK_IDS_ATTR}="{html_module.escape(ids)}">'
            f"{html_module.escape(self.text, quote=False)}</{MARK_TAG}>"
        )


class TextTree(Protocol[N]):
    """Minimal tree operations: get-children, get-text, replace-node."""

    def children(self, node: N) -> list[N]:
        """Child nodes in document order, text nodes included."""
        ...

    def parent(self, node: N) -> N | None:
        """Parent node, or None at the root."""
        ...

    def is_text(self, node: N) -> bool:
        """Whether *node* is a leaf text segment."""
        ...

    def text(self, node: N) -> str:
        """Text of a text node, or the full text content of an element."""
        ...

    def tag(self, node: N) -> str:
        """Lower-case tag name; empty string for text nodes."""
        ...

    def attribute(self, node: N, name: str) -> str | None:
        """Attribute value, or None when absent (always None for text)."""
        ...

    def same_node(self, a: N, b: N) -> bool:
        """Identity comparison (not structural equality)."""
        ...

    def replace(self, node: N, pieces: Sequence[str | Mark]) -> None:
        """Replace *node* with text and mark pieces, in order.

        An empty *pieces* removes the node. References to *node* must not
        be used afterwards.
        """
        ...


def is_mark(tree: TextTree[N], node: N) -> bool:
    """Whether *node* is a highlight span produced by the reconciler."""
    if tree.is_text(node) or tree.tag(node) != MARK_TAG:
        return False
    classes = (tree.attribute(node, "class") or "").split()
    return MARK_CLASS in classes
