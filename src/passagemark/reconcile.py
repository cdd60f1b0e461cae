"""Apply highlight ranges onto content, and undo them again.

One reconciler serves both content strategies:

* **Markup strings** (``render_markup``): the content is a raw HTML string.
  It is parsed into a detached selectolax document, highlighted, and
  serialised back.
* **Live trees** (``Reconciler.reconcile``): the content is an already
  parsed tree the host owns and may regenerate at any time. Leftover spans
  from a previous pass are unwrapped and adjacent text nodes merged before
  the current highlights are re-applied, so stale spans never drift.

Highlights are first flattened into non-overlapping regions (see
``compute_regions``), then applied in descending start order: splicing a
text node changes its siblings but never the offsets of text before it.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Generic, TypeVar

from passagemark.merge import compute_regions
from passagemark.offsets import flatten_text, locate_offsets_in_container
from passagemark.text_tree.lexbor import LexborTree, document_root, parse_document
from passagemark.text_tree.protocol import SKIP_TAGS, Mark, is_mark

if TYPE_CHECKING:
    from collections.abc import Sequence

    from passagemark.merge import Region
    from passagemark.models import Annotation
    from passagemark.text_tree.protocol import TextTree

logger = logging.getLogger(__name__)

N = TypeVar("N")


class Reconciler(Generic[N]):
    """Highlight renderer parameterised over a ``TextTree`` capability."""

    def __init__(self, tree: TextTree[N]) -> None:
        self.tree = tree

    # --- Undo ---

    def _collect_marks(self, node: N, found: list[N]) -> None:
        for child in self.tree.children(node):
            if self.tree.is_text(child):
                continue
            if is_mark(self.tree, child):
                found.append(child)  # nested marks go with their outer span
            elif self.tree.tag(child) not in SKIP_TAGS:
                self._collect_marks(child, found)

    def strip(self, container: N) -> int:
        """Replace every highlight span with a plain text node of its text.

        Returns:
            Number of spans removed.
        """
        marks: list[N] = []
        self._collect_marks(container, marks)
        for mark in marks:
            self.tree.replace(mark, [self.tree.text(mark)])
        return len(marks)

    def normalize(self, container: N) -> None:
        """Merge runs of adjacent text nodes and drop empty ones."""
        run: list[N] = []
        for child in [*self.tree.children(container), None]:
            if child is not None and self.tree.is_text(child):
                run.append(child)
                continue
            self._collapse_run(run)
            run = []
            if child is not None and self.tree.tag(child) not in SKIP_TAGS:
                self.normalize(child)

    def _collapse_run(self, run: list[N]) -> None:
        if not run:
            return
        texts = [self.tree.text(node) for node in run]
        combined = "".join(texts)
        if len(run) == 1 and combined:
            return
        for node in run[:-1]:
            self.tree.replace(node, [])
        self.tree.replace(run[-1], [combined] if combined else [])

    # --- Apply ---

    def _apply_region(self, container: N, region: Region) -> None:
        winner = region.winner
        slices = locate_offsets_in_container(
            self.tree, container, region.start, region.end
        )
        ids = tuple(a.id for a in region.active)
        # Reverse so earlier siblings are still valid when we reach them
        for piece in reversed(slices):
            text = self.tree.text(piece.node)
            before = text[: piece.local_start]
            middle = text[piece.local_start : piece.local_end]
            after = text[piece.local_end :]
            if not middle:
                continue
            pieces: list[str | Mark] = []
            if before:
                pieces.append(before)
            pieces.append(
                Mark(
                    text=middle,
                    annotation_id=winner.id,
                    annotation_ids=ids,
                    color=winner.color,
                )
            )
            if after:
                pieces.append(after)
            self.tree.replace(piece.node, pieces)

    def apply(self, container: N, annotations: Sequence[Annotation]) -> int:
        """Wrap each highlighted stretch of text in a mark span.

        Args:
            container: Node whose flattened text the offsets refer to.
            annotations: Highlights for this container (any order; colours
                may overlap).

        Returns:
            Number of regions applied.
        """
        if not annotations:
            return 0

        regions = compute_regions(annotations)
        text_length = len(flatten_text(self.tree, container))
        applied = 0
        for region in sorted(regions, key=lambda r: r.start, reverse=True):
            if region.start >= text_length:
                logger.debug(
                    "Region [%d, %d) lies beyond container text (length %d)",
                    region.start,
                    region.end,
                    text_length,
                )
                continue
            self._apply_region(container, region)
            applied += 1
        return applied

    def reconcile(self, container: N, annotations: Sequence[Annotation]) -> int:
        """Bring a live tree in line with *annotations*.

        Safe to call repeatedly, and after the host has regenerated the
        container's markup: stale spans are undone before re-applying.
        """
        stripped = self.strip(container)
        self.normalize(container)
        applied = self.apply(container, annotations)
        logger.debug("Reconciled container: %d stale, %d applied", stripped, applied)
        return applied


# ---------------------------------------------------------------------------
# Markup-string strategy
# ---------------------------------------------------------------------------


def render_markup(html: str, annotations: Sequence[Annotation]) -> str:
    """Return *html* with highlight spans applied.

    Any highlight spans already present in *html* are removed first, so the
    output depends only on the text and *annotations*.

    Args:
        html: Content markup (fragment or full document).
        annotations: Highlights with offsets into the markup's flattened text.

    Returns:
        The body's inner HTML with spans inserted. Empty input is returned
        unchanged.
    """
    if not html:
        return html

    document = parse_document(html)
    root = document_root(document)
    if root is None:
        return html

    Reconciler(LexborTree()).reconcile(root, annotations)
    return root.inner_html or ""


def unannotate_markup(html: str) -> str:
    """Return *html* with every highlight span unwrapped."""
    if not html:
        return html

    document = parse_document(html)
    root = document_root(document)
    if root is None:
        return html

    reconciler = Reconciler(LexborTree())
    reconciler.strip(root)
    reconciler.normalize(root)
    return root.inner_html or ""
