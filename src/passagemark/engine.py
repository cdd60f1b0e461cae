"""Host-facing highlight engine.

Binds an ``AnnotationStore`` (session state) to a host that owns the
rendered containers. The engine never creates containers: the host marks a
region with ``data-highlight-container="<id>"`` (or supplies its own
``ContainerHost``) and the engine finds it on every call, because
containers are regenerated on each render.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Generic, Protocol, TypeVar

from selectolax.lexbor import LexborHTMLParser, LexborNode

from passagemark.offsets import flatten_text, map_selection_to_offsets
from passagemark.reconcile import Reconciler, render_markup

if TYPE_CHECKING:
    from passagemark.models import Annotation, HighlightColor
    from passagemark.offsets import SelectionOffsets, TextRange
    from passagemark.store import AnnotationStore
    from passagemark.text_tree.protocol import TextTree

logger = logging.getLogger(__name__)

N = TypeVar("N")

CONTAINER_ATTR = "data-highlight-container"


class ContainerHost(Protocol[N]):
    """Supplies container nodes by id."""

    def get_container_by_id(self, container_id: str) -> N | None:
        """Return the container's current node, or None if not rendered."""
        ...


class DocumentHost:
    """``ContainerHost`` over a selectolax document.

    Containers are elements carrying ``data-highlight-container``.
    """

    def __init__(self, document: LexborHTMLParser) -> None:
        self.document = document

    def get_container_by_id(self, container_id: str) -> LexborNode | None:
        for node in self.document.css(f"[{CONTAINER_ATTR}]"):
            if node.attributes.get(CONTAINER_ATTR) == container_id:
                return node
        return None


class HighlightEngine(Generic[N]):
    """Highlight operations for one session over one host.

    Attributes:
        host: Where containers are looked up.
        tree: Tree capability matching the host's nodes.
        store: Session state (explicit context, one per session key).
    """

    def __init__(
        self,
        host: ContainerHost[N],
        tree: TextTree[N],
        store: AnnotationStore,
    ) -> None:
        self.host = host
        self.tree = tree
        self.store = store
        self._reconciler = Reconciler(tree)

    def _container(self, container_id: str) -> N | None:
        container = self.host.get_container_by_id(container_id)
        if container is None:
            # Expected transiently while the host re-renders
            logger.warning("Container not found: %s", container_id)
        return container

    # --- Active colour ---

    @property
    def active_color(self) -> HighlightColor:
        return self.store.active_color

    def set_active_color(self, color: HighlightColor | str) -> None:
        self.store.set_active_color(color)

    # --- Selection ---

    def map_selection(
        self, container_id: str, selection: TextRange[N]
    ) -> SelectionOffsets | None:
        """Map a selection to offsets within a container (no side effects)."""
        container = self._container(container_id)
        if container is None:
            return None
        return map_selection_to_offsets(self.tree, container, selection)

    def add_annotation(
        self,
        container_id: str,
        selection: TextRange[N],
        color: HighlightColor | str | None = None,
    ) -> Annotation | None:
        """Highlight a selection.

        Args:
            container_id: Container the selection should lie in.
            selection: The selection, as tree boundary points.
            color: Colour to use; defaults to the active colour.

        Returns:
            The resulting (possibly merged) annotation, or None when the
            container is missing or the selection is outside it or empty.
        """
        offsets = self.map_selection(container_id, selection)
        if offsets is None:
            logger.debug("No highlight: selection did not map in %s", container_id)
            return None
        return self.store.add(
            container_id,
            offsets.start_offset,
            offsets.end_offset,
            color or self.store.active_color,
            offsets.text,
        )

    def add_offsets(
        self,
        container_id: str,
        start_offset: int,
        end_offset: int,
        color: HighlightColor | str | None = None,
    ) -> Annotation | None:
        """Highlight an already-mapped ``[start, end)`` range.

        The range is clamped to the container's current text and the covered
        text is read back from the container.
        """
        container = self._container(container_id)
        if container is None:
            return None
        text = flatten_text(self.tree, container)
        start = max(0, start_offset)
        end = min(len(text), end_offset)
        if start >= end:
            return None
        return self.store.add(
            container_id, start, end, color or self.store.active_color, text[start:end]
        )

    # --- Store passthrough ---

    def remove_annotation(self, container_id: str, annotation_id: str) -> bool:
        return self.store.remove(container_id, annotation_id)

    def clear_container(self, container_id: str) -> None:
        self.store.clear_container(container_id)

    def clear_all(self) -> None:
        self.store.clear_all()

    def list_annotations(self, container_id: str) -> list[Annotation]:
        return self.store.list(container_id)

    # --- Rendering ---

    def reconcile(self, container_id: str) -> bool:
        """Re-apply highlights onto the host's current container tree.

        Call after every content-change signal from the host.

        Returns:
            False if the container is not currently rendered.
        """
        container = self._container(container_id)
        if container is None:
            return False
        self._reconciler.reconcile(container, self.store.list(container_id))
        return True

    def reconcile_all(self) -> list[str]:
        """Reconcile every container that holds highlights.

        Returns:
            Ids of containers that were found and reconciled.
        """
        return [cid for cid in self.store.container_ids() if self.reconcile(cid)]

    def render_markup(self, container_id: str, html: str) -> str:
        """Return a container's markup string with its highlights applied."""
        return render_markup(html, self.store.list(container_id))
