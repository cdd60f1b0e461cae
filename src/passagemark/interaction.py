"""Selection and removal prompts as a small state machine.

Highlighting is never passive: finishing a selection only opens a selection
prompt, and an annotation is created when the reader explicitly picks a
colour from it. Clicking an existing highlight opens a removal prompt
instead. The two prompts are mutually exclusive.

Prompt appearance is the UI's business; this module only decides which
prompt is open and exposes it to subscribers.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from passagemark.models import HighlightColor, parse_color

if TYPE_CHECKING:
    from collections.abc import Callable

    from passagemark.engine import HighlightEngine
    from passagemark.models import Annotation
    from passagemark.offsets import TextRange

logger = logging.getLogger(__name__)

Anchor = tuple[float, float]


class InteractionState(StrEnum):
    """Which prompt, if any, is open."""

    IDLE = "idle"
    SELECTION_PENDING = "selection_pending"
    REMOVAL_PENDING = "removal_pending"


@dataclass(frozen=True)
class SelectionCandidate:
    """A completed selection awaiting a colour choice. Never persisted.

    Offsets rather than tree nodes are kept: node references go stale as
    soon as the host re-renders.
    """

    container_id: str
    start_offset: int
    end_offset: int
    text: str
    anchor: Anchor | None = None


@dataclass(frozen=True)
class RemovalCandidate:
    """A clicked highlight awaiting confirmation of removal."""

    container_id: str
    annotation_id: str
    anchor: Anchor | None = None


class InteractionController:
    """Turns selection and click gestures into store operations.

    Attributes:
        engine: Engine used to map selections and mutate highlights.
        enabled: When False, selections never open a prompt.
    """

    def __init__(self, engine: HighlightEngine[Any], *, enabled: bool = True) -> None:
        self.engine = engine
        self.enabled = enabled
        self._selection: SelectionCandidate | None = None
        self._removal: RemovalCandidate | None = None
        self._subscribers: list[Callable[[InteractionController], None]] = []

    # --- Observed state ---

    @property
    def state(self) -> InteractionState:
        if self._selection is not None:
            return InteractionState.SELECTION_PENDING
        if self._removal is not None:
            return InteractionState.REMOVAL_PENDING
        return InteractionState.IDLE

    @property
    def selection_prompt(self) -> SelectionCandidate | None:
        """The open selection prompt, if any."""
        return self._selection

    @property
    def removal_prompt(self) -> RemovalCandidate | None:
        """The open removal prompt, if any."""
        return self._removal

    @property
    def colors(self) -> tuple[HighlightColor, ...]:
        """Colours offered by the selection prompt."""
        return tuple(HighlightColor)

    def subscribe(
        self, callback: Callable[[InteractionController], None]
    ) -> Callable[[], None]:
        """Call *callback* after every transition.

        Returns:
            A function that unsubscribes the callback.
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _notify(self) -> None:
        for callback in list(self._subscribers):
            try:
                callback(self)
            except Exception:
                logger.exception("Interaction subscriber failed")

    def _set(
        self,
        selection: SelectionCandidate | None = None,
        removal: RemovalCandidate | None = None,
    ) -> None:
        self._selection = selection
        self._removal = removal
        self._notify()

    # --- Gestures ---

    def selection_ended(
        self,
        container_id: str,
        selection: TextRange[Any],
        anchor: Anchor | None = None,
        *,
        on_annotation: bool = False,
    ) -> SelectionCandidate | None:
        """Handle the end of a selection gesture inside a container.

        Opens the selection prompt when the selection maps to non-blank text
        in the container; otherwise closes any open prompt.

        Args:
            container_id: Container where the gesture ended.
            selection: The browser/tree selection.
            anchor: Where to show the prompt (UI coordinates).
            on_annotation: True when the gesture ended on an existing
                highlight; such mouse-ups belong to the removal flow.

        Returns:
            The pending candidate, or None if no prompt was opened.
        """
        if not self.enabled or on_annotation:
            self._set()
            return None

        offsets = self.engine.map_selection(container_id, selection)
        if offsets is None or not offsets.text.strip():
            self._set()
            return None

        candidate = SelectionCandidate(
            container_id=container_id,
            start_offset=offsets.start_offset,
            end_offset=offsets.end_offset,
            text=offsets.text,
            anchor=anchor,
        )
        self._set(selection=candidate)
        return candidate

    def pick_color(self, color: HighlightColor | str) -> Annotation | None:
        """Commit the pending selection with an explicitly chosen colour."""
        candidate = self._selection
        if candidate is None:
            return None

        annotation = self.engine.add_offsets(
            candidate.container_id,
            candidate.start_offset,
            candidate.end_offset,
            parse_color(color),
        )
        self._set()
        return annotation

    def annotation_clicked(
        self,
        container_id: str,
        annotation_id: str,
        anchor: Anchor | None = None,
    ) -> RemovalCandidate:
        """Open the removal prompt for a clicked highlight."""
        candidate = RemovalCandidate(
            container_id=container_id,
            annotation_id=annotation_id,
            anchor=anchor,
        )
        self._set(removal=candidate)
        return candidate

    def confirm_removal(self) -> bool:
        """Remove the highlight named by the open removal prompt."""
        candidate = self._removal
        if candidate is None:
            return False
        removed = self.engine.remove_annotation(
            candidate.container_id, candidate.annotation_id
        )
        self._set()
        return removed

    def cancel(self) -> None:
        """Close whichever prompt is open without touching highlights."""
        if self.state is not InteractionState.IDLE:
            self._set()

    def key_pressed(self, key: str) -> None:
        if key == "Escape":
            self.cancel()

    def scrolled(self) -> None:
        self.cancel()

    def outside_click(self) -> None:
        """A press landed outside the container; closes the selection prompt."""
        if self._selection is not None:
            self._set()
