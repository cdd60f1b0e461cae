"""Interval merging and render-region computation for highlights.

``merge_annotations`` keeps each container's highlight list minimal: same
colour ranges that overlap or touch collapse into one. Different colours
never merge; where they overlap, ``compute_regions`` decides which colour is
shown for each stretch of text.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from passagemark.models import COLOR_ORDER, Annotation

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from passagemark.models import HighlightColor


def _stitch_text(current: Annotation, following: Annotation) -> str:
    """Join the texts of two overlapping same-colour annotations.

    Only exact when each text matches its own offsets; otherwise the earlier
    annotation's text is kept as-is.
    """
    if following.end_offset <= current.end_offset:
        return current.text
    if len(current.text) != current.length or len(following.text) != following.length:
        return current.text
    overlap = current.end_offset - following.start_offset
    return current.text + following.text[overlap:]


def merge_annotations(annotations: Iterable[Annotation]) -> list[Annotation]:
    """Collapse overlapping or adjacent same-colour annotations.

    Within a colour the list is sorted by ``start_offset`` (stable, so an
    entry stored earlier precedes a newer one with the same start) and
    scanned left to right; ``next.start_offset <= current.end_offset`` merges.
    The first annotation of each merged run keeps its id.

    Returns:
        A new list sorted by ``(start_offset, colour order)``.
    """
    by_color: dict[HighlightColor, list[Annotation]] = {}
    for annotation in annotations:
        by_color.setdefault(annotation.color, []).append(annotation)

    merged: list[Annotation] = []
    for color_annotations in by_color.values():
        ordered = sorted(color_annotations, key=lambda a: a.start_offset)
        current = ordered[0]
        for following in ordered[1:]:
            if following.start_offset <= current.end_offset:
                current = current.with_bounds(
                    current.start_offset,
                    max(current.end_offset, following.end_offset),
                    _stitch_text(current, following),
                )
            else:
                merged.append(current)
                current = following
        merged.append(current)

    return sorted(merged, key=lambda a: (a.start_offset, COLOR_ORDER.index(a.color)))


# ---------------------------------------------------------------------------
# Render regions (event sweep)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Region:
    """A contiguous stretch of text with a constant set of active highlights.

    Attributes:
        start: Start offset (inclusive).
        end: End offset (exclusive).
        active: Annotations covering this stretch, winner first.
    """

    start: int
    end: int
    active: tuple[Annotation, ...]

    @property
    def winner(self) -> Annotation:
        """The annotation whose colour and id the rendered span carries."""
        return self.active[0]


def _priority(annotation: Annotation) -> tuple[int, int, int]:
    # Earliest start wins, then the longer range, then colour order
    return (
        annotation.start_offset,
        -annotation.length,
        COLOR_ORDER.index(annotation.color),
    )


def compute_regions(annotations: Sequence[Annotation]) -> list[Region]:
    """Compute non-overlapping render regions from possibly overlapping ranges.

    Builds ``(offset, kind, index)`` events, sorts them, and sweeps through
    emitting a region wherever the active set is non-empty and constant.
    Where colours overlap, the annotation with the smallest start offset is
    the region's winner (ties: longer range, then yellow before green).

    Returns an empty list when *annotations* is empty.
    """
    events: list[tuple[int, int, int]] = []
    for index, annotation in enumerate(annotations):
        if annotation.start_offset >= annotation.end_offset:
            continue
        # kind: 0 = start, 1 = end
        events.append((annotation.start_offset, 0, index))
        events.append((annotation.end_offset, 1, index))
    events.sort()

    active: set[int] = set()
    regions: list[Region] = []
    prev_pos: int | None = None

    for pos, kind, index in events:
        if prev_pos is not None and pos > prev_pos and active:
            covering = sorted((annotations[i] for i in active), key=_priority)
            regions.append(Region(start=prev_pos, end=pos, active=tuple(covering)))
        if kind == 0:
            active.add(index)
        else:
            active.discard(index)
        prev_pos = pos

    return regions
