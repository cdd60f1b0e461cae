"""Data models for passage highlights.

These are plain dataclasses. The persisted JSON layout uses camelCase keys
(``startOffset``, ``annotationsByContainer``) so records written by the
browser client and by the server stay interchangeable.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import Any
from uuid import uuid4

logger = logging.getLogger(__name__)


class HighlightColor(StrEnum):
    """The two highlight colours offered to readers."""

    YELLOW = "yellow"
    GREEN = "green"


# Tie-break order when two colours compete for the same characters
COLOR_ORDER: tuple[HighlightColor, ...] = (HighlightColor.YELLOW, HighlightColor.GREEN)


def new_annotation_id() -> str:
    """Generate a fresh annotation id."""
    return f"hl-{uuid4().hex}"


def parse_color(value: str | HighlightColor) -> HighlightColor:
    """Coerce a colour name to ``HighlightColor``.

    Raises:
        ValueError: If *value* is not one of the supported colours.
    """
    try:
        return HighlightColor(value)
    except ValueError:
        allowed = ", ".join(c.value for c in HighlightColor)
        msg = f"Unsupported highlight color {value!r} (expected one of: {allowed})"
        raise ValueError(msg) from None


@dataclass(frozen=True)
class Annotation:
    """A highlighted ``[start_offset, end_offset)`` range within one container.

    Attributes:
        id: Unique identifier (``hl-<hex>``).
        container_id: Caller-supplied id of the container the range lives in.
        start_offset: Start character index in the flattened text (inclusive).
        end_offset: End character index (exclusive).
        color: Highlight colour.
        text: Text covered by the range when it was created.
    """

    id: str
    container_id: str
    start_offset: int
    end_offset: int
    color: HighlightColor
    text: str = ""

    @property
    def length(self) -> int:
        return self.end_offset - self.start_offset

    def covers(self, start: int, end: int) -> bool:
        """Whether ``[start, end)`` lies inside this annotation."""
        return self.start_offset <= start and end <= self.end_offset

    def with_bounds(self, start: int, end: int, text: str) -> Annotation:
        return replace(self, start_offset=start, end_offset=end, text=text)

    def to_record(self) -> dict[str, Any]:
        """Serialise to the persisted record layout (no container id)."""
        return {
            "id": self.id,
            "startOffset": self.start_offset,
            "endOffset": self.end_offset,
            "color": self.color.value,
            "text": self.text,
        }

    @classmethod
    def from_record(cls, container_id: str, record: dict[str, Any]) -> Annotation:
        """Build an annotation from a persisted record.

        Raises:
            ValueError: If the record is missing fields, has an unknown colour,
                or violates ``0 <= start < end``.
        """
        try:
            start = int(record["startOffset"])
            end = int(record["endOffset"])
            annotation_id = str(record["id"])
        except (KeyError, TypeError, ValueError) as exc:
            msg = f"Malformed annotation record: {record!r}"
            raise ValueError(msg) from exc
        if start < 0 or start >= end:
            msg = f"Invalid annotation bounds [{start}, {end}) in {annotation_id}"
            raise ValueError(msg)
        return cls(
            id=annotation_id,
            container_id=container_id,
            start_offset=start,
            end_offset=end,
            color=parse_color(record.get("color", "")),
            text=str(record.get("text", "")),
        )


@dataclass
class SessionState:
    """Mutable highlight state for one session (e.g. one exam attempt)."""

    annotations_by_container: dict[str, list[Annotation]] = field(
        default_factory=dict
    )
    active_color: HighlightColor = HighlightColor.YELLOW

    def to_record(self) -> dict[str, Any]:
        """Serialise to the persisted record layout."""
        return {
            "activeColor": self.active_color.value,
            "annotationsByContainer": {
                container_id: [a.to_record() for a in annotations]
                for container_id, annotations in self.annotations_by_container.items()
            },
        }

    @classmethod
    def from_record(
        cls,
        record: dict[str, Any],
        default_color: HighlightColor = HighlightColor.YELLOW,
    ) -> SessionState:
        """Rebuild state from a persisted record.

        Unreadable entries are skipped with a warning rather than failing the
        whole load, so a single bad entry cannot wipe a reader's highlights.
        """
        state = cls(active_color=default_color)

        raw_color = record.get("activeColor")
        if raw_color is not None:
            try:
                state.active_color = parse_color(raw_color)
            except ValueError:
                logger.warning("Ignoring unknown stored active color %r", raw_color)

        by_container = record.get("annotationsByContainer") or {}
        if not isinstance(by_container, dict):
            logger.warning("Ignoring malformed annotationsByContainer entry")
            return state

        for container_id, entries in by_container.items():
            if not isinstance(entries, list):
                logger.warning("Skipping non-list annotations for %s", container_id)
                continue
            annotations: list[Annotation] = []
            for entry in entries:
                try:
                    annotations.append(Annotation.from_record(container_id, entry))
                except ValueError:
                    logger.warning(
                        "Skipping unreadable annotation in %s: %r", container_id, entry
                    )
            if annotations:
                state.annotations_by_container[container_id] = sorted(
                    annotations, key=lambda a: a.start_offset
                )
        return state
