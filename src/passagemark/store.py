"""In-memory highlight state for one session, persisted after every mutation.

An ``AnnotationStore`` is the explicit session context: create one per exam
attempt (session key) and pass it to every call site. Two stores with
different session keys never see each other's highlights.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from passagemark.merge import merge_annotations
from passagemark.models import (
    Annotation,
    HighlightColor,
    SessionState,
    new_annotation_id,
    parse_color,
)
from passagemark.persistence import storage_key

if TYPE_CHECKING:
    from passagemark.persistence import SessionStorage

logger = logging.getLogger(__name__)

DEFAULT_KEY_PREFIX = "passagemark-highlights"


class AnnotationStore:
    """Per-container highlight lists with automatic merge and persistence.

    Attributes:
        session_key: Identifier scoping the persisted record (may be empty).
        key: Full storage key derived from the prefix and session key.
    """

    def __init__(
        self,
        session_key: str | None,
        storage: SessionStorage,
        *,
        initial_color: HighlightColor | str | None = None,
        default_color: HighlightColor | str = HighlightColor.YELLOW,
        key_prefix: str = DEFAULT_KEY_PREFIX,
    ) -> None:
        """Load (or start) the session state.

        Args:
            session_key: Session identifier, e.g. an exam attempt UUID.
            storage: Backend the state is persisted to.
            initial_color: Active colour to start with, overriding the
                persisted one.
            default_color: Active colour when nothing is persisted.
            key_prefix: Prefix for the storage key.
        """
        self.session_key = session_key or ""
        self.key = storage_key(key_prefix, session_key)
        self._storage = storage
        self._dirty = False
        self._load_failed = False
        self._state = self._load(parse_color(default_color))
        if initial_color is not None:
            self._state.active_color = parse_color(initial_color)

    def _load(self, default_color: HighlightColor) -> SessionState:
        try:
            record = self._storage.load(self.key)
        except Exception:
            logger.exception("Failed to load highlights for %s", self.key)
            # Writes wait until the stored record has been read back
            self._load_failed = True
            return SessionState(active_color=default_color)

        if record is None:
            return SessionState(active_color=default_color)
        if not isinstance(record, dict):
            logger.warning("Ignoring malformed highlight record for %s", self.key)
            return SessionState(active_color=default_color)

        state = SessionState.from_record(record, default_color=default_color)
        # Re-establish the merge invariant in case the record was hand-edited
        for container_id, annotations in state.annotations_by_container.items():
            state.annotations_by_container[container_id] = merge_annotations(
                annotations
            )
        logger.info(
            "Loaded %d highlights for %s",
            sum(len(a) for a in state.annotations_by_container.values()),
            self.key,
        )
        return state

    # --- Persistence ---

    @property
    def dirty(self) -> bool:
        """True when the last write failed and memory is ahead of storage."""
        return self._dirty

    def _recover(self) -> bool:
        """Re-read a record whose initial load failed and fold it into memory.

        Returns:
            True once the stored record has been read (or found absent).
        """
        try:
            record = self._storage.load(self.key)
        except Exception:
            logger.exception("Still unable to load highlights for %s", self.key)
            return False

        self._load_failed = False
        if not isinstance(record, dict):
            return True

        stored = SessionState.from_record(
            record, default_color=self._state.active_color
        )
        by_container = self._state.annotations_by_container
        for container_id, annotations in stored.annotations_by_container.items():
            by_container[container_id] = merge_annotations(
                [*annotations, *by_container.get(container_id, [])]
            )
        logger.info("Recovered stored highlights for %s", self.key)
        return True

    def _persist(self) -> None:
        if self._load_failed and not self._recover():
            # Saving now would overwrite a record we have never seen
            self._dirty = True
            return
        try:
            self._storage.save(self.key, self._state.to_record())
        except Exception:
            # In-memory state stays authoritative; the next mutation retries.
            logger.exception("Failed to persist highlights for %s", self.key)
            self._dirty = True
        else:
            self._dirty = False

    def flush(self) -> bool:
        """Retry a failed write. Returns True when storage is up to date."""
        if self._dirty:
            self._persist()
        return not self._dirty

    # --- Active colour ---

    @property
    def active_color(self) -> HighlightColor:
        return self._state.active_color

    def set_active_color(self, color: HighlightColor | str) -> None:
        """Change the colour used when none is given explicitly."""
        self._state.active_color = parse_color(color)
        self._persist()

    # --- Highlight operations ---

    def add(
        self,
        container_id: str,
        start_offset: int,
        end_offset: int,
        color: HighlightColor | str,
        text: str,
    ) -> Annotation | None:
        """Add a highlight, merging it with same-colour neighbours.

        Args:
            container_id: Container the offsets refer to.
            start_offset: Start character index (inclusive).
            end_offset: End character index (exclusive).
            color: Highlight colour; also becomes the active colour.
            text: The highlighted text.

        Returns:
            The stored annotation covering the new range (possibly merged
            with existing ones), or None for an empty or negative range.

        Raises:
            ValueError: If *color* is not a supported colour.
        """
        highlight_color = parse_color(color)
        if start_offset < 0 or start_offset >= end_offset:
            logger.debug(
                "Ignoring empty highlight [%d, %d) in %s",
                start_offset,
                end_offset,
                container_id,
            )
            return None

        annotation = Annotation(
            id=new_annotation_id(),
            container_id=container_id,
            start_offset=start_offset,
            end_offset=end_offset,
            color=highlight_color,
            text=text,
        )
        existing = self._state.annotations_by_container.get(container_id, [])
        merged = merge_annotations([*existing, annotation])
        self._state.annotations_by_container[container_id] = merged
        self._state.active_color = highlight_color
        self._persist()

        result = next(
            a
            for a in merged
            if a.color == highlight_color and a.covers(start_offset, end_offset)
        )
        logger.debug(
            "Added %s highlight %s [%d, %d) in %s",
            highlight_color,
            result.id,
            result.start_offset,
            result.end_offset,
            container_id,
        )
        return result

    def remove(self, container_id: str, annotation_id: str) -> bool:
        """Remove a highlight by id.

        Returns:
            True if the highlight was found and removed.
        """
        existing = self._state.annotations_by_container.get(container_id)
        if not existing:
            return False
        remaining = [a for a in existing if a.id != annotation_id]
        if len(remaining) == len(existing):
            return False
        if remaining:
            self._state.annotations_by_container[container_id] = remaining
        else:
            del self._state.annotations_by_container[container_id]
        self._persist()
        return True

    def clear_container(self, container_id: str) -> None:
        """Remove every highlight in one container."""
        self._state.annotations_by_container.pop(container_id, None)
        self._persist()

    def clear_all(self) -> None:
        """Remove every highlight in every container."""
        self._state.annotations_by_container.clear()
        self._persist()

    def list(self, container_id: str) -> list[Annotation]:
        """Return the container's highlights, sorted by start offset."""
        return list(self._state.annotations_by_container.get(container_id, []))

    def get(self, container_id: str, annotation_id: str) -> Annotation | None:
        """Look up a single highlight."""
        return next(
            (a for a in self.list(container_id) if a.id == annotation_id), None
        )

    def container_ids(self) -> list[str]:
        """Ids of containers that currently hold highlights."""
        return sorted(self._state.annotations_by_container)

    def to_record(self) -> dict:
        """Snapshot of the persisted record layout."""
        return self._state.to_record()
