"""Tests for AnnotationStore: mutations, merge invariant, and persistence."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import pytest

from passagemark.models import HighlightColor
from passagemark.persistence import MemoryStorage
from passagemark.store import AnnotationStore

if TYPE_CHECKING:
    from passagemark.models import Annotation


class CountingStorage(MemoryStorage):
    """MemoryStorage that records how often it was written."""

    def __init__(self) -> None:
        super().__init__()
        self.saves = 0

    def save(self, key: str, record: dict[str, Any]) -> None:
        self.saves += 1
        super().save(key, record)


class FlakyStorage(MemoryStorage):
    """MemoryStorage whose writes fail while ``broken`` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.broken = True

    def save(self, key: str, record: dict[str, Any]) -> None:
        if self.broken:
            msg = "quota exceeded"
            raise OSError(msg)
        super().save(key, record)


class UnreadableStorage(MemoryStorage):
    """MemoryStorage whose reads fail while ``unreadable`` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.unreadable = False

    def load(self, key: str) -> dict[str, Any] | None:
        if self.unreadable:
            msg = "storage unavailable"
            raise OSError(msg)
        return super().load(key)


def _bounds(annotations: list[Annotation]) -> list[tuple[int, int, str]]:
    return [(a.start_offset, a.end_offset, a.color.value) for a in annotations]


class TestAdd:
    """add() merges, sorts, and persists."""

    def test_returns_stored_annotation(self, store: AnnotationStore) -> None:
        added = store.add("passage", 4, 9, "yellow", "quick")
        assert added is not None
        assert added.text == "quick"
        assert store.list("passage") == [added]

    def test_merges_same_colour(self, store: AnnotationStore) -> None:
        first = store.add("passage", 5, 10, "yellow", "a" * 5)
        second = store.add("passage", 8, 15, "yellow", "b" * 7)
        assert first is not None and second is not None
        assert _bounds(store.list("passage")) == [(5, 15, "yellow")]
        assert second.id == first.id

    def test_other_colour_kept_separately(self, store: AnnotationStore) -> None:
        store.add("passage", 5, 10, "yellow", "")
        store.add("passage", 8, 15, "green", "")
        assert _bounds(store.list("passage")) == [(5, 10, "yellow"), (8, 15, "green")]

    def test_containers_are_independent(self, store: AnnotationStore) -> None:
        store.add("passage", 0, 4, "yellow", "")
        store.add("questions", 2, 6, "yellow", "")
        assert _bounds(store.list("passage")) == [(0, 4, "yellow")]
        assert _bounds(store.list("questions")) == [(2, 6, "yellow")]
        assert store.container_ids() == ["passage", "questions"]

    def test_sets_active_colour(self, store: AnnotationStore) -> None:
        store.add("passage", 0, 4, HighlightColor.GREEN, "")
        assert store.active_color is HighlightColor.GREEN

    @pytest.mark.parametrize(("start", "end"), [(5, 5), (6, 5), (-1, 3)])
    def test_rejects_empty_range(self, start: int, end: int) -> None:
        storage = CountingStorage()
        store = AnnotationStore("attempt-42", storage)
        assert store.add("passage", start, end, "yellow", "") is None
        assert store.list("passage") == []
        assert storage.saves == 0

    def test_rejects_unknown_colour(self, store: AnnotationStore) -> None:
        with pytest.raises(ValueError, match="Unsupported highlight color"):
            store.add("passage", 0, 4, "red", "")
        assert store.list("passage") == []

    def test_list_stays_sorted_and_minimal(self, store: AnnotationStore) -> None:
        ops = [
            (20, 25, "yellow"),
            (3, 6, "green"),
            (0, 4, "yellow"),
            (24, 30, "yellow"),
            (5, 8, "green"),
            (10, 12, "yellow"),
            (12, 14, "yellow"),
        ]
        for start, end, color in ops:
            store.add("passage", start, end, color, "")
            annotations = store.list("passage")
            starts = [a.start_offset for a in annotations]
            assert starts == sorted(starts)
            for color_name in ("yellow", "green"):
                same = [a for a in annotations if a.color == color_name]
                for current, following in zip(same, same[1:], strict=False):
                    assert following.start_offset > current.end_offset

    def test_list_returns_copy(self, store: AnnotationStore) -> None:
        store.add("passage", 0, 4, "yellow", "")
        store.list("passage").clear()
        assert len(store.list("passage")) == 1


class TestRemove:
    """remove() and the clear operations."""

    def test_add_then_remove_leaves_container_empty(
        self, store: AnnotationStore
    ) -> None:
        added = store.add("passage", 0, 4, "yellow", "")
        assert added is not None
        assert store.remove("passage", added.id) is True
        assert store.list("passage") == []
        assert "passage" not in store.to_record()["annotationsByContainer"]

    def test_remove_nonexistent_is_noop(self) -> None:
        storage = CountingStorage()
        store = AnnotationStore("attempt-42", storage)
        store.add("passage", 0, 4, "yellow", "")
        before = store.to_record()
        saves = storage.saves

        assert store.remove("passage", "nonexistent") is False
        assert store.remove("elsewhere", "nonexistent") is False
        assert store.to_record() == before
        assert storage.saves == saves

    def test_remove_keeps_other_annotations(self, store: AnnotationStore) -> None:
        keep = store.add("passage", 0, 4, "yellow", "")
        drop = store.add("passage", 10, 14, "yellow", "")
        assert keep is not None and drop is not None
        store.remove("passage", drop.id)
        assert store.list("passage") == [keep]

    def test_clear_container(self, store: AnnotationStore) -> None:
        store.add("passage", 0, 4, "yellow", "")
        store.add("questions", 0, 4, "green", "")
        store.clear_container("passage")
        assert store.container_ids() == ["questions"]

    def test_clear_all(self, store: AnnotationStore) -> None:
        store.add("passage", 0, 4, "yellow", "")
        store.add("questions", 0, 4, "green", "")
        store.clear_all()
        assert store.container_ids() == []

    def test_get(self, store: AnnotationStore) -> None:
        added = store.add("passage", 0, 4, "yellow", "")
        assert added is not None
        assert store.get("passage", added.id) == added
        assert store.get("passage", "missing") is None


class TestPersistence:
    """Session-scoped persistence through the storage backend."""

    def test_storage_key(self, store: AnnotationStore) -> None:
        assert store.key == "passagemark-highlights-attempt-42"

    def test_missing_session_key_uses_bare_prefix(
        self, storage: MemoryStorage
    ) -> None:
        assert AnnotationStore(None, storage).key == "passagemark-highlights"
        assert AnnotationStore("", storage, key_prefix="p").key == "p"

    def test_persisted_record_layout(
        self, store: AnnotationStore, storage: MemoryStorage
    ) -> None:
        added = store.add("passage", 4, 9, "green", "quick")
        assert added is not None
        assert storage.load(store.key) == {
            "activeColor": "green",
            "annotationsByContainer": {
                "passage": [
                    {
                        "id": added.id,
                        "startOffset": 4,
                        "endOffset": 9,
                        "color": "green",
                        "text": "quick",
                    }
                ]
            },
        }

    def test_sessions_are_isolated(self, storage: MemoryStorage) -> None:
        """attempt-42's highlights reload for attempt-42 only."""
        AnnotationStore("attempt-42", storage).add("passage", 0, 4, "yellow", "The ")

        again = AnnotationStore("attempt-42", storage)
        other = AnnotationStore("attempt-43", storage)
        assert _bounds(again.list("passage")) == [(0, 4, "yellow")]
        assert other.list("passage") == []

    def test_active_colour_persists(self, storage: MemoryStorage) -> None:
        AnnotationStore("attempt-42", storage).set_active_color("green")
        assert AnnotationStore("attempt-42", storage).active_color == "green"

    def test_initial_colour_overrides_persisted(self, storage: MemoryStorage) -> None:
        AnnotationStore("attempt-42", storage).set_active_color("green")
        store = AnnotationStore("attempt-42", storage, initial_color="yellow")
        assert store.active_color is HighlightColor.YELLOW

    def test_default_colour_when_nothing_stored(self, storage: MemoryStorage) -> None:
        store = AnnotationStore("fresh", storage, default_color="green")
        assert store.active_color is HighlightColor.GREEN

    def test_overlapping_stored_entries_are_merged_on_load(
        self, storage: MemoryStorage
    ) -> None:
        first = {"id": "a", "startOffset": 0, "endOffset": 5, "color": "yellow"}
        second = {"id": "b", "startOffset": 3, "endOffset": 8, "color": "yellow"}
        record = {
            "activeColor": "yellow",
            "annotationsByContainer": {"passage": [first, second]},
        }
        storage.save("passagemark-highlights-attempt-42", record)
        store = AnnotationStore("attempt-42", storage)
        assert _bounds(store.list("passage")) == [(0, 8, "yellow")]

    def test_malformed_record_starts_empty(self, storage: MemoryStorage) -> None:
        storage._records["passagemark-highlights-attempt-42"] = "[1, 2, 3]"
        store = AnnotationStore("attempt-42", storage)
        assert store.container_ids() == []

    def test_failed_write_keeps_memory_state(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        storage = FlakyStorage()
        store = AnnotationStore("attempt-42", storage)

        with caplog.at_level(logging.ERROR, logger="passagemark.store"):
            added = store.add("passage", 0, 4, "yellow", "")

        assert added is not None
        assert store.list("passage") == [added]
        assert store.dirty is True
        assert "Failed to persist" in caplog.text

        storage.broken = False
        assert store.flush() is True
        assert store.dirty is False
        assert storage.load(store.key) == store.to_record()

    def test_failed_load_starts_empty(self, caplog: pytest.LogCaptureFixture) -> None:
        class BrokenStorage(MemoryStorage):
            def load(self, key: str) -> dict[str, Any] | None:
                msg = "storage unavailable"
                raise OSError(msg)

        with caplog.at_level(logging.ERROR, logger="passagemark.store"):
            store = AnnotationStore("attempt-42", BrokenStorage())
        assert store.container_ids() == []
        assert "Failed to load" in caplog.text

    def test_failed_load_never_overwrites_stored_record(self) -> None:
        storage = UnreadableStorage()
        AnnotationStore("attempt-42", storage).add("p", 0, 4, "yellow", "The ")
        stored = storage.load("passagemark-highlights-attempt-42")

        storage.unreadable = True
        store = AnnotationStore("attempt-42", storage)
        store.add("p", 10, 12, "green", "ox")

        storage.unreadable = False
        assert storage.load(store.key) == stored
        assert store.dirty is True

        assert store.flush() is True
        assert _bounds(store.list("p")) == [(0, 4, "yellow"), (10, 12, "green")]
        assert storage.load(store.key) == store.to_record()

    def test_failed_load_recovers_on_next_mutation(self) -> None:
        storage = UnreadableStorage()
        AnnotationStore("attempt-42", storage).add("p", 0, 4, "yellow", "The ")

        storage.unreadable = True
        store = AnnotationStore("attempt-42", storage)
        storage.unreadable = False
        store.add("p", 2, 6, "yellow", "e qu")

        assert store.dirty is False
        assert _bounds(store.list("p")) == [(0, 6, "yellow")]
        saved = AnnotationStore("attempt-42", storage)
        assert _bounds(saved.list("p")) == [(0, 6, "yellow")]
