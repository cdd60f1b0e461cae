"""Keyed storage backends for session highlight state.

Each session (e.g. one exam attempt) persists a single JSON record under
``"{prefix}-{session_key}"``. Backends only need load/save/delete, so the
same store works over process memory, JSON files, or a NiceGUI storage
mapping (``app.storage.user``).
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol
from urllib.parse import quote, unquote

if TYPE_CHECKING:
    from collections.abc import Iterator, MutableMapping

    from passagemark.config import Settings

logger = logging.getLogger(__name__)


def storage_key(prefix: str, session_key: str | None) -> str:
    """Build the storage key for a session.

    Separate session keys never share a record; without a session key all
    callers share the bare prefix.
    """
    if not session_key:
        return prefix
    return f"{prefix}-{session_key}"


class SessionStorage(Protocol):
    """Protocol for keyed persisted stores."""

    def load(self, key: str) -> dict[str, Any] | None:
        """Return the record stored under *key*, or None."""
        ...

    def save(self, key: str, record: dict[str, Any]) -> None:
        """Store *record* under *key*, replacing any previous record."""
        ...

    def delete(self, key: str) -> bool:
        """Delete the record under *key*. Returns True if one existed."""
        ...


class MemoryStorage:
    """Process-local storage. Records round-trip through JSON like a real store."""

    def __init__(self) -> None:
        self._records: dict[str, str] = {}

    def load(self, key: str) -> dict[str, Any] | None:
        raw = self._records.get(key)
        return None if raw is None else json.loads(raw)

    def save(self, key: str, record: dict[str, Any]) -> None:
        self._records[key] = json.dumps(record)

    def delete(self, key: str) -> bool:
        return self._records.pop(key, None) is not None

    def keys(self) -> list[str]:
        return sorted(self._records)


class MappingStorage:
    """Storage over any mutable mapping, e.g. NiceGUI's ``app.storage.user``.

    Records are stored as plain JSON-compatible dicts (deep-copied through
    ``json``) so later in-memory mutation cannot leak into the mapping.
    """

    def __init__(self, mapping: MutableMapping[str, Any]) -> None:
        self._mapping = mapping

    def load(self, key: str) -> dict[str, Any] | None:
        record = self._mapping.get(key)
        if record is None:
            return None
        if isinstance(record, str):
            return json.loads(record)
        return json.loads(json.dumps(record))

    def save(self, key: str, record: dict[str, Any]) -> None:
        self._mapping[key] = json.loads(json.dumps(record))

    def delete(self, key: str) -> bool:
        return self._mapping.pop(key, None) is not None


class FileStorage:
    """One JSON file per key inside *directory*.

    Writes go to a temporary file in the same directory and are moved into
    place with ``os.replace`` so a crash mid-write never leaves a truncated
    record.
    """

    def __init__(self, directory: Path | str) -> None:
        self.directory = Path(directory)

    def path_for(self, key: str) -> Path:
        """Return the file path used for *key*.

        Keys are percent-encoded, so distinct keys never share a file and
        the key can be read back from the name.
        """
        return self.directory / f"{quote(key, safe='')}.json"

    def load(self, key: str) -> dict[str, Any] | None:
        path = self.path_for(key)
        if not path.is_file():
            return None
        return json.loads(path.read_text(encoding="utf-8"))

    def save(self, key: str, record: dict[str, Any]) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.path_for(key)
        fd, tmp_name = tempfile.mkstemp(
            dir=self.directory, prefix=f".{path.stem}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(record, fh, ensure_ascii=False)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def delete(self, key: str) -> bool:
        path = self.path_for(key)
        if not path.is_file():
            return False
        path.unlink()
        return True

    def iter_keys(self) -> Iterator[str]:
        """Yield the keys of stored records."""
        if not self.directory.is_dir():
            return
        for path in sorted(self.directory.glob("*.json")):
            yield unquote(path.stem)


# Shared by every caller in this process, so "memory" survives page reloads
_PROCESS_MEMORY = MemoryStorage()


def get_session_storage(
    settings: Settings | None = None,
    *,
    user_storage: MutableMapping[str, Any] | None = None,
) -> SessionStorage:
    """Build the storage backend selected by ``STORAGE__BACKEND``.

    Args:
        settings: Settings to use; defaults to ``get_settings()``.
        user_storage: Per-browser mapping (NiceGUI ``app.storage.user``),
            required by the ``user`` backend.

    Returns:
        The process-wide ``MemoryStorage``, a ``FileStorage``, or a
        ``MappingStorage`` over *user_storage*.

    Raises:
        ValueError: If the ``user`` backend is selected without a mapping.
    """
    if settings is None:
        from passagemark.config import get_settings

        settings = get_settings()

    match settings.storage.backend:
        case "memory":
            logger.debug("Using in-memory highlight storage")
            return _PROCESS_MEMORY
        case "user":
            if user_storage is None:
                msg = "STORAGE__BACKEND=user needs a per-browser storage mapping"
                raise ValueError(msg)
            logger.debug("Using per-browser highlight storage")
            return MappingStorage(user_storage)
        case _:
            logger.debug(
                "Using file highlight storage at %s", settings.storage.directory
            )
            return FileStorage(settings.storage.directory)
