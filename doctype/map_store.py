"""Anchor Map Store - the single owner of ``doctype-map.json``.

Every read and write of the map goes through one ``AnchorMapStore``. The
in-memory entries are guarded by a re-entrant lock; ``save()`` takes a
second, dedicated lock so concurrent fix workers flush one at a time. That
save lock is unrelated to the per-document locks held by the orchestrator.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import replace
from pathlib import Path
from typing import Any, Optional

from doctype.exceptions import DuplicateIdError, MapLoadError, NotFoundError
from doctype.injector import atomic_write_text
from doctype.models import MAP_VERSION, MapEntry, SymbolReference, now_millis

logger = logging.getLogger("doctype.map_store")

DEFAULT_MAP_FILE = "doctype-map.json"

_UPDATABLE_FIELDS = frozenset({
    "code_ref",
    "code_signature_hash",
    "code_signature_text",
    "doc_file_path",
    "last_updated",
})


class AnchorMapStore:
    """Persistent table linking anchor ids to code symbols and signature hashes.

    Args:
        map_path: Location of the JSON map file.
    """

    def __init__(self, map_path: Path | str):
        self.map_path = Path(map_path)
        self.version = MAP_VERSION
        self._entries: list[MapEntry] = []
        self._lock = threading.RLock()
        self._save_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    @classmethod
    def open(cls, map_path: Path | str) -> "AnchorMapStore":
        """Create a store and load it from disk in one step."""
        store = cls(map_path)
        store.load()
        return store

    def load(self) -> list[MapEntry]:
        """Load the map from disk, replacing the in-memory snapshot.

        Raises:
            MapLoadError: if the file is missing, not JSON, or malformed.
        """
        if not self.map_path.exists():
            raise MapLoadError(f"Map file not found: {self.map_path}", path=str(self.map_path))
        try:
            data = json.loads(self.map_path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise MapLoadError(f"Could not read map file {self.map_path}: {e}", path=str(self.map_path))

        if not isinstance(data, dict) or not isinstance(data.get("entries"), list):
            raise MapLoadError(
                f"Invalid map file {self.map_path}: expected an object with an 'entries' list",
                path=str(self.map_path),
            )

        entries: list[MapEntry] = []
        seen: set[str] = set()
        for idx, raw in enumerate(data["entries"]):
            try:
                entry = MapEntry.from_dict(raw)
            except (KeyError, TypeError, ValueError) as e:
                raise MapLoadError(
                    f"Invalid entry #{idx} in {self.map_path}: {e}", path=str(self.map_path)
                )
            if entry.id in seen:
                raise MapLoadError(
                    f"Duplicate entry id {entry.id} in {self.map_path}", path=str(self.map_path)
                )
            seen.add(entry.id)
            entries.append(entry)

        with self._lock:
            self.version = str(data.get("version") or MAP_VERSION)
            self._entries = entries
        logger.debug("Loaded %d map entries from %s", len(entries), self.map_path)
        return self.entries()

    def create(self) -> None:
        """Start an empty map in memory (the caller decides when to save)."""
        with self._lock:
            self.version = MAP_VERSION
            self._entries = []

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def entries(self) -> list[MapEntry]:
        """Snapshot of all entries in insertion order."""
        with self._lock:
            return list(self._entries)

    def entry_count(self) -> int:
        with self._lock:
            return len(self._entries)

    def get_entry(self, entry_id: str) -> Optional[MapEntry]:
        with self._lock:
            return self._find(entry_id)

    def find_by_code_ref(self, code_ref: SymbolReference) -> list[MapEntry]:
        with self._lock:
            return [e for e in self._entries if e.code_ref == code_ref]

    def entries_for_doc(self, doc_file_path: str) -> list[MapEntry]:
        with self._lock:
            return [e for e in self._entries if e.doc_file_path == doc_file_path]

    def has_drift(self, entry_id: str, current_hash: str) -> bool:
        """True iff the entry exists and its stored hash differs.

        An unknown id is "undocumented", not drifted, so this returns False.
        """
        with self._lock:
            entry = self._find(entry_id)
            if entry is None:
                return False
            return entry.code_signature_hash != current_hash

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add_entry(self, entry: MapEntry) -> None:
        with self._lock:
            if self._find(entry.id) is not None:
                raise DuplicateIdError(entry.id)
            self._entries.append(entry)

    def update_entry(self, entry_id: str, **fields: Any) -> MapEntry:
        """Merge *fields* into an entry and stamp ``last_updated``.

        Raises:
            NotFoundError: if no entry has *entry_id*.
            ValueError: if a field name is not updatable.
        """
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update map entry fields: {sorted(unknown)}")
        fields.setdefault("last_updated", now_millis())

        with self._lock:
            for idx, entry in enumerate(self._entries):
                if entry.id == entry_id:
                    updated = replace(entry, **fields)
                    self._entries[idx] = updated
                    return updated
        raise NotFoundError(entry_id)

    def remove_entry(self, entry_id: str) -> bool:
        with self._lock:
            before = len(self._entries)
            self._entries = [e for e in self._entries if e.id != entry_id]
            return len(self._entries) != before

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        with self._lock:
            return {
                "version": self.version,
                "entries": [e.to_dict() for e in self._entries],
            }

    def save(self) -> None:
        """Rewrite the whole map file.

        Serialized across threads. The snapshot is taken while holding the
        save lock so an older snapshot can never land after a newer one.
        """
        with self._save_lock:
            payload = json.dumps(self.to_dict(), indent=2, ensure_ascii=False) + "\n"
            atomic_write_text(self.map_path, payload)
        logger.debug("Saved map to %s", self.map_path)

    # ------------------------------------------------------------------
    # internal
    # ------------------------------------------------------------------

    def _find(self, entry_id: str) -> Optional[MapEntry]:
        for entry in self._entries:
            if entry.id == entry_id:
                return entry
        return None
