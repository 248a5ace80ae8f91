"""Per-document mutual exclusion for fix workers.

Two drift records can point at the same markdown file. Their injections
must run one after the other, while injections into different files run
freely. Locks are handed out by path and are never discarded, so every
caller asking for the same file gets the same lock object.
"""

import os
import threading
from pathlib import Path


def lock_key(path: Path | str) -> str:
    """Canonical key: absolute, symlinks resolved, case-folded where the OS is."""
    return os.path.normcase(str(Path(path).resolve()))


class FileLockRegistry:
    def __init__(self) -> None:
        self._locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def lock_for(self, path: Path | str) -> threading.Lock:
        key = lock_key(path)
        with self._registry_lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    def __len__(self) -> int:
        with self._registry_lock:
            return len(self._locks)
