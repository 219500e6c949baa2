# matrix_lock/store/memory.py

from __future__ import annotations

import itertools
import threading
from typing import Dict, List

from matrix_lock.errors import BlobNotFoundError, ConflictError


class InMemoryBlobStore:
    """
    Process-local BlobStore keeping every version in memory.

    Handles are "<name>@<n>" with n increasing per write. Useful for tests
    and for embedding the lock where participants share one process.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counter = itertools.count(1)
        self._versions: Dict[str, bytes] = {}
        self._latest: Dict[str, str] = {}
        self.puts: List[str] = []

    def put(self, name: str, content: bytes, *, if_match: str | None = None) -> str:
        with self._lock:
            current = self._latest.get(name)
            if if_match is not None and current != if_match:
                raise ConflictError(name, if_match, current)

            handle = f"{name}@{next(self._counter)}"
            self._versions[handle] = bytes(content)
            self._latest[name] = handle
            self.puts.append(handle)
            return handle

    def resolve(self, name: str) -> str:
        with self._lock:
            try:
                return self._latest[name]
            except KeyError:
                raise BlobNotFoundError(f"No version found for '{name}'") from None

    def fetch(self, handle: str) -> bytes:
        with self._lock:
            try:
                return self._versions[handle]
            except KeyError:
                raise BlobNotFoundError(f"Version {handle} is no longer available") from None

    def expire(self, handle: str) -> None:
        """Drop a stored version, as a retention policy would."""
        with self._lock:
            self._versions.pop(handle, None)
