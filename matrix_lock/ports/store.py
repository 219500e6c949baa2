# matrix_lock/ports/store.py

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class BlobStore(Protocol):
    """
    Versioned named-blob storage shared by every participant.

    put(name, content, if_match=None)
      - if_match is None  -> unconditional put, last write wins
      - if_match is given -> succeeds only while `if_match` is still the
        handle resolved for `name`, otherwise raises ConflictError
      Returns the handle of the version just written.

    resolve(name)
      Handle of the latest version stored under `name`.
      Raises BlobNotFoundError if nothing was ever written.

    fetch(handle)
      Exact bytes written for `handle`.
      Raises BlobNotFoundError if the version is no longer retrievable.

    Adapters never retry and never interpret content.
    """

    def put(self, name: str, content: bytes, *, if_match: str | None = None) -> str: ...

    def resolve(self, name: str) -> str: ...

    def fetch(self, handle: str) -> bytes: ...
