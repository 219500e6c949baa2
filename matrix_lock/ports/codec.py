# matrix_lock/ports/codec.py

from __future__ import annotations

from typing import List, Protocol, Sequence


class QueueCodec(Protocol):
    def encode(self, queue: Sequence[str]) -> bytes: ...

    def decode(self, content: bytes) -> List[str]: ...
