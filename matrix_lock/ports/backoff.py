# matrix_lock/ports/backoff.py

from __future__ import annotations

from typing import Protocol


class Backoff(Protocol):
    def delay(self, attempt: int) -> float:
        """Seconds to wait after the given (1-based) failed attempt."""
        ...
