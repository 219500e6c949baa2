# matrix_lock/core/backoff.py

from __future__ import annotations

import random
from dataclasses import dataclass

BACKOFF_CHOICES = ("fixed", "exponential")


@dataclass(frozen=True)
class FixedBackoff:
    """Same delay after every attempt."""
    delay_s: float = 10.0

    def delay(self, attempt: int) -> float:
        return max(0.0, self.delay_s)


@dataclass(frozen=True)
class ExponentialBackoff:
    """
    delay = min(base_s * factor ** (attempt - 1), max_delay_s)
    With jitter the delay is scaled by a random factor in [0.5, 1.5].
    """
    base_s: float = 10.0
    factor: float = 2.0
    max_delay_s: float = 120.0
    jitter: bool = False

    def delay(self, attempt: int) -> float:
        delay = min(self.base_s * (self.factor ** max(0, attempt - 1)), self.max_delay_s)
        if self.jitter:
            delay *= random.uniform(0.5, 1.5)
        return max(0.0, delay)


def make_backoff(kind: str, delay_s: float):
    """Build a backoff strategy by name ("fixed" or "exponential")."""
    kind = (kind or "fixed").strip().lower()
    if kind == "fixed":
        return FixedBackoff(delay_s=delay_s)
    if kind == "exponential":
        return ExponentialBackoff(base_s=delay_s, max_delay_s=max(delay_s, 120.0))
    raise ValueError(f"Unknown backoff strategy: {kind!r} (expected one of {BACKOFF_CHOICES})")
