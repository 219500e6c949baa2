"""Pytest configuration and fixtures for matrix lock tests"""
from __future__ import annotations

from typing import List

import pytest

from matrix_lock.core.matrix_lock import MatrixLock
from matrix_lock.errors import StoreReadError
from matrix_lock.store.memory import InMemoryBlobStore


class RecordingSleeper:
    """Stands in for time.sleep and remembers every requested delay."""

    def __init__(self) -> None:
        self.calls: List[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)

    @property
    def total(self) -> float:
        return sum(self.calls)


class FlakyStore:
    """Wraps a store and fails the first `failures` resolve() calls."""

    def __init__(self, inner: InMemoryBlobStore, failures: int = 1) -> None:
        self.inner = inner
        self.failures = failures
        self.resolve_calls = 0

    def put(self, name, content, *, if_match=None):
        return self.inner.put(name, content, if_match=if_match)

    def resolve(self, name):
        self.resolve_calls += 1
        if self.failures > 0:
            self.failures -= 1
            raise StoreReadError("simulated transient outage")
        return self.inner.resolve(name)

    def fetch(self, handle):
        return self.inner.fetch(handle)


@pytest.fixture
def store():
    return InMemoryBlobStore()


@pytest.fixture
def sleeper():
    return RecordingSleeper()


@pytest.fixture
def lock(store, sleeper):
    return MatrixLock(store=store, sleep=sleeper)


@pytest.fixture
def workspace(tmp_path, monkeypatch):
    """A fake CI workspace with a clean lock environment."""
    for var in (
        "MATRIX_LOCK_STORE_DIR",
        "MATRIX_LOCK_NAME",
        "MATRIX_LOCK_RETRY_COUNT",
        "MATRIX_LOCK_RETRY_DELAY",
        "MATRIX_LOCK_BACKOFF",
        "PARTICIPANT_ID",
        "ORDER",
        "LOG_TO_FILE",
        "GITHUB_ACTIONS",
        "INPUT_STORE-DIR",
    ):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("GITHUB_WORKSPACE", str(tmp_path))
    monkeypatch.setenv("LOG_COLOR", "false")
    return tmp_path
