"""Tests for initialize / acquire / release on the queue lock"""
from __future__ import annotations

import pytest

from matrix_lock.core.backoff import ExponentialBackoff
from matrix_lock.core.matrix_lock import DEFAULT_LOCK_NAME, MatrixLock
from matrix_lock.errors import (
    AcquireTimeout,
    AuthorizationError,
    BlobNotFoundError,
    ConflictError,
    DecodeError,
    StoreReadError,
    StoreWriteError,
)

from conftest import FlakyStore


def _stored_queue(store, name=DEFAULT_LOCK_NAME) -> bytes:
    return store.fetch(store.resolve(name))


class TestInitialize:

    def test_writes_order(self, lock, store):
        handle = lock.initialize(["A", "B", "C"])

        assert store.resolve(DEFAULT_LOCK_NAME) == handle
        assert _stored_queue(store) == b"A,B,C"
        assert lock.peek()[0] == "A"

    def test_empty_order_rejected(self, lock, store):
        with pytest.raises(ValueError):
            lock.initialize([])
        assert store.puts == []

    def test_second_initialize_overwrites(self, lock, store):
        lock.initialize(["A", "B"])
        lock.initialize(["C"])
        assert lock.peek() == ["C"]

    def test_write_failure_propagates(self, sleeper):
        class BrokenStore:
            def put(self, name, content, *, if_match=None):
                raise StoreWriteError("disk full")

        lock = MatrixLock(store=BrokenStore(), sleep=sleeper)
        with pytest.raises(StoreWriteError, match="disk full"):
            lock.initialize(["A"])

    def test_custom_name_is_isolated(self, store, sleeper):
        first = MatrixLock(store=store, name="run-1", sleep=sleeper)
        second = MatrixLock(store=store, name="run-2", sleep=sleeper)
        first.initialize(["A", "B"])
        second.initialize(["X"])

        assert first.peek() == ["A", "B"]
        assert second.peek() == ["X"]


class TestAcquire:

    def test_head_acquires_on_first_attempt(self, lock, sleeper):
        lock.initialize(["A", "B", "C"])

        result = lock.acquire("A", retry_count=6, retry_delay=10)

        assert result.participant_id == "A"
        assert result.attempts == 1
        assert result.waited_s == 0
        assert sleeper.calls == []

    def test_waiter_times_out_after_exact_attempts(self, lock, sleeper):
        lock.initialize(["A", "B", "C"])

        with pytest.raises(AcquireTimeout) as exc_info:
            lock.acquire("B", retry_count=3, retry_delay=10)

        assert exc_info.value.participant_id == "B"
        assert exc_info.value.attempts == 3
        # No suspension after the final attempt
        assert sleeper.calls == [10, 10]
        assert sleeper.total == pytest.approx(20)

    def test_timeout_message(self, lock):
        lock.initialize(["A"])
        with pytest.raises(AcquireTimeout, match=r"Max retries \(2\) reached. Failed to acquire lock for: Z"):
            lock.acquire("Z", retry_count=2, retry_delay=0)

    def test_timeout_is_a_timeout_error(self, lock):
        lock.initialize(["A"])
        with pytest.raises(TimeoutError):
            lock.acquire("B", retry_count=1)

    def test_membership_is_not_enough(self, lock, sleeper):
        lock.initialize(["A", "B"])
        with pytest.raises(AcquireTimeout):
            lock.acquire("B", retry_count=2, retry_delay=1)
        assert len(sleeper.calls) == 1

    def test_acquires_once_predecessor_releases(self, store):
        lock_a = MatrixLock(store=store, sleep=lambda s: None)
        lock_a.initialize(["A", "B"])
        calls = []

        def release_on_first_sleep(seconds):
            calls.append(seconds)
            if len(calls) == 1:
                lock_a.release("A")

        lock_b = MatrixLock(store=store, sleep=release_on_first_sleep)
        result = lock_b.acquire("B", retry_count=3, retry_delay=5)

        assert result.attempts == 2
        assert result.waited_s == 5

    def test_transient_store_failure_does_not_abort(self, store, sleeper):
        MatrixLock(store=store).initialize(["A", "B"])
        flaky = FlakyStore(store, failures=1)
        lock = MatrixLock(store=flaky, sleep=sleeper)

        result = lock.acquire("A", retry_count=3, retry_delay=2)

        assert result.attempts == 2
        assert flaky.resolve_calls == 2
        assert sleeper.calls == [2]

    def test_missing_document_is_retried(self, lock, sleeper):
        with pytest.raises(AcquireTimeout):
            lock.acquire("A", retry_count=3, retry_delay=1)
        assert sleeper.calls == [1, 1]

    def test_expired_version_is_retried(self, store, sleeper):
        lock = MatrixLock(store=store, sleep=sleeper)
        handle = lock.initialize(["A"])
        store.expire(handle)

        with pytest.raises(AcquireTimeout):
            lock.acquire("A", retry_count=2, retry_delay=1)

    def test_corrupt_document_is_fatal(self, store, sleeper):
        store.put(DEFAULT_LOCK_NAME, b"\xff\xfe")
        lock = MatrixLock(store=store, sleep=sleeper)

        with pytest.raises(DecodeError):
            lock.acquire("A", retry_count=5, retry_delay=1)
        assert sleeper.calls == []

    def test_empty_document_has_no_holder(self, store, sleeper):
        store.put(DEFAULT_LOCK_NAME, b"")
        lock = MatrixLock(store=store, sleep=sleeper)
        with pytest.raises(AcquireTimeout):
            lock.acquire("A", retry_count=2, retry_delay=0)

    def test_pluggable_backoff(self, lock, sleeper):
        lock.initialize(["A"])
        backoff = ExponentialBackoff(base_s=1, factor=2, max_delay_s=10)

        with pytest.raises(AcquireTimeout):
            lock.acquire("B", retry_count=4, backoff=backoff)
        assert sleeper.calls == [1, 2, 4]

    def test_retry_count_must_be_positive(self, lock):
        with pytest.raises(ValueError):
            lock.acquire("A", retry_count=0)


class TestRelease:

    def test_passes_lock_to_next(self, lock, store):
        lock.initialize(["A", "B", "C"])

        result = lock.release()

        assert result.released == "A"
        assert result.next_holder == "B"
        assert not result.drained
        assert result.handle == store.resolve(DEFAULT_LOCK_NAME)
        assert _stored_queue(store) == b"B,C"

    def test_last_release_drains_without_writing(self, lock, store):
        handle = lock.initialize(["A"])

        result = lock.release()

        assert result.released == "A"
        assert result.drained
        assert result.handle is None
        assert store.puts == [handle]

    def test_full_sequence(self, lock):
        lock.initialize(["A", "B", "C"])
        released = [lock.release().released for _ in range(3)]
        assert released == ["A", "B", "C"]

    def test_missing_document_is_fatal(self, lock):
        with pytest.raises(BlobNotFoundError):
            lock.release()

    def test_read_failure_not_retried(self, store, sleeper):
        MatrixLock(store=store).initialize(["A", "B"])
        flaky = FlakyStore(store, failures=1)

        with pytest.raises(StoreReadError):
            MatrixLock(store=flaky, sleep=sleeper).release()
        assert flaky.resolve_calls == 1
        assert sleeper.calls == []

    def test_holder_check(self, lock, store):
        lock.initialize(["A", "B"])

        with pytest.raises(AuthorizationError) as exc_info:
            lock.release("B")

        assert exc_info.value.holder == "A"
        assert _stored_queue(store) == b"A,B"

    def test_holder_check_passes_for_head(self, lock):
        lock.initialize(["A", "B"])
        assert lock.release("A").next_holder == "B"

    def test_concurrent_write_is_reported(self, store, sleeper):
        MatrixLock(store=store).initialize(["A", "B", "C"])

        class RacingStore(FlakyStore):
            def fetch(self, handle):
                content = self.inner.fetch(handle)
                # Someone re-initializes between our read and our write
                self.inner.put(DEFAULT_LOCK_NAME, b"X,Y")
                return content

        with pytest.raises(ConflictError):
            MatrixLock(store=RacingStore(store, failures=0), sleep=sleeper).release()
        assert _stored_queue(store) == b"X,Y"

    def test_empty_document(self, store):
        store.put(DEFAULT_LOCK_NAME, b"")
        result = MatrixLock(store=store).release()
        assert result.released is None
        assert result.drained


class TestHold:

    def test_releases_after_block(self, lock):
        lock.initialize(["A", "B"])

        with lock.hold("A", retry_count=1) as result:
            assert result.attempts == 1
            assert lock.peek() == ["A", "B"]

        assert lock.peek() == ["B"]

    def test_releases_when_block_fails(self, lock):
        lock.initialize(["A", "B"])

        with pytest.raises(RuntimeError, match="boom"):
            with lock.hold("A", retry_count=1):
                raise RuntimeError("boom")

        assert lock.peek() == ["B"]

    def test_block_error_wins_over_release_error(self, lock, store):
        lock.initialize(["A", "B"])

        with pytest.raises(RuntimeError, match="boom"):
            with lock.hold("A", retry_count=1):
                # Hand the lock elsewhere so the release check fails
                store.put(DEFAULT_LOCK_NAME, b"Z")
                raise RuntimeError("boom")

    def test_release_error_surfaces_after_clean_block(self, lock, store):
        lock.initialize(["A", "B"])

        with pytest.raises(AuthorizationError):
            with lock.hold("A", retry_count=1):
                store.put(DEFAULT_LOCK_NAME, b"Z")

    def test_not_entered_without_lock(self, lock):
        lock.initialize(["A", "B"])
        entered = False

        with pytest.raises(AcquireTimeout):
            with lock.hold("B", retry_count=2, retry_delay=0):
                entered = True

        assert not entered
        assert lock.peek() == ["A", "B"]
