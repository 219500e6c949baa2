# matrix_lock/core/matrix_lock.py

from __future__ import annotations

import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Iterator, List, Optional, Sequence, Tuple

from loguru import logger

from matrix_lock.core.backoff import FixedBackoff
from matrix_lock.core.codec import CommaQueueCodec
from matrix_lock.errors import AcquireTimeout, AuthorizationError, StoreError

if TYPE_CHECKING:
    # Imported only for type hints.
    from matrix_lock.ports.backoff import Backoff
    from matrix_lock.ports.codec import QueueCodec
    from matrix_lock.ports.store import BlobStore

DEFAULT_LOCK_NAME = "matrix-lock"
DEFAULT_RETRY_COUNT = 6
DEFAULT_RETRY_DELAY_S = 10.0


@dataclass(frozen=True)
class AcquireResult:
    participant_id: str
    attempts: int
    waited_s: float


@dataclass(frozen=True)
class ReleaseResult:
    # None only when the document was already empty
    released: Optional[str]
    next_holder: Optional[str]
    # Handle of the version written back, None when nothing was written
    handle: Optional[str]

    @property
    def drained(self) -> bool:
        return self.next_holder is None


@dataclass(frozen=True)
class MatrixLock:
    """
    FIFO ticket lock kept in a single named document on a shared blob store.

    The document is the ordered participant queue; its head holds the lock.
    - initialize() writes the queue
    - acquire() polls until this participant is the head
    - release() pops the head and writes the rest back

    The store offers no notification, so acquire() polls with a bounded
    number of attempts. Only the current head may call release().
    """
    store: BlobStore
    name: str = DEFAULT_LOCK_NAME
    codec: QueueCodec = field(default_factory=CommaQueueCodec)

    # Injected so callers and tests can avoid real suspension
    sleep: Callable[[float], None] = time.sleep

    def _read(self) -> Tuple[str, List[str]]:
        handle = self.store.resolve(self.name)
        content = self.store.fetch(handle)
        return handle, self.codec.decode(content)

    def initialize(self, order: Sequence[str]) -> str:
        """
        Write `order` as a fresh queue and return the new handle.
        Calling it twice overwrites the previous queue.
        """
        order = list(order)
        if not order:
            raise ValueError("Cannot initialize a lock with an empty order")

        logger.info(f"Initializing matrix lock '{self.name}' with order: {','.join(order)}")
        handle = self.store.put(self.name, self.codec.encode(order))
        logger.success(f"✓ Matrix lock initialized successfully (ID: {handle})")
        return handle

    def peek(self) -> List[str]:
        """Current queue, head first. Store errors propagate."""
        _, queue = self._read()
        return queue

    def acquire(
            self,
            participant_id: str,
            retry_count: int = DEFAULT_RETRY_COUNT,
            retry_delay: float = DEFAULT_RETRY_DELAY_S,
            *,
            backoff: Backoff | None = None,
    ) -> AcquireResult:
        """
        Poll the queue until `participant_id` is at its head.

        Store failures count as a missed attempt. Raises AcquireTimeout once
        `retry_count` attempts have passed without a match.
        """
        if retry_count < 1:
            raise ValueError(f"retry_count must be >= 1, got={retry_count}")

        strategy = backoff or FixedBackoff(retry_delay)
        waited = 0.0

        logger.info("Waiting for lock...")

        for attempt in range(1, retry_count + 1):
            logger.info(f"Attempt {attempt}/{retry_count}")

            try:
                _, queue = self._read()
            except StoreError as e:
                logger.warning(f"Failed to read lock on attempt {attempt}: {e}")
            else:
                holder = queue[0] if queue else None
                logger.info(f"Current lock holder: {holder}")
                logger.info(f"Waiting for: {participant_id}")

                # Head equality only; a position further back must keep waiting
                if holder == participant_id:
                    logger.success(f"✓ Lock acquired for: {participant_id}")
                    return AcquireResult(participant_id, attempt, waited)

            if attempt < retry_count:
                delay = strategy.delay(attempt)
                logger.info(f"Waiting {delay:g} seconds before next attempt...")
                self.sleep(delay)
                waited += delay

        raise AcquireTimeout(participant_id, retry_count)

    def release(self, participant_id: str | None = None) -> ReleaseResult:
        """
        Pop the head of the queue and hand the lock to the next participant.

        Not retried: the caller already holds the lock, so a failure here is
        reported instead of masked. When `participant_id` is given it must be
        the current head, otherwise AuthorizationError is raised.
        """
        logger.info("Releasing lock...")

        handle, queue = self._read()

        if not queue:
            logger.warning(f"Lock '{self.name}' is empty; nothing to release")
            return ReleaseResult(released=None, next_holder=None, handle=None)

        released, remaining = queue[0], queue[1:]

        if participant_id is not None and participant_id != released:
            raise AuthorizationError(participant_id, released)

        logger.info(f"Released lock for: {released}")

        if not remaining:
            # The last version is left in place; nobody is waiting on it
            logger.success("✓ All jobs completed, lock released")
            return ReleaseResult(released=released, next_holder=None, handle=None)

        new_handle = self.store.put(self.name, self.codec.encode(remaining), if_match=handle)
        logger.info(f"Next in queue: {remaining[0]}")
        return ReleaseResult(released=released, next_holder=remaining[0], handle=new_handle)

    @contextmanager
    def hold(
            self,
            participant_id: str,
            retry_count: int = DEFAULT_RETRY_COUNT,
            retry_delay: float = DEFAULT_RETRY_DELAY_S,
            *,
            backoff: Backoff | None = None,
    ) -> Iterator[AcquireResult]:
        """
        Acquire the lock for the duration of a `with` block, releasing it afterwards.
        """
        result = self.acquire(participant_id, retry_count, retry_delay, backoff=backoff)
        body_failed = False
        try:
            yield result
        except BaseException:
            body_failed = True
            raise
        finally:
            try:
                self.release(participant_id)
            except Exception as e:
                if not body_failed:
                    raise
                # The exception raised by the block takes precedence
                logger.warning(f"Failed to release lock for '{participant_id}': {e}")
