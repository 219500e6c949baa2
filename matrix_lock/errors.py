# matrix_lock/errors.py

from __future__ import annotations


class MatrixLockError(Exception):
    """Base class for every error raised by matrix_lock."""


class ConfigError(MatrixLockError, ValueError):
    """A required input or environment value is missing or invalid."""


class StoreError(MatrixLockError):
    """The blob store could not complete a request."""


class StoreReadError(StoreError):
    pass


class BlobNotFoundError(StoreReadError):
    """No current version exists for a name, or a version has expired."""


class StoreWriteError(StoreError):
    pass


class ConflictError(StoreWriteError):
    """A conditional put lost against a newer version of the same name."""

    def __init__(self, name: str, expected: str | None, actual: str | None):
        self.name = name
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Conditional write to '{name}' rejected: expected version {expected!r}, found {actual!r}"
        )


class DecodeError(MatrixLockError, ValueError):
    """Persisted lock content is not valid text."""


class AcquireTimeout(MatrixLockError, TimeoutError):
    def __init__(self, participant_id: str, attempts: int):
        self.participant_id = participant_id
        self.attempts = attempts
        super().__init__(
            f"Max retries ({attempts}) reached. Failed to acquire lock for: {participant_id}"
        )


class AuthorizationError(MatrixLockError):
    """Release was requested by a participant that does not hold the lock."""

    def __init__(self, participant_id: str, holder: str | None):
        self.participant_id = participant_id
        self.holder = holder
        super().__init__(
            f"Participant '{participant_id}' cannot release the lock held by '{holder}'"
        )
