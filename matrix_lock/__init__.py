# matrix_lock/__init__.py

"""
matrix_lock - ordered mutual exclusion for CI matrix jobs.

The lock is a FIFO queue of participant ids kept in one named document on a
shared, versioned blob store. The head of the queue holds the lock.

    from pathlib import Path

    from matrix_lock import MatrixLock
    from matrix_lock.store.filesystem import LocalArtifactStore

    lock = MatrixLock(LocalArtifactStore(Path("/shared/locks")))
    lock.initialize(["linux", "macos", "windows"])

    with lock.hold("linux", retry_count=6, retry_delay=10):
        ...
"""

from matrix_lock.core.matrix_lock import AcquireResult, MatrixLock, ReleaseResult
from matrix_lock.errors import (
    AcquireTimeout,
    AuthorizationError,
    BlobNotFoundError,
    ConfigError,
    ConflictError,
    DecodeError,
    MatrixLockError,
    StoreError,
    StoreReadError,
    StoreWriteError,
)

__version__ = "0.1.0"

__all__ = [
    "MatrixLock",
    "AcquireResult",
    "ReleaseResult",
    # Errors
    "MatrixLockError",
    "ConfigError",
    "StoreError",
    "StoreReadError",
    "StoreWriteError",
    "BlobNotFoundError",
    "ConflictError",
    "DecodeError",
    "AcquireTimeout",
    "AuthorizationError",
]
