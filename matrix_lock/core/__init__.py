# matrix_lock/core/__init__.py

__all__ = [
    "backoff",
    "codec",
    "matrix_lock",
]
