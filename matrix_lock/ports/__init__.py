# matrix_lock/ports/__init__

__all__ = [
    "store",
    "codec",
    "backoff",
]
