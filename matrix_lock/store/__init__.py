# matrix_lock/store/__init__.py

__all__ = [
    "filesystem",
    "memory",
]
