# matrix_lock/store/filesystem.py

from __future__ import annotations

import contextlib
import os
import shutil
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional

from loguru import logger

from matrix_lock.errors import BlobNotFoundError, ConflictError, StoreReadError, StoreWriteError

try:
    import fcntl
except ImportError:  # pragma: no cover - non-POSIX only
    fcntl = None

# File name used for the lock content inside every stored version
LOCK_FILE_NAME = "matrix-lock-17c3b450-53fd-4b8d-8df8-6b5af88022dc.lock"
LATEST_POINTER = "LATEST"

_HANDLE_SEP = "/"


def validate_name(name: str) -> str:
    if not name or name in {".", ".."} or "/" in name or "\\" in name or _HANDLE_SEP in name:
        raise ValueError(f"Invalid blob name: {name!r}")
    return name


def _new_version_id() -> str:
    # Time-ordered and unique across concurrent writers
    return f"{time.time_ns():020d}-{uuid.uuid4().hex[:8]}"


def _atomic_write(path: Path, payload: bytes) -> None:
    """Write to a `.part` file first, then rename over the target."""
    temp_path = path.with_name(f"{path.name}.{uuid.uuid4().hex[:8]}.part")
    try:
        with open(temp_path, "wb") as f:
            f.write(payload)
            f.flush()
            os.fsync(f.fileno())
        os.replace(temp_path, path)
    except OSError:
        with contextlib.suppress(OSError):
            temp_path.unlink()
        raise


@dataclass(frozen=True)
class LocalArtifactStore:
    """
    Versioned blob store in a shared directory.

    Layout:
    - <root>/<name>/<version>/<LOCK_FILE_NAME>  content of one version
    - <root>/<name>/LATEST                      version currently resolved for <name>

    Handles have the form "<name>/<version>". Versions are never rewritten,
    only the LATEST pointer moves.
    """
    root: Path

    def _blob_dir(self, name: str) -> Path:
        return self.root / validate_name(name)

    @contextmanager
    def _exclusive(self, blob_dir: Path) -> Iterator[None]:
        """Serialize pointer updates between processes sharing the directory."""
        if fcntl is None:
            yield
            return

        fd = os.open(str(blob_dir / ".lock"), os.O_CREAT | os.O_RDWR, 0o600)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX)
            yield
        finally:
            with contextlib.suppress(OSError):
                fcntl.flock(fd, fcntl.LOCK_UN)
            os.close(fd)

    def _read_pointer(self, blob_dir: Path) -> Optional[str]:
        try:
            version = (blob_dir / LATEST_POINTER).read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        return version or None

    def put(self, name: str, content: bytes, *, if_match: str | None = None) -> str:
        blob_dir = self._blob_dir(name)
        version = _new_version_id()
        handle = f"{name}{_HANDLE_SEP}{version}"

        version_dir = blob_dir / version
        try:
            blob_dir.mkdir(parents=True, exist_ok=True)
            version_dir.mkdir()
            _atomic_write(version_dir / LOCK_FILE_NAME, content)

            with self._exclusive(blob_dir):
                if if_match is not None:
                    current = self._read_pointer(blob_dir)
                    current_handle = f"{name}{_HANDLE_SEP}{current}" if current else None
                    if current_handle != if_match:
                        raise ConflictError(name, if_match, current_handle)
                _atomic_write(blob_dir / LATEST_POINTER, version.encode("utf-8"))
        except ConflictError:
            # The rejected version was never published
            shutil.rmtree(version_dir, ignore_errors=True)
            raise
        except OSError as e:
            raise StoreWriteError(f"Failed to store '{name}' under {self.root}: {e}") from e

        logger.debug(f"Stored {len(content)} bytes as {handle}")
        return handle

    def resolve(self, name: str) -> str:
        blob_dir = self._blob_dir(name)
        try:
            version = self._read_pointer(blob_dir)
        except OSError as e:
            raise StoreReadError(f"Failed to resolve '{name}' under {self.root}: {e}") from e

        if version is None:
            raise BlobNotFoundError(f"No version found for '{name}' under {self.root}")
        return f"{name}{_HANDLE_SEP}{version}"

    def fetch(self, handle: str) -> bytes:
        name, sep, version = handle.partition(_HANDLE_SEP)
        if not sep or not version or version in {".", ".."} or _HANDLE_SEP in version:
            raise BlobNotFoundError(f"Malformed handle: {handle!r}")

        path = self._blob_dir(name) / version / LOCK_FILE_NAME
        try:
            return path.read_bytes()
        except FileNotFoundError as e:
            raise BlobNotFoundError(f"Version {handle} is no longer available") from e
        except OSError as e:
            raise StoreReadError(f"Failed to read {handle}: {e}") from e
