# matrix_lock/config.py

from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from matrix_lock.core.backoff import BACKOFF_CHOICES
from matrix_lock.core.matrix_lock import DEFAULT_LOCK_NAME, DEFAULT_RETRY_COUNT, DEFAULT_RETRY_DELAY_S
from matrix_lock.errors import ConfigError


def env_default(name: str, default: str | None = None) -> str | None:
    """Retrieve env var, returning default if None or empty."""
    val = os.getenv(name)
    return val if val not in (None, "") else default


def env_bool(name: str, default: bool = False) -> bool:
    """
    Parses an environment variable as a boolean.
    Returns the default value if the variable is unset.
    True values: "1", "true", "t", "yes", "y", "on" (case-insensitive).
    """
    val = os.environ.get(name)
    if val is None:
        return default
    return val.strip().lower() in {"1", "true", "t", "yes", "y", "on"}


def env_int(name: str, default: int, *, min_value: int = 1) -> int:
    """
    Parses an environment variable as an integer.
    Returns the default value if the variable is unset.
    """
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        val = int(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be an integer, got={raw!r}") from e
    if val < min_value:
        raise ConfigError(f"{name} must be >= {min_value}, got={val}")
    return val


def env_float(name: str, default: float, *, min_value: float = 0.0) -> float:
    """Same as env_int, for values such as delays in seconds."""
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        val = float(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be a number, got={raw!r}") from e
    if val < min_value:
        raise ConfigError(f"{name} must be >= {min_value}, got={val}")
    return val


@dataclass(frozen=True)
class Paths:
    """Immutable container for the directories a run works with."""
    workspace: Path
    store_dir: Path
    log_dir: Path


def build_paths(workspace: str | None = None, store_dir: str | None = None) -> Paths:
    """
    Resolves run paths.
    - workspace: argument, else GITHUB_WORKSPACE (required)
    - store_dir: argument, else MATRIX_LOCK_STORE_DIR, else <workspace>/.matrix-lock
    Directories are created lazily by the components that write to them.
    """
    raw_workspace = workspace or env_default("GITHUB_WORKSPACE")
    if not raw_workspace:
        raise ConfigError("GITHUB_WORKSPACE environment variable is not set")
    base = Path(raw_workspace).expanduser().resolve()

    raw_store = store_dir or env_default("MATRIX_LOCK_STORE_DIR")
    store = Path(raw_store).expanduser().resolve() if raw_store else base / ".matrix-lock"

    return Paths(workspace=base, store_dir=store, log_dir=store / "logs")


@dataclass(frozen=True)
class LockSettings:
    """Immutable container for lock name and wait/retry settings."""
    name: str
    retry_count: int
    retry_delay: float
    backoff: str


def load_lock_settings() -> LockSettings:
    """
    Loads lock settings from environment variables.

    - MATRIX_LOCK_NAME: document name, scope it per run to allow several locks
    - MATRIX_LOCK_RETRY_COUNT: attempts made by `wait`
    - MATRIX_LOCK_RETRY_DELAY: seconds between attempts
    - MATRIX_LOCK_BACKOFF: "fixed" or "exponential"
    """
    backoff = (env_default("MATRIX_LOCK_BACKOFF", "fixed") or "fixed").strip().lower()
    if backoff not in BACKOFF_CHOICES:
        raise ConfigError(f"MATRIX_LOCK_BACKOFF must be one of {BACKOFF_CHOICES}, got={backoff!r}")

    return LockSettings(
        name=env_default("MATRIX_LOCK_NAME", DEFAULT_LOCK_NAME) or DEFAULT_LOCK_NAME,
        retry_count=env_int("MATRIX_LOCK_RETRY_COUNT", DEFAULT_RETRY_COUNT, min_value=1),
        retry_delay=env_float("MATRIX_LOCK_RETRY_DELAY", DEFAULT_RETRY_DELAY_S, min_value=0.0),
        backoff=backoff,
    )


def _escape_workflow_data(message: str) -> str:
    return message.replace("%", "%25").replace("\r", "%0D").replace("\n", "%0A")


def _workflow_command_sink(message) -> None:
    """
    Mirrors warnings and errors as GitHub Actions workflow commands
    so they show up as annotations on the run.
    """
    record = message.record
    command = "error" if record["level"].no >= 40 else "warning"
    sys.stdout.write(f"::{command}::{_escape_workflow_data(record['message'])}\n")
    sys.stdout.flush()


def configure_logging(paths: Paths | None = None) -> None:
    """Configure loguru sinks: console, workflow annotations on CI, optional file."""
    logger.remove()

    def _console_sink(message: str) -> None:
        sys.stdout.write(message)
        sys.stdout.flush()

    # Console sink
    logger.add(
        _console_sink,
        level=os.getenv("LOG_LEVEL", "INFO"),
        colorize=env_bool("LOG_COLOR", default=True),
        backtrace=False,
        diagnose=False,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
               "<level>{level}</level> | "
               "<level>{message}</level>",
    )

    if env_bool("GITHUB_ACTIONS"):
        logger.add(_workflow_command_sink, level="WARNING", format="{message}")

    # File sink
    if paths is not None and env_bool("LOG_TO_FILE"):
        paths.log_dir.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(paths.log_dir / "matrix-lock.log"),
            rotation="10 MB",
            retention="7 days",
            level="DEBUG",
            backtrace=False,
            diagnose=False,
            format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {name}:{function}:{line} | {message}",
        )
