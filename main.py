# main.py

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, replace
from pathlib import Path
from typing import NoReturn, Optional

import click
from dotenv import load_dotenv
from loguru import logger

# Import internal project components
from matrix_lock.config import build_paths, configure_logging, env_default, load_lock_settings
from matrix_lock.core.backoff import BACKOFF_CHOICES, make_backoff
from matrix_lock.core.codec import parse_order
from matrix_lock.core.matrix_lock import DEFAULT_LOCK_NAME, MatrixLock
from matrix_lock.errors import ConfigError, MatrixLockError
from matrix_lock.store.filesystem import LocalArtifactStore, validate_name

# --- 1. Environment Setup ---
# Load .env from the same folder as main.py for local development
ENV_PATH = Path(__file__).resolve().parent / ".env"

# Allow system environment variables (CI runner) to override .env
load_dotenv(dotenv_path=ENV_PATH, override=False)


STEPS = ("init", "wait", "continue")


# --- 2. Helper Functions ---

def action_input(name: str, *, required: bool = False) -> str:
    """
    Read a GitHub Actions input (INPUT_<NAME>, spaces become underscores).
    Returns "" for a missing optional input.
    """
    val = os.environ.get(f"INPUT_{name.replace(' ', '_').upper()}", "").strip()
    if required and not val:
        raise ConfigError(f"Input required and not supplied: {name}")
    return val


def _parse_number(name: str, raw: str, cast, *, min_value):
    try:
        val = cast(raw)
    except ValueError as e:
        raise ConfigError(f"Input '{name}' must be a number, got={raw!r}") from e
    if val < min_value:
        raise ConfigError(f"Input '{name}' must be >= {min_value}, got={val}")
    return val


def fail(error: BaseException) -> NoReturn:
    """Report an unrecoverable error and terminate with a non-zero exit code."""
    if isinstance(error, ConfigError):
        logger.error(str(error))
        sys.exit(2)
    if isinstance(error, MatrixLockError):
        logger.error(str(error))
        sys.exit(1)
    logger.exception(f"Unexpected failure: {error}")
    sys.exit(1)


# --- 3. Dependency Injection Builders ---

@dataclass(frozen=True)
class RunOptions:
    workspace: Optional[str]
    store_dir: Optional[str]
    name: Optional[str]


def build_lock(options: RunOptions) -> MatrixLock:
    """Assemble the lock over the shared artifact directory."""
    paths = build_paths(options.workspace, options.store_dir)
    configure_logging(paths)

    name = options.name or load_lock_settings().name
    try:
        validate_name(name)
    except ValueError as e:
        raise ConfigError(f"Lock name must not be empty or contain path separators, got={name!r}") from e
    logger.debug(f"Lock '{name}' stored under {paths.store_dir}")

    return MatrixLock(store=LocalArtifactStore(paths.store_dir), name=name)


def run_init(lock: MatrixLock, order: str) -> None:
    lock.initialize(parse_order(order))


def run_wait(lock: MatrixLock, participant_id: str, retry_count: int, retry_delay: float, backoff: str) -> None:
    lock.acquire(
        participant_id,
        retry_count,
        retry_delay,
        backoff=make_backoff(backoff, retry_delay),
    )
    logger.info("Lock is ready")


def run_continue(lock: MatrixLock, participant_id: str | None) -> None:
    lock.release(participant_id or None)


# --- 4. Main CLI Commands ---

# Configure context to allow wider help text formatting
CONTEXT_SETTINGS = dict(help_option_names=['-h', '--help'], max_content_width=120)


@click.group(context_settings=CONTEXT_SETTINGS)
@click.option("--workspace", default=None,
              help="Base working directory. Defaults to $GITHUB_WORKSPACE.")
@click.option("--store-dir", "store_dir", default=None,
              help="Shared artifact directory. Defaults to $MATRIX_LOCK_STORE_DIR or <workspace>/.matrix-lock.")
@click.option("--name", default=lambda: env_default("MATRIX_LOCK_NAME", DEFAULT_LOCK_NAME), show_default=True,
              help="Lock document name. Use one name per run to keep locks apart.")
@click.pass_context
def cli(ctx: click.Context, workspace: str | None, store_dir: str | None, name: str | None) -> None:
    """
    MATRIX LOCK

    Runs the jobs of a CI matrix one at a time, in a fixed order, using a
    shared artifact store as the only channel between them.

    \b
    STEPS:
    - init:     write the queue (once, before the matrix starts)
    - wait:     poll until this job is at the head of the queue
    - continue: hand the lock to the next job

    \b
    USAGE EXAMPLES:
    1. Set up the queue:
       $ python main.py init --order linux,macos,windows

    2. In each matrix job:
       $ python main.py wait --id linux --retry-count 6 --retry-delay 10
       $ ./run-protected-work.sh
       $ python main.py continue --id linux

    3. As a GitHub Action (inputs read from INPUT_* variables):
       $ INPUT_STEP=wait INPUT_ID=linux python main.py step
    """
    # Console logging until the run paths are known
    configure_logging()
    ctx.obj = RunOptions(workspace=workspace, store_dir=store_dir, name=name)


@cli.command("init", help="Create the lock queue with the given order.")
@click.option("--order", default=lambda: env_default("ORDER"), required=True,
              help="Comma-separated participant ids; the first one holds the lock.")
@click.pass_obj
def init_cmd(options: RunOptions, order: str) -> None:
    try:
        run_init(build_lock(options), order)
    except Exception as error:
        fail(error)


@cli.command("wait", help="Block until this participant holds the lock.")
@click.option("--id", "participant_id", default=lambda: env_default("PARTICIPANT_ID"), required=True,
              help="This participant's id.")
@click.option("--retry-count", type=click.IntRange(min=1),
              default=lambda: env_default("MATRIX_LOCK_RETRY_COUNT", "6"), show_default="6",
              help="Number of attempts before giving up.")
@click.option("--retry-delay", type=click.FloatRange(min=0),
              default=lambda: env_default("MATRIX_LOCK_RETRY_DELAY", "10"), show_default="10",
              help="Seconds between attempts.")
@click.option("--backoff", type=click.Choice(BACKOFF_CHOICES, case_sensitive=False),
              default=lambda: env_default("MATRIX_LOCK_BACKOFF", "fixed"), show_default="fixed",
              help="Delay strategy between attempts.")
@click.pass_obj
def wait_cmd(options: RunOptions, participant_id: str, retry_count: int, retry_delay: float, backoff: str) -> None:
    try:
        run_wait(build_lock(options), participant_id, retry_count, retry_delay, backoff)
    except Exception as error:
        fail(error)


@cli.command("continue", help="Release the lock and pass it to the next participant.")
@click.option("--id", "participant_id", default=lambda: env_default("PARTICIPANT_ID"),
              help="If given, refuse to release unless this participant holds the lock.")
@click.pass_obj
def continue_cmd(options: RunOptions, participant_id: str | None) -> None:
    try:
        run_continue(build_lock(options), participant_id)
    except Exception as error:
        fail(error)


@cli.command("status", help="Show the current holder and the waiting participants.")
@click.pass_obj
def status_cmd(options: RunOptions) -> None:
    try:
        queue = build_lock(options).peek()
    except Exception as error:
        fail(error)

    if not queue:
        logger.info("Lock queue is empty")
        return

    logger.info(f"Current lock holder: {queue[0]}")
    logger.info(f"Waiting: {', '.join(queue[1:]) or '-'}")


@cli.command("step", help="GitHub Action entry point: run the step named by INPUT_STEP.")
@click.option("--step", "step_name", default=None,
              help="Step to run (init, wait, continue). Defaults to the 'step' input.")
@click.pass_obj
def step_cmd(options: RunOptions, step_name: str | None) -> None:
    """
    Reads the action inputs `step`, `store-dir`, `order`, `id`, `retry-count`
    and `retry-delay` from the environment, as the runner passes them.

    Matrix jobs run on separate runners with separate workspaces, so the
    per-workspace store default is refused: every job must point at the
    same shared directory.
    """
    try:
        step = (step_name or action_input("step", required=True)).strip().lower()
        if step not in STEPS:
            raise ConfigError(f"Unknown step: {step}")

        store_dir = options.store_dir or action_input("store-dir") or env_default("MATRIX_LOCK_STORE_DIR")
        if not store_dir:
            raise ConfigError(
                "Input required and not supplied: store-dir "
                "(a directory shared by every runner in the matrix, or MATRIX_LOCK_STORE_DIR)"
            )

        lock = build_lock(replace(options, store_dir=store_dir))

        if step == "init":
            run_init(lock, action_input("order", required=True))

        elif step == "wait":
            settings = load_lock_settings()
            participant_id = action_input("id", required=True)
            raw_count = action_input("retry-count")
            raw_delay = action_input("retry-delay")
            retry_count = _parse_number("retry-count", raw_count, int, min_value=1) if raw_count else settings.retry_count
            retry_delay = _parse_number("retry-delay", raw_delay, float, min_value=0) if raw_delay else settings.retry_delay
            run_wait(lock, participant_id, retry_count, retry_delay, settings.backoff)

        else:
            run_continue(lock, action_input("id"))

    except Exception as error:
        fail(error)


if __name__ == "__main__":
    cli()
