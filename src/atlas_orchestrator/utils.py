"""Utility functions for Atlas-Orchestrator."""

import logging
import os
import shutil
import subprocess
import threading
import time
from collections.abc import Callable
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, TypeVar

from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn

from .constants import EXECUTOR_TERMINATE_GRACE, EXECUTOR_WAIT_SLICE
from .errors import Cancelled, OrchestratorError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CancelToken:
    """
    Cooperative cancellation signal with an optional deadline.

    The token fires either when cancel() is called (e.g. from a SIGINT
    handler) or when the deadline passes, whichever happens first.
    """

    def __init__(self, timeout: float | None = None):
        """
        Initialize cancellation token.

        Args:
            timeout: Seconds until the deadline expires (None for no deadline)
        """
        self._event = threading.Event()
        self._reason = "operation cancelled"
        self.deadline = time.monotonic() + timeout if timeout is not None else None

    def cancel(self, reason: str = "operation cancelled") -> None:
        """Fire the token."""
        self._reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        """Whether the token fired, including an expired deadline."""
        if self._event.is_set():
            return True
        if self.deadline is not None and time.monotonic() >= self.deadline:
            self._reason = "deadline exceeded"
            return True
        return False

    @property
    def reason(self) -> str:
        """Why the token fired."""
        return self._reason

    def remaining(self) -> float | None:
        """Seconds left until the deadline, or None without a deadline."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def wait(self, interval: float) -> bool:
        """
        Sleep for interval seconds or until the token fires.

        Args:
            interval: Maximum time to wait in seconds

        Returns:
            True if the token fired, False if the interval elapsed
        """
        remaining = self.remaining()
        if remaining is not None and remaining < interval:
            self._event.wait(remaining)
        else:
            self._event.wait(interval)
        return self.cancelled

    def raise_if_cancelled(self) -> None:
        """Raise Cancelled if the token fired."""
        if self.cancelled:
            raise Cancelled(self.reason)


def ensure_dir(path: Path) -> Path:
    """
    Create directory if it doesn't exist.

    Args:
        path: Directory path to create

    Returns:
        The created/existing directory path
    """
    path.mkdir(parents=True, exist_ok=True)
    return path


def expand_path(path: str) -> Path:
    """
    Expand ~ and environment variables in path.

    Args:
        path: Path string to expand

    Returns:
        Expanded Path object
    """
    return Path(os.path.expanduser(os.path.expandvars(path))).resolve()


def run_command(
    cmd: list[str],
    cwd: Path | None = None,
    env: dict[str, str] | None = None,
    check: bool = True,
    cancel: CancelToken | None = None,
) -> subprocess.CompletedProcess:
    """
    Run a command, terminating it when the cancellation token fires.

    Args:
        cmd: Command and arguments as list
        cwd: Working directory for command
        env: Extra environment variables (merged over os.environ)
        check: Whether to raise exception on non-zero exit
        cancel: Cancellation token (None to wait until completion)

    Returns:
        CompletedProcess instance with text stdout/stderr

    Raises:
        subprocess.CalledProcessError: If command fails and check=True
        Cancelled: If the token fired before the command finished
    """
    full_env = {**os.environ, **env} if env else None
    logger.debug("Running %s (cwd=%s)", cmd[:3], cwd)

    with subprocess.Popen(
        cmd,
        cwd=cwd,
        env=full_env,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
    ) as proc:
        while True:
            if cancel is not None and cancel.cancelled:
                _terminate(proc)
                raise Cancelled(cancel.reason)
            try:
                stdout, stderr = proc.communicate(timeout=EXECUTOR_WAIT_SLICE if cancel else None)
                break
            except subprocess.TimeoutExpired:
                continue

    result = subprocess.CompletedProcess(cmd, proc.returncode, stdout, stderr)
    if check and proc.returncode != 0:
        raise subprocess.CalledProcessError(proc.returncode, cmd, output=stdout, stderr=stderr)
    return result


def _terminate(proc: subprocess.Popen) -> None:
    """Terminate a child process, killing it if it ignores SIGTERM."""
    proc.terminate()
    try:
        proc.communicate(timeout=EXECUTOR_TERMINATE_GRACE)
    except subprocess.TimeoutExpired:
        logger.warning("Process %s ignored SIGTERM, killing it", proc.pid)
        proc.kill()
        proc.communicate()


@contextmanager
def progress_spinner(description: str, console: Console) -> Iterator[tuple[Progress, int]]:
    """
    Create a progress spinner context manager.

    Args:
        description: Task description to display
        console: Rich console for output

    Yields:
        Tuple of (progress, task_id)
    """
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task(description, total=None)
        yield progress, task


def safe_rmtree(path: Path) -> None:
    """
    Safely remove a directory tree, preventing symlink attacks.

    Args:
        path: Directory path to remove

    Raises:
        ValueError: If path is a symlink or not a directory
        OSError: If removal fails
    """
    # Refuse symlinks so a planted link cannot redirect the removal
    if path.is_symlink():
        raise ValueError(f"Refusing to remove symlinked directory: {path}")

    try:
        resolved = path.resolve(strict=True)
        if not resolved.is_dir():
            raise ValueError(f"Path is not a directory: {path}")
    except (OSError, RuntimeError) as e:
        raise ValueError(f"Cannot safely resolve path {path}: {e}") from e

    shutil.rmtree(path)


def handle_operation(
    console: Console,
    operation: Callable[[], T],
    error_prefix: str,
    guidance: Callable[[OrchestratorError], str | None] | None = None,
) -> T:
    """
    Execute an operation, reporting orchestration failures with guidance.

    Args:
        console: Rich console for output
        operation: Callable that performs the operation
        error_prefix: Prefix for error messages
        guidance: Optional callable returning rich-formatted guidance for an error

    Returns:
        Result from the operation callable

    Raises:
        OrchestratorError: Re-raised after being reported
    """
    try:
        return operation()
    except Cancelled as e:
        console.print(f"[yellow]Cancelled:[/yellow] {error_prefix}: {e}")
        raise
    except OrchestratorError as e:
        console.print(f"[red]Error:[/red] {error_prefix}: {e}")
        if e.detail:
            console.print(e.detail, markup=False, highlight=False)
        hint = guidance(e) if guidance else None
        if hint:
            console.print(hint)
        raise
