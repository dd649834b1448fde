"""Repository mutation lock with interruption-safe release.

`hold` is the only way ghts acquires the lock: it is a context manager, so the
release step runs on normal return, on a raised failure, and when a signal
interrupts a git subprocess half-way.
"""

import logging
import os
import signal
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from types import FrameType
from typing import TypeVar

from .constants import (
    APP_NAME,
    GIT_LOCK_FILES,
    INDEX_LOCK_NAME,
    LOCK_FILE_NAME,
    REBASE_MARKERS,
)
from .errors import LockHeld, RepositoryAccessError
from .git_wrapper import GitRepo

logger = logging.getLogger(APP_NAME)

T = TypeVar("T")

_FORWARDED_SIGNALS = tuple(
    getattr(signal, name) for name in ("SIGTERM", "SIGHUP") if hasattr(signal, name)
)


class OperationInterrupted(KeyboardInterrupt):
    """Raised from a signal handler so SIGTERM/SIGHUP unwind like Ctrl+C."""

    def __init__(self, signum: int):
        super().__init__(f"Received signal {signum}")
        self.signum = signum


@dataclass
class LockToken:
    """Proof of exclusive ownership of a repository for one invocation.

    Attributes:
        lock_path (Path): The tool's lock file inside the git directory.
        git_dir (Path): The repository's git directory.
        pid (int): The owning process.
        acquired_at (float): Unix time of acquisition.
        repo (GitRepo | None): The locked repository; it records which git
            subprocess, if any, an interrupt killed.
        index_lock_preexisting (bool): Whether git's index.lock existed at
            acquisition. If it did, this invocation never removes it.
        interrupted (bool): Set when the guarded operation was interrupted.
    """

    lock_path: Path
    git_dir: Path
    pid: int
    acquired_at: float
    repo: GitRepo | None = None
    index_lock_preexisting: bool = False
    interrupted: bool = False
    released: bool = False

    @property
    def index_lock(self) -> Path:
        return self.git_dir / INDEX_LOCK_NAME

    def reclaim_index_lock(self) -> bool:
        """Removes git's index.lock if this invocation's subprocess left it behind.

        The lock is attributed to this invocation only when the interrupt killed
        a git subprocess that takes index.lock, no index.lock existed when that
        subprocess started, and the lock is not older than the subprocess.
        Interrupts during push/fetch or between subprocesses never remove it.

        Returns:
            bool: True if a lock artifact was removed.
        """
        command = self.repo.interrupted_command if self.repo is not None else None
        if command is None or not command.index_lock_absent:
            return False
        if self.index_lock_preexisting:
            return False
        # pull only writes the index once its rebase phase has started.
        if command.args[0] == "pull" and not any(
            (self.git_dir / marker).exists() for marker in REBASE_MARKERS
        ):
            return False
        try:
            mtime = self.index_lock.stat().st_mtime
        except FileNotFoundError:
            return False
        # Filesystem timestamps can be coarser than time.time(); allow 1s slack.
        if mtime < command.started_at - 1.0:
            logger.warning(
                f"Leaving {self.index_lock}: it predates 'git {command.args[0]}'."
            )
            return False
        try:
            self.index_lock.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.error(f"Could not remove {self.index_lock}: {e}")
            return False
        logger.warning(
            f"Removed {self.index_lock} left by the interrupted 'git {command.args[0]}'."
        )
        return True


def _pid_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    except OSError:
        return False
    return True


def _read_owner(lock_path: Path) -> int | None:
    try:
        return int(lock_path.read_text().strip())
    except (OSError, ValueError):
        return None


def acquire(repo: GitRepo) -> LockToken:
    """Takes the repository mutation lock without waiting.

    Raises:
        LockHeld: If another ghts invocation owns the lock, git's index.lock
                  exists, or a merge/rebase/cherry-pick/bisect is in progress.
        RepositoryAccessError: If the lock file cannot be created or written.
    """
    git_dir = repo.git_dir

    for marker in GIT_LOCK_FILES:
        if (git_dir / marker).exists():
            raise LockHeld(
                f"A git operation is in progress ({marker}). "
                "Finish or abort it before running ghts."
            )

    index_lock = git_dir / INDEX_LOCK_NAME
    if index_lock.exists():
        try:
            age_hours = (time.time() - index_lock.stat().st_mtime) / 3600
        except OSError:
            age_hours = 0.0
        hint = f" It is {age_hours:.1f}h old; if no git process is running, remove it."
        raise LockHeld(
            f"Another git process is in progress ({index_lock})."
            + (hint if age_hours > 1 else "")
        )

    lock_path = git_dir / LOCK_FILE_NAME
    pid = os.getpid()
    try:
        fd = os.open(lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
    except FileExistsError:
        owner = _read_owner(lock_path)
        if owner is not None and not _pid_alive(owner):
            raise LockHeld(
                f"Stale ghts lock from process {owner}, which is no longer running. "
                f"Remove {lock_path} to continue."
            ) from None
        raise LockHeld(
            f"Another ghts command is already in progress "
            f"(pid {owner if owner is not None else 'unknown'})."
        ) from None
    except OSError as e:
        raise RepositoryAccessError(lock_path, e) from e

    try:
        with os.fdopen(fd, "w") as f:
            f.write(str(pid))
    except OSError as e:
        lock_path.unlink(missing_ok=True)
        raise RepositoryAccessError(lock_path, e) from e

    token = LockToken(
        lock_path=lock_path,
        git_dir=git_dir,
        pid=pid,
        acquired_at=time.time(),
        repo=repo,
        index_lock_preexisting=index_lock.exists(),
    )
    logger.debug(f"Acquired {lock_path} (pid {pid}).")
    return token


def release(token: LockToken) -> None:
    """Releases the lock. Safe to call more than once.

    After an interruption, git's index.lock is reclaimed first when this
    invocation created it. The tool lock is only removed if it still names
    this process.
    """
    if token.released:
        return

    if token.interrupted:
        token.reclaim_index_lock()

    owner = _read_owner(token.lock_path)
    if owner == token.pid:
        try:
            token.lock_path.unlink(missing_ok=True)
            logger.debug(f"Released {token.lock_path}.")
        except OSError as e:
            logger.error(f"Could not remove {token.lock_path}: {e}")
    elif token.lock_path.exists():
        logger.error(
            f"Lock {token.lock_path} now belongs to pid {owner}; leaving it in place."
        )
    token.released = True


def _raise_interrupt(signum: int, _frame: FrameType | None) -> None:
    raise OperationInterrupted(signum)


@contextmanager
def _forward_signals() -> Iterator[None]:
    """Turns SIGTERM/SIGHUP into `OperationInterrupted` for the block's duration."""
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    previous = {sig: signal.signal(sig, _raise_interrupt) for sig in _FORWARDED_SIGNALS}
    try:
        yield
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


@contextmanager
def hold(repo: GitRepo) -> Iterator[LockToken]:
    """Holds the repository mutation lock for the duration of the block.

    Args:
        repo (GitRepo): The repository to lock.

    Yields:
        LockToken: The token, also usable for interruption cleanup inside the block.

    Raises:
        LockHeld: If the repository is already busy.
    """
    token = acquire(repo)
    try:
        with _forward_signals():
            yield token
    except KeyboardInterrupt:
        token.interrupted = True
        logger.warning(f"Interrupted while holding {token.lock_path}; cleaning up.")
        raise
    finally:
        release(token)


def with_lock(repo: GitRepo, op: Callable[[LockToken], T]) -> T:
    """Runs `op` while holding the repository lock and returns its result."""
    with hold(repo) as token:
        return op(token)
