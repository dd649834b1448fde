"""The operations ghts exposes to its command-line layer.

Each function gates on the repository probe, runs mutating work inside the
interrupt guard, and returns a typed outcome. Every `GhtsError` (and any
interruption) is converted to `Failed` here, so callers never see a raw
exception or raw git output.
"""

import datetime
import functools
import logging
from collections.abc import Callable
from pathlib import Path
from typing import ParamSpec, TypeVar

from . import guard
from .config import Config
from .constants import APP_NAME
from .errors import (
    EmptyChangeSet,
    ExitStatus,
    GhtsError,
    Interrupted,
    InvalidMessage,
)
from .git_wrapper import GitRepo
from .models import (
    Failed,
    History,
    NothingToSave,
    RepositoryState,
    SaveOutcome,
    Saved,
    SyncOutcome,
    UndoOutcome,
)
from .probe import RepositoryProbe
from .remote import RemotePublisher
from .snapshot import ChangeSetStager, SnapshotCommitter
from .sync import SyncOrchestrator
from .undo import UndoGuard

logger = logging.getLogger(APP_NAME)

P = ParamSpec("P")
R = TypeVar("R")


def _outcome_boundary(func: Callable[P, R]) -> Callable[P, R | Failed]:
    """Converts ghts errors and interruptions raised by `func` into `Failed`."""

    @functools.wraps(func)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> R | Failed:
        try:
            return func(*args, **kwargs)
        except KeyboardInterrupt as e:
            logger.warning(f"{func.__name__} interrupted.")
            return Failed(Interrupted(getattr(e, "signum", None)))
        except GhtsError as e:
            logger.log(
                logging.ERROR if e.status is ExitStatus.FATAL else logging.INFO,
                f"{func.__name__} failed: {e}",
            )
            return Failed(e)

    return wrapper


def _open(cwd: Path | None, config: Config | None) -> tuple[GitRepo, Config]:
    repo = GitRepo.discover(cwd or Path.cwd())
    return repo, config or Config.load(repo.path)


@_outcome_boundary
def save(
    message: str,
    push: bool | None = None,
    cwd: Path | None = None,
    config: Config | None = None,
    now: datetime.datetime | None = None,
) -> SaveOutcome:
    """Stages everything, commits a snapshot, and optionally pushes it.

    Args:
        message (str): The snapshot message.
        push (bool | None, optional): Override `core.push_on_save`.
        cwd (Path | None, optional): Directory inside the repository.
        config (Config | None, optional): Preloaded configuration.
        now (datetime.datetime | None, optional): Timestamp for the prefix.

    Returns:
        SaveOutcome: `Saved`, `NothingToSave`, or `Failed`.
    """
    if not message or not message.strip():
        raise InvalidMessage("Snapshot message must not be empty.")

    repo, conf = _open(cwd, config)
    do_push = conf.core.push_on_save if push is None else push

    with guard.hold(repo):
        state = RepositoryProbe(repo).probe()
        if state.is_clean:
            logger.info(f"Nothing to save in {repo.path.name}.")
            return NothingToSave()

        ChangeSetStager(repo).stage_all(state)
        try:
            snapshot = SnapshotCommitter(repo).commit(
                message, now or datetime.datetime.now()
            )
        except EmptyChangeSet:
            logger.info(f"Staging produced no changes in {repo.path.name}.")
            return NothingToSave()

        if not do_push:
            return Saved(snapshot)
        return Saved(snapshot, RemotePublisher(repo, conf).push(state.current_branch))


@_outcome_boundary
def sync(
    push: bool = True, cwd: Path | None = None, config: Config | None = None
) -> SyncOutcome:
    """Pulls with rebase and pushes local commits. See `SyncOrchestrator`."""
    repo, conf = _open(cwd, config)
    with guard.hold(repo) as token:
        return SyncOrchestrator(repo, conf, token=token).run(push=push)


@_outcome_boundary
def undo(force: bool = False, cwd: Path | None = None) -> UndoOutcome:
    """Rewinds the last commit, keeping its changes. See `UndoGuard`."""
    repo = GitRepo.discover(cwd or Path.cwd())
    return guard.with_lock(repo, lambda _token: UndoGuard(repo).undo_last(force))


@_outcome_boundary
def history(
    n: int | None = None, cwd: Path | None = None, config: Config | None = None
) -> History:
    """Lists the most recent commits, newest first."""
    repo, conf = _open(cwd, config)
    count = conf.history.default_count if n is None else n
    return History(tuple(RepositoryProbe(repo).list_recent_snapshots(count)))


@_outcome_boundary
def status(cwd: Path | None = None) -> RepositoryState:
    """Probes the repository without changing anything."""
    repo = GitRepo.discover(cwd or Path.cwd())
    return RepositoryProbe(repo).probe()
