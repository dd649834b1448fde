"""Typed values exchanged between ghts components and its callers.

Every outcome is a frozen dataclass carrying a `status` (the exit class the CLI
maps it to). Union aliases name the set of variants each operation can return,
so callers dispatch on the variant instead of inspecting flags.
"""

import datetime
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import ClassVar, Union

from .constants import (
    SNAPSHOT_PREFIX_PATTERN,
    SNAPSHOT_TAG,
    SNAPSHOT_TIMESTAMP_FORMAT,
)
from .errors import ExitStatus, GhtsError

_PREFIX_RE = re.compile(SNAPSHOT_PREFIX_PATTERN)


def format_snapshot_message(message: str, timestamp: datetime.datetime) -> str:
    """Builds the final commit message: `[Snap <timestamp>] <message>`."""
    return f"[{SNAPSHOT_TAG} {timestamp.strftime(SNAPSHOT_TIMESTAMP_FORMAT)}] {message}"


def is_snapshot_message(message: str) -> bool:
    """Returns True if the message carries a well-formed snapshot prefix."""
    match = _PREFIX_RE.match(message)
    if not match:
        return False
    try:
        datetime.datetime.strptime(match.group(1), SNAPSHOT_TIMESTAMP_FORMAT)
    except ValueError:
        return False
    return True


def strip_snapshot_prefix(message: str) -> str:
    """Returns the user-supplied part of a snapshot message."""
    if is_snapshot_message(message):
        return _PREFIX_RE.sub("", message, count=1)
    return message


@dataclass(frozen=True)
class RepositoryState:
    """A point-in-time view of the working copy.

    Only `RepositoryProbe.probe` builds these, and only after a tracked root
    has been found, so `is_tracked` is always True in practice.
    """

    is_tracked: bool
    current_branch: str
    is_clean: bool
    ahead_count: int
    behind_count: int
    root: Path | None = None
    upstream: str | None = None
    pending_paths: tuple[str, ...] = ()

    @property
    def is_detached(self) -> bool:
        return not self.current_branch

    @property
    def has_upstream(self) -> bool:
        return self.upstream is not None


@dataclass(frozen=True)
class SnapshotRecord:
    """One commit as seen through the history view."""

    id: str
    message: str
    created_by_tool: bool
    timestamp: datetime.datetime
    relative_age: str = ""

    @property
    def short_id(self) -> str:
        return self.id[:7]

    @property
    def summary(self) -> str:
        return strip_snapshot_prefix(self.message)


# --- Push outcomes ---


@dataclass(frozen=True)
class Published:
    """The branch reached the remote."""

    branch: str
    remote: str
    status: ClassVar[ExitStatus] = ExitStatus.SUCCESS


@dataclass(frozen=True)
class Rejected:
    """The remote refused the push; a sync is required first."""

    reason: str
    status: ClassVar[ExitStatus] = ExitStatus.ACTIONABLE


@dataclass(frozen=True)
class NetworkFailure:
    """The remote could not be reached. Local commits are intact; retry later."""

    reason: str
    status: ClassVar[ExitStatus] = ExitStatus.ACTIONABLE


PushOutcome = Union[Published, Rejected, NetworkFailure]


# --- Sync outcomes ---


@dataclass(frozen=True)
class UpToDate:
    """Nothing was pulled and nothing was pushed."""

    unpushed: int = 0
    status: ClassVar[ExitStatus] = ExitStatus.SUCCESS


@dataclass(frozen=True)
class FastForwarded:
    """Remote commits were pulled; there was nothing local to push."""

    pulled: int
    unpushed: int = 0
    status: ClassVar[ExitStatus] = ExitStatus.SUCCESS


@dataclass(frozen=True)
class RebasedAndPushed:
    """Local commits were replayed atop the remote (if needed) and pushed."""

    pulled: int
    pushed: int
    status: ClassVar[ExitStatus] = ExitStatus.SUCCESS


@dataclass(frozen=True)
class ConflictDetected:
    """The rebase pull hit overlapping changes and was aborted. Nothing was pushed."""

    conflicting_paths: frozenset[str] = field(default_factory=frozenset)
    status: ClassVar[ExitStatus] = ExitStatus.ACTIONABLE


@dataclass(frozen=True)
class PushRejected:
    """The pull succeeded but the remote refused the push."""

    reason: str
    status: ClassVar[ExitStatus] = ExitStatus.ACTIONABLE


SyncOutcome = Union[
    UpToDate, FastForwarded, RebasedAndPushed, ConflictDetected, PushRejected,
    NetworkFailure,
]


# --- Exposed operation outcomes ---


@dataclass(frozen=True)
class Saved:
    """A snapshot commit was created; `push` is None when pushing was disabled."""

    snapshot: SnapshotRecord
    push: PushOutcome | None = None

    @property
    def status(self) -> ExitStatus:
        if self.push is None:
            return ExitStatus.SUCCESS
        return self.push.status


@dataclass(frozen=True)
class NothingToSave:
    """The working tree had no changes; no commit was created."""

    status: ClassVar[ExitStatus] = ExitStatus.SUCCESS


@dataclass(frozen=True)
class Undone:
    """The last commit left history; its changes are back in the working copy.

    Undo is not idempotent: calling it again rewinds `next_last`, the commit
    that is now at the tip of the branch.
    """

    snapshot: SnapshotRecord
    was_published: bool = False
    next_last: SnapshotRecord | None = None
    status: ClassVar[ExitStatus] = ExitStatus.SUCCESS


@dataclass(frozen=True)
class History:
    """Recent commits, newest first."""

    snapshots: tuple[SnapshotRecord, ...] = ()
    status: ClassVar[ExitStatus] = ExitStatus.SUCCESS


@dataclass(frozen=True)
class Failed:
    """An operation stopped on a `GhtsError`; see `error` for the reason."""

    error: GhtsError

    @property
    def status(self) -> ExitStatus:
        return self.error.status


SaveOutcome = Union[Saved, NothingToSave, Failed]
UndoOutcome = Union[Undone, Failed]
