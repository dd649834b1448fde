import datetime
import logging

from .constants import APP_NAME
from .errors import EmptyChangeSet, InvalidMessage
from .git_wrapper import GitRepo
from .models import RepositoryState, SnapshotRecord, format_snapshot_message

logger = logging.getLogger(APP_NAME)


class ChangeSetStager:
    """Stages every pending modification as a single unit."""

    def __init__(self, repo: GitRepo):
        self.repo = repo

    def stage_all(self, state: RepositoryState) -> int:
        """Stages modified, deleted, and untracked files.

        Callers must check `state.is_clean` first and report "nothing to save"
        themselves; staging a clean tree is a caller error.

        Args:
            state (RepositoryState): The state the caller probed beforehand.

        Returns:
            int: The number of paths now staged.

        Raises:
            EmptyChangeSet: If `state` reports a clean working tree.
        """
        if state.is_clean:
            raise EmptyChangeSet("stage_all called on a clean working tree")

        self.repo.add_all()
        count = len(self.repo.staged_paths())
        logger.info(f"Staged {count} path(s) in {self.repo.path.name}.")
        return count


class SnapshotCommitter:
    """Creates exactly one tagged commit per call. Never amends or squashes."""

    def __init__(self, repo: GitRepo):
        self.repo = repo

    def commit(self, message: str, timestamp: datetime.datetime) -> SnapshotRecord:
        """Commits the index as `[Snap <timestamp>] <message>`.

        Args:
            message (str): The user-supplied message.
            timestamp (datetime.datetime): The instant embedded in the prefix.

        Returns:
            SnapshotRecord: The commit just created.

        Raises:
            InvalidMessage: If the message is empty.
            EmptyChangeSet: If nothing is staged.
        """
        message = message.strip()
        if not message:
            raise InvalidMessage("Snapshot message must not be empty.")

        if not self.repo.staged_paths():
            raise EmptyChangeSet("Nothing staged: refusing to create an empty commit.")

        full_message = format_snapshot_message(message, timestamp)
        self.repo.commit(full_message)

        sha = self.repo.rev_parse("HEAD") or ""
        logger.info(f"Created snapshot {sha[:7]}: {full_message}")
        return SnapshotRecord(
            id=sha,
            message=full_message,
            created_by_tool=True,
            timestamp=timestamp,
            relative_age="just now",
        )
