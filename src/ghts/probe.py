import datetime
import logging

from .constants import APP_NAME
from .git_wrapper import GitRepo
from .models import RepositoryState, SnapshotRecord, is_snapshot_message

logger = logging.getLogger(APP_NAME)


class RepositoryProbe:
    """Read-only queries describing a repository's current state and history.

    Nothing is cached between calls: every query re-reads the working
    directory, so results always reflect what git reports right now.
    """

    def __init__(self, repo: GitRepo):
        self.repo = repo

    def probe(self) -> RepositoryState:
        """Builds a fresh `RepositoryState`.

        The wrapped `GitRepo` only exists for a tracked root (construction raises
        `NotARepository` otherwise), so a state is never built outside one.
        """
        branch = self.repo.current_branch()
        pending = tuple(self.repo.changed_paths())
        upstream = self.repo.upstream() if branch else None

        ahead, behind = 0, 0
        if upstream and self.repo.rev_parse("HEAD"):
            ahead, behind = self.repo.ahead_behind(upstream)

        state = RepositoryState(
            is_tracked=True,
            current_branch=branch,
            is_clean=not pending,
            ahead_count=ahead,
            behind_count=behind,
            root=self.repo.path,
            upstream=upstream,
            pending_paths=pending,
        )
        logger.debug(
            f"Probed {self.repo.path.name}: branch={branch or '(detached)'} "
            f"clean={state.is_clean} ahead={ahead} behind={behind}"
        )
        return state

    def last_snapshot(self) -> SnapshotRecord | None:
        """Returns the most recent commit, or None on an unborn branch."""
        records = self.list_recent_snapshots(1)
        return records[0] if records else None

    def list_recent_snapshots(self, n: int) -> list[SnapshotRecord]:
        """Lists up to `n` commits reachable from HEAD, newest first.

        Args:
            n (int): Maximum number of records. Values below 1 return [].

        Returns:
            list[SnapshotRecord]: Parsed commits with tool-origin flags set.
        """
        if n < 1 or self.repo.rev_parse("HEAD") is None:
            return []

        return [
            SnapshotRecord(
                id=sha,
                message=subject,
                created_by_tool=is_snapshot_message(subject),
                timestamp=datetime.datetime.fromtimestamp(ts),
                relative_age=age,
            )
            for sha, ts, age, subject in self.repo.log_entries(n)
        ]
