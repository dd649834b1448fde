import logging

from .constants import APP_NAME
from .errors import NothingToUndo, UnsafeUndo
from .git_wrapper import GitRepo
from .models import Undone
from .probe import RepositoryProbe

logger = logging.getLogger(APP_NAME)


class UndoGuard:
    """Rewinds the last commit while keeping its changes in the working copy."""

    def __init__(self, repo: GitRepo):
        self.repo = repo
        self.probe = RepositoryProbe(repo)

    def undo_last(self, force: bool = False) -> Undone:
        """Removes the most recent commit from history.

        The commit's changes stay in the working tree and index as uncommitted
        modifications, so file contents are unchanged. This is not idempotent:
        a second call rewinds whatever commit is last after the first one.

        Args:
            force (bool, optional): Undo even if ghts did not create the commit.

        Returns:
            Undone: The removed commit and the commit now at the tip.

        Raises:
            NothingToUndo: If there is no commit, or only the initial commit.
            UnsafeUndo: If the commit is not a snapshot and `force` is False.
        """
        snapshots = self.probe.list_recent_snapshots(2)
        if not snapshots:
            raise NothingToUndo("Nothing to undo: this branch has no commits.")

        last = snapshots[0]
        if not last.created_by_tool and not force:
            raise UnsafeUndo(last.id, last.message)

        if len(snapshots) < 2:
            raise NothingToUndo(
                f"Cannot undo {last.short_id}: it is the repository's initial commit."
            )

        upstream = self.repo.upstream()
        was_published = bool(upstream) and self.repo.is_ancestor(last.id, upstream)

        self.repo.reset_soft(f"{last.id}~1")
        logger.info(
            f"Undid {last.short_id} ('{last.message}'){' [forced]' if force else ''}."
        )
        if was_published:
            logger.warning(
                f"{last.short_id} was already on {upstream}; the next push will need a sync."
            )
        return Undone(snapshot=last, was_published=was_published, next_last=snapshots[1])
