"""Pull-then-push synchronization.

The orchestrator walks an explicit state machine and reports exactly one
`SyncOutcome` variant per run:

    IDLE -> PULLING -> CLEAN -> PUSHING -> DONE | PUSH_FAILED
    IDLE -> PULLING -> CONFLICT_DETECTED

Pulls always rebase, so this path never creates merge commits. A conflicting
rebase is aborted before returning; it is never resolved automatically.
"""

import logging
import re
from enum import Enum

from .config import Config
from .constants import APP_NAME, NETWORK_ERROR_TOKENS
from .errors import DirtyWorkingTree, GhtsError, GitCommandError
from .git_wrapper import GitRepo
from .guard import LockToken
from .models import (
    ConflictDetected,
    FastForwarded,
    NetworkFailure,
    Published,
    PushRejected,
    RebasedAndPushed,
    Rejected,
    SyncOutcome,
    UpToDate,
)
from .probe import RepositoryProbe
from .remote import RemotePublisher, classify_remote_error, remote_env

logger = logging.getLogger(APP_NAME)

_CONFLICT_LINE = re.compile(r"^CONFLICT \([^)]*\): .*? in (.+)$", re.MULTILINE)


class SyncState(Enum):
    IDLE = "idle"
    PULLING = "pulling"
    CLEAN = "clean"
    CONFLICT_DETECTED = "conflict_detected"
    PUSHING = "pushing"
    DONE = "done"
    PUSH_FAILED = "push_failed"
    # Pull could not reach the remote; terminal, nothing changed locally.
    UNREACHABLE = "unreachable"


_TRANSITIONS: dict[SyncState, set[SyncState]] = {
    SyncState.IDLE: {SyncState.PULLING},
    SyncState.PULLING: {
        SyncState.CLEAN,
        SyncState.CONFLICT_DETECTED,
        SyncState.UNREACHABLE,
    },
    SyncState.CLEAN: {SyncState.PUSHING, SyncState.DONE},
    SyncState.PUSHING: {SyncState.DONE, SyncState.PUSH_FAILED},
    SyncState.CONFLICT_DETECTED: set(),
    SyncState.DONE: set(),
    SyncState.PUSH_FAILED: set(),
    SyncState.UNREACHABLE: set(),
}


class IllegalTransition(GhtsError, RuntimeError):
    """A sync step was attempted from a state that does not allow it. Fatal."""


class SyncOrchestrator:
    """Runs one synchronization of the current branch with its upstream."""

    def __init__(
        self,
        repo: GitRepo,
        config: Config | None = None,
        token: LockToken | None = None,
        publisher: RemotePublisher | None = None,
    ):
        self.repo = repo
        self.config = config or Config()
        self.token = token
        self.probe = RepositoryProbe(repo)
        self.publisher = publisher or RemotePublisher(repo, self.config)
        self.state = SyncState.IDLE
        self._pulled_count = 0

    def _transition(self, new_state: SyncState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise IllegalTransition(f"{self.state.value} -> {new_state.value}")
        logger.debug(f"sync: {self.state.value} -> {new_state.value}")
        self.state = new_state

    def run(self, push: bool = True) -> SyncOutcome:
        """Pulls with rebase, then pushes local commits if there are any.

        Args:
            push (bool, optional): Set False to pull only (`--no-push`).

        Returns:
            SyncOutcome: Exactly one variant describing how the sync ended.

        Raises:
            DirtyWorkingTree: If uncommitted changes would block the rebase.
        """
        state = self.probe.probe()
        if not state.is_clean:
            raise DirtyWorkingTree(state.pending_paths)
        if state.is_detached:
            return PushRejected("detached HEAD: check out a branch before syncing")

        branch = state.current_branch
        self._transition(SyncState.PULLING)

        if state.upstream is None:
            # No upstream yet: nothing to pull, but an existing remote can
            # still receive the branch with --set-upstream.
            remote, _ = self.publisher.resolve_remote(branch)
            if remote is None:
                self._transition(SyncState.UNREACHABLE)
                return NetworkFailure(
                    f"no remote '{self.config.core.remote_name}' configured"
                )
            pulled = 0
            unpushed = (
                self.repo.count_commits("HEAD", "--not", "--remotes")
                if self.repo.rev_parse("HEAD")
                else 0
            )
        else:
            failure = self._pull()
            if failure is not None:
                return failure
            pulled = self._pulled_count
            unpushed = self.probe.probe().ahead_count

        self._transition(SyncState.CLEAN)

        if unpushed == 0:
            self._transition(SyncState.DONE)
            return FastForwarded(pulled=pulled) if pulled else UpToDate()

        if not push:
            self._transition(SyncState.DONE)
            if pulled:
                return FastForwarded(pulled=pulled, unpushed=unpushed)
            return UpToDate(unpushed=unpushed)

        return self._push(branch, pulled, unpushed)

    def _pull(self) -> ConflictDetected | NetworkFailure | None:
        """Runs the rebase pull. Returns a terminal outcome, or None on success."""
        head_before = self.repo.rev_parse("HEAD")
        self._pulled_count = 0

        try:
            self.repo.pull_rebase(env=remote_env())
        except GitCommandError as e:
            return self._handle_pull_failure(e)
        except KeyboardInterrupt:
            self._restore_after_interrupt()
            raise

        if head_before:
            upstream = self.repo.upstream()
            if upstream:
                self._pulled_count = self.repo.count_commits(f"{head_before}..{upstream}")
        logger.info(f"Pulled {self._pulled_count} commit(s) into {self.repo.path.name}.")
        return None

    def _handle_pull_failure(
        self, error: GitCommandError
    ) -> ConflictDetected | NetworkFailure:
        if self.repo.rebase_in_progress() or "CONFLICT" in error.output:
            paths = set(self.repo.conflicted_paths()) if self.repo.rebase_in_progress() else set()
            paths.update(_CONFLICT_LINE.findall(error.output))
            self._abort_rebase()
            self._transition(SyncState.CONFLICT_DETECTED)
            logger.warning(
                f"CONFLICT {self.repo.path.name}: {', '.join(sorted(paths)) or 'unknown paths'}"
            )
            return ConflictDetected(frozenset(paths))

        if not any(token in error.output.lower() for token in NETWORK_ERROR_TOKENS):
            raise error

        self._transition(SyncState.UNREACHABLE)
        logger.warning(f"PULL FAILED {self.repo.path.name}: {error}")
        return NetworkFailure(classify_remote_error(error).reason)

    def _abort_rebase(self) -> None:
        """Returns the branch to its pre-sync state if a rebase is half-applied."""
        if not self.repo.rebase_in_progress():
            return
        try:
            self.repo.rebase_abort()
            logger.info(f"Aborted in-progress rebase in {self.repo.path.name}.")
        except GitCommandError as e:
            logger.error(f"Could not abort rebase in {self.repo.path.name}: {e}")
            raise

    def _restore_after_interrupt(self) -> None:
        # The killed git process may have left index.lock, which blocks the abort.
        if self.token is not None:
            self.token.reclaim_index_lock()
        try:
            self._abort_rebase()
        except GitCommandError:
            logger.error("Run 'git rebase --abort' manually to restore the branch.")

    def _push(self, branch: str, pulled: int, unpushed: int) -> SyncOutcome:
        if self.state is not SyncState.CLEAN:
            raise IllegalTransition(f"push attempted from {self.state.value}")
        self._transition(SyncState.PUSHING)

        outcome = self.publisher.push(branch)
        if isinstance(outcome, Published):
            self._transition(SyncState.DONE)
            return RebasedAndPushed(pulled=pulled, pushed=unpushed)

        self._transition(SyncState.PUSH_FAILED)
        if isinstance(outcome, Rejected):
            return PushRejected(outcome.reason)
        return outcome
