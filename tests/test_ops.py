import os
import re
from pathlib import Path
from unittest.mock import MagicMock

from ghts import ops
from ghts.config import Config
from ghts.errors import (
    ExitStatus,
    Interrupted,
    InvalidMessage,
    LockHeld,
    NotARepository,
    RepositoryAccessError,
    UnsafeUndo,
)
from ghts.models import (
    ConflictDetected,
    Failed,
    History,
    NetworkFailure,
    NothingToSave,
    Published,
    Saved,
    Undone,
    UpToDate,
)
from ghts.sync import IllegalTransition

from .helpers import commit_count, commit_file, git


def test_save_clean_tree_creates_nothing(work_repo: Path, config: Config) -> None:
    """Verifies that saving a clean tree reports NothingToSave and commits nothing.

    Args:
        work_repo (Path): A repository with one commit and no changes.
        config (Config): Defaults with the pre-flight probe disabled.
    """
    before = commit_count(work_repo)

    outcome = ops.save("wip", cwd=work_repo, config=config)

    assert isinstance(outcome, NothingToSave)
    assert outcome.status is ExitStatus.SUCCESS
    assert commit_count(work_repo) == before


def test_save_without_remote_keeps_commit(work_repo: Path, config: Config) -> None:
    """Verifies that a failed push never loses the local snapshot.

    Args:
        work_repo (Path): A repository with no remote configured.
        config (Config): Defaults with the pre-flight probe disabled.
    """
    (work_repo / "file.txt").write_text("fixed\n")
    before = commit_count(work_repo)

    outcome = ops.save("fix", cwd=work_repo, config=config)

    assert isinstance(outcome, Saved)
    assert isinstance(outcome.push, NetworkFailure)
    assert outcome.status is ExitStatus.ACTIONABLE
    subject = git(work_repo, "log", "-1", "--format=%s")
    assert re.match(r"^\[Snap \d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}\] fix$", subject)
    assert commit_count(work_repo) == before + 1
    assert git(work_repo, "status", "--porcelain") == ""


def test_save_pushes_to_tracked_remote(
    work_repo: Path, remote_repo: Path, config: Config
) -> None:
    (work_repo / "new.txt").write_text("n\n")

    outcome = ops.save("add new", cwd=work_repo, config=config)

    assert isinstance(outcome, Saved)
    assert outcome.push == Published(branch="main", remote="origin")
    assert git(remote_repo, "rev-parse", "main") == outcome.snapshot.id


def test_save_no_push(work_repo: Path, remote_repo: Path, config: Config) -> None:
    remote_head = git(remote_repo, "rev-parse", "main")
    (work_repo / "file.txt").write_text("local only\n")

    outcome = ops.save("local", push=False, cwd=work_repo, config=config)

    assert isinstance(outcome, Saved)
    assert outcome.push is None
    assert git(remote_repo, "rev-parse", "main") == remote_head


def test_save_push_on_save_disabled_by_config(work_repo: Path, config: Config) -> None:
    config.core.push_on_save = False
    (work_repo / "file.txt").write_text("changed\n")

    outcome = ops.save("configured", cwd=work_repo, config=config)

    assert isinstance(outcome, Saved)
    assert outcome.push is None


def test_save_rejects_empty_message(work_repo: Path, config: Config) -> None:
    (work_repo / "file.txt").write_text("changed\n")

    outcome = ops.save("  ", cwd=work_repo, config=config)

    assert isinstance(outcome, Failed)
    assert isinstance(outcome.error, InvalidMessage)
    assert outcome.status is ExitStatus.ACTIONABLE


def test_save_outside_repository_is_fatal(tmp_path: Path, git_env: Path) -> None:
    """Verifies that a missing repository surfaces as a typed fatal outcome.

    Args:
        tmp_path (Path): A directory that is not inside any repository.
        git_env (Path): Isolated HOME for git.
    """
    plain = tmp_path / "plain"
    plain.mkdir()

    outcome = ops.save("msg", cwd=plain)

    assert isinstance(outcome, Failed)
    assert isinstance(outcome.error, NotARepository)
    assert outcome.status is ExitStatus.FATAL


def test_save_interrupted_releases_lock(
    mocker: MagicMock, work_repo: Path, config: Config
) -> None:
    """Verifies that an interrupt during commit releases every lock.

    Args:
        mocker (MagicMock): Pytest fixture for mocking.
        work_repo (Path): A repository with a pending change.
        config (Config): Defaults with the pre-flight probe disabled.
    """
    (work_repo / "file.txt").write_text("half way\n")
    mocker.patch("ghts.ops.SnapshotCommitter.commit", side_effect=KeyboardInterrupt)
    before = commit_count(work_repo)

    outcome = ops.save("wip", cwd=work_repo, config=config)

    assert isinstance(outcome, Failed)
    assert isinstance(outcome.error, Interrupted)
    assert not (work_repo / ".git" / "ghts.lock").exists()
    assert not (work_repo / ".git" / "index.lock").exists()
    assert commit_count(work_repo) == before
    assert (work_repo / "file.txt").read_text() == "half way\n"


def test_save_while_locked(work_repo: Path, config: Config) -> None:
    lock = work_repo / ".git" / "ghts.lock"
    lock.write_text("1")
    (work_repo / "file.txt").write_text("changed\n")

    outcome = ops.save("blocked", cwd=work_repo, config=config)

    assert isinstance(outcome, Failed)
    assert isinstance(outcome.error, LockHeld)
    assert lock.read_text() == "1"


def test_sync_conflict_outcome(
    work_repo: Path, remote_repo: Path, other_clone: Path, config: Config
) -> None:
    commit_file(other_clone, "file.txt", "theirs\n", "Their edit")
    git(other_clone, "push", "-q", "origin", "main")
    commit_file(work_repo, "file.txt", "ours\n", "Our edit")

    outcome = ops.sync(cwd=work_repo, config=config)

    assert outcome == ConflictDetected(frozenset({"file.txt"}))
    assert outcome.status is ExitStatus.ACTIONABLE
    assert not (work_repo / ".git" / "ghts.lock").exists()


def test_sync_up_to_date(work_repo: Path, remote_repo: Path, config: Config) -> None:
    assert ops.sync(cwd=work_repo, config=config) == UpToDate()


def test_undo_manual_commit_is_refused(work_repo: Path) -> None:
    """Verifies the end-to-end refusal path: history is left exactly as it was.

    Args:
        work_repo (Path): A repository whose last commit was made by hand.
    """
    head = git(work_repo, "rev-parse", "HEAD")

    outcome = ops.undo(cwd=work_repo)

    assert isinstance(outcome, Failed)
    assert isinstance(outcome.error, UnsafeUndo)
    assert git(work_repo, "rev-parse", "HEAD") == head


def test_save_then_undo_round_trip(work_repo: Path, config: Config) -> None:
    (work_repo / "file.txt").write_text("draft\n")
    saved = ops.save("draft", push=False, cwd=work_repo, config=config)
    assert isinstance(saved, Saved)

    outcome = ops.undo(cwd=work_repo)

    assert isinstance(outcome, Undone)
    assert outcome.snapshot.id == saved.snapshot.id
    assert (work_repo / "file.txt").read_text() == "draft\n"


def test_history_uses_configured_default(work_repo: Path, config: Config) -> None:
    for i in range(3):
        commit_file(work_repo, f"f{i}.txt", str(i), f"[Snap 2026-01-0{i + 1} 00:00:00] c{i}")
    config.history.default_count = 2

    outcome = ops.history(cwd=work_repo, config=config)

    assert isinstance(outcome, History)
    assert [s.summary for s in outcome.snapshots] == ["c2", "c1"]
    assert len(ops.history(10, cwd=work_repo, config=config).snapshots) == 4


def test_status_reports_state(work_repo: Path) -> None:
    (work_repo / "file.txt").write_text("dirty\n")

    state = ops.status(cwd=work_repo)

    assert state.current_branch == "main"
    assert state.pending_paths == ("file.txt",)


def test_save_publishes_to_differently_named_upstream(
    work_repo: Path, remote_repo: Path, config: Config
) -> None:
    """Verifies that main tracking origin/trunk publishes trunk and leaves main alone."""
    git(work_repo, "push", "-q", "origin", "main:trunk")
    git(work_repo, "branch", "-q", "--set-upstream-to=origin/trunk", "main")
    remote_main = git(remote_repo, "rev-parse", "main")
    (work_repo / "file.txt").write_text("for trunk\n")

    outcome = ops.save("to trunk", cwd=work_repo, config=config)

    assert isinstance(outcome, Saved)
    assert outcome.push == Published(branch="main", remote="origin")
    assert git(remote_repo, "rev-parse", "trunk") == outcome.snapshot.id
    assert git(remote_repo, "rev-parse", "main") == remote_main
    assert ops.status(cwd=work_repo).ahead_count == 0


def test_save_with_unwritable_git_dir_is_fatal(
    mocker: MagicMock, work_repo: Path, config: Config
) -> None:
    """Verifies that a permission error on the lock file becomes a typed failure.

    Args:
        mocker (MagicMock): Pytest fixture for mocking.
        work_repo (Path): A repository with a pending change.
        config (Config): Defaults with the pre-flight probe disabled.
    """
    real_open = os.open

    def deny_lock(path, *args, **kwargs):
        if str(path).endswith("ghts.lock"):
            raise PermissionError(13, "Permission denied", str(path))
        return real_open(path, *args, **kwargs)

    mocker.patch("os.open", side_effect=deny_lock)
    (work_repo / "file.txt").write_text("changed\n")
    before = commit_count(work_repo)

    outcome = ops.save("blocked", cwd=work_repo, config=config)

    assert isinstance(outcome, Failed)
    assert isinstance(outcome.error, RepositoryAccessError)
    assert "Permission denied" in str(outcome.error)
    assert outcome.status is ExitStatus.FATAL
    assert commit_count(work_repo) == before


def test_sync_illegal_transition_is_failed_outcome(
    mocker: MagicMock, work_repo: Path, remote_repo: Path, config: Config
) -> None:
    mocker.patch(
        "ghts.sync.SyncOrchestrator._transition",
        side_effect=IllegalTransition("idle -> pushing"),
    )

    outcome = ops.sync(cwd=work_repo, config=config)

    assert isinstance(outcome, Failed)
    assert isinstance(outcome.error, IllegalTransition)
    assert outcome.status is ExitStatus.FATAL
    assert not (work_repo / ".git" / "ghts.lock").exists()
