"""Tests for rewinding the last commit."""

from pathlib import Path

import pytest

from ghts.errors import NothingToUndo, UnsafeUndo
from ghts.git_wrapper import GitRepo
from ghts.undo import UndoGuard

from .helpers import commit_count, commit_file, git

SNAP = "[Snap 2026-10-18 12:00:00] "


def test_undo_refuses_manual_commit(work_repo: Path) -> None:
    """Verifies that a hand-made commit is never rewound without --force."""
    sha = commit_file(work_repo, "manual.txt", "m\n", "Manual commit")
    before = commit_count(work_repo)

    with pytest.raises(UnsafeUndo) as exc:
        UndoGuard(GitRepo(work_repo)).undo_last()

    assert exc.value.commit_id == sha
    assert "--force" in str(exc.value)
    assert git(work_repo, "rev-parse", "HEAD") == sha
    assert commit_count(work_repo) == before


def test_undo_keeps_contents_and_pending_change(work_repo: Path) -> None:
    """Verifies that undo removes the commit but not a single byte of content."""
    parent = git(work_repo, "rev-parse", "HEAD")
    content = b"line one\nline two \xe2\x9c\x93\n"
    (work_repo / "file.txt").write_bytes(content)
    git(work_repo, "add", "-A")
    git(work_repo, "commit", "-q", "-m", SNAP + "second line")
    before = commit_count(work_repo)

    undone = UndoGuard(GitRepo(work_repo)).undo_last()

    assert undone.snapshot.created_by_tool
    assert undone.snapshot.message == SNAP + "second line"
    assert undone.was_published is False
    assert (work_repo / "file.txt").read_bytes() == content
    assert "file.txt" in git(work_repo, "status", "--porcelain")
    assert git(work_repo, "rev-parse", "HEAD") == parent
    assert commit_count(work_repo) == before - 1


def test_undo_is_not_idempotent(work_repo: Path) -> None:
    first = commit_file(work_repo, "a.txt", "a\n", SNAP + "first")
    commit_file(work_repo, "b.txt", "b\n", SNAP + "second")
    guard = UndoGuard(GitRepo(work_repo))

    undone = guard.undo_last()
    assert undone.next_last is not None
    assert undone.next_last.id == first

    again = guard.undo_last()
    assert again.snapshot.id == first
    assert (work_repo / "a.txt").exists()
    assert (work_repo / "b.txt").exists()


def test_force_undoes_manual_commit(work_repo: Path) -> None:
    commit_file(work_repo, "manual.txt", "m\n", "Manual commit")

    undone = UndoGuard(GitRepo(work_repo)).undo_last(force=True)

    assert undone.snapshot.created_by_tool is False
    assert (work_repo / "manual.txt").read_text() == "m\n"
    assert commit_count(work_repo) == 1


def test_initial_commit_cannot_be_undone(work_repo: Path) -> None:
    with pytest.raises(NothingToUndo, match="initial commit"):
        UndoGuard(GitRepo(work_repo)).undo_last(force=True)


def test_unborn_branch_has_nothing_to_undo(tmp_path: Path, git_env: Path) -> None:
    repo = tmp_path / "empty"
    repo.mkdir()
    git(repo, "init", "-q")

    with pytest.raises(NothingToUndo):
        UndoGuard(GitRepo(repo)).undo_last()


def test_undo_flags_published_commit(work_repo: Path, remote_repo: Path) -> None:
    """Verifies that rewinding a pushed commit is reported as such."""
    commit_file(work_repo, "pushed.txt", "p\n", SNAP + "pushed")
    git(work_repo, "push", "-q", "origin", "main")

    undone = UndoGuard(GitRepo(work_repo)).undo_last()

    assert undone.was_published is True
