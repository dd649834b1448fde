"""Shared fixtures: throwaway git repositories driven by the real git binary."""

from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest

from ghts.config import Config

from .helpers import commit_file, git


@pytest.fixture
def git_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, mocker: MagicMock) -> Any:
    """Isolates git and ghts from the developer's own configuration."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(home / ".config"))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Test User")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "test@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Test User")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "test@example.com")
    for var in ("GIT_DIR", "GIT_WORK_TREE", "GIT_INDEX_FILE"):
        monkeypatch.delenv(var, raising=False)

    mocker.patch("ghts.config.CONFIG_FILE", home / ".config/ghts/config.toml")
    Config._global_cache = None
    yield home
    Config._global_cache = None


@pytest.fixture
def work_repo(tmp_path: Path, git_env: Path) -> Path:
    """A repository on branch 'main' with one manual commit and no remote."""
    repo = tmp_path / "work"
    repo.mkdir()
    git(repo, "init", "-q")
    git(repo, "symbolic-ref", "HEAD", "refs/heads/main")
    commit_file(repo, "file.txt", "line one\n", "Initial commit")
    return repo


@pytest.fixture
def remote_repo(tmp_path: Path, work_repo: Path) -> Path:
    """A bare remote 'origin' for `work_repo`, with main pushed and tracked."""
    remote = tmp_path / "remote.git"
    git(tmp_path, "init", "-q", "--bare", str(remote))
    git(remote, "symbolic-ref", "HEAD", "refs/heads/main")
    git(work_repo, "remote", "add", "origin", str(remote))
    git(work_repo, "push", "-q", "-u", "origin", "main")
    return remote


@pytest.fixture
def other_clone(tmp_path: Path, remote_repo: Path) -> Path:
    """A second working copy of the remote, standing in for another machine."""
    other = tmp_path / "other"
    git(tmp_path, "clone", "-q", str(remote_repo), str(other))
    return other


@pytest.fixture
def config() -> Config:
    """Defaults with the network pre-flight probe disabled."""
    conf = Config()
    conf.network.preflight_check = False
    return conf
