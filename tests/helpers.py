"""Git helpers for setting up repositories in tests, bypassing ghts itself."""

import subprocess
from pathlib import Path


def git(cwd: Path, *args: str) -> str:
    """Runs a git command for test setup and returns its stripped stdout."""
    res = subprocess.run(
        ["git", *args], cwd=cwd, check=True, capture_output=True, text=True
    )
    return res.stdout.strip()


def commit_file(repo: Path, name: str, content: str, message: str) -> str:
    """Writes a file, commits it by hand (not via ghts), and returns the SHA."""
    (repo / name).write_text(content)
    git(repo, "add", name)
    git(repo, "commit", "-q", "-m", message)
    return git(repo, "rev-parse", "HEAD")


def commit_count(repo: Path) -> int:
    return int(git(repo, "rev-list", "--count", "HEAD"))
