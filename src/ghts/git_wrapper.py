import logging
import re
import shutil
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path

from .constants import (
    APP_NAME,
    INDEX_LOCK_NAME,
    INDEX_LOCKING_COMMANDS,
    REBASE_MARKERS,
)
from .errors import BackendUnavailable, GitCommandError, NotARepository

logger = logging.getLogger(APP_NAME)

_FIELD_SEP = "\x1f"


@dataclass(frozen=True)
class InterruptedCommand:
    """A git subprocess that was killed by an interrupt before it finished.

    Attributes:
        args (tuple[str, ...]): The git arguments.
        started_at (float): Unix time the subprocess was started.
        index_lock_absent (bool): True if the command takes index.lock and no
            index.lock existed right before it started.
    """

    args: tuple[str, ...]
    started_at: float
    index_lock_absent: bool


class GitRepo:
    """A wrapper around the Git command-line interface for a specific repository.

    This class provides methods to execute the Git operations ghts consumes using
    `subprocess`, abstracting away command construction and output parsing. Every
    call captures output; raw text never leaves this class except inside a
    `GitCommandError`.

    Attributes:
        path (Path): The file system path to the repository root.
    """

    def __init__(self, path: Path):
        """Initializes the GitRepo instance.

        Args:
            path (Path): The path to the repository root directory.

        Raises:
            NotARepository: If the specified path does not contain a .git entry.
        """
        self.path = path
        if not (self.path / ".git").exists():
            raise NotARepository(self.path)
        self._git_dir: Path | None = None
        self.interrupted_command: InterruptedCommand | None = None

    @classmethod
    def discover(cls, start: Path) -> "GitRepo":
        """Finds the repository enclosing `start` by walking upward.

        Args:
            start (Path): The directory to start searching from.

        Returns:
            GitRepo: A wrapper rooted at the repository top level.

        Raises:
            BackendUnavailable: If git is not installed.
            NotARepository: If no tracked root exists above `start`.
        """
        if shutil.which("git") is None:
            raise BackendUnavailable()
        if not start.is_dir():
            raise NotARepository(start)

        try:
            res = subprocess.run(
                ["git", "rev-parse", "--show-toplevel"],
                cwd=start,
                capture_output=True,
                text=True,
            )
        except FileNotFoundError as e:
            raise BackendUnavailable() from e

        root = res.stdout.strip()
        if res.returncode != 0 or not root:
            logger.debug(f"Root detection failed in {start}: {res.stderr.strip()}")
            raise NotARepository(start)
        return cls(Path(root))

    def _run(
        self, args: list[str], env: dict | None = None, strip: bool = True
    ) -> str:
        """Executes a Git command within the repository context.

        Args:
            args (list[str]): A list of arguments to pass to the git command.
            env (Optional[dict], optional): Environment variables to pass to the
                                            subprocess. Defaults to None.
            strip (bool, optional): Whether to strip surrounding whitespace from
                                    stdout. Porcelain formats need it off.

        Returns:
            str: The stdout of the command.

        Raises:
            GitCommandError: If the git command returns a non-zero exit code.
            BackendUnavailable: If the git executable cannot be started.
        """
        logger.debug(f"git {' '.join(args)}")
        started_at = time.time()
        index_lock_absent = (
            args[0] in INDEX_LOCKING_COMMANDS
            and not (self.git_dir / INDEX_LOCK_NAME).exists()
        )
        try:
            res = subprocess.run(
                ["git", *args],
                cwd=self.path,
                capture_output=True,
                text=True,
                check=True,
                env=env,
            )
        except subprocess.CalledProcessError as e:
            raise GitCommandError(args, e.returncode, e.stdout, e.stderr) from e
        except FileNotFoundError as e:
            raise BackendUnavailable() from e
        except KeyboardInterrupt:
            self.interrupted_command = InterruptedCommand(
                tuple(args), started_at, index_lock_absent
            )
            raise
        return res.stdout.strip() if strip else res.stdout

    @property
    def git_dir(self) -> Path:
        """The absolute git directory (differs from `path / '.git'` in worktrees)."""
        if self._git_dir is None:
            self._git_dir = Path(self._run(["rev-parse", "--absolute-git-dir"]))
        return self._git_dir

    def current_branch(self) -> str:
        """Retrieves the name of the currently checked-out branch.

        Returns:
            str: The name of the current branch, or '' on a detached HEAD.
        """
        return self._run(["branch", "--show-current"])

    def status_porcelain(self) -> list[str]:
        """Returns the porcelain (machine-readable) status of the repository.

        Returns:
            list[str]: A list of status lines returned by `git status --porcelain`.
        """
        output = self._run(["status", "--porcelain"], strip=False)
        return [line for line in output.splitlines() if line]

    def changed_paths(self) -> list[str]:
        """Lists every path with staged, unstaged, or untracked changes.

        Uses the NUL-separated porcelain format so paths with spaces or
        non-ASCII characters come back unquoted. Renames report the new path.

        Returns:
            list[str]: Paths relative to the repository root.
        """
        output = self._run(["status", "--porcelain", "-z"], strip=False)
        entries = output.split("\0")
        paths = []
        i = 0
        while i < len(entries):
            entry = entries[i]
            i += 1
            if len(entry) < 4:
                continue
            xy, path = entry[:2], entry[3:]
            paths.append(path)
            if "R" in xy or "C" in xy:
                i += 1  # Skip the original path of a rename/copy.
        return paths

    def upstream(self) -> str | None:
        """Resolves the upstream tracking branch of HEAD.

        Returns:
            Optional[str]: The upstream name (e.g. 'origin/main'), or None.
        """
        try:
            return self._run(
                ["rev-parse", "--abbrev-ref", "--symbolic-full-name", "@{upstream}"]
            ) or None
        except GitCommandError as e:
            logger.debug(f"No upstream configured: {e}")
            return None

    def ahead_behind(self, upstream: str) -> tuple[int, int]:
        """Counts commits HEAD has that `upstream` lacks, and vice versa.

        Args:
            upstream (str): The upstream reference (e.g. 'origin/main').

        Returns:
            tuple[int, int]: (ahead, behind). (0, 0) if the output cannot be parsed.
        """
        output = self._run(["rev-list", "--left-right", "--count", f"HEAD...{upstream}"])
        match = re.match(r"^(\d+)\s+(\d+)$", output)
        if not match:
            logger.warning(f"Unexpected rev-list output for HEAD...{upstream}: {output!r}")
            return 0, 0
        return int(match.group(1)), int(match.group(2))

    def count_commits(self, *revs: str) -> int:
        """Counts the commits selected by `revs` (e.g. 'abc123..origin/main')."""
        output = self._run(["rev-list", "--count", *revs])
        return int(output) if output.isdigit() else 0

    def add_all(self) -> None:
        """
        Stages all changes (modified, deleted, and untracked files)
        in the working directory.
        """
        self._run(["add", "-A"])

    def staged_paths(self) -> list[str]:
        """Lists the paths currently staged in the index.

        Returns:
            list[str]: Staged paths relative to the repository root.
        """
        output = self._run(["diff", "--cached", "--name-only", "-z"], strip=False)
        return [p for p in output.split("\0") if p]

    def commit(self, message: str) -> None:
        """Creates a new commit from the index with the provided message.

        Args:
            message (str): The commit message.
        """
        self._run(["commit", "-m", message])

    def rev_parse(self, rev: str) -> str | None:
        """Resolves a revision (tag, branch, relative ref) to a full SHA-1 hash.

        Args:
            rev (str): The revision to parse (e.g., 'HEAD', 'master').

        Returns:
            Optional[str]:  The full SHA-1 hash,
                            or None if the revision could not be resolved.
        """
        try:
            return self._run(["rev-parse", "--verify", "--quiet", f"{rev}^{{commit}}"])
        except GitCommandError as e:
            logger.debug(f"rev-parse failed for '{rev}': {e}")
            return None

    def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        """Checks whether `ancestor` is reachable from `descendant`."""
        try:
            self._run(["merge-base", "--is-ancestor", ancestor, descendant])
            return True
        except GitCommandError as e:
            if e.returncode == 1:
                return False
            raise

    def log_entries(
        self, count: int, rev: str = "HEAD"
    ) -> list[tuple[str, int, str, str]]:
        """Reads the most recent commits reachable from `rev`.

        Args:
            count (int): Maximum number of commits to return.
            rev (str, optional): Where to start walking. Defaults to HEAD.

        Returns:
            list[tuple[str, int, str, str]]: (sha, unix_time, relative_age, subject)
                                             tuples, newest first.
        """
        fmt = _FIELD_SEP.join(["%H", "%ct", "%cr", "%s"])
        output = self._run(["log", f"-n{count}", f"--format={fmt}", rev])
        entries = []
        for line in output.splitlines():
            parts = line.split(_FIELD_SEP, 3)
            if len(parts) != 4 or not parts[1].isdigit():
                logger.warning(f"Skipping unparsable log line: {line!r}")
                continue
            sha, ts, age, subject = parts
            entries.append((sha, int(ts), age, subject))
        return entries

    def remotes(self) -> list[str]:
        """Lists the configured remote names."""
        output = self._run(["remote"])
        return output.splitlines() if output else []

    def branch_remote(self, branch: str) -> str | None:
        """Returns the remote a branch tracks, or None if it has no upstream."""
        try:
            return self._run(["config", "--get", f"branch.{branch}.remote"]) or None
        except GitCommandError:
            return None

    def branch_merge(self, branch: str) -> str | None:
        """Returns the upstream ref a branch pushes to (e.g. 'refs/heads/trunk')."""
        try:
            return self._run(["config", "--get", f"branch.{branch}.merge"]) or None
        except GitCommandError:
            return None

    def remote_url(self, remote: str) -> str | None:
        """Returns the URL configured for a remote, or None if it is unknown."""
        try:
            return self._run(["remote", "get-url", remote]) or None
        except GitCommandError:
            return None

    def push(
        self,
        remote: str,
        branch: str,
        set_upstream: bool = False,
        env: dict | None = None,
        dest: str | None = None,
    ) -> None:
        """Pushes a branch to a remote.

        Args:
            remote (str): The remote name.
            branch (str): The local branch to push.
            set_upstream (bool, optional): Record the remote branch as upstream.
            env (Optional[dict], optional): Environment for the subprocess.
            dest (str | None, optional): Remote ref to update. Defaults to the
                                         remote branch named like `branch`.
        """
        cmd = ["push"]
        if set_upstream:
            cmd.append("--set-upstream")
        refspec = f"refs/heads/{branch}:{dest}" if dest else branch
        cmd.extend([remote, refspec])
        self._run(cmd, env=env)

    def pull_rebase(self, env: dict | None = None) -> str:
        """Pulls the upstream of HEAD, replaying local commits on top of it.

        Returns:
            str: The command output (used to detect conflicts on failure).
        """
        return self._run(["pull", "--rebase", "--no-autostash"], env=env)

    def rebase_in_progress(self) -> bool:
        """Returns True while a rebase is stopped half-way."""
        return any((self.git_dir / marker).exists() for marker in REBASE_MARKERS)

    def rebase_abort(self) -> None:
        """Aborts an in-progress rebase, restoring the pre-rebase HEAD."""
        self._run(["rebase", "--abort"])

    def conflicted_paths(self) -> list[str]:
        """Lists paths with unresolved merge conflicts in the index."""
        output = self._run(
            ["diff", "--name-only", "--diff-filter=U", "-z"], strip=False
        )
        return [p for p in output.split("\0") if p]

    def reset_soft(self, target: str) -> None:
        """Moves the branch pointer to `target`, keeping index and working tree."""
        self._run(["reset", "--soft", target])
