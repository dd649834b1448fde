"""Error taxonomy for ghts.

Components raise these exceptions; `ghts.ops` converts every one of them into a
typed `Failed` outcome so nothing reaches the CLI as an unstructured failure.
Each class carries the exit class the CLI should map it to.
"""

from enum import IntEnum


class ExitStatus(IntEnum):
    """Process exit classes for the CLI layer."""

    SUCCESS = 0
    ACTIONABLE = 1
    FATAL = 2


class GhtsError(Exception):
    """Base class for every error ghts reports to its caller."""

    status: ExitStatus = ExitStatus.FATAL


class NotARepository(GhtsError):
    """No tracked repository root was found upward from the working directory."""

    def __init__(self, path: object) -> None:
        super().__init__(f"Not a git repository: {path}")
        self.path = path


class BackendUnavailable(GhtsError):
    """The git executable could not be found or started."""

    def __init__(self, detail: str = "git executable not found on PATH") -> None:
        super().__init__(detail)


class GitCommandError(GhtsError, RuntimeError):
    """A git subprocess exited with a non-zero status.

    Attributes:
        args_list (list[str]): The git arguments (without the leading 'git').
        returncode (int): The process exit status.
        stdout (str): Captured standard output.
        stderr (str): Captured standard error.
    """

    def __init__(
        self, args_list: list[str], returncode: int, stdout: str = "", stderr: str = ""
    ) -> None:
        self.args_list = args_list
        self.returncode = returncode
        self.stdout = stdout or ""
        self.stderr = stderr or ""
        command = args_list[0] if args_list else "command"
        super().__init__(f"git {command} failed: {self.summary}")

    @property
    def summary(self) -> str:
        """The first informative line of git's output, without hints or prefixes."""
        for line in (self.stderr or self.stdout).splitlines():
            line = line.strip()
            if line and not line.lower().startswith(("hint:", "to ")):
                return line.removeprefix("error: ").removeprefix("fatal: ")
        return f"exit status {self.returncode}"

    @property
    def output(self) -> str:
        """Combined stdout and stderr, for classifying the failure."""
        return f"{self.stdout}\n{self.stderr}"


class EmptyChangeSet(GhtsError):
    """There is nothing to stage or commit. Reported, not treated as an error exit."""

    status = ExitStatus.SUCCESS

    def __init__(self, detail: str = "Nothing to save: working tree is clean.") -> None:
        super().__init__(detail)


class InvalidMessage(GhtsError):
    """The snapshot message is empty."""

    status = ExitStatus.ACTIONABLE


class UnsafeUndo(GhtsError):
    """Undo refused because the last commit was not created by ghts."""

    status = ExitStatus.ACTIONABLE

    def __init__(self, commit_id: str, message: str) -> None:
        super().__init__(
            f"Refusing to undo {commit_id[:7]} ('{message}'): it was not created by "
            f"ghts. Re-run with --force to undo it anyway."
        )
        self.commit_id = commit_id


class NothingToUndo(GhtsError):
    """There is no commit that can be rewound."""

    status = ExitStatus.ACTIONABLE


class DirtyWorkingTree(GhtsError):
    """Sync refused because uncommitted changes would block the rebase pull."""

    status = ExitStatus.ACTIONABLE

    def __init__(self, paths: tuple[str, ...]) -> None:
        shown = ", ".join(paths[:5]) + (" ..." if len(paths) > 5 else "")
        super().__init__(
            f"Uncommitted changes ({shown}). Run 'ghts save' first, then sync."
        )
        self.paths = paths


class LockHeld(GhtsError):
    """Another ghts invocation or git operation holds the repository."""

    status = ExitStatus.ACTIONABLE


class Interrupted(GhtsError):
    """The operation was stopped by a signal; lock state has been released."""

    def __init__(self, signum: int | None = None) -> None:
        detail = "Interrupted" if signum is None else f"Interrupted by signal {signum}"
        super().__init__(f"{detail}. Repository lock released.")
        self.signum = signum


class RepositoryAccessError(GhtsError):
    """The git directory could not be read or written (permissions, disk full)."""

    def __init__(self, path: object, error: OSError) -> None:
        super().__init__(f"Cannot access {path}: {error.strerror or error}")
        self.path = path
