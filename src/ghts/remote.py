import logging
import os
import socket

from .config import Config
from .constants import APP_NAME, NETWORK_ERROR_TOKENS, REJECTION_TOKENS
from .errors import GitCommandError
from .git_wrapper import GitRepo
from .models import NetworkFailure, PushOutcome, Published, Rejected

logger = logging.getLogger(APP_NAME)


def remote_env() -> dict[str, str]:
    """Environment for network-facing git calls.

    Disables credential prompts and SSH password prompts so an auth failure
    fails fast instead of hanging on a terminal the user may not see.
    """
    env = os.environ.copy()
    env["GIT_TERMINAL_PROMPT"] = "0"
    env.setdefault("GIT_SSH_COMMAND", "ssh -o BatchMode=yes")
    return env


def get_remote_host(url: str | None) -> str | None:
    """Extracts the hostname from a git remote URL.

    Supports both SSH (git@...) and HTTPS (https://...) formats. Local paths
    and file:// URLs have no host.

    Args:
        url (str | None): The remote URL.

    Returns:
        str | None: The hostname (e.g., 'github.com') or None if there is none.
    """
    if not url or url.startswith("file://"):
        return None
    # Handle HTTPS: https://github.com/user/repo.git
    if "://" in url:
        host = url.split("://", 1)[1].split("/")[0]
        return host.rsplit("@", 1)[-1].split(":")[0] or None
    # Handle SSH: git@github.com:user/repo.git
    if "@" in url and ":" in url:
        return url.split("@", 1)[1].split(":")[0] or None
    return None


def is_remote_reachable(host: str, timeout: float = 3.0) -> bool:
    """Performs a quick TCP connectivity check on the remote host.

    Args:
        host (str): The hostname to check.
        timeout (float, optional): Seconds to wait per port.

    Returns:
        bool: True if the host accepts connections on port 443 or 22, False otherwise.
    """
    if not host:
        return False

    for port in [443, 22]:
        try:
            with socket.create_connection((host, port), timeout=timeout):
                return True
        except OSError:
            continue
    return False


def classify_remote_error(error: GitCommandError) -> Rejected | NetworkFailure:
    """Maps a failed push/pull onto the outcome the caller should act on.

    Rejections (the remote diverged) need a sync. Everything else leaves the
    local history intact and is reported as a retryable network failure.
    """
    text = error.output.lower()
    reason = error.summary
    if any(token in text for token in REJECTION_TOKENS):
        return Rejected(reason)
    if not any(token in text for token in NETWORK_ERROR_TOKENS):
        logger.warning(f"Unclassified remote error, treating as network failure: {error}")
    return NetworkFailure(reason)


class RemotePublisher:
    """Pushes the current branch and reports how the push ended."""

    def __init__(self, repo: GitRepo, config: Config | None = None):
        self.repo = repo
        self.config = config or Config()

    def resolve_remote(self, branch: str) -> tuple[str | None, bool]:
        """Picks the remote to push `branch` to.

        Returns:
            tuple[str | None, bool]: The remote name (None if it does not exist)
                                     and whether the branch already tracks it.
        """
        tracked = self.repo.branch_remote(branch)
        remote = tracked or self.config.core.remote_name
        if remote not in self.repo.remotes():
            return None, False
        return remote, tracked is not None

    def push(self, branch: str) -> PushOutcome:
        """Pushes `branch` to its upstream, creating the upstream if needed.

        Args:
            branch (str): The local branch name. Empty means detached HEAD.

        Returns:
            PushOutcome: `Published`, `Rejected`, or `NetworkFailure`.
        """
        if not branch:
            return Rejected("detached HEAD: check out a branch before pushing")
        if self.repo.branch_remote(branch) == ".":
            return Rejected(
                f"'{branch}' tracks a local branch; set a remote upstream to publish it"
            )

        remote, tracked = self.resolve_remote(branch)
        if remote is None:
            logger.info(f"OFFLINE {self.repo.path.name}: no remote configured.")
            return NetworkFailure(
                f"no remote '{self.config.core.remote_name}' configured"
            )

        # 1. Network Connectivity Check.
        if self.config.network.preflight_check:
            host = get_remote_host(self.repo.remote_url(remote))
            if host and not is_remote_reachable(
                host, self.config.network.connect_timeout
            ):
                logger.info(f"OFFLINE {self.repo.path.name}: {host} unreachable.")
                return NetworkFailure(f"{host} is unreachable")

        # 2. Push Execution. A tracked branch goes to its configured upstream
        # ref, which may be named differently from the local branch.
        dest = self.repo.branch_merge(branch) if tracked else None
        try:
            self.repo.push(
                remote, branch, set_upstream=not tracked, env=remote_env(), dest=dest
            )
        except GitCommandError as e:
            outcome = classify_remote_error(e)
            logger.warning(f"PUSH FAILED {self.repo.path.name}: {e}")
            return outcome

        logger.info(f"SUCCESS {self.repo.path.name}: Pushed {branch} to {remote}.")
        return Published(branch=branch, remote=remote)
