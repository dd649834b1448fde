import os
from pathlib import Path

"""Global constants and path definitions for ghts.

This module defines the filesystem layout (adhering to XDG standards where applicable),
the snapshot message format, and the git-internal markers the lock guard inspects.
"""

# --- Identity ---
APP_NAME = "ghts"
"""str: The application name, also used as the logger name."""

# --- Paths ---
_XDG_STATE = os.environ.get("XDG_STATE_HOME")
_BASE_STATE = Path(_XDG_STATE) if _XDG_STATE else Path.home() / ".local/state"

STATE_DIR = _BASE_STATE / "ghts"
"""Path: The directory for runtime state data (logs)."""

LOG_FILE = STATE_DIR / "ghts.log"
"""Path: The rotating log file written by the CLI."""

CONFIG_DIR: Path = Path.home() / ".config/ghts"
"""Path: The directory for user configuration files."""

CONFIG_FILE: Path = CONFIG_DIR / "config.toml"
"""Path: The global configuration file path."""

LOCAL_CONFIG_NAME = "ghts.toml"
"""str: Per-repository configuration file name, looked up at the repository root."""

# --- Snapshot Format ---
SNAPSHOT_TAG = "Snap"
"""str: The tag opening every commit message created by `save`."""

SNAPSHOT_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
"""str: strftime format of the timestamp embedded in the snapshot prefix."""

SNAPSHOT_PREFIX_PATTERN = (
    r"^\[" + SNAPSHOT_TAG + r" (\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2})\] "
)
"""str: Regex matching the snapshot prefix; group 1 is the timestamp."""

# --- Locking ---
LOCK_FILE_NAME = "ghts.lock"
"""str: Name of the tool's own mutation lock inside the git directory."""

INDEX_LOCK_NAME = "index.lock"
"""str: Git's own index lock artifact."""

GIT_LOCK_FILES = [
    "MERGE_HEAD",
    "REBASE_HEAD",
    "CHERRY_PICK_HEAD",
    "BISECT_LOG",
    "rebase-merge",
    "rebase-apply",
]
"""
list[str]: Git internal files indicating an
active state (merge/rebase) that blocks mutations.
"""

REBASE_MARKERS = ["rebase-merge", "rebase-apply"]
"""list[str]: Git directory entries present while a rebase is half-applied."""

# --- Remote Classification ---
NETWORK_ERROR_TOKENS = (
    "could not read from remote repository",
    "could not resolve host",
    "could not resolve hostname",
    "permission denied",
    "network is unreachable",
    "failed to connect to",
    "connection timed out",
    "connection refused",
    "authentication failed",
    "terminal prompts disabled",
    "does not appear to be a git repository",
    "no configured push destination",
    "unable to access",
)
"""tuple[str, ...]: Lowercased stderr fragments that mark a remote as unreachable."""

REJECTION_TOKENS = (
    "[rejected]",
    "[remote rejected]",
    "non-fast-forward",
    "fetch first",
    "updates were rejected",
)
"""tuple[str, ...]: Lowercased stderr fragments that mark a push as rejected."""

INDEX_LOCKING_COMMANDS = frozenset({"add", "commit", "reset", "rebase", "pull"})
"""frozenset[str]: Git subcommands ghts runs that take index.lock while working."""
