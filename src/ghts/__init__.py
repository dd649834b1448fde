"""ghts: single-command save, sync and undo for git working copies.

This package provides the command-line interface and the guarded engine behind
it: repository probing, snapshot commits, a conflict-aware rebase sync, a
tool-aware undo, and an interruption-safe repository lock.
"""

from . import (
    cli,
    config,
    constants,
    errors,
    git_wrapper,
    guard,
    models,
    ops,
    probe,
    remote,
    snapshot,
    sync,
    undo,
)

__all__ = [
    "cli",
    "config",
    "constants",
    "errors",
    "git_wrapper",
    "guard",
    "models",
    "ops",
    "probe",
    "remote",
    "snapshot",
    "sync",
    "undo",
]
