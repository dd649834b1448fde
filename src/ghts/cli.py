import argparse
import logging
import sys
from logging.handlers import RotatingFileHandler

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from . import ops
from .config import Config
from .constants import APP_NAME, LOG_FILE
from .errors import ExitStatus
from .models import (
    ConflictDetected,
    Failed,
    FastForwarded,
    History,
    NetworkFailure,
    NothingToSave,
    Published,
    PushRejected,
    RebasedAndPushed,
    Rejected,
    RepositoryState,
    SaveOutcome,
    Saved,
    SyncOutcome,
    UndoOutcome,
    Undone,
    UpToDate,
)

logger = logging.getLogger(APP_NAME)
console = Console()
err_console = Console(stderr=True)


def setup_logging(verbose: bool, config: Config) -> None:
    """Configures the logging subsystem.

    Args:
        verbose (bool): If True, DEBUG records are echoed to stderr.
        config (Config): Supplies the log rotation size.
    """
    logger.setLevel(logging.DEBUG)
    formatter = logging.Formatter(
        "[%(asctime)s] %(levelname)s: %(message)s", "%Y-%m-%d %H:%M:%S"
    )

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    try:
        LOG_FILE.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            LOG_FILE,
            maxBytes=config.limits.max_log_size,
            backupCount=5,
        )
    except OSError as e:
        logger.warning(f"File logging disabled: {e}")
        return
    file_handler.setLevel(logging.INFO)
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)


def render_failure(outcome: Failed) -> None:
    style = "bold red" if outcome.status is ExitStatus.FATAL else "bold yellow"
    label = "ERROR" if outcome.status is ExitStatus.FATAL else "STOPPED"
    err_console.print(f"[{style}]{label}:[/{style}] {escape(str(outcome.error))}")


def render_save(outcome: SaveOutcome) -> None:
    if isinstance(outcome, Failed):
        render_failure(outcome)
        return
    if isinstance(outcome, NothingToSave):
        console.print("Nothing to save: working tree is clean.", style="dim")
        return

    snap = outcome.snapshot
    console.print(
        f"[bold green]✔ Saved[/bold green] [cyan]{snap.short_id}[/cyan] {escape(snap.message)}"
    )
    push = outcome.push
    if push is None:
        console.print("Push skipped. Commit is local only.", style="dim")
    elif isinstance(push, Published):
        console.print(f"[bold green]✔ Pushed[/bold green] {push.branch} -> {push.remote}")
    elif isinstance(push, Rejected):
        console.print(
            f"[bold yellow]WARNING:[/bold yellow] Commit created locally, push "
            f"rejected: {escape(push.reason)}\n   Run [bold cyan]ghts sync[/bold cyan] first."
        )
    elif isinstance(push, NetworkFailure):
        console.print(
            f"[bold yellow]WARNING:[/bold yellow] Commit created locally, push "
            f"failed: {escape(push.reason)}\n   Your work is safe; retry with "
            "[bold cyan]ghts sync[/bold cyan] when the remote is reachable."
        )


def render_sync(outcome: SyncOutcome | Failed) -> None:
    if isinstance(outcome, Failed):
        render_failure(outcome)
    elif isinstance(outcome, UpToDate):
        console.print("[bold green]✔ Already up to date.[/bold green]")
        if outcome.unpushed:
            console.print(f"{outcome.unpushed} local commit(s) not pushed.", style="dim")
    elif isinstance(outcome, FastForwarded):
        console.print(f"[bold green]✔ Pulled {outcome.pulled} commit(s).[/bold green]")
        if outcome.unpushed:
            console.print(f"{outcome.unpushed} local commit(s) not pushed.", style="dim")
    elif isinstance(outcome, RebasedAndPushed):
        console.print(
            f"[bold green]✔ Synced:[/bold green] pulled {outcome.pulled}, "
            f"pushed {outcome.pushed} commit(s)."
        )
    elif isinstance(outcome, ConflictDetected):
        paths = Text()
        for path in sorted(outcome.conflicting_paths):
            paths.append(f"  {path}\n", style="red")
        paths.append(
            "\nThe rebase was aborted; your branch is as it was before sync.\n"
            "Nothing was pushed. Resolve manually with 'git pull --rebase'.",
            style="yellow",
        )
        console.print(Panel(paths, title="Conflict Detected", border_style="red", expand=False))
    elif isinstance(outcome, PushRejected):
        console.print(
            f"[bold yellow]WARNING:[/bold yellow] Pulled, but push was rejected: "
            f"{escape(outcome.reason)}\n   Run [bold cyan]ghts sync[/bold cyan] again."
        )
    elif isinstance(outcome, NetworkFailure):
        console.print(
            f"[bold yellow]WARNING:[/bold yellow] Remote unreachable: {escape(outcome.reason)}\n"
            "   Local commits are intact; retry later."
        )


def render_undo(outcome: UndoOutcome) -> None:
    if isinstance(outcome, Failed):
        render_failure(outcome)
        return
    if isinstance(outcome, Undone):
        snap = outcome.snapshot
        console.print(
            f"[bold green]✔ Undid[/bold green] [cyan]{snap.short_id}[/cyan] {escape(snap.message)}"
        )
        console.print("Its changes are back in your working copy, uncommitted.", style="dim")
        if outcome.was_published:
            console.print(
                "[bold yellow]WARNING:[/bold yellow] That commit was already pushed; "
                "the next push will need a sync."
            )
        if outcome.next_last is not None:
            console.print(
                f"Running undo again would remove [cyan]{outcome.next_last.short_id}"
                f"[/cyan] {escape(outcome.next_last.message)}",
                style="dim",
            )


def render_history(outcome: History | Failed) -> None:
    if isinstance(outcome, Failed):
        render_failure(outcome)
        return
    if not outcome.snapshots:
        console.print("No commits yet.", style="dim")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Commit", style="cyan")
    table.add_column("Age", style="dim")
    table.add_column("Message")
    for snap in outcome.snapshots:
        message = Text(snap.message, style="green" if snap.created_by_tool else "")
        table.add_row(snap.short_id, snap.relative_age, message)
    console.print(table)


def render_status(outcome: RepositoryState | Failed) -> None:
    if isinstance(outcome, Failed):
        render_failure(outcome)
        return

    content = Text()
    content.append("Branch:   ", style="bold")
    content.append(f"{outcome.current_branch or '(detached HEAD)'}\n")
    content.append("Upstream: ", style="bold")
    content.append(f"{outcome.upstream or 'none'}\n")
    content.append("Tree:     ", style="bold")
    if outcome.is_clean:
        content.append("clean\n", style="green")
    else:
        content.append(f"{len(outcome.pending_paths)} file(s) changed\n", style="yellow")
    content.append("Ahead:    ", style="bold")
    content.append(f"{outcome.ahead_count}\n")
    content.append("Behind:   ", style="bold")
    content.append(f"{outcome.behind_count}")
    console.print(Panel(content, title="Repository Status", expand=False))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=APP_NAME, description="Git and GitHub tool for simple commands"
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Show debug logging"
    )
    subparsers = parser.add_subparsers(dest="command")

    save_parser = subparsers.add_parser("save", help="Stage, commit, and push all changes")
    save_parser.add_argument("message", help="Snapshot message")
    save_parser.add_argument(
        "--no-push", action="store_true", help="Commit locally without pushing"
    )

    sync_parser = subparsers.add_parser("sync", help="Pull (rebase) then push")
    sync_parser.add_argument("--no-push", action="store_true", help="Pull only")

    undo_parser = subparsers.add_parser(
        "undo", help="Undo the last snapshot, keeping its changes"
    )
    undo_parser.add_argument(
        "--force", "-f", action="store_true", help="Undo a commit ghts did not create"
    )

    history_parser = subparsers.add_parser("history", help="List recent commits")
    history_parser.add_argument(
        "-n", type=int, default=None, help="Number of commits (default: 10)"
    )

    subparsers.add_parser("status", help="Show branch and sync status")
    return parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the ghts CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return

    setup_logging(args.verbose, Config.load())
    no_push = getattr(args, "no_push", False)

    if args.command == "save":
        with console.status("Saving snapshot...", spinner="dots"):
            outcome = ops.save(args.message, push=False if no_push else None)
        render_save(outcome)
    elif args.command == "sync":
        with console.status("Syncing with remote...", spinner="dots"):
            outcome = ops.sync(push=not no_push)
        render_sync(outcome)
    elif args.command == "undo":
        outcome = ops.undo(force=args.force)
        render_undo(outcome)
    elif args.command == "history":
        outcome = ops.history(args.n)
        render_history(outcome)
    elif args.command == "status":
        status_outcome = ops.status()
        render_status(status_outcome)
        if isinstance(status_outcome, Failed):
            sys.exit(int(status_outcome.status))
        return
    else:
        parser.print_help()
        return

    if outcome.status is not ExitStatus.SUCCESS:
        sys.exit(int(outcome.status))


if __name__ == "__main__":
    main()
