"""Command-line utilities for inspecting persisted highlight sessions.

Usage:
    manage-highlights show <session>   Show a session's highlights
    manage-highlights clear <session>  Delete a session's record
    manage-highlights keys             List stored session keys
"""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING

from rich.console import Console
from rich.table import Table

from passagemark.models import SessionState
from passagemark.persistence import FileStorage, get_session_storage, storage_key

if TYPE_CHECKING:
    import argparse

    from passagemark.persistence import SessionStorage

console = Console()


def _build_parser() -> argparse.ArgumentParser:
    """Build argparse parser for manage-highlights subcommands."""
    import argparse

    parser = argparse.ArgumentParser(
        prog="manage-highlights",
        description="Inspect and clear persisted passage highlights.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    show_p = sub.add_parser("show", help="Show a session's highlights")
    show_p.add_argument("session", help="Session key (e.g. attempt-42)")

    clear_p = sub.add_parser("clear", help="Delete a session's highlights")
    clear_p.add_argument("session", help="Session key (e.g. attempt-42)")

    sub.add_parser("keys", help="List stored session keys (file backend only)")

    return parser


def _cmd_show(
    session: str,
    *,
    storage: SessionStorage,
    key_prefix: str,
    console: Console | None = None,
) -> bool:
    """Print a session's highlights as a Rich table.

    Returns:
        False if nothing is stored for the session.
    """
    con = console or globals()["console"]
    key = storage_key(key_prefix, session)
    record = storage.load(key)
    if record is None:
        con.print(f"[yellow]No highlights stored for[/] {key}")
        return False

    state = SessionState.from_record(record)
    table = Table(title=f"Highlights: {key}")
    table.add_column("Container", style="cyan")
    table.add_column("Range")
    table.add_column("Colour")
    table.add_column("Text")
    table.add_column("Id", style="dim")

    for container_id in sorted(state.annotations_by_container):
        for annotation in state.annotations_by_container[container_id]:
            table.add_row(
                container_id,
                f"{annotation.start_offset}-{annotation.end_offset}",
                annotation.color.value,
                annotation.text,
                annotation.id,
            )

    con.print(table)
    con.print(f"Active colour: [bold]{state.active_color.value}[/]")
    return True


def _cmd_clear(
    session: str,
    *,
    storage: SessionStorage,
    key_prefix: str,
    console: Console | None = None,
) -> bool:
    """Delete a session's record."""
    con = console or globals()["console"]
    key = storage_key(key_prefix, session)
    if storage.delete(key):
        con.print(f"[green]Cleared:[/] {key}")
        return True
    con.print(f"[yellow]Nothing stored for[/] {key}")
    return False


def _cmd_keys(
    *,
    storage: SessionStorage,
    key_prefix: str,
    console: Console | None = None,
) -> list[str]:
    """List stored session keys, in the form ``show`` and ``clear`` accept.

    Only file storage can be enumerated; records under other prefixes are
    left out.
    """
    con = console or globals()["console"]
    if not isinstance(storage, FileStorage):
        con.print("[red]Error:[/] listing keys requires STORAGE__BACKEND=file")
        return []

    marker = f"{key_prefix}-"
    sessions = [
        key.removeprefix(marker)
        for key in storage.iter_keys()
        if key.startswith(marker) and key != marker
    ]
    if not sessions:
        con.print("[yellow]No sessions stored.[/]")
        return sessions
    for session in sessions:
        con.print(session)
    return sessions


def manage_highlights() -> None:
    """Inspect and clear persisted highlight sessions.

    Usage:
        manage-highlights <command> [options]
    """
    from passagemark.config import get_settings

    parser = _build_parser()
    args = parser.parse_args(sys.argv[1:])

    settings = get_settings()
    if settings.storage.backend == "user":
        console.print(
            "[red]Error:[/] STORAGE__BACKEND=user keeps highlights in browser "
            "sessions; use the file backend to manage them here"
        )
        sys.exit(1)
    storage = get_session_storage(settings)
    prefix = settings.storage.key_prefix

    match args.command:
        case "show":
            ok = _cmd_show(args.session, storage=storage, key_prefix=prefix)
        case "clear":
            ok = _cmd_clear(args.session, storage=storage, key_prefix=prefix)
        case "keys":
            ok = bool(_cmd_keys(storage=storage, key_prefix=prefix))
        case _:
            ok = False

    if not ok:
        sys.exit(1)
