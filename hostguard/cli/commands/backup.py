"""
Backup commands: capture, list, restore, prune
"""

import os
from typing import Optional

import typer
from rich.table import Table

from ._common import JSON_OPTION, ROOT_OPTION, cli_errors, console, make_manager, print_json

app = typer.Typer()


@app.command()
def capture(
    path: str = typer.Argument(..., help="File to capture"),
    reason: str = typer.Option("manual", "--reason", help="Why the capture is made"),
    root: Optional[str] = ROOT_OPTION,
    json_output: bool = JSON_OPTION,
):
    """Capture one file into the backup store."""
    with cli_errors(json_output):
        manager = make_manager(root)
        owner = f"backup-{os.getpid()}"
        manager.lock.acquire(owner)
        try:
            backup = manager.backups.capture(os.path.abspath(path), reason=reason)
        finally:
            manager.lock.release(owner)
        if json_output:
            print_json({"success": True, "backup": backup.to_dict()})
        else:
            console.print(f"[green]✓ Captured[/green] {backup.original_path}")
            console.print(f"  Reference: [cyan]{backup.reference}[/cyan]")
            console.print(f"  Checksum: {backup.checksum[:16]}...")


@app.command("list")
def list_command(
    path: str = typer.Argument(..., help="Original file path"),
    root: Optional[str] = ROOT_OPTION,
    json_output: bool = JSON_OPTION,
):
    """List backups of a path, newest first."""
    with cli_errors(json_output):
        manager = make_manager(root)
        backups = manager.backups.list(os.path.abspath(path))
        if json_output:
            print_json({"backups": [b.to_dict() for b in backups], "count": len(backups)})
            return

        if not backups:
            console.print(f"[yellow]No backups of {path}[/yellow]")
            return

        table = Table(title=f"Backups of {os.path.abspath(path)}")
        table.add_column("Reference", style="cyan")
        table.add_column("Created", style="dim")
        table.add_column("Size", justify="right")
        table.add_column("Mode")
        table.add_column("Reason")
        for b in backups:
            table.add_row(b.reference, b.created_at.isoformat(), str(b.size), oct(b.mode & 0o7777), b.reason)
        console.print(table)


@app.command()
def restore(
    reference: str = typer.Argument(..., help="Backup reference (<path-hash>/<stamp>)"),
    root: Optional[str] = ROOT_OPTION,
    json_output: bool = JSON_OPTION,
):
    """Write a backup back over its original path."""
    with cli_errors(json_output):
        manager = make_manager(root)
        backup = manager.backups.get(reference)
        owner = f"backup-{os.getpid()}"
        manager.lock.acquire(owner)
        try:
            manager.backups.restore(backup)
        finally:
            manager.lock.release(owner)
        if json_output:
            print_json({"success": True, "restored": backup.original_path, "reference": reference})
        else:
            console.print(f"[green]✓ Restored[/green] {backup.original_path} from {reference}")


@app.command()
def prune(
    path: str = typer.Argument(..., help="Original file path"),
    keep: int = typer.Option(..., "--keep", "-k", help="Newest backups to keep"),
    root: Optional[str] = ROOT_OPTION,
    json_output: bool = JSON_OPTION,
):
    """
    Delete all but the newest N backups of a path.

    Backups referenced by a checkpoint are kept.
    """
    with cli_errors(json_output):
        manager = make_manager(root)
        protect = set()
        for checkpoint in manager.checkpoints.list():
            protect.update(checkpoint.backup_references())
        removed = manager.backups.prune(os.path.abspath(path), keep, protect=protect)
        if json_output:
            print_json({"success": True, "removed": [b.reference for b in removed], "count": len(removed)})
        else:
            console.print(f"[green]✓ Removed {len(removed)} backup(s)[/green]")
