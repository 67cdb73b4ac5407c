"""
Checkpoint commands: create, list, show, restore, delete
"""

from typing import List, Optional

import typer
from rich.table import Table

from ._common import JSON_OPTION, ROOT_OPTION, cli_errors, console, fail, make_manager, print_json
from .tx import print_report

app = typer.Typer()


@app.command()
def create(
    name: str = typer.Argument(..., help="Checkpoint name"),
    paths: List[str] = typer.Argument(..., help="Files to capture"),
    root: Optional[str] = ROOT_OPTION,
    json_output: bool = JSON_OPTION,
):
    """
    Create a standalone restore point.

    Paths that do not exist yet are recorded as absent; restoring the
    checkpoint removes them again.

    Examples:
        hostguard checkpoint create before-upgrade /etc/nginx/nginx.conf /etc/hosts
    """
    with cli_errors(json_output):
        manager = make_manager(root)
        checkpoint = manager.create_restore_point(name, paths)
        if json_output:
            data = checkpoint.header()
            data["manifest"] = [e.to_dict() for e in checkpoint.manifest]
            print_json({"success": True, "checkpoint": data})
        else:
            console.print(f"[green]✓ Checkpoint {name} created[/green] ({len(checkpoint.manifest)} entries)")
            for entry in checkpoint.manifest:
                console.print(f"  {entry.kind.value:<8} {entry.target}")


@app.command("list")
def list_command(
    root: Optional[str] = ROOT_OPTION,
    json_output: bool = JSON_OPTION,
):
    """List checkpoints, oldest first."""
    with cli_errors(json_output):
        manager = make_manager(root)
        checkpoints = manager.checkpoints.list()
        if json_output:
            rows = []
            for c in checkpoints:
                row = c.header()
                row["entries"] = len(c.manifest)
                rows.append(row)
            print_json({"checkpoints": rows, "count": len(rows)})
            return

        if not checkpoints:
            console.print("[yellow]No checkpoints[/yellow]")
            return

        table = Table(title="Checkpoints")
        table.add_column("Name", style="cyan")
        table.add_column("Transaction", style="yellow")
        table.add_column("Entries", justify="right")
        table.add_column("Created", style="dim")
        for c in checkpoints:
            table.add_row(c.name, c.transaction_id or "-", str(len(c.manifest)), c.created_at.isoformat())
        console.print(table)


@app.command()
def show(
    name: str = typer.Argument(..., help="Checkpoint name"),
    root: Optional[str] = ROOT_OPTION,
    json_output: bool = JSON_OPTION,
):
    """Show a checkpoint manifest in restore order (newest first)."""
    with cli_errors(json_output):
        manager = make_manager(root)
        checkpoint = manager.checkpoints.get(name)
        if json_output:
            data = checkpoint.header()
            data["manifest"] = [e.to_dict() for e in checkpoint.manifest]
            print_json(data)
            return

        console.print(f"[bold]{checkpoint.name}[/bold]  transaction={checkpoint.transaction_id or '-'}")
        table = Table(title="Restore order")
        table.add_column("Seq", justify="right", style="cyan")
        table.add_column("Op", justify="right")
        table.add_column("Undo")
        for entry in reversed(checkpoint.manifest):
            op = "-" if entry.operation_index is None else str(entry.operation_index)
            table.add_row(str(entry.seq), op, entry.describe())
        console.print(table)


@app.command()
def restore(
    name: str = typer.Argument(..., help="Checkpoint name"),
    root: Optional[str] = ROOT_OPTION,
    json_output: bool = JSON_OPTION,
):
    """
    Restore a checkpoint under the host lock.

    Every entry is attempted; exit status 1 means the restore was PARTIAL.
    """
    with cli_errors(json_output):
        manager = make_manager(root)
        report = manager.restore_checkpoint(name)
        if json_output:
            data = report.to_dict()
            data["success"] = report.ok
            print_json(data)
        else:
            print_report(report)
        if not report.ok:
            raise typer.Exit(1)


@app.command()
def delete(
    name: str = typer.Argument(..., help="Checkpoint name"),
    root: Optional[str] = ROOT_OPTION,
    json_output: bool = JSON_OPTION,
):
    """Delete a checkpoint and the backups only it references."""
    with cli_errors(json_output):
        manager = make_manager(root)
        checkpoint = manager.checkpoints.get(name)
        if checkpoint.transaction_id and checkpoint.transaction_id == manager.lock.held_by():
            fail(f"checkpoint {name} belongs to the active transaction", json_output)

        keep = set()
        for other in manager.checkpoints.list():
            if other.name != name:
                keep.update(other.backup_references())
        manager.checkpoints.delete(checkpoint, keep_backups=keep)
        if json_output:
            print_json({"success": True, "deleted": name})
        else:
            console.print(f"[green]✓ Checkpoint {name} deleted[/green]")
