"""
Transaction commands: list, show, rollback, replay, verify, cleanup
"""

from typing import Optional

import typer
from rich.table import Table

from ...checkpoint.model import RestoreReport
from ...core.model import TransactionState
from ...query import filter_transactions, get_failures, resolve_transaction_id, summarize
from ...replay.runner import HostExecutor
from ._common import JSON_OPTION, ROOT_OPTION, cli_errors, console, fail, make_manager, print_json

app = typer.Typer()

STATE_STYLES = {
    "PENDING": "yellow",
    "COMMITTING": "yellow",
    "COMMITTED": "green",
    "ROLLING_BACK": "yellow",
    "ROLLED_BACK": "cyan",
    "FAILED": "red",
}


def _resolve(manager, ref: str, json_output: bool) -> str:
    tid = resolve_transaction_id(manager.log.transaction_ids(), ref)
    if tid is None:
        fail(f"transaction not found: {ref}", json_output)
    return tid


def print_report(report: RestoreReport) -> None:
    style = "green" if report.ok else "red"
    console.print(f"[{style}]Restore {report.status.value}[/{style}] ({report.checkpoint or 'no checkpoint'})")
    for outcome in report.succeeded:
        console.print(f"  [green]✓[/green] {outcome.entry.describe()}")
    for outcome in report.failed:
        console.print(f"  [red]✗[/red] {outcome.entry.describe()}: {outcome.error}")


@app.command("list")
def list_command(
    state: Optional[str] = typer.Option(None, "--state", "-s", help="Only transactions in this state"),
    label: Optional[str] = typer.Option(None, "--label", help="Label substring filter"),
    root: Optional[str] = ROOT_OPTION,
    json_output: bool = JSON_OPTION,
):
    """
    List logged transactions, oldest first.

    Examples:
        hostguard tx list
        hostguard tx list --state FAILED --json
    """
    with cli_errors(json_output):
        wanted = TransactionState(state.upper()) if state else None
        manager = make_manager(root)
        rows = [summarize(t) for t in filter_transactions(manager.list_transactions(), state=wanted, label=label)]

        if json_output:
            print_json({"transactions": rows, "count": len(rows)})
            return

        if not rows:
            console.print("[yellow]No transactions[/yellow]")
            return

        table = Table(title="Transactions")
        table.add_column("ID", style="cyan")
        table.add_column("Label")
        table.add_column("State")
        table.add_column("Ops", justify="right")
        table.add_column("Created", style="dim")
        for row in rows:
            style = STATE_STYLES.get(row["state"], "white")
            table.add_row(
                row["id"],
                row["label"],
                f"[{style}]{row['state']}[/{style}]",
                str(row["operations"]),
                row["created_at"],
            )
        console.print(table)


@app.command()
def show(
    ref: str = typer.Argument(..., help="Transaction id or its random suffix"),
    root: Optional[str] = ROOT_OPTION,
    json_output: bool = JSON_OPTION,
):
    """Show one transaction with its operations."""
    with cli_errors(json_output):
        manager = make_manager(root)
        txn = manager.get_transaction(_resolve(manager, ref, json_output))

        if json_output:
            data = txn.to_dict()
            data["failures"] = get_failures(txn)
            print_json(data)
            return

        summary = summarize(txn)
        style = STATE_STYLES.get(summary["state"], "white")
        console.print(f"[bold]{txn.id}[/bold]  {txn.label}")
        console.print(f"  State: [{style}]{summary['state']}[/{style}]")
        console.print(f"  Checkpoint: {txn.checkpoint or '-'}")
        console.print(f"  Created: {summary['created_at']}  Ended: {summary['ended_at'] or '-'}")

        table = Table(title="Operations")
        table.add_column("#", justify="right", style="cyan")
        table.add_column("Kind", style="green")
        table.add_column("Target")
        table.add_column("Result")
        table.add_column("Tries", justify="right")
        table.add_column("Error", style="red")
        for op in txn.operations:
            error = f"{op.error.category.value}: {op.error.message}" if op.error else ""
            table.add_row(str(op.index), op.kind.value, op.target, op.result.value, str(op.attempts), error)
        console.print(table)


@app.command()
def rollback(
    ref: str = typer.Argument(..., help="Transaction id or its random suffix"),
    root: Optional[str] = ROOT_OPTION,
    json_output: bool = JSON_OPTION,
):
    """
    Recover a transaction abandoned by a dead process.

    PENDING/ROLLING_BACK transactions are rolled back from their checkpoint;
    a COMMITTING transaction is finalized as COMMITTED. Refused while the
    host lock is live.
    """
    with cli_errors(json_output):
        manager = make_manager(root)
        tid = _resolve(manager, ref, json_output)
        report = manager.recover(tid)
        txn = manager.get_transaction(tid)

        if json_output:
            print_json({
                "success": report is None or report.ok,
                "transaction": tid,
                "state": txn.state.value,
                "report": report.to_dict() if report else None,
            })
        elif report is None:
            console.print(f"[green]✓ Commit of {tid} finalized[/green]")
        else:
            print_report(report)
            console.print(f"  Transaction state: {txn.state.value}")

        if report is not None and not report.ok:
            raise typer.Exit(1)


@app.command()
def replay(
    ref: str = typer.Argument(..., help="Transaction id or its random suffix"),
    execute: bool = typer.Option(False, "--execute", help="Actually run the operations (default: dry run)"),
    root: Optional[str] = ROOT_OPTION,
    json_output: bool = JSON_OPTION,
):
    """
    Replay a transaction's actions for debugging.

    Never used for automatic recovery: arbitrary commands are not assumed
    idempotent. Without --execute only lists what would run.
    """
    with cli_errors(json_output):
        manager = make_manager(root)
        tid = _resolve(manager, ref, json_output)
        executor = HostExecutor(manager.runner, manager.packages, timeout=manager.config.command_timeout)

        if execute:
            owner = f"replay-{tid}"
            manager.lock.acquire(owner)
            try:
                steps = manager.log.replay(tid, executor)
            finally:
                manager.lock.release(owner)
        else:
            steps = manager.log.replay(tid, executor, dry_run=True)

        ok = all(step.ok for step in steps)
        if json_output:
            print_json({"success": ok, "transaction": tid, "executed": execute, "steps": [s.to_dict() for s in steps]})
        else:
            table = Table(title=f"Replay of {tid}" + ("" if execute else " (dry run)"))
            table.add_column("#", justify="right", style="cyan")
            table.add_column("Kind", style="green")
            table.add_column("Target")
            table.add_column("Outcome")
            for step in steps:
                outcome = "[dim]would run[/dim]" if not step.executed else ("[green]ok[/green]" if step.ok else "[red]failed[/red]")
                if step.detail and step.executed:
                    outcome = f"{outcome} {step.detail}"
                table.add_row(str(step.operation.index), step.operation.kind.value, step.operation.target, outcome)
            console.print(table)

        if not ok:
            raise typer.Exit(1)


@app.command()
def verify(
    ref: str = typer.Argument(..., help="Transaction id or its random suffix"),
    root: Optional[str] = ROOT_OPTION,
    json_output: bool = JSON_OPTION,
):
    """Verify the hash chain of a transaction log."""
    with cli_errors(json_output):
        manager = make_manager(root)
        tid = _resolve(manager, ref, json_output)
        count = manager.log.verify(tid)
        if json_output:
            print_json({"success": True, "transaction": tid, "records": count})
        else:
            console.print(f"[green]✓ Hash chain valid[/green] ({count} records)")


@app.command()
def cleanup(
    keep: Optional[int] = typer.Option(None, "--keep", "-k", help="Checkpoints to keep (default: $HOSTGUARD_BACKUP_KEEP)"),
    root: Optional[str] = ROOT_OPTION,
    json_output: bool = JSON_OPTION,
):
    """
    Delete checkpoints of ended transactions beyond the newest N.

    FAILED transactions and the active transaction are never touched.
    """
    with cli_errors(json_output):
        manager = make_manager(root)
        deleted = manager.cleanup(keep)
        if json_output:
            print_json({"success": True, "deleted": deleted, "count": len(deleted)})
        else:
            console.print(f"[green]✓ Removed {len(deleted)} checkpoint(s)[/green]")
            for name in deleted:
                console.print(f"  {name}")
