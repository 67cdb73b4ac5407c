#!/usr/bin/env python3
"""
hostguard CLI

Main entrypoint for the hostguard command-line tool.
"""

from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from .. import __version__
from ..logging_config import setup_logging
from .commands import backup, checkpoint, lock, tx

# Initialize Typer app
app = typer.Typer(
    name="hostguard",
    help="Transactional host changes with checkpoint rollback",
    add_completion=False,
)

console = Console()

app.add_typer(tx.app, name="tx", help="Transaction operations")
app.add_typer(checkpoint.app, name="checkpoint", help="Checkpoint management")
app.add_typer(backup.app, name="backup", help="Single-file backups")
app.add_typer(lock.app, name="lock", help="Host lock")


@app.callback()
def main_callback(
    log_level: Optional[str] = typer.Option(None, "--log-level", help="DEBUG, INFO, WARNING, ERROR"),
    log_format: Optional[str] = typer.Option(None, "--log-format", help="text or json"),
):
    setup_logging(level=log_level, log_format=log_format)


@app.command()
def version():
    """Show version information."""
    table = Table(show_header=False, box=None)
    table.add_row("[bold]hostguard[/bold]", f"v{__version__}")
    console.print(table)


def main():
    """Main entrypoint."""
    app()


if __name__ == "__main__":
    main()
