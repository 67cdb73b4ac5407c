"""
Lock commands: status
"""

from typing import Optional

import typer

from ._common import JSON_OPTION, ROOT_OPTION, cli_errors, console, make_manager, print_json

app = typer.Typer()


@app.command()
def status(
    root: Optional[str] = ROOT_OPTION,
    json_output: bool = JSON_OPTION,
):
    """Show who holds the host lock."""
    with cli_errors(json_output):
        manager = make_manager(root)
        info = manager.lock.status()
        if json_output:
            print_json({"locked": info is not None and not info["stale"], "lock": info})
            return
        if info is None:
            console.print("[green]Unlocked[/green]")
        elif info["stale"]:
            console.print(
                f"[yellow]Stale lock[/yellow] of {info['owner']} (pid {info['pid']}), "
                f"heartbeat {info['age']:.0f}s ago; the next begin() reclaims it"
            )
        else:
            console.print(
                f"[red]Locked[/red] by {info['owner']} (pid {info['pid']} on {info['hostname']}), "
                f"heartbeat {info['age']:.0f}s ago"
            )
