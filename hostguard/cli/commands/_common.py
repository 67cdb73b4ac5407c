"""
Shared CLI plumbing: options, manager construction, error reporting.

Exit codes: 0 success, 1 operation refused or failed, 2 unexpected error.
"""

import json
from contextlib import contextmanager
from typing import Any, Iterator, Optional

import typer
from rich.console import Console

from ...config import HostGuardConfig
from ...core.errors import HostGuardError
from ...transaction import TransactionManager

console = Console()

ROOT_OPTION = typer.Option(
    None,
    "--root",
    "-r",
    help="State root (default: $HOSTGUARD_ROOT or /var/lib/hostguard)",
)
JSON_OPTION = typer.Option(False, "--json", help="Output as JSON")


def make_manager(root: Optional[str]) -> TransactionManager:
    return TransactionManager(HostGuardConfig.from_env(root))


def print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


def fail(message: str, json_output: bool, code: int = 1) -> None:
    if json_output:
        print_json({"success": False, "error": message})
    else:
        console.print(f"[red]Error:[/red] {message}")
    raise typer.Exit(code)


@contextmanager
def cli_errors(json_output: bool) -> Iterator[None]:
    """Map hostguard errors to exit 1 and anything else to exit 2."""
    try:
        yield
    except typer.Exit:
        raise
    except HostGuardError as e:
        fail(f"{type(e).__name__}: {e}", json_output, code=1)
    except Exception as e:
        fail(f"{type(e).__name__}: {e}", json_output, code=2)
