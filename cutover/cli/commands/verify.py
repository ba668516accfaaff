"""``cutover verify [RUN_ID]``: verify ledger hash chains.

With a run ID, verifies that run's chain; without one, verifies every run
in the ledger. Exits with code 1 if any chain is broken.
"""

from __future__ import annotations

import typer
from rich.console import Console
from rich.table import Table

from cutover.cli.commands.history import open_ledger
from cutover.core.run_ledger import LedgerIntegrityError

console = Console()


def verify_cmd(
    run_id: str = typer.Argument(None, help="Run to verify (default: every run)."),
    ledger_db: str = typer.Option(
        None,
        "--ledger",
        "-l",
        help="Path to the ledger SQLite database (default: CUTOVER_LEDGER_PATH).",
    ),
) -> None:
    """Verify the hash chain of one run or of every run."""
    ledger = open_ledger(ledger_db)
    run_ids = [run_id] if run_id else ledger.get_all_run_ids()

    if run_id and not ledger.get_run_entries(run_id):
        console.print(f"[bold red]Run not found:[/bold red] {run_id}")
        raise typer.Exit(code=1)

    table = Table(title="Hash Chain Verification")
    table.add_column("Run", style="cyan", no_wrap=True)
    table.add_column("Entries", justify="right")
    table.add_column("Chain")
    table.add_column("Detail")

    broken = 0
    for rid in run_ids:
        entries = ledger.get_run_entries(rid)
        try:
            ledger.verify_chain(rid)
            table.add_row(rid, str(len(entries)), "[green]VALID[/green]", "")
        except LedgerIntegrityError as exc:
            broken += 1
            table.add_row(rid, str(len(entries)), "[bold red]BROKEN[/bold red]", str(exc))

    console.print(table)
    if broken:
        console.print(f"[bold red]{broken} of {len(run_ids)} chain(s) broken.[/bold red]")
        raise typer.Exit(code=1)
    console.print(f"[green]{len(run_ids)} chain(s) verified.[/green]")
