"""``cutover history``, ``cutover show RUN_ID`` and ``cutover last-deploy``.

Read-only views over the run ledger. Every display re-reads the ledger.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from cutover.config import ReleaseSettings
from cutover.core.run_ledger import RunLedger
from cutover.monitor.projection import MonitorProjection
from cutover.monitor.renderer import MonitorRenderer

console = Console()


def open_ledger(ledger_db: str | None) -> RunLedger:
    """Open an existing ledger, exiting with code 1 if there is none."""
    db_path = Path(ledger_db) if ledger_db else ReleaseSettings().ledger_path
    if not db_path.exists():
        console.print(f"[bold red]Ledger not found:[/bold red] {db_path}")
        console.print("[dim]Run the pipeline first, e.g.: cutover demo[/dim]")
        raise typer.Exit(code=1)
    return RunLedger(db_path)


def history_cmd(
    limit: int = typer.Option(20, "--limit", "-n", min=1, help="Number of runs to show."),
    ledger_db: str = typer.Option(
        None,
        "--ledger",
        "-l",
        help="Path to the ledger SQLite database (default: CUTOVER_LEDGER_PATH).",
    ),
) -> None:
    """List recent runs, most recent first."""
    ledger = open_ledger(ledger_db)
    summaries = MonitorProjection(ledger).history(limit=limit)
    if not summaries:
        console.print("[dim]No runs recorded.[/dim]")
        return
    MonitorRenderer(console=console).print_history(summaries)


def show_cmd(
    run_id: str = typer.Argument(..., help="The run ID to show."),
    ledger_db: str = typer.Option(
        None,
        "--ledger",
        "-l",
        help="Path to the ledger SQLite database (default: CUTOVER_LEDGER_PATH).",
    ),
) -> None:
    """Show per-stage status, artifacts and failure details for a run."""
    ledger = open_ledger(ledger_db)
    summary = MonitorProjection(ledger).summary(run_id)
    if summary is None:
        console.print(f"[bold red]Run not found:[/bold red] {run_id}")
        all_runs = ledger.get_all_run_ids()
        if all_runs:
            console.print("\n[bold]Available runs:[/bold]")
            for rid in all_runs[:10]:
                console.print(f"  [cyan]{rid}[/cyan]")
            if len(all_runs) > 10:
                console.print(f"  [dim]... and {len(all_runs) - 10} more[/dim]")
        raise typer.Exit(code=1)
    MonitorRenderer(console=console).print_run(summary)


def last_deploy_cmd(
    function_name: str = typer.Option(..., "--function", "-f", help="Function name."),
    alias_name: str = typer.Option("live", "--alias", help="Alias name."),
    ledger_db: str = typer.Option(
        None,
        "--ledger",
        "-l",
        help="Path to the ledger SQLite database (default: CUTOVER_LEDGER_PATH).",
    ),
) -> None:
    """Show what the last successful deploy put live on an alias."""
    ledger = open_ledger(ledger_db)
    record = ledger.last_successful_deploy(function_name, alias_name)
    if record is None:
        console.print(
            f"[yellow]No successful deploy recorded for {function_name}:{alias_name}.[/yellow]"
        )
        raise typer.Exit(code=1)
    console.print(MonitorRenderer(console=console).render_deploy_record(record))
