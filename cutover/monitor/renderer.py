"""Rich terminal renderer for run history and run detail.

Color scheme
------------
- green     : PASSED / succeeded
- red       : FAILED / failed
- yellow    : RUNNING / in progress
- dim       : NOT_STARTED, SKIPPED
- magenta   : cancelled
"""

from __future__ import annotations

from rich.console import Console, Group
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from cutover.models.ledger import DeployRecord
from cutover.models.runs import PipelineRunResult, RunStatus
from cutover.models.stages import StageState
from cutover.monitor.projection import RunSummary

_STATE_ICONS: dict[StageState, str] = {
    StageState.PASSED: "[green]PASSED[/green]",
    StageState.FAILED: "[bold red]FAILED[/bold red]",
    StageState.RUNNING: "[yellow]RUNNING[/yellow]",
    StageState.NOT_STARTED: "[dim]NOT STARTED[/dim]",
    StageState.SKIPPED: "[dim]SKIPPED[/dim]",
}

_STATUS_ICONS: dict[RunStatus, str] = {
    RunStatus.SUCCEEDED: "[green]succeeded[/green]",
    RunStatus.FAILED: "[bold red]failed[/bold red]",
    RunStatus.IN_PROGRESS: "[yellow]in progress[/yellow]",
    RunStatus.CANCELLED: "[magenta]cancelled[/magenta]",
}


def _ts(value) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S") if value else "-"


class MonitorRenderer:
    """Renders run summaries and results as Rich output.

    Parameters
    ----------
    console:
        Rich Console instance.  A new one is created if not provided.
    """

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def render_history(self, summaries: list[RunSummary]) -> Table:
        table = Table(title="Run History", show_lines=False)
        table.add_column("Run", style="cyan", no_wrap=True)
        table.add_column("Status")
        table.add_column("Source")
        table.add_column("Failed Stage")
        table.add_column("Error")
        table.add_column("Version", justify="right")
        table.add_column("Started")
        table.add_column("Finished")

        for s in summaries:
            version = s.deployed_version or "-"
            if s.deployed_version and s.previous_version and s.previous_version != s.deployed_version:
                version = f"{s.previous_version} -> {s.deployed_version}"
            table.add_row(
                s.run_id,
                _STATUS_ICONS.get(s.status, s.status.value),
                s.source_ref,
                s.failed_stage or "-",
                s.failure_kind or "-",
                version,
                _ts(s.started_at),
                _ts(s.finished_at),
            )
        return table

    def render_run(self, summary: RunSummary) -> Panel:
        table = Table(show_header=True, header_style="bold", expand=True)
        table.add_column("Stage", style="cyan", min_width=10)
        table.add_column("Kind", min_width=8)
        table.add_column("State", min_width=12)
        table.add_column("Artifacts")
        table.add_column("Entered")

        for stage in summary.stages:
            table.add_row(
                stage.name,
                stage.kind or "-",
                _STATE_ICONS.get(stage.state, stage.state.value),
                "\n".join(stage.artifact_refs) or "-",
                _ts(stage.entered_at),
            )

        parts: list = [table, Text("")]
        footer = [
            f"[bold]Run:[/bold] {summary.run_id}",
            f"[bold]Status:[/bold] {_STATUS_ICONS.get(summary.status, summary.status.value)}",
            f"[bold]Target:[/bold] {summary.function_name}:{summary.alias_name}",
        ]
        if summary.deployed_version:
            footer.append(f"[bold]Version:[/bold] {summary.deployed_version}")
        chain = "[green]valid[/green]" if summary.chain_valid else "[bold red]BROKEN[/bold red]"
        footer.append(f"[bold]Chain:[/bold] {chain}")
        parts.append(Text.from_markup("  |  ".join(footer)))

        for stage in summary.stages:
            if stage.failure_kind:
                parts.append(Text(""))
                parts.append(Text.from_markup(
                    f"[bold red]{stage.failure_kind}[/bold red] at {stage.name}: "
                ) + Text(stage.failure_message))
                if stage.diagnostics:
                    parts.append(Panel(Text(stage.diagnostics), title="Build diagnostics", border_style="red"))

        return Panel(
            Group(*parts),
            title=f"[bold]{summary.source_ref or summary.run_id}[/bold]",
            border_style="green" if summary.status == RunStatus.SUCCEEDED else "red",
            padding=(1, 2),
        )

    def render_result(self, result: PipelineRunResult) -> Panel:
        lines = [
            f"[bold]Run ID:[/bold]  {result.run_id}",
            f"[bold]Status:[/bold]  {_STATUS_ICONS.get(result.status, result.status.value)}",
        ]
        for outcome in result.stages:
            lines.append(f"  {outcome.stage:<10} {_STATE_ICONS.get(outcome.state, outcome.state.value)}")
        if result.deploy is not None:
            d = result.deploy
            if d.noop:
                lines.append(f"[bold]Alias:[/bold]   {d.function_name}:{d.alias_name} already at {d.version}")
            else:
                verb = "created at" if d.alias_created else f"{d.previous_version} ->"
                lines.append(f"[bold]Alias:[/bold]   {d.function_name}:{d.alias_name} {verb} {d.version}")
        if result.failure is not None:
            lines.append(f"[bold red]Error:[/bold red]   {escape(result.failure.describe())}")
            if result.failure.diagnostics:
                lines.append("")
                lines.append(escape(result.failure.diagnostics))
        return Panel(
            "\n".join(lines),
            title="[bold]Pipeline Run[/bold]",
            border_style="green" if result.succeeded else "red",
            padding=(1, 2),
        )

    def render_deploy_record(self, record: DeployRecord) -> Panel:
        return Panel(
            "\n".join([
                f"[bold]Function:[/bold] {record.function_name}",
                f"[bold]Alias:[/bold]    {record.alias_name}",
                f"[bold]Version:[/bold]  {record.version}",
                f"[bold]Previous:[/bold] {record.previous_version or '-'}",
                f"[bold]Code:[/bold]     {record.code_sha256[:16] or '-'}",
                f"[bold]Run:[/bold]      {record.run_id}",
                f"[bold]At:[/bold]       {_ts(record.deployed_at)}",
            ]),
            title="[bold]Last Successful Deploy[/bold]",
            border_style="green",
            padding=(1, 2),
        )

    def print_history(self, summaries: list[RunSummary]) -> None:
        self.console.print(self.render_history(summaries))

    def print_run(self, summary: RunSummary) -> None:
        self.console.print(self.render_run(summary))

    def print_result(self, result: PipelineRunResult) -> None:
        self.console.print(self.render_result(result))
