"""Main Typer application: imports and registers all CLI commands.

Entry point: ``cutover`` (configured via pyproject.toml [project.scripts]).

Commands: demo, history, show, last-deploy, verify.
"""

from __future__ import annotations

import logging

import typer
from rich.logging import RichHandler

from cutover.cli.commands.demo import demo_cmd
from cutover.cli.commands.history import history_cmd, last_deploy_cmd, show_cmd
from cutover.cli.commands.verify import verify_cmd
from cutover.config import ReleaseSettings

app = typer.Typer(
    name="cutover",
    help="Cutover: Source -> Build -> Deploy with alias cutover and an auditable run ledger.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)


@app.callback()
def _configure(
    log_level: str = typer.Option(
        None,
        "--log-level",
        help="Logging level (default: CUTOVER_LOG_LEVEL or INFO).",
    ),
) -> None:
    level = (log_level or ReleaseSettings().log_level).upper()
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
        force=True,
    )


# Register subcommands
app.command(name="demo", help="Run the pipeline against in-memory providers.")(demo_cmd)
app.command(name="history", help="List recent pipeline runs.")(history_cmd)
app.command(name="show", help="Show the stages of one run.")(show_cmd)
app.command(name="last-deploy", help="Show the last successful deploy of an alias.")(last_deploy_cmd)
app.command(name="verify", help="Verify ledger hash chains.")(verify_cmd)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
